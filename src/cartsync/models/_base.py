"""Base model for cart payloads.

Every cart model inherits from :class:`CartBaseModel` which provides:

* frozen instances, so a snapshot handed to the UI can never be edited
  behind the engine's back
* a ``model_validator(mode="before")`` that drops ``None`` and blank-string
  values so the field default is used instead
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, model_validator


class CartBaseModel(BaseModel):
    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
    )

    @model_validator(mode="before")
    @classmethod
    def _drop_empty_values(cls, values: Any) -> Any:
        if not isinstance(values, dict):
            return values
        cleaned: dict[str, Any] = {}
        for key, value in values.items():
            if value is None:
                continue
            if isinstance(value, str) and not value.strip():
                continue
            cleaned[key] = value
        return cleaned
