"""Catalog item as referenced by a cart line."""

from __future__ import annotations

from typing import Any

from pydantic import AliasChoices, Field, field_validator

from cartsync.models._base import CartBaseModel
from cartsync.normalize import non_negative_or_none, safe_float, safe_str


class Item(CartBaseModel):
    """A catalog item.

    Accepts both the camelCase shape persisted in the Local Store and the
    backend's book shape (``bookId``, stock carried as ``quantity``).

    Parameters
    ----------
    item_id : str
        Catalog identifier.
    title, author : str
        Display fields.
    price : float
        Unit price; ``0.0`` when absent.
    image_url : str
        Cover image URL.
    available_stock : int or None
        Available quantity, ``None`` when unknown.
    """

    item_id: str = Field(
        validation_alias=AliasChoices("itemId", "item_id", "bookId", "id"),
        serialization_alias="itemId",
    )
    title: str = ""
    author: str = ""
    price: float = 0.0
    image_url: str = Field(
        default="",
        validation_alias=AliasChoices("imageUrl", "image_url"),
        serialization_alias="imageUrl",
    )
    available_stock: int | None = Field(
        default=None,
        validation_alias=AliasChoices("availableStock", "available_stock", "stock", "quantity"),
        serialization_alias="availableStock",
    )

    @field_validator("item_id", mode="before")
    @classmethod
    def _coerce_item_id(cls, value: Any) -> str:
        text = safe_str(value)
        if text is None:
            raise ValueError("item_id must be non-empty")
        return text

    @field_validator("price", mode="before")
    @classmethod
    def _coerce_price(cls, value: Any) -> float:
        parsed = safe_float(value)
        return parsed if parsed is not None and parsed >= 0 else 0.0

    @field_validator("available_stock", mode="before")
    @classmethod
    def _coerce_stock(cls, value: Any) -> int | None:
        return non_negative_or_none(value)

    def with_stock(self, available: int | None) -> Item:
        """Return a copy carrying a fresher stock figure."""
        if available is None or available == self.available_stock:
            return self
        return self.model_copy(update={"available_stock": available})
