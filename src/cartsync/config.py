"""Client configuration for cartsync."""

from __future__ import annotations

import dataclasses
import os
from typing import Any

from cartsync._constants import (
    BASE_URL,
    CART_SLOT_KEY,
    ITEM_PARAM,
    MERGE_LEDGER_KEY,
    QUANTITY_PARAM,
    RELOAD_FLAG_KEY,
)
from cartsync.exceptions import CartConfigError


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


@dataclasses.dataclass(frozen=True)
class CartSyncConfig:
    """Cart synchronization configuration.

    Parameters
    ----------
    base_url : str
        Remote Cart Service base URL, including the API prefix.
    request_timeout : float
        Total timeout in seconds for a single remote call.  Exceeding it
        is reported as :class:`~cartsync.exceptions.RemoteUnavailableError`.
    cart_slot_key : str
        Local Store slot holding the serialized guest cart.
    reload_flag_key : str
        Local Store slot holding the "remote reload pending" flag.
    merge_ledger_key : str
        Local Store slot recording guest lines already merged remotely.
    item_param : str
        Query parameter carrying the item id on add-item requests.
    quantity_param : str
        Query parameter carrying the quantity on add/update requests.
    api_trace_enabled : bool
        Log (redacted) request parameters and response bodies at DEBUG.
    """

    base_url: str = BASE_URL
    request_timeout: float = 10.0
    cart_slot_key: str = CART_SLOT_KEY
    reload_flag_key: str = RELOAD_FLAG_KEY
    merge_ledger_key: str = MERGE_LEDGER_KEY
    item_param: str = ITEM_PARAM
    quantity_param: str = QUANTITY_PARAM
    api_trace_enabled: bool = False

    def __post_init__(self) -> None:
        if not self.base_url or not self.base_url.strip():
            raise CartConfigError("base_url must be non-empty")
        if self.request_timeout <= 0:
            raise CartConfigError(f"request_timeout must be positive, got {self.request_timeout}")
        keys = (self.cart_slot_key, self.reload_flag_key, self.merge_ledger_key)
        if len(set(keys)) != len(keys):
            raise CartConfigError("Local Store slot keys must be distinct")
        # Normalise trailing slash so endpoint paths can be appended verbatim.
        object.__setattr__(self, "base_url", self.base_url.strip().rstrip("/"))

    @classmethod
    def from_env(cls, **overrides: Any) -> CartSyncConfig:
        """Create configuration from environment variables.

        Reads optional ``CARTSYNC_*`` variables. Explicit keyword arguments
        override environment values.

        Parameters
        ----------
        **overrides
            Explicit field values that take precedence over env vars.

        Returns
        -------
        CartSyncConfig
            Populated configuration.
        """
        env = os.environ

        _ENV_CONFIG_MAP = {
            "CARTSYNC_BASE_URL": "base_url",
            "CARTSYNC_CART_SLOT_KEY": "cart_slot_key",
            "CARTSYNC_RELOAD_FLAG_KEY": "reload_flag_key",
            "CARTSYNC_MERGE_LEDGER_KEY": "merge_ledger_key",
            "CARTSYNC_ITEM_PARAM": "item_param",
            "CARTSYNC_QUANTITY_PARAM": "quantity_param",
        }
        config_kwargs: dict[str, Any] = {}
        for env_key, field_name in _ENV_CONFIG_MAP.items():
            val = env.get(env_key)
            if val is not None:
                config_kwargs[field_name] = val

        # request_timeout is numeric, handle separately
        timeout_env = env.get("CARTSYNC_REQUEST_TIMEOUT")
        if timeout_env is not None and "request_timeout" not in overrides:
            try:
                config_kwargs["request_timeout"] = float(timeout_env)
            except ValueError as exc:
                raise CartConfigError(f"CARTSYNC_REQUEST_TIMEOUT is not a number: {timeout_env!r}") from exc

        if "api_trace_enabled" not in overrides:
            config_kwargs["api_trace_enabled"] = _env_bool(
                env.get("CARTSYNC_API_TRACE_ENABLED"),
                False,
            )

        config_kwargs.update(overrides)

        return cls(**config_kwargs)
