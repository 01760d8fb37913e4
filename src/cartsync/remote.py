"""Remote Cart Service client."""

from __future__ import annotations

import logging
from typing import Any, Protocol

import aiohttp

from cartsync._api import cart as _cart_api
from cartsync._transport import HttpTransport, Transport
from cartsync.config import CartSyncConfig
from cartsync.exceptions import CartSyncError
from cartsync.models.cart import Cart
from cartsync.session import Identity

_logger = logging.getLogger(__name__)


class RemoteCartService(Protocol):
    """Authoritative per-user cart.

    Every mutating call returns the full resulting cart.  ``fetch`` raises
    :class:`~cartsync.exceptions.CartNotFoundError` when the user has no
    cart yet.
    """

    async def fetch(self, identity: Identity) -> Cart: ...

    async def create(self, identity: Identity) -> Cart: ...

    async def add_item(self, identity: Identity, item_id: str, quantity: int) -> Cart: ...

    async def set_quantity(self, identity: Identity, line_id: str, quantity: int) -> Cart: ...

    async def remove_item(self, identity: Identity, line_id: str) -> Cart: ...

    async def clear(self, identity: Identity) -> Cart: ...


class CartServiceClient:
    """Async HTTP client for the Remote Cart Service.

    Usage::

        async with CartServiceClient(config) as remote:
            cart = await remote.fetch(identity)
    """

    def __init__(
        self,
        config: CartSyncConfig,
        *,
        session: aiohttp.ClientSession | None = None,
        transport: Transport | None = None,
    ) -> None:
        self._config = config
        self._external_session = session is not None
        self._http_session = session
        self._transport: Transport | None = transport

    # ------------------------------------------------------------------
    # Context manager lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> CartServiceClient:
        if self._transport is None:
            if self._http_session is None:
                self._http_session = aiohttp.ClientSession()
            self._transport = HttpTransport(self._config, self._http_session)
        return self

    async def __aexit__(self, *exc: Any) -> None:
        if not self._external_session and self._http_session is not None:
            await self._http_session.close()
            self._http_session = None
            self._transport = None

    def _require_transport(self) -> Transport:
        if self._transport is None:
            raise CartSyncError("Client not initialized. Use 'async with CartServiceClient(...) as remote:'")
        return self._transport

    # ------------------------------------------------------------------
    # Cart endpoints
    # ------------------------------------------------------------------

    async def fetch(self, identity: Identity) -> Cart:
        """Fetch the user's cart."""
        return await _cart_api.fetch_cart(self._require_transport(), identity)

    async def create(self, identity: Identity) -> Cart:
        """Create an empty cart for the user."""
        _logger.debug("Creating remote cart for user_id=%s", identity.user_id)
        return await _cart_api.create_cart(self._require_transport(), identity)

    async def add_item(self, identity: Identity, item_id: str, quantity: int) -> Cart:
        """Add *quantity* of *item_id*; the service accumulates onto an existing line."""
        return await _cart_api.add_item(self._config, self._require_transport(), identity, item_id, quantity)

    async def set_quantity(self, identity: Identity, line_id: str, quantity: int) -> Cart:
        """Set a line's quantity."""
        return await _cart_api.set_quantity(self._config, self._require_transport(), identity, line_id, quantity)

    async def remove_item(self, identity: Identity, line_id: str) -> Cart:
        """Delete a line."""
        return await _cart_api.remove_item(self._require_transport(), identity, line_id)

    async def clear(self, identity: Identity) -> Cart:
        """Empty the cart."""
        return await _cart_api.clear_cart(self._require_transport(), identity)
