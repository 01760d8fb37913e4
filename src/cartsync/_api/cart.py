"""Remote Cart Service endpoints.

Every call returns the full resulting cart; callers replace their snapshot
with it wholesale.
"""

from __future__ import annotations

from urllib.parse import quote

from cartsync._api._common import request_cart
from cartsync._constants import CART_ITEM_PATH, CART_ITEMS_PATH, CART_PATH
from cartsync._transport import Transport
from cartsync.config import CartSyncConfig
from cartsync.models.cart import Cart
from cartsync.session import Identity


def _cart_path(identity: Identity) -> str:
    return CART_PATH.format(user_id=quote(identity.user_id, safe=""))


def _items_path(identity: Identity) -> str:
    return CART_ITEMS_PATH.format(user_id=quote(identity.user_id, safe=""))


def _item_path(identity: Identity, line_id: str) -> str:
    return CART_ITEM_PATH.format(
        user_id=quote(identity.user_id, safe=""),
        line_id=quote(str(line_id), safe=""),
    )


async def fetch_cart(transport: Transport, identity: Identity) -> Cart:
    """``GET /cart/user/{userId}``; raises CartNotFoundError when absent."""
    return await request_cart(transport=transport, identity=identity, method="GET", endpoint=_cart_path(identity))


async def create_cart(transport: Transport, identity: Identity) -> Cart:
    return await request_cart(transport=transport, identity=identity, method="POST", endpoint=_cart_path(identity))


async def add_item(
    config: CartSyncConfig,
    transport: Transport,
    identity: Identity,
    item_id: str,
    quantity: int,
) -> Cart:
    return await request_cart(
        transport=transport,
        identity=identity,
        method="POST",
        endpoint=_items_path(identity),
        params={config.item_param: item_id, config.quantity_param: quantity},
    )


async def set_quantity(
    config: CartSyncConfig,
    transport: Transport,
    identity: Identity,
    line_id: str,
    quantity: int,
) -> Cart:
    return await request_cart(
        transport=transport,
        identity=identity,
        method="PUT",
        endpoint=_item_path(identity, line_id),
        params={config.quantity_param: quantity},
    )


async def remove_item(transport: Transport, identity: Identity, line_id: str) -> Cart:
    return await request_cart(
        transport=transport,
        identity=identity,
        method="DELETE",
        endpoint=_item_path(identity, line_id),
    )


async def clear_cart(transport: Transport, identity: Identity) -> Cart:
    return await request_cart(transport=transport, identity=identity, method="DELETE", endpoint=_cart_path(identity))
