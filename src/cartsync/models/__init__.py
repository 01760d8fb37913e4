"""Data models for cart payloads."""

from cartsync.models._base import CartBaseModel
from cartsync.models.cart import Cart, CartLine
from cartsync.models.item import Item
from cartsync.models.merge import MergeResult
from cartsync.models.mode import AuthorityMode

__all__ = [
    "AuthorityMode",
    "Cart",
    "CartBaseModel",
    "CartLine",
    "Item",
    "MergeResult",
]
