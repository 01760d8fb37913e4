"""Stock clamping rules.

The engine consults a :class:`StockOracle` to keep every line it writes
at or below the item's available quantity.  The rules themselves are pure
functions so they can be checked without any store.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Protocol

from cartsync.models.cart import Cart
from cartsync.models.item import Item

_logger = logging.getLogger(__name__)


class StockOracle(Protocol):
    """Supplies the current available quantity of an item (``None`` = unknown)."""

    async def available(self, item: Item) -> int | None: ...


class EmbeddedStockOracle:
    """Trusts the stock figure carried on the item itself."""

    async def available(self, item: Item) -> int | None:
        return item.available_stock


class StaticStockOracle:
    """Stock from a fixed ``item_id -> quantity`` mapping.

    Items missing from the mapping fall back to their embedded figure.
    """

    def __init__(self, stock: Mapping[str, int]) -> None:
        self._stock = {str(k): max(0, int(v)) for k, v in stock.items()}

    def update(self, item_id: str, available: int) -> None:
        self._stock[str(item_id)] = max(0, int(available))

    async def available(self, item: Item) -> int | None:
        value = self._stock.get(item.item_id)
        if value is None:
            return item.available_stock
        return value


def clamp_line_quantity(held: int, requested: int, available: int | None) -> int:
    """Quantity a line should hold after adding *requested* to *held*.

    Never exceeds a known *available*; never drops below what is already
    held unless stock itself has fallen below it.
    """
    wanted = held + requested
    if available is None:
        return wanted
    return max(0, min(wanted, available))


def can_increase(quantity: int, available: int | None) -> bool:
    """Whether one more unit fits within stock."""
    return available is None or quantity < available


@dataclass(frozen=True, slots=True)
class StockShortfall:
    """A line asking for more than is currently available."""

    line_id: str
    item_id: str
    title: str
    requested: int
    available: int


async def find_shortfalls(cart: Cart, oracle: StockOracle) -> list[StockShortfall]:
    """Lines whose quantity exceeds the oracle's current stock, in cart order."""
    shortfalls: list[StockShortfall] = []
    for line in cart.lines:
        available = await oracle.available(line.item)
        if available is not None and line.quantity > available:
            shortfalls.append(
                StockShortfall(
                    line_id=line.line_id,
                    item_id=line.item_id,
                    title=line.item.title,
                    requested=line.quantity,
                    available=available,
                )
            )
    if shortfalls:
        _logger.debug("Stock shortfalls: %s", [s.item_id for s in shortfalls])
    return shortfalls
