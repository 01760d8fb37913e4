"""Cart and cart line models."""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

from pydantic import AliasChoices, Field, field_validator

from cartsync.exceptions import LineNotFoundError
from cartsync.models._base import CartBaseModel
from cartsync.models.item import Item
from cartsync.normalize import safe_int, safe_str


class CartLine(CartBaseModel):
    """A single cart entry: one item and a quantity of at least one."""

    line_id: str = Field(
        validation_alias=AliasChoices("lineId", "line_id", "cartItemId", "id"),
        serialization_alias="lineId",
    )
    item: Item = Field(validation_alias=AliasChoices("item", "book"))
    quantity: int = Field(ge=1)

    @field_validator("line_id", mode="before")
    @classmethod
    def _coerce_line_id(cls, value: Any) -> str:
        text = safe_str(value)
        if text is None:
            raise ValueError("line_id must be non-empty")
        return text

    @field_validator("quantity", mode="before")
    @classmethod
    def _coerce_quantity(cls, value: Any) -> Any:
        parsed = safe_int(value)
        return parsed if parsed is not None else value

    @property
    def item_id(self) -> str:
        return self.item.item_id

    @property
    def subtotal(self) -> float:
        return self.item.price * self.quantity

    def with_quantity(self, quantity: int) -> CartLine:
        return self.model_copy(update={"quantity": quantity})


class Cart(CartBaseModel):
    """An ordered, immutable sequence of cart lines.

    ``total`` and ``count`` are derived on every access so they can never
    drift from the line list.
    """

    lines: tuple[CartLine, ...] = Field(
        default=(),
        validation_alias=AliasChoices("lines", "cartItemList", "items"),
    )

    @classmethod
    def empty(cls) -> Cart:
        return cls()

    @classmethod
    def of(cls, lines: Iterable[CartLine]) -> Cart:
        return cls(lines=tuple(lines))

    @property
    def total(self) -> float:
        """Sum of ``price * quantity`` over all lines, rounded to cents."""
        return round(sum(line.subtotal for line in self.lines), 2)

    @property
    def count(self) -> int:
        """Sum of line quantities."""
        return sum(line.quantity for line in self.lines)

    @property
    def is_empty(self) -> bool:
        return not self.lines

    def __len__(self) -> int:
        return len(self.lines)

    def find_line(self, line_id: str) -> CartLine | None:
        for line in self.lines:
            if line.line_id == line_id:
                return line
        return None

    def require_line(self, line_id: str) -> CartLine:
        line = self.find_line(line_id)
        if line is None:
            raise LineNotFoundError(line_id)
        return line

    def find_item(self, item_id: str) -> CartLine | None:
        for line in self.lines:
            if line.item_id == item_id:
                return line
        return None

    def replace_line(self, updated: CartLine) -> Cart:
        """Swap the line with the same id, keeping its position."""
        return Cart.of(updated if line.line_id == updated.line_id else line for line in self.lines)

    def append_line(self, line: CartLine) -> Cart:
        return Cart.of((*self.lines, line))

    def without_line(self, line_id: str) -> Cart:
        return Cart.of(line for line in self.lines if line.line_id != line_id)

    def to_payload(self) -> list[dict[str, Any]]:
        """Serialize to the Local Store shape (``lineId``/``item``/``quantity``)."""
        return [line.model_dump(by_alias=True, mode="json") for line in self.lines]
