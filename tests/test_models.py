"""Tests for cart payload parsing and derived values."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from cartsync.exceptions import LineNotFoundError, MergeIncompleteError, RemoteUnavailableError
from cartsync.models.cart import Cart, CartLine
from cartsync.models.item import Item
from cartsync.models.merge import MergeResult

# ------------------------------------------------------------------
# Item
# ------------------------------------------------------------------


class TestItem:
    def test_backend_book_shape(self) -> None:
        item = Item.model_validate(
            {"bookId": 7, "title": "Dune", "author": "Herbert", "price": "9.5", "imageUrl": "x.jpg", "quantity": 4}
        )
        assert item.item_id == "7"
        assert item.price == 9.5
        assert item.image_url == "x.jpg"
        assert item.available_stock == 4

    def test_missing_fields_use_defaults(self) -> None:
        item = Item.model_validate({"itemId": "A", "title": None, "price": ""})
        assert item.title == ""
        assert item.price == 0.0
        assert item.available_stock is None

    def test_negative_stock_is_zero(self) -> None:
        assert Item.model_validate({"itemId": "A", "availableStock": -3}).available_stock == 0

    def test_item_id_required(self) -> None:
        with pytest.raises(ValidationError):
            Item.model_validate({"title": "No id"})

    def test_with_stock_returns_same_instance_when_unchanged(self) -> None:
        item = Item(item_id="A", available_stock=2)
        assert item.with_stock(2) is item
        assert item.with_stock(None) is item
        assert item.with_stock(5).available_stock == 5


# ------------------------------------------------------------------
# CartLine / Cart
# ------------------------------------------------------------------


def _line(line_id: str, item_id: str, quantity: int, price: float) -> CartLine:
    return CartLine(line_id=line_id, item=Item(item_id=item_id, price=price), quantity=quantity)


class TestCart:
    def test_remote_line_shape(self) -> None:
        line = CartLine.model_validate({"cartItemId": 3, "book": {"bookId": 1, "price": 2}, "quantity": "2"})
        assert line.line_id == "3"
        assert line.item_id == "1"
        assert line.quantity == 2

    def test_zero_quantity_line_rejected(self) -> None:
        with pytest.raises(ValidationError):
            CartLine.model_validate({"lineId": "1", "item": {"itemId": "A"}, "quantity": 0})

    def test_total_and_count(self) -> None:
        cart = Cart.of([_line("1", "A", 3, 0.1), _line("2", "B", 1, 19.99)])
        assert cart.count == 4
        assert cart.total == 20.29

    def test_empty_cart(self) -> None:
        cart = Cart.empty()
        assert cart.is_empty
        assert cart.total == 0
        assert cart.count == 0
        assert len(cart) == 0

    def test_replace_keeps_position(self) -> None:
        cart = Cart.of([_line("1", "A", 1, 1.0), _line("2", "B", 1, 1.0)])
        updated = cart.replace_line(cart.lines[0].with_quantity(5))
        assert [line.line_id for line in updated.lines] == ["1", "2"]
        assert updated.lines[0].quantity == 5
        # Original snapshot is untouched.
        assert cart.lines[0].quantity == 1

    def test_find_and_require(self) -> None:
        cart = Cart.of([_line("1", "A", 1, 1.0)])
        assert cart.find_item("A") is cart.lines[0]
        assert cart.find_line("nope") is None
        with pytest.raises(LineNotFoundError):
            cart.require_line("nope")

    def test_payload_uses_camel_case(self) -> None:
        cart = Cart.of([CartLine(line_id="1", item=Item(item_id="A", image_url="u", available_stock=3), quantity=2)])
        payload = cart.to_payload()
        assert payload == [
            {
                "lineId": "1",
                "item": {
                    "itemId": "A",
                    "title": "",
                    "author": "",
                    "price": 0.0,
                    "imageUrl": "u",
                    "availableStock": 3,
                },
                "quantity": 2,
            }
        ]

    def test_payload_parses_back(self) -> None:
        cart = Cart.of([_line("1", "A", 2, 4.5), _line("2", "B", 1, 1.0)])
        assert Cart.model_validate({"lines": cart.to_payload()}) == cart


class TestMergeResult:
    def test_ok_result_does_not_raise(self) -> None:
        MergeResult(merged_count=2).raise_for_failure()

    def test_failure_raises_merge_incomplete(self) -> None:
        failure = RemoteUnavailableError("down")
        result = MergeResult(merged_count=1, first_failure=failure, failed_line=_line("9", "B", 1, 1.0))
        assert not result.ok
        with pytest.raises(MergeIncompleteError) as exc_info:
            result.raise_for_failure()
        assert exc_info.value.result is result
        assert "line 9" in str(exc_info.value)
