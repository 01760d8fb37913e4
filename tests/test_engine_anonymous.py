from __future__ import annotations

import json
import random

import pytest

from cartsync.engine import CartSyncEngine
from cartsync.exceptions import StockExceededError
from cartsync.local import InMemorySlots, LocalCartStore
from cartsync.models.cart import Cart
from cartsync.models.item import Item
from cartsync.models.mode import AuthorityMode
from cartsync.session import IdentityProvider
from cartsync.stock import StaticStockOracle
from tests.conftest import FakeRemoteCart, make_item


@pytest.mark.asyncio
async def test_starts_anonymous_with_empty_cart(engine: CartSyncEngine, remote: FakeRemoteCart) -> None:
    assert engine.mode is AuthorityMode.ANONYMOUS
    cart = await engine.read()
    assert cart.is_empty
    assert engine.count == 0
    assert engine.total == 0
    assert remote.calls == []


@pytest.mark.asyncio
async def test_add_same_item_merges_into_one_line(engine: CartSyncEngine, catalog: dict[str, Item]) -> None:
    await engine.add_to_cart(catalog["A"], qty=2)
    cart = await engine.add_to_cart(catalog["A"])

    assert len(cart) == 1
    assert cart.lines[0].quantity == 3
    assert cart.total == 37.5


@pytest.mark.asyncio
async def test_add_is_clamped_to_stock(engine: CartSyncEngine, catalog: dict[str, Item]) -> None:
    cart = await engine.add_to_cart(catalog["C"], qty=5)
    assert cart.lines[0].quantity == 3

    cart = await engine.add_to_cart(catalog["C"], qty=1)
    assert cart.lines[0].quantity == 3


@pytest.mark.asyncio
async def test_add_rejects_non_positive_quantity(engine: CartSyncEngine, catalog: dict[str, Item]) -> None:
    with pytest.raises(ValueError):
        await engine.add_to_cart(catalog["A"], qty=0)
    assert engine.snapshot().is_empty


@pytest.mark.asyncio
async def test_add_out_of_stock_item_raises(engine: CartSyncEngine) -> None:
    with pytest.raises(StockExceededError) as exc_info:
        await engine.add_to_cart(make_item("Z", stock=0, title="Gone"))
    assert exc_info.value.item_id == "Z"
    assert exc_info.value.available == 0
    assert engine.snapshot().is_empty


@pytest.mark.asyncio
async def test_existing_line_dropped_when_stock_runs_out(
    local_store: LocalCartStore, remote: FakeRemoteCart, provider: IdentityProvider, catalog: dict[str, Item]
) -> None:
    oracle = StaticStockOracle({})
    engine = CartSyncEngine(local_store, remote, provider, stock_oracle=oracle)
    engine.start()
    cart = await engine.add_to_cart(catalog["B"], qty=2)
    assert cart.count == 2

    oracle.update("B", 0)
    cart = await engine.add_to_cart(catalog["B"])
    assert cart.is_empty


@pytest.mark.asyncio
async def test_increase_stops_at_stock(engine: CartSyncEngine, catalog: dict[str, Item]) -> None:
    cart = await engine.add_to_cart(catalog["C"], qty=2)
    line_id = cart.lines[0].line_id

    cart = await engine.increase_quantity(line_id)
    assert cart.lines[0].quantity == 3
    cart = await engine.increase_quantity(line_id)
    assert cart.lines[0].quantity == 3


@pytest.mark.asyncio
async def test_decrease_to_zero_removes_line(engine: CartSyncEngine, catalog: dict[str, Item]) -> None:
    await engine.add_to_cart(catalog["A"], qty=2)
    cart = await engine.add_to_cart(catalog["B"])
    line_a = cart.lines[0].line_id

    cart = await engine.decrease_quantity(line_a)
    assert [(line.item_id, line.quantity) for line in cart.lines] == [("A", 1), ("B", 1)]
    cart = await engine.decrease_quantity(line_a)
    assert [line.item_id for line in cart.lines] == ["B"]


@pytest.mark.asyncio
async def test_unknown_line_is_noop(engine: CartSyncEngine, catalog: dict[str, Item]) -> None:
    before = await engine.add_to_cart(catalog["A"])
    assert await engine.remove_from_cart("missing") == before
    assert await engine.increase_quantity("missing") == before
    assert await engine.decrease_quantity("missing") == before


@pytest.mark.asyncio
async def test_remove_keeps_order_of_other_lines(engine: CartSyncEngine, catalog: dict[str, Item]) -> None:
    await engine.add_to_cart(catalog["A"])
    await engine.add_to_cart(catalog["B"])
    cart = await engine.add_to_cart(catalog["C"])

    cart = await engine.remove_from_cart(cart.lines[1].line_id)
    assert [line.item_id for line in cart.lines] == ["A", "C"]


@pytest.mark.asyncio
async def test_clear_is_idempotent(engine: CartSyncEngine, slots: InMemorySlots, catalog: dict[str, Item]) -> None:
    await engine.add_to_cart(catalog["A"])
    assert (await engine.clear()).is_empty
    assert (await engine.clear()).is_empty
    assert slots.get("cart") is None


@pytest.mark.asyncio
async def test_guest_cart_persists_across_engines(
    engine: CartSyncEngine,
    slots: InMemorySlots,
    remote: FakeRemoteCart,
    catalog: dict[str, Item],
) -> None:
    await engine.add_to_cart(catalog["A"], qty=2)
    await engine.add_to_cart(catalog["B"])
    stored = json.loads(slots.get("cart") or "[]")
    assert [entry["item"]["itemId"] for entry in stored] == ["A", "B"]

    reopened = CartSyncEngine(LocalCartStore(slots), remote, IdentityProvider())
    cart = await reopened.read()
    assert cart == engine.snapshot()
    assert cart.count == 3


@pytest.mark.asyncio
async def test_count_and_total_follow_lines(engine: CartSyncEngine, catalog: dict[str, Item]) -> None:
    await engine.add_to_cart(catalog["A"], qty=2)
    await engine.add_to_cart(catalog["B"], qty=3)
    cart = engine.snapshot()
    assert engine.count == sum(line.quantity for line in cart.lines) == 5
    assert engine.total == round(2 * 12.5 + 3 * 7.99, 2)


@pytest.mark.asyncio
async def test_listeners_see_changes_only(engine: CartSyncEngine, catalog: dict[str, Item]) -> None:
    seen: list[Cart] = []
    unsubscribe = engine.subscribe(seen.append)

    await engine.add_to_cart(catalog["C"], qty=3)
    await engine.increase_quantity(engine.snapshot().lines[0].line_id)
    assert len(seen) == 1

    unsubscribe()
    await engine.clear()
    assert len(seen) == 1


@pytest.mark.asyncio
async def test_failing_listener_does_not_break_mutation(engine: CartSyncEngine, catalog: dict[str, Item]) -> None:
    def _boom(_cart: Cart) -> None:
        raise RuntimeError("listener failed")

    engine.subscribe(_boom)
    cart = await engine.add_to_cart(catalog["A"])
    assert cart.count == 1


@pytest.mark.asyncio
async def test_validate_stock_reports_first_shortfall(
    local_store: LocalCartStore, remote: FakeRemoteCart, provider: IdentityProvider, catalog: dict[str, Item]
) -> None:
    oracle = StaticStockOracle({})
    engine = CartSyncEngine(local_store, remote, provider, stock_oracle=oracle)
    await engine.add_to_cart(catalog["A"], qty=4)
    await engine.add_to_cart(catalog["B"], qty=2)
    assert await engine.validate_stock() == engine.snapshot()

    oracle.update("B", 1)
    with pytest.raises(StockExceededError, match=r"Only 1 left"):
        await engine.validate_stock()


@pytest.mark.asyncio
async def test_order_placed_clears_guest_cart(engine: CartSyncEngine, slots: InMemorySlots, catalog: dict[str, Item]) -> None:
    await engine.add_to_cart(catalog["A"])
    cart = await engine.order_placed()
    assert cart.is_empty
    assert slots.get("cart") is None


@pytest.mark.asyncio
@pytest.mark.parametrize("seed", range(12))
async def test_random_sequences_keep_cart_consistent(
    engine: CartSyncEngine, local_store: LocalCartStore, catalog: dict[str, Item], seed: int
) -> None:
    rng = random.Random(seed)
    expected: dict[str, int] = {}

    for _ in range(40):
        op = rng.choice(["add", "add", "add", "remove", "inc", "dec", "clear"])
        cart = engine.snapshot()
        line = rng.choice(cart.lines) if cart.lines and rng.random() < 0.9 else None
        line_id = line.line_id if line is not None else "missing"

        if op == "add":
            item = catalog[rng.choice(sorted(catalog))]
            qty = rng.randint(1, 4)
            await engine.add_to_cart(item, qty=qty)
            expected[item.item_id] = min(expected.get(item.item_id, 0) + qty, item.available_stock or 0)
        elif op == "remove":
            await engine.remove_from_cart(line_id)
            if line is not None:
                del expected[line.item_id]
        elif op == "inc":
            await engine.increase_quantity(line_id)
            if line is not None:
                expected[line.item_id] = min(line.quantity + 1, catalog[line.item_id].available_stock or 0)
        elif op == "dec":
            await engine.decrease_quantity(line_id)
            if line is not None:
                if line.quantity == 1:
                    del expected[line.item_id]
                else:
                    expected[line.item_id] = line.quantity - 1
        else:
            await engine.clear()
            expected.clear()

        cart = engine.snapshot()
        assert {line.item_id: line.quantity for line in cart.lines} == expected
        assert len({line.item_id for line in cart.lines}) == len(cart)
        assert len({line.line_id for line in cart.lines}) == len(cart)
        for current in cart.lines:
            assert 1 <= current.quantity <= (catalog[current.item_id].available_stock or 0)
        assert engine.count == sum(expected.values())
        assert engine.total == round(sum(line.item.price * line.quantity for line in cart.lines), 2)
        assert local_store.load() == cart
