from __future__ import annotations

import asyncio

import pytest

from cartsync.config import CartSyncConfig
from cartsync.engine import CartSyncEngine
from cartsync.exceptions import CartNotFoundError, RemoteUnavailableError, StockExceededError
from cartsync.local import InMemorySlots, LocalCartStore
from cartsync.models.cart import Cart, CartLine
from cartsync.models.item import Item
from cartsync.session import Identity, IdentityProvider


def make_item(item_id: str, *, price: float = 10.0, stock: int | None = 10, title: str = "") -> Item:
    return Item(
        item_id=item_id,
        title=title or f"Book {item_id}",
        author="Author",
        price=price,
        image_url=f"https://img.example/{item_id}.jpg",
        available_stock=stock,
    )


class FakeRemoteCart:
    """In-memory Remote Cart Service.

    ``add_item`` accumulates quantity onto an existing line for the item,
    capped at the catalog stock (409 beyond it).
    """

    def __init__(self, catalog: dict[str, Item]) -> None:
        self.catalog = catalog
        self.carts: dict[str, list[CartLine]] = {}
        self.calls: list[tuple[str, ...]] = []
        self.fail_items: set[str] = set()
        self.unavailable = False
        self.add_gate: asyncio.Event | None = None
        self.add_started = asyncio.Event()
        self._next_line = 100

    def _check(self, op: str) -> None:
        if self.unavailable:
            raise RemoteUnavailableError(f"{op}: service down", endpoint=op)

    def _cart(self, user_id: str) -> list[CartLine]:
        lines = self.carts.get(user_id)
        if lines is None:
            raise CartNotFoundError(f"no cart for {user_id}", status_code=404, endpoint="/cart")
        return lines

    def _snapshot(self, user_id: str) -> Cart:
        return Cart.of(self.carts[user_id])

    def items_of(self, user_id: str) -> list[tuple[str, int]]:
        return [(line.item_id, line.quantity) for line in self.carts.get(user_id, [])]

    async def fetch(self, identity: Identity) -> Cart:
        self.calls.append(("fetch", identity.user_id))
        self._check("fetch")
        self._cart(identity.user_id)
        return self._snapshot(identity.user_id)

    async def create(self, identity: Identity) -> Cart:
        self.calls.append(("create", identity.user_id))
        self._check("create")
        self.carts.setdefault(identity.user_id, [])
        return self._snapshot(identity.user_id)

    async def add_item(self, identity: Identity, item_id: str, quantity: int) -> Cart:
        self.calls.append(("add_item", identity.user_id, item_id, str(quantity)))
        self.add_started.set()
        if self.add_gate is not None:
            await self.add_gate.wait()
        self._check("add_item")
        if item_id in self.fail_items:
            raise RemoteUnavailableError(f"add_item {item_id} failed", endpoint="/items")
        lines = self._cart(identity.user_id)
        item = self.catalog[item_id]
        for index, line in enumerate(lines):
            if line.item_id == item_id:
                wanted = line.quantity + quantity
                if item.available_stock is not None and wanted > item.available_stock:
                    raise StockExceededError("Not enough stock", status_code=409, endpoint="/items")
                lines[index] = line.with_quantity(wanted)
                return self._snapshot(identity.user_id)
        if item.available_stock is not None and quantity > item.available_stock:
            raise StockExceededError("Not enough stock", status_code=409, endpoint="/items")
        self._next_line += 1
        lines.append(CartLine(line_id=str(self._next_line), item=item, quantity=quantity))
        return self._snapshot(identity.user_id)

    async def set_quantity(self, identity: Identity, line_id: str, quantity: int) -> Cart:
        self.calls.append(("set_quantity", identity.user_id, line_id, str(quantity)))
        self._check("set_quantity")
        lines = self._cart(identity.user_id)
        self.carts[identity.user_id] = [
            line.with_quantity(quantity) if line.line_id == line_id else line for line in lines
        ]
        return self._snapshot(identity.user_id)

    async def remove_item(self, identity: Identity, line_id: str) -> Cart:
        self.calls.append(("remove_item", identity.user_id, line_id))
        self._check("remove_item")
        lines = self._cart(identity.user_id)
        self.carts[identity.user_id] = [line for line in lines if line.line_id != line_id]
        return self._snapshot(identity.user_id)

    async def clear(self, identity: Identity) -> Cart:
        self.calls.append(("clear", identity.user_id))
        self._check("clear")
        self._cart(identity.user_id)
        self.carts[identity.user_id] = []
        return self._snapshot(identity.user_id)


@pytest.fixture
def catalog() -> dict[str, Item]:
    return {
        "A": make_item("A", price=12.5, stock=10),
        "B": make_item("B", price=7.99, stock=5),
        "C": make_item("C", price=3.0, stock=3),
    }


@pytest.fixture
def config() -> CartSyncConfig:
    return CartSyncConfig(base_url="http://cart.test/api")


@pytest.fixture
def slots() -> InMemorySlots:
    return InMemorySlots()


@pytest.fixture
def local_store(slots: InMemorySlots, config: CartSyncConfig) -> LocalCartStore:
    return LocalCartStore(slots, config)


@pytest.fixture
def remote(catalog: dict[str, Item]) -> FakeRemoteCart:
    return FakeRemoteCart(catalog)


@pytest.fixture
def provider() -> IdentityProvider:
    return IdentityProvider()


@pytest.fixture
def alice() -> Identity:
    return Identity(user_id="42", credential="Basic YWxpY2U6cHc=", email="alice@example.com")


@pytest.fixture
def engine(local_store: LocalCartStore, remote: FakeRemoteCart, provider: IdentityProvider) -> CartSyncEngine:
    engine = CartSyncEngine(local_store, remote, provider)
    engine.start()
    return engine
