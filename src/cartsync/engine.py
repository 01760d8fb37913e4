"""Cart synchronization engine.

The engine owns the cart snapshot the rest of the application renders.  It
decides which store is authoritative (the device-local guest cart or the
remote per-user cart), replays the guest cart into the remote cart once on
login, and routes every mutation to the current authority.

Usage::

    async with CartServiceClient(config) as remote:
        engine = CartSyncEngine(LocalCartStore(slots, config), remote, identities)
        async with engine:
            cart = await engine.read()
            cart = await engine.add_to_cart(item, qty=2)
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from cartsync.exceptions import CartNotFoundError, CartSyncError, StockExceededError
from cartsync.local import LocalCartStore, new_line_id
from cartsync.merge import merge_guest_lines
from cartsync.models.cart import Cart, CartLine
from cartsync.models.item import Item
from cartsync.models.merge import MergeResult
from cartsync.models.mode import AuthorityMode
from cartsync.remote import RemoteCartService
from cartsync.session import Identity, IdentityProvider, SessionEvent, SessionEventKind
from cartsync.stock import (
    EmbeddedStockOracle,
    StockOracle,
    can_increase,
    clamp_line_quantity,
    find_shortfalls,
)

_logger = logging.getLogger(__name__)

CartListener = Callable[[Cart], None]


class CartSyncEngine:
    """Single owner of the cart snapshot.

    Parameters
    ----------
    local_store : LocalCartStore
        Guest cart persistence; authoritative while anonymous.
    remote : RemoteCartService
        Per-user cart; authoritative once authenticated.
    identity_provider : IdentityProvider
        Source of the current identity and of login/logout transitions.
    stock_oracle : StockOracle or None
        Stock used to clamp quantities.  Defaults to the figure carried on
        each item.
    """

    def __init__(
        self,
        local_store: LocalCartStore,
        remote: RemoteCartService,
        identity_provider: IdentityProvider,
        *,
        stock_oracle: StockOracle | None = None,
    ) -> None:
        self._local = local_store
        self._remote = remote
        self._provider = identity_provider
        self._oracle: StockOracle = stock_oracle or EmbeddedStockOracle()

        self._identity: Identity | None = None
        self._snapshot = Cart.empty()
        self._loaded = False
        self._reload_pending = False
        self._merge_done = asyncio.Event()
        self._merge_done.set()
        # Bumped on every authority change; results obtained under an older
        # generation are discarded.
        self._generation = 0
        self._inflight_read: asyncio.Future[Cart] | None = None
        self._listeners: list[CartListener] = []
        self._unsubscribe_provider: Callable[[], None] | None = None
        self._last_merge: MergeResult | None = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> CartSyncEngine:
        self.start()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        self.close()

    def start(self) -> None:
        """Attach to the identity provider and adopt its current identity.

        An identity already present at start is a resumed session (process
        restart or page reload): it is adopted as-is, with no merge.
        """
        if self._unsubscribe_provider is not None:
            return
        self._unsubscribe_provider = self._provider.subscribe(self._on_session_event)
        self._identity = self._provider.identity
        if self._local.consume_reload_pending():
            self._reload_pending = True
        _logger.debug("Cart engine started in %s mode", self.mode)

    def close(self) -> None:
        if self._unsubscribe_provider is not None:
            self._unsubscribe_provider()
            self._unsubscribe_provider = None

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def mode(self) -> AuthorityMode:
        if self._identity is None:
            return AuthorityMode.ANONYMOUS
        if not self._merge_done.is_set():
            return AuthorityMode.MERGING
        return AuthorityMode.AUTHENTICATED

    @property
    def identity(self) -> Identity | None:
        return self._identity

    @property
    def last_merge(self) -> MergeResult | None:
        return self._last_merge

    def snapshot(self) -> Cart:
        return self._snapshot

    @property
    def total(self) -> float:
        return self._snapshot.total

    @property
    def count(self) -> int:
        return self._snapshot.count

    def subscribe(self, listener: CartListener) -> Callable[[], None]:
        """Call *listener* with the new cart whenever the snapshot changes."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _set_snapshot(self, cart: Cart) -> None:
        if cart == self._snapshot:
            return
        self._snapshot = cart
        for listener in list(self._listeners):
            try:
                listener(cart)
            except Exception:
                _logger.debug("Cart listener failed", exc_info=True)

    def _bump_generation(self) -> None:
        self._generation += 1
        self._inflight_read = None

    def _require_identity(self) -> Identity:
        identity = self._identity
        if identity is None:
            raise CartSyncError("No authenticated session")
        current = self._provider.identity
        if current is not None and current.user_id == identity.user_id:
            # Picks up a refreshed credential for the same user.
            return current
        return identity

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def _wait_for_merge(self) -> None:
        # A resumed session never enters MERGING: start() adopts the
        # identity without a merge, and _loaded drives its first load.
        while self.mode is AuthorityMode.MERGING:
            await self._merge_done.wait()

    async def read(self) -> Cart:
        """Return the cart, loading it from the current authority if needed.

        Blocks while a login merge is in flight, so the result is never a
        partially merged remote cart.
        """
        self.start()
        await self._wait_for_merge()
        if self._loaded and not self._reload_pending:
            return self._snapshot
        return await self._reload()

    async def refresh(self) -> Cart:
        """Re-read the cart from the current authority."""
        self.start()
        await self._wait_for_merge()
        self._loaded = False
        return await self._reload()

    async def _reload(self) -> Cart:
        while True:
            generation = self._generation
            task = self._inflight_read
            if task is None:
                task = asyncio.ensure_future(self._load_from_authority())
                self._inflight_read = task
            try:
                cart = await asyncio.shield(task)
            finally:
                if self._inflight_read is task and task.done():
                    self._inflight_read = None
            if generation != self._generation:
                # Authority changed while loading; this view is stale.
                await self._wait_for_merge()
                continue
            self._reload_pending = False
            self._loaded = True
            self._set_snapshot(cart)
            return cart

    async def _load_from_authority(self) -> Cart:
        if self._identity is None:
            return self._local.load()
        cart = await self._fetch_or_create(self._require_identity())
        self._local.consume_reload_pending()
        return cart

    async def _ensure_loaded(self) -> None:
        if not self._loaded or self._reload_pending:
            await self._reload()

    # ------------------------------------------------------------------
    # Remote helpers
    # ------------------------------------------------------------------

    async def _fetch_or_create(self, identity: Identity) -> Cart:
        try:
            return await self._remote.fetch(identity)
        except CartNotFoundError:
            _logger.debug("No remote cart for user_id=%s; creating one", identity.user_id)
            return await self._remote.create(identity)

    async def _add_item_creating_cart(self, identity: Identity, item_id: str, quantity: int) -> Cart:
        try:
            return await self._remote.add_item(identity, item_id, quantity)
        except CartNotFoundError:
            await self._remote.create(identity)
            return await self._remote.add_item(identity, item_id, quantity)

    async def _clear_remote(self, identity: Identity) -> Cart:
        try:
            return await self._remote.clear(identity)
        except CartNotFoundError:
            return await self._remote.create(identity)

    async def _adopt_remote(self, call: Callable[[], Awaitable[Cart]]) -> Cart:
        """Run a remote mutation and adopt the full cart it returns.

        On failure the snapshot is untouched and the error propagates.
        """
        generation = self._generation
        cart = await call()
        if generation != self._generation:
            _logger.debug("Discarding remote cart from a superseded session")
            return self._snapshot
        self._loaded = True
        self._set_snapshot(cart)
        return cart

    def _commit_local(self, cart: Cart, generation: int) -> Cart:
        if generation != self._generation:
            _logger.debug("Discarding guest cart change from a superseded session")
            return self._snapshot
        self._local.save(cart)
        self._set_snapshot(cart)
        return cart

    async def _prepare_mutation(self) -> None:
        self.start()
        await self._wait_for_merge()
        await self._ensure_loaded()

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    async def add_to_cart(self, item: Item, qty: int = 1) -> Cart:
        """Add *qty* of *item*.

        Anonymous: merges into the existing line for the item, clamped to
        available stock.  Authenticated: the remote service owns clamping
        and its returned cart is adopted as-is.
        """
        if qty < 1:
            raise ValueError(f"qty must be at least 1, got {qty}")
        await self._prepare_mutation()

        if self._identity is not None:
            identity = self._require_identity()
            return await self._adopt_remote(lambda: self._add_item_creating_cart(identity, item.item_id, qty))

        generation = self._generation
        cart = self._snapshot
        available = await self._oracle.available(item)
        item = item.with_stock(available)
        existing = cart.find_item(item.item_id)
        held = existing.quantity if existing is not None else 0
        quantity = clamp_line_quantity(held, qty, available)

        if existing is None:
            if quantity <= 0:
                raise StockExceededError(
                    f"{item.title or item.item_id} is out of stock",
                    item_id=item.item_id,
                    requested=qty,
                    available=available,
                )
            line = CartLine(line_id=new_line_id(cart), item=item, quantity=quantity)
            return self._commit_local(cart.append_line(line), generation)

        if quantity <= 0:
            _logger.debug("Item %s no longer in stock; dropping its line", item.item_id)
            return self._commit_local(cart.without_line(existing.line_id), generation)
        if quantity < held + qty:
            _logger.debug("Clamped item %s to %d (requested %d more)", item.item_id, quantity, qty)
        updated = existing.model_copy(update={"item": item, "quantity": quantity})
        return self._commit_local(cart.replace_line(updated), generation)

    async def remove_from_cart(self, line_id: str) -> Cart:
        """Delete a line; unknown ids are a no-op."""
        await self._prepare_mutation()
        line = self._snapshot.find_line(line_id)
        if line is None:
            return self._snapshot

        if self._identity is not None:
            identity = self._require_identity()
            return await self._adopt_remote(lambda: self._remote.remove_item(identity, line_id))
        return self._commit_local(self._snapshot.without_line(line_id), self._generation)

    async def increase_quantity(self, line_id: str) -> Cart:
        """Add one unit, refusing to exceed available stock."""
        await self._prepare_mutation()
        line = self._snapshot.find_line(line_id)
        if line is None:
            return self._snapshot

        generation = self._generation
        available = await self._oracle.available(line.item)
        if not can_increase(line.quantity, available):
            _logger.debug("Line %s already at available stock (%s)", line_id, available)
            return self._snapshot

        if self._identity is not None:
            identity = self._require_identity()
            return await self._adopt_remote(lambda: self._remote.set_quantity(identity, line_id, line.quantity + 1))
        updated = line.model_copy(update={"item": line.item.with_stock(available), "quantity": line.quantity + 1})
        return self._commit_local(self._snapshot.replace_line(updated), generation)

    async def decrease_quantity(self, line_id: str) -> Cart:
        """Remove one unit; a line reaching zero is deleted."""
        await self._prepare_mutation()
        line = self._snapshot.find_line(line_id)
        if line is None:
            return self._snapshot

        quantity = line.quantity - 1
        if self._identity is not None:
            identity = self._require_identity()
            if quantity <= 0:
                return await self._adopt_remote(lambda: self._remote.remove_item(identity, line_id))
            return await self._adopt_remote(lambda: self._remote.set_quantity(identity, line_id, quantity))

        if quantity <= 0:
            return self._commit_local(self._snapshot.without_line(line_id), self._generation)
        return self._commit_local(self._snapshot.replace_line(line.with_quantity(quantity)), self._generation)

    async def clear(self) -> Cart:
        """Empty the cart."""
        self.start()
        await self._wait_for_merge()
        if self._identity is not None:
            identity = self._require_identity()
            return await self._adopt_remote(lambda: self._clear_remote(identity))

        self._local.clear()
        self._loaded = True
        self._set_snapshot(Cart.empty())
        return self._snapshot

    async def order_placed(self) -> Cart:
        """Tear the snapshot down after an order was placed.

        The order service empties the remote cart itself, so no remote call
        is made; a guest cart is cleared from the Local Store.
        """
        self.start()
        await self._wait_for_merge()
        if self._identity is None:
            self._local.clear()
        self._loaded = True
        self._set_snapshot(Cart.empty())
        return self._snapshot

    async def validate_stock(self) -> Cart:
        """Check every line against current stock before checkout.

        Raises :class:`StockExceededError` for the first line asking for more
        than is available.
        """
        cart = await self.read()
        shortfalls = await find_shortfalls(cart, self._oracle)
        if shortfalls:
            first = shortfalls[0]
            raise StockExceededError(
                f"Not enough stock for {first.title or first.item_id}. Only {first.available} left.",
                item_id=first.item_id,
                requested=first.requested,
                available=first.available,
            )
        return cart

    # ------------------------------------------------------------------
    # Login / logout
    # ------------------------------------------------------------------

    async def _on_session_event(self, event: SessionEvent) -> None:
        if event.kind is SessionEventKind.LOGIN and event.identity is not None:
            await self._on_login(event.identity)
        elif event.kind is SessionEventKind.LOGOUT:
            await self._on_logout()

    async def _on_login(self, identity: Identity) -> MergeResult | None:
        if self._identity is not None and self._identity.user_id == identity.user_id:
            self._identity = identity
            return None
        _logger.info("Cart authority -> remote for user_id=%s", identity.user_id)
        self._identity = identity
        self._loaded = False
        self._bump_generation()
        return await self._run_merge(identity)

    async def retry_merge(self) -> MergeResult:
        """Replay guest lines left behind by an aborted merge.

        Only lines not recorded as merged are resubmitted.
        """
        self.start()
        await self._wait_for_merge()
        identity = self._require_identity()
        return await self._run_merge(identity)

    async def _run_merge(self, identity: Identity) -> MergeResult:
        guest = self._local.load()
        if guest.is_empty:
            self._local.clear_ledger()
            result = MergeResult()
            self._last_merge = result
            self._reload_pending = True
            await self._load_after_login()
            return result

        generation = self._generation
        merge_done = asyncio.Event()
        self._merge_done = merge_done

        async def _replay(line: CartLine) -> Cart:
            if generation != self._generation:
                raise CartSyncError("Session changed during merge")
            return await self._add_item_creating_cart(identity, line.item_id, line.quantity)

        _logger.info("Merging %d guest line(s) into remote cart of user_id=%s", len(guest), identity.user_id)
        try:
            result = await merge_guest_lines(
                guest.lines,
                _replay,
                already_merged=self._local.merged_line_ids(identity.user_id),
                on_merged=lambda line: self._local.record_merged(identity.user_id, line.line_id),
            )
            if generation != self._generation:
                _logger.debug("Session changed during merge; leaving local state alone")
                return result

            self._last_merge = result
            if result.ok:
                self._local.clear()
                self._local.clear_ledger()
            else:
                # Guest cart stays intact; the ledger remembers what was merged.
                _logger.warning(
                    "Guest cart merge incomplete for user_id=%s: %d merged, aborted at line %s: %s",
                    identity.user_id,
                    result.merged_count,
                    result.failed_line.line_id if result.failed_line is not None else "?",
                    result.first_failure,
                )
            self._local.mark_reload_pending()
            self._reload_pending = True
            self._bump_generation()
        finally:
            merge_done.set()

        await self._load_after_login()
        return result

    async def _load_after_login(self) -> None:
        try:
            await self._reload()
        except CartSyncError:
            # The pending-reload flag stays set; the next read retries and
            # surfaces the error to its caller.
            _logger.warning("Post-login cart load failed", exc_info=True)

    async def _on_logout(self) -> None:
        _logger.info("Cart authority -> local")
        self._identity = None
        self._merge_done.set()
        self._bump_generation()
        self._reload_pending = False
        self._local.consume_reload_pending()
        self._loaded = False
        await self._reload()
