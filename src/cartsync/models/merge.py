"""Typed outcome of a guest-cart merge."""

from __future__ import annotations

from dataclasses import dataclass

from cartsync.exceptions import CartSyncError, MergeIncompleteError
from cartsync.models.cart import Cart, CartLine


@dataclass(frozen=True, slots=True)
class MergeResult:
    """Result of replaying guest lines into the remote cart.

    Parameters
    ----------
    merged_count : int
        Lines successfully replayed by this run.
    skipped_count : int
        Lines skipped because an earlier run already merged them.
    first_failure : CartSyncError or None
        The error that aborted the merge, ``None`` on success.
    failed_line : CartLine or None
        The guest line whose replay failed.
    remote_cart : Cart or None
        Remote cart as returned by the last successful replay.
    """

    merged_count: int = 0
    skipped_count: int = 0
    first_failure: CartSyncError | None = None
    failed_line: CartLine | None = None
    remote_cart: Cart | None = None

    @property
    def ok(self) -> bool:
        return self.first_failure is None

    def raise_for_failure(self) -> None:
        if self.first_failure is not None:
            raise MergeIncompleteError(self)
