"""Guest-cart merge protocol.

On login the guest lines are replayed into the remote cart one at a time,
in insertion order, each ``add_item`` awaited before the next is issued.
The replay is a fold over the lines producing a :class:`MergeResult`; the
first failure stops the fold and becomes part of the result rather than
escaping as an exception.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import replace

from cartsync.exceptions import CartSyncError
from cartsync.models.cart import Cart, CartLine
from cartsync.models.merge import MergeResult

_logger = logging.getLogger(__name__)

AddLine = Callable[[CartLine], Awaitable[Cart]]
"""Replays one guest line remotely and returns the resulting remote cart."""


async def merge_guest_lines(
    lines: Iterable[CartLine],
    add_line: AddLine,
    *,
    already_merged: frozenset[str] = frozenset(),
    on_merged: Callable[[CartLine], None] | None = None,
) -> MergeResult:
    """Replay *lines* sequentially through *add_line*.

    Parameters
    ----------
    lines
        Guest lines in insertion order.
    add_line
        Coroutine function replaying one line remotely.
    already_merged
        Line ids replayed by an earlier, aborted run; skipped.
    on_merged
        Called after each successful replay (used to keep the merge ledger).

    Returns
    -------
    MergeResult
        ``first_failure`` is set when a replay failed; remaining lines were
        not submitted.
    """
    result = MergeResult()
    for line in lines:
        if line.line_id in already_merged:
            result = replace(result, skipped_count=result.skipped_count + 1)
            continue
        try:
            remote_cart = await add_line(line)
        except CartSyncError as exc:
            _logger.debug("Merge of line %s (item %s) failed", line.line_id, line.item_id, exc_info=True)
            return replace(result, first_failure=exc, failed_line=line)
        if on_merged is not None:
            on_merged(line)
        result = replace(result, merged_count=result.merged_count + 1, remote_cart=remote_cart)
    return result
