"""Custom exception hierarchy for cartsync."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from cartsync.models.merge import MergeResult


class CartSyncError(Exception):
    """Base exception for all cartsync errors."""


class CartConfigError(CartSyncError):
    """Invalid or missing configuration."""


class CartTransportError(CartSyncError):
    """HTTP-level failure (network, unexpected status, invalid JSON)."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        endpoint: str = "",
    ) -> None:
        self.status_code = status_code
        self.endpoint = endpoint
        super().__init__(message)


class RemoteUnavailableError(CartTransportError):
    """The Remote Cart Service could not be reached or failed (timeouts, 5xx).

    The engine never mutates its snapshot when this is raised; the caller
    is expected to surface it and let the user retry.
    """


class CartApiError(CartSyncError):
    """The Remote Cart Service rejected the request (application-level error)."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        endpoint: str = "",
    ) -> None:
        self.status_code = status_code
        self.endpoint = endpoint
        super().__init__(message)


class CartAuthenticationError(CartApiError):
    """Credential rejected by the Remote Cart Service (401/403)."""


class CartNotFoundError(CartApiError):
    """No remote cart exists yet for the user.

    The engine recovers from this by creating the cart; it is never
    surfaced to engine callers.
    """


class StockExceededError(CartApiError):
    """Requested quantity cannot be satisfied by the available stock.

    Raised either by the engine when it can compute availability itself
    (an anonymous add of an out-of-stock item, pre-checkout validation) or
    when the Remote Cart Service rejects a quantity (HTTP 409).  Remote
    messages are kept verbatim.
    """

    def __init__(
        self,
        message: str,
        *,
        item_id: str | None = None,
        requested: int | None = None,
        available: int | None = None,
        status_code: int | None = None,
        endpoint: str = "",
    ) -> None:
        self.item_id = item_id
        self.requested = requested
        self.available = available
        super().__init__(message, status_code=status_code, endpoint=endpoint)


class LineNotFoundError(CartSyncError):
    """A cart line id is not present in the current snapshot."""

    def __init__(self, line_id: str) -> None:
        self.line_id = line_id
        super().__init__(f"No cart line with id {line_id!r}")


class MergeIncompleteError(CartSyncError):
    """A guest-cart merge aborted before every line was replayed.

    Lines merged before the failure stay in the remote cart; the guest cart
    is left intact so nothing is lost.  ``result.first_failure`` holds the
    error that stopped the merge.
    """

    def __init__(self, result: MergeResult) -> None:
        self.result = result
        failed = result.failed_line.line_id if result.failed_line is not None else "?"
        super().__init__(
            f"Guest cart merge aborted at line {failed} after {result.merged_count} line(s): {result.first_failure}"
        )
