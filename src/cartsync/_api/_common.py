"""Shared helpers for Remote Cart Service endpoint modules.

This module centralizes the most repeated patterns:
- mapping HTTP / body status codes to the exception hierarchy
- unwrapping the ``cart.cartItemList`` envelope into a :class:`Cart`

It is internal to cartsync and may change at any time.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from pydantic import ValidationError

from cartsync._constants import AUTH_STATUSES, NOT_FOUND_STATUSES, STOCK_STATUSES
from cartsync._transport import ApiResponse, Transport
from cartsync.exceptions import (
    CartApiError,
    CartAuthenticationError,
    CartNotFoundError,
    StockExceededError,
)
from cartsync.models.cart import Cart, CartLine
from cartsync.normalize import safe_int, safe_str
from cartsync.session import Identity

_logger = logging.getLogger(__name__)


def _raise_for_status(*, endpoint: str, status: int, message: str) -> None:
    if status in NOT_FOUND_STATUSES:
        raise CartNotFoundError(
            f"{endpoint} not found: {message}",
            status_code=status,
            endpoint=endpoint,
        )
    if status in AUTH_STATUSES:
        raise CartAuthenticationError(
            f"{endpoint} rejected credential (HTTP {status}): {message}",
            status_code=status,
            endpoint=endpoint,
        )
    if status in STOCK_STATUSES:
        # Remote stock rejections are surfaced verbatim.
        raise StockExceededError(message or f"{endpoint}: insufficient stock", status_code=status, endpoint=endpoint)
    raise CartApiError(
        f"{endpoint} failed: status={status} message={message}",
        status_code=status,
        endpoint=endpoint,
    )


def check_response(endpoint: str, response: ApiResponse) -> dict[str, Any]:
    """Raise for error statuses (HTTP or wrapped in the body) and return the body."""
    body = response.body
    message = safe_str(body.get("message")) or ""
    if response.status >= 400:
        _raise_for_status(endpoint=endpoint, status=response.status, message=message)

    # The backend wraps every payload as {status, message, ...}; a 200 can
    # still carry an application error status.
    body_status = safe_int(body.get("status"))
    if body_status is not None and body_status >= 400:
        _raise_for_status(endpoint=endpoint, status=body_status, message=message)
    return body


def parse_cart(endpoint: str, body: Mapping[str, Any]) -> Cart:
    """Unwrap ``cart.cartItemList`` into a :class:`Cart`.

    A missing list is an empty cart.  Lines with a non-positive quantity
    are dropped so a snapshot never carries a zero line.
    """
    envelope = body.get("cart")
    if envelope is None:
        return Cart.empty()
    if not isinstance(envelope, Mapping):
        raise CartApiError(f"{endpoint} returned a non-object cart", endpoint=endpoint)
    raw_lines = envelope.get("cartItemList") or []
    if not isinstance(raw_lines, list):
        raise CartApiError(f"{endpoint} returned a non-list cartItemList", endpoint=endpoint)

    lines: list[CartLine] = []
    for raw in raw_lines:
        if isinstance(raw, Mapping) and (safe_int(raw.get("quantity")) or 0) <= 0:
            _logger.debug("Dropping non-positive remote line from %s: %s", endpoint, raw.get("cartItemId"))
            continue
        try:
            lines.append(CartLine.model_validate(raw))
        except ValidationError as exc:
            raise CartApiError(f"{endpoint} returned an invalid cart line: {exc}", endpoint=endpoint) from exc
    return Cart.of(lines)


async def request_cart(
    *,
    transport: Transport,
    identity: Identity,
    method: str,
    endpoint: str,
    params: Mapping[str, Any] | None = None,
) -> Cart:
    """Issue one cart call and return the full resulting cart."""
    response = await transport.request(
        method,
        endpoint,
        params=params,
        authorization=identity.authorization() or None,
    )
    body = check_response(endpoint, response)
    return parse_cart(endpoint, body)
