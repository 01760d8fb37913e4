"""HTTP transport for the Remote Cart Service."""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Protocol

import aiohttp

from cartsync._constants import USER_AGENT
from cartsync._redact import redact_for_log
from cartsync.config import CartSyncConfig
from cartsync.exceptions import CartTransportError, RemoteUnavailableError

_logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ApiResponse:
    """Status code and decoded JSON body of a remote call."""

    status: int
    body: dict[str, Any] = field(default_factory=dict)


class Transport(Protocol):
    """Structural transport interface used by endpoint modules.

    Having a protocol here makes it easy to pass test doubles while
    keeping the production implementation (`HttpTransport`) concrete.
    """

    async def request(
        self,
        method: str,
        path: str,
        *,
        params: Mapping[str, Any] | None = None,
        authorization: str | None = None,
    ) -> ApiResponse:
        ...


class HttpTransport:
    """aiohttp transport; maps network failures to :class:`RemoteUnavailableError`.

    Application-level statuses (4xx) are returned to the caller untouched;
    the endpoint layer decides what they mean.
    """

    def __init__(self, config: CartSyncConfig, http_session: aiohttp.ClientSession) -> None:
        self._config = config
        self._http = http_session
        self._timeout = aiohttp.ClientTimeout(total=config.request_timeout)

    async def request(
        self,
        method: str,
        path: str,
        *,
        params: Mapping[str, Any] | None = None,
        authorization: str | None = None,
    ) -> ApiResponse:
        headers: dict[str, str] = {
            "accept": "application/json",
            "user-agent": USER_AGENT,
        }
        if authorization:
            headers["authorization"] = authorization

        url = f"{self._config.base_url}{path}"
        query = {k: str(v) for k, v in (params or {}).items()}

        _logger.debug("%s %s", method, url)
        if self._config.api_trace_enabled:
            _logger.debug("request params=%s headers=%s", redact_for_log(query), redact_for_log(headers))

        try:
            async with self._http.request(
                method,
                url,
                params=query or None,
                headers=headers,
                timeout=self._timeout,
            ) as resp:
                status = resp.status
                text = await resp.text()
        except asyncio.TimeoutError as exc:
            raise RemoteUnavailableError(
                f"{method} {path} timed out after {self._config.request_timeout}s",
                endpoint=path,
            ) from exc
        except aiohttp.ClientError as exc:
            raise RemoteUnavailableError(
                f"{method} {path} failed: {exc}",
                endpoint=path,
            ) from exc

        if status >= 500:
            raise RemoteUnavailableError(
                f"HTTP {status} from {path}: {text[:200]}",
                status_code=status,
                endpoint=path,
            )

        body: dict[str, Any] = {}
        if text.strip():
            try:
                decoded = json.loads(text)
            except json.JSONDecodeError as exc:
                if status < 400:
                    raise CartTransportError(
                        f"Invalid JSON from {path}: {text[:200]}",
                        status_code=status,
                        endpoint=path,
                    ) from exc
                # Error pages are not always JSON; keep the text as the message.
                decoded = {"message": text[:200]}
            if isinstance(decoded, dict):
                body = decoded
            else:
                body = {"data": decoded}

        if self._config.api_trace_enabled:
            _logger.debug("response status=%d body=%s", status, redact_for_log(body))

        return ApiResponse(status=status, body=body)
