"""Session identity: who is shopping, and when that changes."""

from __future__ import annotations

import base64
import logging
from collections.abc import Awaitable, Callable
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field, SecretStr, field_validator

_logger = logging.getLogger(__name__)


def basic_credential(email: str, password: str) -> SecretStr:
    """Build an HTTP Basic ``Authorization`` value from account credentials."""
    token = base64.b64encode(f"{email}:{password}".encode()).decode("ascii")
    return SecretStr(f"Basic {token}")


class Identity(BaseModel):
    """An authenticated shopper.

    Parameters
    ----------
    user_id : str
        Key of the shopper's remote cart.
    credential : SecretStr
        Opaque per-request credential, sent verbatim as the
        ``Authorization`` header.  Never inspected or logged.
    email : str or None
        Display-only account email.
    """

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        str_strip_whitespace=True,
    )

    user_id: str
    credential: SecretStr = Field(default_factory=lambda: SecretStr(""))
    email: str | None = None

    @field_validator("user_id", mode="before")
    @classmethod
    def _normalize_user_id(cls, value: object) -> str:
        text = str(value).strip() if value is not None else ""
        if not text:
            raise ValueError("user_id must be non-empty")
        return text

    def authorization(self) -> str:
        return self.credential.get_secret_value()


class SessionEventKind(StrEnum):
    LOGIN = "login"
    LOGOUT = "logout"


class SessionEvent(BaseModel):
    """A session transition emitted by :class:`IdentityProvider`."""

    model_config = ConfigDict(frozen=True)

    kind: SessionEventKind
    identity: Identity | None = None


SessionListener = Callable[[SessionEvent], Awaitable[None]]


class IdentityProvider:
    """In-process holder of the current identity.

    ``login``/``logout`` notify every subscribed listener and await them in
    subscription order, so a caller awaiting ``login`` resumes only once
    the cart engine has finished its merge.
    """

    def __init__(self, identity: Identity | None = None) -> None:
        self._identity = identity
        self._listeners: list[SessionListener] = []

    @property
    def identity(self) -> Identity | None:
        return self._identity

    def subscribe(self, listener: SessionListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    async def login(self, identity: Identity) -> None:
        current = self._identity
        if current is not None and current.user_id == identity.user_id:
            # Same shopper re-authenticating (e.g. refreshed credential).
            self._identity = identity
            return
        self._identity = identity
        _logger.info("Session login user_id=%s", identity.user_id)
        await self._emit(SessionEvent(kind=SessionEventKind.LOGIN, identity=identity))

    async def logout(self) -> None:
        if self._identity is None:
            return
        _logger.info("Session logout user_id=%s", self._identity.user_id)
        self._identity = None
        await self._emit(SessionEvent(kind=SessionEventKind.LOGOUT))

    async def _emit(self, event: SessionEvent) -> None:
        for listener in list(self._listeners):
            await listener(event)
