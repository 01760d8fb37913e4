"""Authority mode state."""

from __future__ import annotations

from enum import StrEnum


class AuthorityMode(StrEnum):
    """Which store is the source of truth for cart reads and writes."""

    ANONYMOUS = "anonymous"
    """No identity; the Local Store is authoritative."""
    MERGING = "merging"
    """A login merge is in flight; reads and writes wait for it."""
    AUTHENTICATED = "authenticated"
    """The Remote Cart Service is authoritative."""
