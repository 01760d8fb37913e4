"""Device-local guest cart persistence.

The Local Store is a small key/value slot space (think browser
``localStorage``).  :class:`LocalCartStore` is the only component allowed
to read or write the cart slots in it.
"""

from __future__ import annotations

import json
import logging
import os
import secrets
import tempfile
from pathlib import Path
from typing import Any, Protocol

from pydantic import ValidationError

from cartsync.config import CartSyncConfig
from cartsync.models.cart import Cart, CartLine
from cartsync.normalize import safe_int, safe_str

_logger = logging.getLogger(__name__)


class KeyValueSlots(Protocol):
    """String slot storage."""

    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...

    def delete(self, key: str) -> None: ...


class InMemorySlots:
    """Process-local slots; nothing survives a restart."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self._data: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> str | None:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)


class JsonFileSlots:
    """Slots persisted as one JSON object file.

    Every write rewrites the file through a temporary sibling and an
    atomic rename, so a crash never leaves a half-written store.
    """

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)
        self._data: dict[str, str] = self._read()

    def _read(self) -> dict[str, str]:
        try:
            text = self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return {}
        try:
            decoded = json.loads(text)
        except json.JSONDecodeError:
            _logger.warning("Ignoring malformed slot file %s", self._path)
            return {}
        if not isinstance(decoded, dict):
            _logger.warning("Ignoring non-object slot file %s", self._path)
            return {}
        return {str(k): v for k, v in decoded.items() if isinstance(v, str)}

    def _write(self) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=self._path.parent, prefix=f".{self._path.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(self._data, fh, ensure_ascii=False)
            os.replace(tmp_name, self._path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def get(self, key: str) -> str | None:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        if self._data.get(key) == value:
            return
        self._data[key] = value
        self._write()

    def delete(self, key: str) -> None:
        if key not in self._data:
            return
        del self._data[key]
        self._write()


def _new_line_id(taken: set[str]) -> str:
    # Only unique within this cart; no global uniqueness is needed.
    while True:
        candidate = f"local-{secrets.token_hex(6)}"
        if candidate not in taken:
            return candidate


def new_line_id(cart: Cart) -> str:
    """Generate a line id unused in *cart*."""
    return _new_line_id({line.line_id for line in cart.lines})


def _normalize_lines(entries: list[Any]) -> list[CartLine]:
    lines: list[CartLine] = []
    taken: set[str] = set()
    by_item: dict[str, int] = {}

    for entry in entries:
        if not isinstance(entry, dict):
            continue
        quantity = safe_int(entry.get("quantity"))
        if quantity is None or quantity <= 0:
            continue

        data = dict(entry)
        line_id = safe_str(data.pop("lineId", None)) or safe_str(data.pop("cartItemId", None))
        if line_id is None or line_id in taken:
            line_id = _new_line_id(taken)
        data["lineId"] = line_id
        data["quantity"] = quantity

        try:
            line = CartLine.model_validate(data)
        except ValidationError:
            _logger.debug("Skipping malformed guest cart line: %s", entry)
            continue

        stock = line.item.available_stock
        existing_index = by_item.get(line.item_id)
        if existing_index is not None:
            # Duplicate item: fold into the first line for that item.
            existing = lines[existing_index]
            line = existing.with_quantity(existing.quantity + line.quantity)
            stock = existing.item.available_stock
        if stock is not None and line.quantity > stock:
            if stock <= 0:
                continue
            line = line.with_quantity(stock)

        if existing_index is not None:
            lines[existing_index] = line
            continue
        taken.add(line.line_id)
        by_item[line.item_id] = len(lines)
        lines.append(line)
    return lines


class LocalCartStore:
    """Guest cart slot, pending-reload flag and merge ledger.

    Parameters
    ----------
    slots : KeyValueSlots
        Backing storage.
    config : CartSyncConfig or None
        Supplies the slot keys.
    """

    def __init__(self, slots: KeyValueSlots, config: CartSyncConfig | None = None) -> None:
        self._slots = slots
        self._config = config or CartSyncConfig()

    # ------------------------------------------------------------------
    # Guest cart
    # ------------------------------------------------------------------

    def load(self) -> Cart:
        """Read the guest cart; an absent or malformed slot is an empty cart."""
        raw = self._slots.get(self._config.cart_slot_key)
        if raw is None:
            return Cart.empty()
        try:
            decoded = json.loads(raw)
        except json.JSONDecodeError:
            _logger.warning("Guest cart slot is not JSON; treating as empty")
            return Cart.empty()
        if not isinstance(decoded, list):
            _logger.warning("Guest cart slot is not a list; treating as empty")
            return Cart.empty()
        cart = Cart.of(_normalize_lines(decoded))
        if cart.to_payload() != decoded:
            # Persist generated ids so they stay stable across loads.
            self.save(cart)
        return cart

    def save(self, cart: Cart) -> None:
        self._slots.set(
            self._config.cart_slot_key,
            json.dumps(cart.to_payload(), separators=(",", ":"), ensure_ascii=False),
        )

    def clear(self) -> None:
        self._slots.delete(self._config.cart_slot_key)

    # ------------------------------------------------------------------
    # Pending remote reload
    # ------------------------------------------------------------------

    @property
    def reload_pending(self) -> bool:
        return self._slots.get(self._config.reload_flag_key) == "1"

    def mark_reload_pending(self) -> None:
        self._slots.set(self._config.reload_flag_key, "1")

    def consume_reload_pending(self) -> bool:
        """Return the flag and clear it."""
        pending = self.reload_pending
        if pending:
            self._slots.delete(self._config.reload_flag_key)
        return pending

    # ------------------------------------------------------------------
    # Merge ledger
    # ------------------------------------------------------------------

    def _read_ledger(self) -> dict[str, list[str]]:
        raw = self._slots.get(self._config.merge_ledger_key)
        if raw is None:
            return {}
        try:
            decoded = json.loads(raw)
        except json.JSONDecodeError:
            _logger.warning("Merge ledger slot is not JSON; ignoring it")
            return {}
        if not isinstance(decoded, dict):
            return {}
        ledger: dict[str, list[str]] = {}
        for user_id, line_ids in decoded.items():
            if isinstance(line_ids, list):
                ledger[str(user_id)] = [str(v) for v in line_ids]
        return ledger

    def merged_line_ids(self, user_id: str) -> frozenset[str]:
        """Guest lines already replayed into *user_id*'s remote cart."""
        return frozenset(self._read_ledger().get(user_id, ()))

    def record_merged(self, user_id: str, line_id: str) -> None:
        """Record *line_id* as merged for *user_id*; other users' entries are kept."""
        ledger = self._read_ledger()
        line_ids = ledger.setdefault(user_id, [])
        if line_id in line_ids:
            return
        line_ids.append(line_id)
        self._slots.set(self._config.merge_ledger_key, json.dumps(ledger, separators=(",", ":")))

    def clear_ledger(self) -> None:
        self._slots.delete(self._config.merge_ledger_key)
