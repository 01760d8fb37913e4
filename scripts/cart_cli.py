#!/usr/bin/env python3
"""Drive a cart through the sync engine from the command line.

Guest carts are kept in a local JSON slot file; setting ``CARTSYNC_USER_ID``
switches every command to the remote cart of that user.

Usage
-----
::

    export CARTSYNC_BASE_URL="http://localhost:2424/api"
    python scripts/cart_cli.py add 12 --qty 2 --price 9.5 --stock 4
    python scripts/cart_cli.py show

    export CARTSYNC_USER_ID=42
    export CARTSYNC_EMAIL="you@example.com"
    export CARTSYNC_PASSWORD="your-password"
    python scripts/cart_cli.py login     # merge the guest cart
    python scripts/cart_cli.py show --json

Options::

    --store PATH      Guest slot file (default: .cartsync-slots.json)
    --json            Print the cart payload as JSON
    --verbose / -v    Enable debug logging
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys
from pathlib import Path

# Allow running from the repo root without installing the package.
_repo = Path(__file__).resolve().parent.parent
_src = _repo / "src"
if _src.is_dir():
    sys.path.insert(0, str(_src))

from cartsync import (  # noqa: E402
    Cart,
    CartServiceClient,
    CartSyncConfig,
    CartSyncEngine,
    CartSyncError,
    Identity,
    IdentityProvider,
    Item,
    JsonFileSlots,
    LocalCartStore,
    basic_credential,
)


def _identity_from_env() -> Identity | None:
    user_id = os.environ.get("CARTSYNC_USER_ID", "").strip()
    if not user_id:
        return None
    email = os.environ.get("CARTSYNC_EMAIL") or None
    password = os.environ.get("CARTSYNC_PASSWORD")
    if email and password:
        return Identity(user_id=user_id, credential=basic_credential(email, password), email=email)
    return Identity(user_id=user_id, email=email)


def _print_cart(cart: Cart, *, as_json: bool) -> None:
    if as_json:
        print(json.dumps(cart.to_payload(), indent=2, ensure_ascii=False))
        return
    if cart.is_empty:
        print("Cart is empty")
        return
    for line in cart.lines:
        label = line.item.title or line.item_id
        print(f"  [{line.line_id}] {label:<32} x{line.quantity:<3} {line.subtotal:>9.2f}")
    print(f"  {'':<37}{cart.count:>4} {cart.total:>9.2f}")


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Inspect and edit a cart through cartsync")
    parser.add_argument("--store", default=".cartsync-slots.json", help="Guest slot file")
    parser.add_argument("--json", action="store_true", help="Print the cart payload as JSON")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")

    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("show", help="Print the cart")
    add = sub.add_parser("add", help="Add an item")
    add.add_argument("item_id")
    add.add_argument("--qty", type=int, default=1)
    add.add_argument("--title", default="")
    add.add_argument("--price", type=float, default=0.0)
    add.add_argument("--stock", type=int, default=None, help="Available stock (guest carts clamp to it)")
    for name, help_text in (
        ("inc", "Add one unit to a line"),
        ("dec", "Remove one unit from a line"),
        ("remove", "Delete a line"),
    ):
        line_cmd = sub.add_parser(name, help=help_text)
        line_cmd.add_argument("line_id")
    sub.add_parser("clear", help="Empty the cart")
    sub.add_parser("validate", help="Check every line against available stock")
    sub.add_parser("login", help="Sign in as CARTSYNC_USER_ID and merge the guest cart")
    return parser.parse_args()


async def _run(args: argparse.Namespace) -> int:
    config = CartSyncConfig.from_env()
    identity = _identity_from_env()
    if args.command == "login" and identity is None:
        print("CARTSYNC_USER_ID is required for login", file=sys.stderr)
        return 2

    local = LocalCartStore(JsonFileSlots(args.store), config)
    provider = IdentityProvider(None if args.command == "login" else identity)

    async with CartServiceClient(config) as remote:
        async with CartSyncEngine(local, remote, provider) as engine:
            if args.command == "login":
                assert identity is not None
                await engine.read()
                await provider.login(identity)
                result = engine.last_merge
                if result is not None:
                    print(f"Merged {result.merged_count} line(s), skipped {result.skipped_count}")
                    if not result.ok:
                        print(f"Merge incomplete: {result.first_failure}", file=sys.stderr)
                cart = await engine.read()
            elif args.command == "add":
                item = Item(item_id=args.item_id, title=args.title, price=args.price, available_stock=args.stock)
                cart = await engine.add_to_cart(item, qty=args.qty)
            elif args.command in {"inc", "dec", "remove"}:
                # Unknown ids are an error here, unlike the engine's no-op.
                line = (await engine.read()).require_line(args.line_id)
                if args.command == "inc":
                    cart = await engine.increase_quantity(line.line_id)
                elif args.command == "dec":
                    cart = await engine.decrease_quantity(line.line_id)
                else:
                    cart = await engine.remove_from_cart(line.line_id)
            elif args.command == "clear":
                cart = await engine.clear()
            elif args.command == "validate":
                cart = await engine.validate_stock()
                print("All lines within available stock")
            else:
                cart = await engine.read()

    print(f"Mode: {engine.mode}")
    _print_cart(cart, as_json=args.json)
    return 0


def main() -> int:
    args = _parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)-8s %(name)s: %(message)s",
    )
    try:
        return asyncio.run(_run(args))
    except CartSyncError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
