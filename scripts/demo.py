#!/usr/bin/env python3
"""Demo session: log in (or resume from the token cache), start up, and call one RPC.

Usage
-----
Set environment variables and run::

    export POGO_USERNAME="alice"
    export POGO_PASSWORD="hunter2"
    export POGO_TOKEN_URL="https://sso.example.com/oauth2/token"
    python scripts/demo.py --provider ptc

Options::

    --provider NAME      Identity provider name: "google" or "ptc"
    --client-id ID       OAuth client id (default: POGO_CLIENT_ID or "mobile-app")
    --no-cache           Always log in with the password
    --fort-id ID         Fort to request details for
    -v / --verbose       DEBUG logging

Type ``q``, ``quit`` or ``exit`` to stop.
"""

from __future__ import annotations

import argparse
import asyncio
import base64
import logging
import os
import sys
from pathlib import Path

_repo = Path(__file__).resolve().parent.parent
_src = _repo / "src"
if _src.is_dir():
    sys.path.insert(0, str(_src))

from pypogo import (  # noqa: E402
    FileCredentialStore,
    Location,
    OAuthPasswordProvider,
    PogoConfig,
    PogoError,
    RequestType,
    UpdateCategory,
    UpdateEvent,
    get_session,
)

_logger = logging.getLogger("pypogo.demo")

# Somewhere in London.
_LATITUDE = 51.507351
_LONGITUDE = -0.127758

_QUIT_COMMANDS = frozenset({"q", "quit", "exit"})


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="pypogo demo session")
    parser.add_argument("--provider", choices=("google", "ptc"), default="ptc")
    parser.add_argument("--username", default=os.environ.get("POGO_USERNAME"))
    parser.add_argument("--password", default=os.environ.get("POGO_PASSWORD"))
    parser.add_argument("--token-url", default=os.environ.get("POGO_TOKEN_URL"))
    parser.add_argument("--client-id", default=os.environ.get("POGO_CLIENT_ID", "mobile-app"))
    parser.add_argument("--no-cache", action="store_true")
    parser.add_argument("--fort-id", default="e4a5b5a63cf34100bd620c598597f21c.12")
    parser.add_argument("-v", "--verbose", action="store_true")
    args = parser.parse_args(argv)
    missing = [name for name in ("username", "password", "token_url") if not getattr(args, name)]
    if missing:
        parser.error(f"missing required value(s): {', '.join(missing)}")
    return args


def _on_update(event: UpdateEvent) -> None:
    if event.category is UpdateCategory.INVENTORY_CHANGED:
        _logger.info("Inventory was updated.")
    elif event.category is UpdateCategory.LOCATION_DATA_CHANGED:
        _logger.info("Map was updated.")
    elif event.category is UpdateCategory.CREDENTIAL_RENEWED:
        _logger.info("Access token renewed.")
    elif event.category is UpdateCategory.SESSION_ENDED:
        _logger.error("Session ended: %s", getattr(event, "reason", ""))


async def _read_commands() -> None:
    loop = asyncio.get_running_loop()
    while True:
        line = await loop.run_in_executor(None, sys.stdin.readline)
        if not line or line.strip().lower() in _QUIT_COMMANDS:
            return


async def _run(args: argparse.Namespace) -> int:
    config = PogoConfig.from_env(cache_enabled=not args.no_cache)
    store = FileCredentialStore(_repo / config.cache_dir) if config.cache_enabled else None

    async with OAuthPasswordProvider(
        name=args.provider,
        token_url=args.token_url,
        client_id=args.client_id,
    ) as provider:
        session = await get_session(
            provider,
            args.username,
            args.password,
            Location(latitude=_LATITUDE, longitude=_LONGITUDE),
            store=store,
            may_cache=config.cache_enabled,
            config=config,
        )
        for category in UpdateCategory:
            session.subscribe(category, _on_update)

        async with session:
            payload = await session.dispatch(RequestType.FORT_DETAILS, args.fort_id.encode("utf-8"))
            # Decoding the fort details message is up to the caller.
            print(base64.b64encode(payload).decode("ascii"))
            await _read_commands()
    return 0


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)-8s %(message)s",
        datefmt="%H:%M:%S",
    )
    _logger.info("Booting up.")
    _logger.info("Type 'q', 'quit' or 'exit' to exit.")
    try:
        return asyncio.run(_run(args))
    except PogoError as exc:
        _logger.error("%s: %s", type(exc).__name__, exc)
        return 1
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    sys.exit(main())
