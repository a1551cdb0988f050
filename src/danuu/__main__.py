"""Entry point for `python -m danuu` / `danuu`.

Subcommands:
    danuu               Run the bot (default)
    danuu run           Same as above
    danuu pair          Link a WhatsApp account and exit
"""

from __future__ import annotations

import argparse
import asyncio
import sys


def _run() -> None:
    from pydantic import ValidationError

    from danuu.app import DanuuApp
    from danuu.errors import ConfigError
    from danuu.logger import logger

    try:
        app = DanuuApp()
        asyncio.run(app.run())
    except (ConfigError, ValidationError) as exc:
        logger.error("Invalid configuration", err=str(exc))
        sys.exit(2)


def _pair(force: bool) -> None:
    from danuu.pairing import pair

    try:
        code = asyncio.run(pair(force=force))
    except KeyboardInterrupt:
        print()
        print("Linking cancelled.")
        code = 1
    sys.exit(code)


def main() -> None:
    parser = argparse.ArgumentParser(
        prog="danuu",
        description="DANUU-MD WhatsApp auto-responder bot",
    )
    sub = parser.add_subparsers(dest="command")
    sub.add_parser("run", help="Run the bot (default)")
    pair_parser = sub.add_parser("pair", help="Link a WhatsApp account and exit")
    pair_parser.add_argument(
        "--force",
        action="store_true",
        help="Forget the currently linked device first",
    )

    args = parser.parse_args()

    match args.command:
        case "pair":
            _pair(args.force)
        case _:
            _run()


if __name__ == "__main__":
    main()
