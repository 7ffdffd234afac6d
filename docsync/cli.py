"""Command line entry point.

Examples:
    python -m docsync get my-app users/alice
    python -m docsync watch my-app rooms --ordered
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from typing import Any, List, Optional

from docsync.client import DocumentClient
from docsync.errors import DocSyncError
from docsync.location import Location
from docsync.logging import configure_logging
from docsync.patch import encode_document, ordered_keys
from docsync.settings import get_settings
from docsync.shapes import Slot


def _print_document(document: Any, ordered: bool) -> None:
    if isinstance(document, Slot):
        document = document.value
    if ordered and isinstance(document, dict):
        document = {key: document[key] for key in ordered_keys(document)}
    print(encode_document(document), flush=True)


async def _get(location: Location, ordered: bool) -> None:
    async with DocumentClient() as client:
        _print_document(await client.get(location), ordered)


async def _watch(location: Location, ordered: bool) -> None:
    document = Slot()
    async with DocumentClient() as client:
        async with await client.watch(location) as watch:
            await watch.run(document, on_change=lambda doc: _print_document(doc, ordered))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="docsync",
        description="Read or mirror a location of a remote document store",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s get my-app users/alice
  %(prog)s watch my-app rooms --ordered
        """,
    )
    subcommands = parser.add_subparsers(dest="command", required=True)

    for name, help_text in (
        ("get", "Print the document at a location"),
        ("watch", "Mirror a location and print it after every change"),
    ):
        sub = subcommands.add_parser(name, help=help_text)
        sub.add_argument("app", help="Application identifier")
        sub.add_argument("path", nargs="?", default="", help="Path below the root")
        sub.add_argument(
            "--ordered",
            action="store_true",
            help="Print top-level keys in sorted order",
        )

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)

    settings = get_settings()
    configure_logging(settings.log_level, json_output=settings.log_json)

    location = Location(args.app).child(args.path) if args.path else Location(args.app)
    command = _get if args.command == "get" else _watch

    try:
        asyncio.run(command(location, args.ordered))
    except DocSyncError as exc:
        print(json.dumps({"error": str(exc), "type": type(exc).__name__}), file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        return 130
    return 0


__all__ = ["main", "build_parser"]
