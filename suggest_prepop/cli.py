"""CLI entrypoint for the suggestion index."""

from __future__ import annotations

import argparse
import logging
import os
import sys
from collections.abc import Sequence
from pathlib import Path

from pydantic import ValidationError

from .api import SuggestAPI
from .errors import InvalidInputError, StoreUnavailableError
from .models import DEFAULT_NAMESPACE, SuggestConfig

EXIT_INVALID_INPUT = 2
EXIT_STORE_UNAVAILABLE = 3
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def _add_scope_flag(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--scope",
        action="append",
        dest="scopes",
        default=[],
        help="Scope to operate on (repeatable). Defaults to the unscoped index.",
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="suggest-prepop", description="Prefix and popularity suggestion index."
    )
    parser.add_argument(
        "--redis-url",
        default=os.environ.get("SUGGEST_REDIS_URL"),
        help="Redis URL holding the index (default: $SUGGEST_REDIS_URL).",
    )
    parser.add_argument("--store", type=Path, help="Path to a JSONL store used without Redis.")
    parser.add_argument(
        "--namespace", default=DEFAULT_NAMESPACE, help="Key namespace for the index."
    )
    parser.add_argument(
        "--min-activity",
        type=int,
        default=5,
        help="Minimum times an item must be seen to be suggested.",
    )
    parser.add_argument(
        "--entries-limit",
        type=int,
        default=32768,
        help="Number of most popular entries kept by prune.",
    )
    parser.add_argument(
        "--top-count", type=int, default=5, help="Default number of suggestions returned."
    )
    parser.add_argument(
        "--log-level",
        type=str.upper,
        choices=LOG_LEVELS,
        default="WARNING",
        help="Logging level.",
    )

    sub = parser.add_subparsers(dest="command", required=True)

    add = sub.add_parser("add", help="Record occurrences of an item.")
    add.add_argument("item", help="Complete item text.")
    add.add_argument("--count", type=int, default=1, help="Times the item was seen.")
    _add_scope_flag(add)

    ask = sub.add_parser("ask", help="Print suggestions for a prefix.")
    ask.add_argument("prefix", help="Partially typed text.")
    ask.add_argument("--count", type=int, default=None, help="Number of suggestions.")
    _add_scope_flag(ask)

    prune = sub.add_parser("prune", help="Keep only the most popular entries.")
    prune.add_argument("--keep", type=int, default=None, help="Entries to keep per scope.")
    _add_scope_flag(prune)

    drop = sub.add_parser("drop", help="Remove every item starting with a prefix.")
    drop.add_argument("prefix", help="Prefix to remove.")
    _add_scope_flag(drop)

    sub.add_parser("scopes", help="List known scopes.")

    ingest = sub.add_parser("ingest", help="Ingest a JSONL file of occurrence records.")
    ingest.add_argument("path", type=Path, help="Path to occurrences JSONL.")

    dump = sub.add_parser("dump", help="Dump raw sorted sets as JSON.")
    dump.add_argument("--pretty", action="store_true", help="Pretty-print JSON output.")

    return parser


def _config_from_args(args: argparse.Namespace) -> SuggestConfig:
    return SuggestConfig(
        cache_namespace=args.namespace,
        min_activity=args.min_activity,
        entries_limit=args.entries_limit,
        top_count=args.top_count,
        redis_url=args.redis_url,
        store_path=str(args.store) if args.store else None,
    )


def _run(api: SuggestAPI, args: argparse.Namespace) -> int:
    if args.command == "add":
        print(api.add(args.item, args.count, args.scopes))
        return 0
    if args.command == "ask":
        for item in api.ask(args.prefix, args.count, args.scopes):
            print(item)
        return 0
    if args.command == "prune":
        print(api.prune(args.keep, args.scopes))
        return 0
    if args.command == "drop":
        print(api.drop_prefix(args.prefix, args.scopes))
        return 0
    if args.command == "scopes":
        for scope in api.scopes():
            print(scope if scope else "(default)")
        return 0
    if args.command == "ingest":
        print(api.ingest_file(args.path))
        return 0
    if args.command == "dump":
        data = api.snapshot_json()
        if args.pretty:
            print(data)
        else:
            print(data.replace("\n", ""), file=sys.stdout)
        return 0
    raise ValueError(f"Unsupported command {args.command}")


def main(argv: Sequence[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=args.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        api = SuggestAPI(_config_from_args(args))
        return _run(api, args)
    except (InvalidInputError, ValidationError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        return EXIT_INVALID_INPUT
    except StoreUnavailableError as exc:
        print(f"error: store unavailable: {exc}", file=sys.stderr)
        return EXIT_STORE_UNAVAILABLE


if __name__ == "__main__":
    sys.exit(main())
