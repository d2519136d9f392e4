"""CLI entry point: python -m trailkeep.cli <command> ..."""

from __future__ import annotations

import argparse
import asyncio
import json
import sys

import yaml

from trailkeep.core.config import get_settings
from trailkeep.core.errors import TrailError
from trailkeep.core.logging import generate_trace_id, setup_logging, trace_id_var

QUERIES = {
    "where-object": "where_object",
    "where-object-changes": "where_object_changes",
    "where-object-changes-from": "where_object_changes_from",
    "where-object-changes-to": "where_object_changes_to",
    "where-attribute-changes": "where_attribute_changes",
}


def parse_pairs(pairs: list[str]) -> dict:
    """``["count=100", "name=foo"]`` -> ``{"count": 100, "name": "foo"}``.

    Values are read as YAML scalars, so ``null``, numbers and booleans keep
    their type.
    """
    attributes = {}
    for pair in pairs:
        field, sep, raw = pair.partition("=")
        if not sep or not field:
            raise argparse.ArgumentTypeError(f"expected field=value, got {pair!r}")
        attributes[field] = yaml.safe_load(raw) if raw else ""
    return attributes


def parse_subject(value: str) -> tuple[str, str]:
    subject_type, sep, subject_id = value.partition(":")
    if not sep or not subject_type or not subject_id:
        raise argparse.ArgumentTypeError(f"expected TYPE:ID, got {value!r}")
    return subject_type, subject_id


async def _render(trail, records) -> list[dict]:
    rows = []
    for record in records:
        rows.append({
            "id": record.id,
            "subject_type": record.subject_type,
            "subject_id": record.subject_id,
            "event": record.event,
            "actor": record.actor,
            "created_at": record.created_at.isoformat() if record.created_at else None,
            "changes": await record.changeset(trail.config),
        })
    return rows


async def run(args: argparse.Namespace) -> int:
    from trailkeep.trail import TrailKeep

    trail = TrailKeep(database_url=args.database_url, serializer=args.serializer)
    try:
        if args.command == "init":
            await trail.init()
            return 0
        if args.command == "history":
            records = await trail.history(*args.subject)
        else:
            method = getattr(trail, QUERIES[args.command])
            argument = args.attribute if args.command == "where-attribute-changes" else parse_pairs(args.pairs)
            records = await method(argument, subject=args.subject)
        for row in await _render(trail, records):
            print(json.dumps(row, ensure_ascii=False, default=str))
        return 0
    finally:
        await trail.close()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Inspect and query an audit trail",
        prog="python -m trailkeep.cli",
    )
    parser.add_argument("--database-url", default=None, help="Overrides TRAILKEEP_DATABASE_URL")
    parser.add_argument("--serializer", choices=["yaml", "json"], default=None)
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("init", help="Create history tables")

    history = sub.add_parser("history", help="List one subject's records")
    history.add_argument("subject", type=parse_subject, help="TYPE:ID")

    for command in QUERIES:
        query = sub.add_parser(command)
        if command == "where-attribute-changes":
            query.add_argument("attribute")
        else:
            query.add_argument("pairs", nargs="+", metavar="field=value")
        query.add_argument("--subject", type=parse_subject, default=None, help="TYPE:ID")
    return parser


def main(argv: list[str] | None = None) -> None:
    args = build_parser().parse_args(argv)
    settings = get_settings()
    setup_logging("DEBUG" if args.verbose else settings.log_level, json_output=settings.log_json)
    trace_id_var.set(generate_trace_id())
    try:
        code = asyncio.run(run(args))
    except (TrailError, argparse.ArgumentTypeError) as e:
        print(f"error: {e}", file=sys.stderr)
        code = 2
    sys.exit(code)


if __name__ == "__main__":
    main()
