from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from .config import AuditConfig
from .fields import FieldExtractor, StructuralError
from .merge import OrderViolationError
from .models import Outcome
from .pipeline import run_audit
from .tally import format_count, tally_sorted

EXIT_CODES = {
    Outcome.CLEAN: 0,
    Outcome.WARNINGS: 1,
    Outcome.FATAL: 2,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="dcaudit",
        description="Merge and summarize raw and reported directory counts")
    parser.add_argument(
        "--log-level",
        default=None,
        help="Logging level for diagnostics on stderr (default: DCAUDIT_LOG_LEVEL or INFO).",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    audit_parser = subparsers.add_parser(
        "audit", help="Compare sorted raw and reported count files")
    audit_parser.add_argument(
        "raw_counts",
        type=Path,
        help="Counts computed from directory entries, sorted by key.",
    )
    audit_parser.add_argument(
        "reported_counts",
        type=Path,
        help="Stored directory counts, sorted by key.",
    )
    audit_parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        default=None,
        help="Also report directories whose counts agree.",
    )
    audit_parser.add_argument(
        "--out",
        type=Path,
        default=None,
        help="Write diagnostics to this file instead of stdout.",
    )
    audit_parser.add_argument(
        "--summary",
        type=Path,
        default=None,
        help="Write a Markdown run summary to this path.",
    )

    fields_parser = subparsers.add_parser(
        "fields", help="Extract columns from a JSON-ified table dump on stdin")
    fields_parser.add_argument(
        "fields",
        nargs="+",
        help="Column names, optionally suffixed with @number or @string.",
    )

    subparsers.add_parser(
        "tally", help="Count runs of identical lines in sorted stdin")

    return parser


def _run_audit(args: argparse.Namespace, config: AuditConfig) -> int:
    if args.out is None:
        result = run_audit(
            raw_path=args.raw_counts,
            reported_path=args.reported_counts,
            out=sys.stdout,
            config=config,
            summary_path=args.summary,
        )
    else:
        args.out.parent.mkdir(parents=True, exist_ok=True)
        with args.out.open("w", encoding="utf-8") as handle:
            result = run_audit(
                raw_path=args.raw_counts,
                reported_path=args.reported_counts,
                out=handle,
                config=config,
                summary_path=args.summary,
            )

    if result.outcome is Outcome.FATAL:
        print(f"dcaudit: {result.error}", file=sys.stderr)
    return EXIT_CODES[result.outcome]


def _run_fields(args: argparse.Namespace) -> int:
    extractor = FieldExtractor(args.fields)
    lines = (line.rstrip("\r\n") for line in sys.stdin)
    try:
        for output in extractor.lines(lines):
            sys.stdout.write(output + "\n")
    except StructuralError as exc:
        print(f"dcaudit: {exc}", file=sys.stderr)
        return EXIT_CODES[Outcome.FATAL]
    return EXIT_CODES[Outcome.WARNINGS if extractor.stats.nwarnings else Outcome.CLEAN]


def _run_tally() -> int:
    lines = (line.rstrip("\r\n") for line in sys.stdin)
    try:
        for count, line in tally_sorted(lines):
            sys.stdout.write(format_count(count, line))
    except OrderViolationError as exc:
        print(f"dcaudit: {exc}", file=sys.stderr)
        return EXIT_CODES[Outcome.FATAL]
    return EXIT_CODES[Outcome.CLEAN]


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    config = AuditConfig.from_env().with_overrides(
        log_level=args.log_level.upper() if args.log_level else None,
        verbose=getattr(args, "verbose", None),
    )
    try:
        level = config.logging_level()
    except ValueError as exc:
        parser.error(str(exc))
    logging.basicConfig(level=level, format="%(levelname)s: %(message)s", stream=sys.stderr)

    if args.command == "audit":
        return _run_audit(args, config)
    if args.command == "fields":
        return _run_fields(args)
    if args.command == "tally":
        return _run_tally()

    parser.error("Unknown command")
    return 1


if __name__ == "__main__":  # pragma: no cover - exercised via CLI entry point
    raise SystemExit(main())
