"""Utilities for reading count files and parsing their lines into records."""
from __future__ import annotations

import gzip
import json
import logging
import re
from pathlib import Path
from typing import Iterable, Iterator

from .models import AuditError, AuditStats, CountRecord

LOGGER = logging.getLogger(__name__)

GARBLED = "line garbled"
NOT_AN_INTEGER = "not an integer"
INVALID_JSON = "invalid JSON"
NOT_A_STRING = "not a string"

_DIGITS = re.compile(r"[0-9]+")


class LineParseError(AuditError):
    """Raised when a line cannot be parsed into a record."""

    kind = "parse"

    def __init__(self, reason: str, detail: str | None = None) -> None:
        super().__init__(f"{reason}: {detail}" if detail else reason)
        self.reason = reason


def parse_count(raw: str) -> int:
    # Canonical form only: re-rendering must reproduce the field exactly.
    if not _DIGITS.fullmatch(raw):
        raise LineParseError(NOT_AN_INTEGER, raw)
    value = int(raw)
    if str(value) != raw:
        raise LineParseError(NOT_AN_INTEGER, raw)
    return value


def parse_key(raw: str) -> str:
    """Validate a JSON string literal and return it undecoded."""

    try:
        value = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise LineParseError(INVALID_JSON, str(exc)) from exc
    if not isinstance(value, str):
        raise LineParseError(NOT_A_STRING, raw)
    return raw


def parse_line(line: str) -> CountRecord:
    # The key literal may itself contain whitespace, so only split once.
    parts = line.strip().split(None, 1)
    if len(parts) != 2:
        raise LineParseError(GARBLED)
    count_field, key_field = parts
    return CountRecord(count=parse_count(count_field), key=parse_key(key_field))


class RecordParser:
    """Per-source stage turning text lines into records.

    Bad lines are logged, counted in ``stats`` by reason and dropped.
    """

    def __init__(self, label: str, stats: AuditStats | None = None) -> None:
        self.label = label
        self.stats = stats if stats is not None else AuditStats()
        self.lineno = 0

    def parse(self, line: str) -> CountRecord | None:
        self.lineno += 1
        try:
            record = parse_line(line)
        except LineParseError as exc:
            self.stats.count_warning(exc.reason)
            LOGGER.warning("warn: %s (%s line %d)", exc, self.label, self.lineno)
            return None
        self.stats.count_record(self.label)
        return record

    def records(self, lines: Iterable[str]) -> Iterator[CountRecord]:
        for line in lines:
            record = self.parse(line)
            if record is not None:
                yield record


def open_lines(path: Path, *, encoding: str = "utf-8") -> Iterator[str]:
    """Yield lines from a plain or gzip-compressed text file, lazily."""

    if not path.exists():
        raise FileNotFoundError(path)

    if path.suffix == ".gz":
        handle = gzip.open(path, "rt", encoding=encoding, newline="")
    else:
        handle = path.open(encoding=encoding, newline="")
    with handle:
        for line in handle:
            yield line.rstrip("\r\n")
