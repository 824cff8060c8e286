"""Data models used by the directory-count audit."""
from __future__ import annotations

import json
import re
from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Optional, Tuple

# Lone surrogates survive json decoding but cannot be encoded as UTF-8.
_SURROGATE = re.compile("[\ud800-\udfff]")


def json_text(value: object) -> str:
    """Encode ``value`` as JSON, keeping non-ASCII text except lone surrogates."""

    text = json.dumps(value, ensure_ascii=False)
    return _SURROGATE.sub(lambda match: f"\\u{ord(match.group()):04x}", text)


class AuditStatus(str, Enum):
    COUNT_OKAY = "count okay"
    COUNT_MISMATCH = "error: count mismatch"
    MISSING_OPTIMIZED = "warn: missing optimized count"
    MISMATCH_NO_OPTIMIZED = "error: count mismatch (no optimized count)"
    LEAKED_OPTIMIZED = "warn: leaked optimized count"
    MISMATCH_NO_ENTRIES = "error: count mismatch (no entries)"


class Outcome(str, Enum):
    CLEAN = "clean"
    WARNINGS = "warnings"
    FATAL = "fatal"


@dataclass(frozen=True, slots=True)
class CountRecord:
    """One ``<count> <key>`` input line.

    ``key`` is the JSON string literal exactly as it appeared in the input.
    Inputs are only known to be sorted by that serialized form, so it is the
    token used for ordering and joining; the decoded value is only needed for
    the final diagnostic.
    """

    count: int
    key: str

    def decoded_key(self) -> str:
        return json.loads(self.key)


@dataclass(frozen=True, slots=True)
class JoinedRow:
    key: str
    slots: Tuple[Optional[CountRecord], ...]

    def decoded_key(self) -> str:
        return json.loads(self.key)


@dataclass(frozen=True, slots=True)
class Diagnostic:
    dirname: str
    ndirents: int
    nreported: int
    status: AuditStatus

    def as_json(self) -> dict[str, object]:
        return {
            "dirname": self.dirname,
            "ndirents": self.ndirents,
            "nreported": self.nreported,
            "status": self.status.value,
        }

    def to_line(self) -> str:
        return json_text(self.as_json()) + "\n"


@dataclass(slots=True)
class AuditStats:
    """Counters threaded explicitly through each stage of a run."""

    warnings: Counter = field(default_factory=Counter)
    records: Dict[str, int] = field(default_factory=dict)
    rows_joined: int = 0
    entries_processed: int = 0
    diagnostics: Counter = field(default_factory=Counter)
    unexpected: int = 0

    @property
    def nwarnings(self) -> int:
        return sum(self.warnings.values())

    def count_warning(self, reason: str) -> None:
        self.warnings[reason] += 1

    def count_record(self, label: str) -> None:
        self.records[label] = self.records.get(label, 0) + 1


@dataclass(slots=True)
class AuditResult:
    """Terminal outcome of one audit run."""

    outcome: Outcome
    rows_emitted: int
    nwarnings: int
    error_kind: str | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.outcome is not Outcome.FATAL

    @classmethod
    def completed(cls, stats: AuditStats, rows_emitted: int) -> "AuditResult":
        outcome = Outcome.WARNINGS if stats.nwarnings else Outcome.CLEAN
        return cls(outcome=outcome, rows_emitted=rows_emitted, nwarnings=stats.nwarnings)

    @classmethod
    def fatal(cls, stats: AuditStats, rows_emitted: int, kind: str, error: BaseException) -> "AuditResult":
        return cls(
            outcome=Outcome.FATAL,
            rows_emitted=rows_emitted,
            nwarnings=stats.nwarnings,
            error_kind=kind,
            error=str(error),
        )


class AuditError(RuntimeError):
    """Base class for errors raised while auditing counts."""

    kind = "audit"
