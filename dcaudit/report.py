"""Rendering utilities for machine-readable and human-readable outputs."""
from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, TextIO

from .models import AuditResult, AuditStats, Diagnostic


class DiagnosticWriter:
    """Writes one JSON object per line to an open text stream."""

    def __init__(self, handle: TextIO) -> None:
        self._handle = handle
        self.nwritten = 0

    def write(self, diagnostic: Diagnostic) -> None:
        self._handle.write(diagnostic.to_line())
        self.nwritten += 1

    def write_all(self, diagnostics: Iterable[Diagnostic]) -> int:
        for diagnostic in diagnostics:
            self.write(diagnostic)
        return self.nwritten

    def flush(self) -> None:
        self._handle.flush()


def generate_markdown_summary(
    result: AuditResult,
    stats: AuditStats,
    *,
    raw_label: str,
    reported_label: str,
) -> str:
    lines = ["# Directory Count Audit Report", ""]
    lines.append(f"Generated: {datetime.now(timezone.utc).isoformat()}")
    lines.append("")
    lines.append("## Overview")
    lines.append("")
    lines.append(f"- Outcome: **{result.outcome.value}**")
    lines.append(f"- Raw count records ({raw_label}): **{stats.records.get(raw_label, 0)}**")
    lines.append(
        f"- Reported count records ({reported_label}): **{stats.records.get(reported_label, 0)}**"
    )
    lines.append(f"- Entries processed: **{stats.entries_processed}**")
    lines.append(f"- Diagnostics emitted: **{sum(stats.diagnostics.values())}**")
    lines.append(f"- Warnings: **{stats.nwarnings}**")
    if stats.unexpected:
        lines.append(f"- Raw counts of zero with a reported count: **{stats.unexpected}**")
    lines.append("")

    if result.error is not None:
        lines.append("## Fatal error")
        lines.append("")
        lines.append(f"- Kind: `{result.error_kind}`")
        lines.append(f"- Detail: {result.error}")
        lines.append("")

    if stats.diagnostics:
        lines.append("## Diagnostics by status")
        lines.append("")
        for status, count in sorted(stats.diagnostics.items()):
            lines.append(f"- {status}: {count}")
        lines.append("")

    if stats.warnings:
        lines.append("## Warnings by reason")
        lines.append("")
        for reason, count in sorted(stats.warnings.items()):
            lines.append(f"- {reason}: {count}")
        lines.append("")

    if not stats.diagnostics and result.error is None:
        lines.append("No discrepancies detected. All counts agree.")

    return "\n".join(lines)


def write_markdown(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as handle:
        handle.write(content)
