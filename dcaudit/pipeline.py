"""High-level orchestration for a directory-count audit."""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, TextIO

from .checks import evaluate_rows
from .config import AuditConfig
from .merge import merge_sorted
from .models import AuditError, AuditResult, AuditStats
from .parsing import RecordParser, open_lines
from .report import DiagnosticWriter, generate_markdown_summary, write_markdown

LOGGER = logging.getLogger(__name__)

RAW_LABEL = "raw"
REPORTED_LABEL = "reported"


def audit_streams(
    raw_lines: Iterable[str],
    reported_lines: Iterable[str],
    out: TextIO,
    *,
    verbose: bool = False,
    stats: AuditStats | None = None,
) -> AuditResult:
    """Audit two sorted count streams, writing diagnostics to ``out``.

    Fatal errors are reported through the returned result rather than raised,
    so that callers can always tell "clean", "completed with warnings" and
    "fatal" apart.
    """

    stats = stats if stats is not None else AuditStats()
    writer = DiagnosticWriter(out)
    sources = [
        RecordParser(RAW_LABEL, stats).records(raw_lines),
        RecordParser(REPORTED_LABEL, stats).records(reported_lines),
    ]
    rows = merge_sorted(sources, stats=stats, labels=[RAW_LABEL, REPORTED_LABEL])

    try:
        writer.write_all(evaluate_rows(rows, verbose=verbose, stats=stats))
    except AuditError as exc:
        LOGGER.error("audit failed: %s", exc)
        result = AuditResult.fatal(stats, writer.nwritten, exc.kind, exc)
    except (OSError, UnicodeError) as exc:
        LOGGER.error("reading or writing failed: %s", exc)
        result = AuditResult.fatal(stats, writer.nwritten, "io", exc)
    else:
        result = AuditResult.completed(stats, writer.nwritten)
    writer.flush()

    LOGGER.info("entries processed: %d", stats.entries_processed)
    LOGGER.info("rows joined: %d", stats.rows_joined)
    LOGGER.info("warnings: %d", stats.nwarnings)
    for status, count in sorted(stats.diagnostics.items()):
        LOGGER.info("%s: %d", status, count)
    return result


def run_audit(
    *,
    raw_path: Path,
    reported_path: Path,
    out: TextIO,
    config: AuditConfig,
    summary_path: Path | None = None,
) -> AuditResult:
    stats = AuditStats()
    LOGGER.debug("auditing %s against %s", raw_path, reported_path)
    result = audit_streams(
        open_lines(raw_path, encoding=config.encoding),
        open_lines(reported_path, encoding=config.encoding),
        out,
        verbose=config.verbose,
        stats=stats,
    )

    if summary_path is not None:
        markdown = generate_markdown_summary(
            result,
            stats,
            raw_label=RAW_LABEL,
            reported_label=REPORTED_LABEL,
        )
        write_markdown(summary_path, markdown)
    return result
