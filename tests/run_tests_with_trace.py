"""Run the test suite under ``trace`` and enforce per-module line coverage.

    python tests/run_tests_with_trace.py [dcaudit/merge.py ...]

With no arguments the streaming core (parser, merge engine, classifier and
tally) is checked.  ``DCAUDIT_COVERAGE_MIN`` overrides the minimum ratio.
"""
from __future__ import annotations

import os
import sys
import trace
from collections import defaultdict
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
CORE_MODULES = ("parsing", "merge", "checks", "tally")


def measured_lines(path: Path) -> set[int]:
    """Line numbers worth measuring: not blank, not a comment, not a docstring."""

    lines: set[int] = set()
    in_docstring = False
    for lineno, line in enumerate(path.read_text(encoding="utf-8").splitlines(), start=1):
        stripped = line.strip()
        quotes = stripped.count('"""')
        if in_docstring or stripped.startswith('"""'):
            in_docstring = in_docstring != (quotes % 2 == 1)
            continue
        if stripped and not stripped.startswith("#"):
            lines.add(lineno)
    return lines


def hits_by_file(counts: dict) -> dict[Path, set[int]]:
    hits: dict[Path, set[int]] = defaultdict(set)
    for (filename, lineno), count in counts.items():
        if count:
            hits[Path(filename).resolve()].add(lineno)
    return hits


def main(argv: list[str] | None = None) -> int:
    argv = sys.argv[1:] if argv is None else argv
    modules = [ROOT / arg for arg in argv] or [ROOT / "dcaudit" / f"{name}.py" for name in CORE_MODULES]
    minimum = float(os.getenv("DCAUDIT_COVERAGE_MIN", "0.8"))

    sys.path.insert(0, str(ROOT))
    tracer = trace.Trace(count=True, trace=False, ignoremods=("pytest", "pluggy", "_pytest"))
    try:
        tracer.run(f"import pytest; raise SystemExit(pytest.main([{str(ROOT / 'tests')!r}, '-q']))")
    except SystemExit as exc:
        status = exc.code or 0
    else:
        status = 0

    hits = hits_by_file(tracer.results().counts)
    short = []
    for module in modules:
        path = module.resolve()
        wanted = measured_lines(path)
        covered = len(hits[path] & wanted)
        ratio = covered / len(wanted) if wanted else 1.0
        print(f"{path.relative_to(ROOT)}: {ratio:.1%} ({covered}/{len(wanted)})")
        if ratio < minimum:
            short.append(path.name)

    if short:
        print(f"below {minimum:.0%}: {', '.join(short)}")
        return 1
    return status


if __name__ == "__main__":
    raise SystemExit(main())
