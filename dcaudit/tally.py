"""Streaming ``uniq -c`` over sorted lines, producing raw counts."""
from __future__ import annotations

import logging
from typing import Iterable, Iterator, Tuple

from .merge import OrderViolationError

LOGGER = logging.getLogger(__name__)


def tally_sorted(lines: Iterable[str], *, label: str = "stdin") -> Iterator[Tuple[int, str]]:
    """Yield ``(count, line)`` for each run of identical adjacent lines.

    Input must be sorted; a line below its predecessor raises
    :class:`OrderViolationError` since later runs could no longer be merged.
    """

    current: str | None = None
    count = 0
    for line in lines:
        if current is not None and line == current:
            count += 1
            continue
        if current is not None:
            if line < current:
                raise OrderViolationError(label, line, current)
            yield count, current
        current = line
        count = 1
    if current is not None:
        yield count, current


def format_count(count: int, line: str) -> str:
    return f"{count:7d} {line}\n"
