import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

import pytest


@pytest.fixture
def write_counts(tmp_path: Path):
    """Write ``(count, key)`` pairs as a count file and return its path.

    Extra ``raw_lines`` are appended verbatim, for malformed input.
    """

    def _write(name: str, rows, *, raw_lines=()):
        lines = [f"{count:7d} {key}" for count, key in rows]
        lines.extend(raw_lines)
        path = tmp_path / name
        path.write_text("".join(line + "\n" for line in lines), encoding="utf-8")
        return path

    return _write
