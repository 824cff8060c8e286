"""Extract fields from a JSON-ified PostgreSQL table dump.

The dump is one JSON object per line.  The first object is a header of the form
``{"keys": [column, ...]}``; every following object carries one row as
``{"entry": [value, ...]}``.  For each row we print the JSON encoding of the
requested columns separated by a single space, which is the input format of the
count audit once piped through ``sort | uniq -c`` (or ``sort -k2`` for columns
that already hold a count).

Field specs are ``name`` or ``name@type`` where type is ``string`` (default) or
``number``.
"""
from __future__ import annotations

import json
import logging
import math
from dataclasses import dataclass
from typing import Iterable, Iterator, List, Sequence

from .models import AuditError, AuditStats, json_text

LOGGER = logging.getLogger(__name__)

FIELD_TYPES = ("number", "string")


class StructuralError(AuditError):
    """Raised when the dump header cannot be used to select fields."""

    kind = "structure"


@dataclass(frozen=True, slots=True)
class FieldSpec:
    name: str
    type: str = "string"

    @classmethod
    def parse(cls, raw: str) -> "FieldSpec":
        name, sep, type_ = raw.rpartition("@")
        if not sep:
            return cls(name=raw)
        return cls(name=name, type=type_)


class _BadValue(ValueError):
    pass


def _encode(value: object, spec: FieldSpec) -> str:
    if spec.type == "number":
        value = _to_number(value, spec)
    return json_text(value)


def _to_number(value: object, spec: FieldSpec) -> int | float:
    # null, booleans and blank strings coerce like a JavaScript Number().
    if value is None:
        return 0
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, (int, float)):
        number = value
    else:
        text = str(value).strip()
        if not text:
            return 0
        try:
            number = int(text)
        except ValueError:
            try:
                number = float(text)
            except ValueError as exc:
                raise _BadValue(f'bad number in field "{spec.name}"') from exc
    if isinstance(number, float):
        if not math.isfinite(number):
            raise _BadValue(f'bad number in field "{spec.name}"')
        if number.is_integer():
            number = int(number)
    return number


class FieldExtractor:
    """Stateful per-dump extractor: the first object configures the columns."""

    def __init__(self, fields: Sequence[str], stats: AuditStats | None = None) -> None:
        if not fields:
            raise ValueError("at least one field is required")
        self.specs = [FieldSpec.parse(field) for field in fields]
        self.stats = stats if stats is not None else AuditStats()
        self.indexes: List[int] | None = None
        self.lineno = 0

    def _warn(self, reason: str) -> None:
        self.stats.count_warning(reason)
        LOGGER.warning("warn: %s (line %d)", reason, self.lineno)

    def _configure(self, header: dict) -> None:
        keys = header.get("keys")
        if not isinstance(keys, list):
            raise StructuralError('header row has no "keys"')

        missing = [spec.name for spec in self.specs if spec.name not in keys]
        if missing:
            raise StructuralError(f"no such field(s): {', '.join(missing)}")

        invalid = [spec.type for spec in self.specs if spec.type not in FIELD_TYPES]
        if invalid:
            raise StructuralError(f"unknown type(s): {', '.join(invalid)}")

        self.indexes = [keys.index(spec.name) for spec in self.specs]
        LOGGER.debug("extracting columns %s", dict(zip((s.name for s in self.specs), self.indexes)))

    def extract(self, line: str) -> str | None:
        self.lineno += 1
        try:
            obj = json.loads(line)
        except json.JSONDecodeError:
            self._warn("invalid JSON")
            return None

        if not isinstance(obj, dict):
            self._warn("not an object")
            return None

        if self.indexes is None:
            self._configure(obj)
            return None

        entry = obj.get("entry")
        if not isinstance(entry, list):
            self._warn('missing "entry"')
            return None

        if any(index >= len(entry) for index in self.indexes):
            self._warn("missing value")
            return None

        try:
            values = [_encode(entry[index], spec) for index, spec in zip(self.indexes, self.specs)]
        except _BadValue as exc:
            self._warn(str(exc))
            return None
        return " ".join(values)

    def lines(self, lines: Iterable[str]) -> Iterator[str]:
        for line in lines:
            output = self.extract(line)
            if output is not None:
                yield output
