"""Streaming sorted merge-join of N count sources.

Each source is assumed to be sorted by its serialized key.  The engine walks
all sources in lockstep, emitting one :class:`JoinedRow` per distinct key with
the matching record from every source that has one, so it never needs more than
one record per source in memory.

Flow control is explicit.  A source hands records to the engine through a
single-slot :class:`Channel`; the engine's "next record" for a source *is* that
slot, which makes the one-record-per-source bound structural.  Downstream, the
engine pushes rows into a :class:`RowSink` whose ``push`` reports whether it
can accept another row.  The engine comes to rest in one of two states:

    WAITING     some source has no record buffered and has not ended.  Any
                channel becoming ready (new record or close) kicks the engine.

    PAUSED      the sink reported no remaining capacity.  Only ``resume()``
                kicks the engine.

Every transition into RUNNING happens through ``_kick()``, which loops until
one of those two conditions holds, the run completes (DONE) or a source is
found out of order (FAILED).
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Iterable, Iterator, List, Optional, Protocol, Sequence

from .models import AuditError, AuditStats, CountRecord, JoinedRow

LOGGER = logging.getLogger(__name__)


class _Marker:
    def __init__(self, name: str) -> None:
        self._name = name

    def __repr__(self) -> str:
        return self._name


PENDING = _Marker("PENDING")
END = _Marker("END")


class OrderViolationError(AuditError):
    """Raised when a source yields a key below one it already emitted."""

    kind = "order"

    def __init__(self, source: str, key: str, previous: str) -> None:
        super().__init__(f"source {source}: out of order ({key} after {previous})")
        self.source = source
        self.key = key
        self.previous = previous


class EngineState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    WAITING = "waiting"
    PAUSED = "paused"
    DONE = "done"
    FAILED = "failed"


class RowSink(Protocol):
    def push(self, row: JoinedRow) -> bool:
        """Accept one row; return whether another row may be pushed."""

    def finish(self) -> None:
        """Called exactly once after the last row."""

    def abort(self, error: BaseException) -> None:
        """Called instead of ``finish`` when the run fails."""


class Channel:
    """Single-slot hand-off between one producer and the merge engine."""

    def __init__(self, label: str) -> None:
        self.label = label
        self._item: CountRecord | None = None
        self._closed = False
        self._ready: List[Callable[[], None]] = []
        self._drain: List[Callable[[], None]] = []

    @property
    def has_room(self) -> bool:
        return self._item is None and not self._closed

    def on_ready(self, callback: Callable[[], None]) -> None:
        self._ready.append(callback)

    def on_drain(self, callback: Callable[[], None]) -> None:
        self._drain.append(callback)

    def offer(self, record: CountRecord) -> bool:
        if not self.has_room:
            return False
        self._item = record
        self._notify(self._ready)
        return True

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._notify(self._ready)

    def peek(self):
        if self._item is not None:
            return self._item
        return END if self._closed else PENDING

    def take(self) -> CountRecord:
        item = self._item
        assert item is not None, f"take() on empty channel {self.label}"
        self._item = None
        self._notify(self._drain)
        return item

    @staticmethod
    def _notify(callbacks: Sequence[Callable[[], None]]) -> None:
        for callback in list(callbacks):
            callback()


@dataclass(slots=True)
class _Cursor:
    channel: Channel
    last_key: Optional[str] = None
    checked: bool = False
    ended: bool = False


class SortedMergeEngine:
    """N-way full outer join over sorted channels with explicit flow control."""

    def __init__(
        self,
        channels: Sequence[Channel],
        sink: RowSink,
        stats: AuditStats | None = None,
    ) -> None:
        if not channels:
            raise ValueError("at least one source channel is required")
        self._sink = sink
        self._stats = stats if stats is not None else AuditStats()
        self._cursors = [_Cursor(channel=channel) for channel in channels]
        self.state = EngineState.IDLE
        self.error: BaseException | None = None
        self.rows_emitted = 0
        for cursor in self._cursors:
            cursor.channel.on_ready(self._source_ready)

    def start(self) -> None:
        if self.state is EngineState.IDLE:
            self._kick()

    def resume(self) -> None:
        """Signal that the sink has capacity for more rows."""

        if self.state is EngineState.PAUSED:
            self._kick()

    def abort(self, error: BaseException) -> None:
        if self.state in (EngineState.DONE, EngineState.FAILED):
            return
        self._fail(error)

    def starving(self) -> list[int]:
        """Indexes of sources the engine is blocked on."""

        return [
            index
            for index, cursor in enumerate(self._cursors)
            if not cursor.ended and cursor.channel.peek() is PENDING
        ]

    def buffered(self) -> int:
        return sum(1 for cursor in self._cursors if isinstance(cursor.channel.peek(), CountRecord))

    def _source_ready(self) -> None:
        # A push in progress may cause a producer to refill its channel; the
        # running loop picks that up itself.
        if self.state is EngineState.WAITING:
            self._kick()

    def _fail(self, error: BaseException) -> None:
        self.state = EngineState.FAILED
        self.error = error
        self._sink.abort(error)

    def _kick(self) -> None:
        self.state = EngineState.RUNNING
        while True:
            blocked = False
            for index, cursor in enumerate(self._cursors):
                if cursor.ended:
                    continue
                head = cursor.channel.peek()
                if head is END:
                    cursor.ended = True
                    continue
                if head is PENDING:
                    blocked = True
                    continue
                if cursor.checked:
                    continue
                if cursor.last_key is not None and head.key < cursor.last_key:
                    LOGGER.error("source %d (%s): out of order", index, cursor.channel.label)
                    self._fail(OrderViolationError(cursor.channel.label, head.key, cursor.last_key))
                    return
                cursor.checked = True

            if blocked:
                self.state = EngineState.WAITING
                return

            joinkey = None
            for cursor in self._cursors:
                head = cursor.channel.peek()
                if head is END:
                    continue
                if joinkey is None or head.key < joinkey:
                    joinkey = head.key

            if joinkey is None:
                assert all(cursor.ended for cursor in self._cursors), "finished with open sources"
                assert self.buffered() == 0, "finished with buffered records"
                self.state = EngineState.DONE
                LOGGER.debug("merge complete after %d rows", self.rows_emitted)
                self._sink.finish()
                return

            slots = []
            for cursor in self._cursors:
                head = cursor.channel.peek()
                if head is not END and head.key == joinkey:
                    cursor.last_key = joinkey
                    cursor.checked = False
                    slots.append(cursor.channel.take())
                else:
                    slots.append(None)

            row = JoinedRow(key=joinkey, slots=tuple(slots))
            self.rows_emitted += 1
            self._stats.rows_joined += 1
            if not self._sink.push(row):
                if self.state is EngineState.RUNNING:
                    self.state = EngineState.PAUSED
                return
            if self.state is not EngineState.RUNNING:
                return


class _HandoffSink:
    """Sink with room for exactly one row, used by :func:`merge_sorted`."""

    def __init__(self) -> None:
        self.row: JoinedRow | None = None
        self.finished = False

    def push(self, row: JoinedRow) -> bool:
        assert self.row is None, "row pushed without capacity"
        self.row = row
        return False

    def finish(self) -> None:
        self.finished = True

    def abort(self, error: BaseException) -> None:
        self.row = None


def merge_sorted(
    sources: Sequence[Iterable[CountRecord]],
    stats: AuditStats | None = None,
    labels: Sequence[str] | None = None,
) -> Iterator[JoinedRow]:
    """Pull-based driver: lazily join sorted record iterables.

    Records are only pulled from a source when the engine is blocked on it, and
    each row is yielded before the engine is allowed to produce the next.
    Raises :class:`OrderViolationError` if a source is out of order; errors from
    the source iterables propagate unchanged.
    """

    if labels is None:
        labels = [str(index) for index in range(len(sources))]
    channels = [Channel(label) for label in labels]
    iterators = [iter(source) for source in sources]
    sink = _HandoffSink()
    engine = SortedMergeEngine(channels, sink, stats=stats)
    engine.start()

    while True:
        if engine.state is EngineState.FAILED:
            raise engine.error
        if sink.row is not None:
            row, sink.row = sink.row, None
            yield row
            engine.resume()
            continue
        if engine.state is EngineState.DONE:
            return

        starving = engine.starving()
        assert engine.state is EngineState.WAITING and starving, engine.state
        index = starving[0]
        try:
            record = next(iterators[index])
        except StopIteration:
            channels[index].close()
        except BaseException as exc:
            engine.abort(exc)
            raise
        else:
            channels[index].offer(record)
