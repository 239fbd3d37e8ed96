"""Execution timeline reconstruction and concurrency inference.

Every function here is pure and total: records with missing timestamps are
skipped (and counted) instead of raising, so a report can still render when a
few results lack timing data. Records that have a start but no end are treated
as still running: they stay out of the concurrency sweep but keep their place
in worker lanes with a zero-width duration.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
import logging
from typing import Any, Iterable, Sequence

from reporting.schemas import ExecutionRecord
from reporting.settings import TimelineSettings

LOGGER = logging.getLogger(__name__)

_ONE_MS = timedelta(milliseconds=1)

DEFAULT_WORKER = "main"

# Sort rank for events sharing a timestamp: interval ends close before new
# starts open, and zero-length records close only after every start at t.
_END = 0
_START = 1
_INSTANT_END = 2

__all__ = [
    "ResourcePhaseEstimate",
    "TimelineWindow",
    "TimelinePosition",
    "TimelineAnalysis",
    "max_concurrent_tests",
    "detect_parallel_execution",
    "group_by_worker",
    "actual_thread_count",
    "estimate_resource_phases",
    "timeline_window",
    "timeline_positions",
    "parallel_efficiency",
    "analyze_timeline",
]


@dataclass(slots=True, frozen=True)
class ResourcePhaseEstimate:
    """Coarse phase durations in milliseconds.

    These are estimates for UI decoration. ``init_ms`` and ``teardown_ms`` are
    placeholder constants and ``startup_ms`` is inferred from how much longer
    the first test ran than the rest; none of them is a measurement.
    """

    init_ms: int
    startup_ms: int
    execution_ms: int
    teardown_ms: int
    estimated: bool = True

    def to_dict(self) -> dict[str, object]:
        return {
            "init_ms": self.init_ms,
            "startup_ms": self.startup_ms,
            "execution_ms": self.execution_ms,
            "teardown_ms": self.teardown_ms,
            "estimated": self.estimated,
        }


@dataclass(slots=True, frozen=True)
class TimelineWindow:
    start: datetime
    end: datetime

    @property
    def total_ms(self) -> int:
        return _ms_between(self.start, self.end)

    def to_dict(self) -> dict[str, object]:
        return {
            "start": self.start.isoformat(),
            "end": self.end.isoformat(),
            "total_ms": self.total_ms,
        }


@dataclass(slots=True, frozen=True)
class TimelinePosition:
    """Relative placement of one record's bar inside the global window."""

    record_id: str
    worker_id: str
    offset_percent: float
    width_percent: float

    def to_dict(self) -> dict[str, object]:
        return {
            "record_id": self.record_id,
            "worker_id": self.worker_id,
            "offset_percent": self.offset_percent,
            "width_percent": self.width_percent,
        }


@dataclass(slots=True, frozen=True)
class TimelineAnalysis:
    """Bundle of concurrency metrics and grouped views for a report renderer."""

    total_records: int
    skipped_records: int
    max_concurrent_tests: int
    parallel: bool
    thread_count: int
    parallel_efficiency: float
    phases: ResourcePhaseEstimate
    window: TimelineWindow | None = None
    lanes: dict[str, tuple[str, ...]] = field(default_factory=dict)
    positions: tuple[TimelinePosition, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_records": self.total_records,
            "skipped_records": self.skipped_records,
            "max_concurrent_tests": self.max_concurrent_tests,
            "parallel": self.parallel,
            "thread_count": self.thread_count,
            "parallel_efficiency": self.parallel_efficiency,
            "phases": self.phases.to_dict(),
            "window": self.window.to_dict() if self.window else None,
            "lanes": {worker: list(ids) for worker, ids in self.lanes.items()},
            "positions": [position.to_dict() for position in self.positions],
        }


def _ms_between(start: datetime, end: datetime) -> int:
    return (end - start) // _ONE_MS


def _worker_of(record: ExecutionRecord, default_worker: str) -> str:
    worker = (record.worker_id or "").strip()
    return worker or default_worker


def _by_start(records: Iterable[ExecutionRecord]) -> list[ExecutionRecord]:
    started = [record for record in records if record.start_time is not None]
    return sorted(started, key=lambda record: record.start_time)  # type: ignore[arg-type, return-value]


def max_concurrent_tests(records: Iterable[ExecutionRecord]) -> int:
    """Return the peak number of tests running at the same instant.

    A test that ends exactly when another starts does not overlap it. An end
    time earlier than the start is clamped to the start (a zero-length test).
    """

    events: list[tuple[datetime, int, int]] = []
    for record in records:
        if record.start_time is None or record.end_time is None:
            continue
        end = max(record.end_time, record.start_time)
        end_rank = _INSTANT_END if end == record.start_time else _END
        events.append((record.start_time, _START, 1))
        events.append((end, end_rank, -1))
    events.sort(key=lambda event: (event[0], event[1]))

    running = 0
    peak = 0
    for _, _, delta in events:
        running += delta
        peak = max(peak, running)
    return peak


def detect_parallel_execution(records: Iterable[ExecutionRecord]) -> bool:
    """Return True when any two tests overlapped in time.

    Checking neighbours in start order is enough: if a test overlaps any later
    test it also overlaps the one that starts right after it. Still-running
    records (no end time) are left out, as in ``max_concurrent_tests``.
    """

    ordered = _by_start(record for record in records if record.has_window())
    if len(ordered) < 2:
        return False
    for current, following in zip(ordered, ordered[1:]):
        if current.end_time > following.start_time:  # type: ignore[operator]
            return True
    return False


def group_by_worker(
    records: Iterable[ExecutionRecord],
    *,
    default_worker: str = DEFAULT_WORKER,
) -> dict[str, list[ExecutionRecord]]:
    """Group records into per-worker lanes ordered by start time.

    Lanes are keyed in lexicographic order. Records without a start time are
    kept at the end of their lane.
    """

    lanes: dict[str, list[ExecutionRecord]] = {}
    for record in records:
        lanes.setdefault(_worker_of(record, default_worker), []).append(record)

    grouped: dict[str, list[ExecutionRecord]] = {}
    for worker in sorted(lanes):
        grouped[worker] = sorted(
            lanes[worker],
            key=lambda record: (record.start_time is None, record.start_time or datetime.min),
        )
    return grouped


def actual_thread_count(
    records: Iterable[ExecutionRecord],
    *,
    default_worker: str = DEFAULT_WORKER,
) -> int:
    return len({_worker_of(record, default_worker) for record in records})


def estimate_resource_phases(
    records: Iterable[ExecutionRecord],
    *,
    init_ms: int = 2000,
    teardown_ms: int = 1000,
    startup_cap_ms: int = 5000,
) -> ResourcePhaseEstimate:
    """Estimate init/startup/execution/teardown phases for the phase cards.

    Startup is the extra time the first test took over the average of the
    others, clamped to ``[0, startup_cap_ms]``.
    """

    materialized = list(records)
    ordered = _by_start(materialized)
    startup_ms = 0
    if len(ordered) > 1:
        first, remaining = ordered[0], ordered[1:]
        baseline = sum(record.effective_duration_ms() for record in remaining) / len(remaining)
        excess = first.effective_duration_ms() - baseline
        startup_ms = int(min(max(excess, 0), startup_cap_ms))

    window = timeline_window(materialized)
    return ResourcePhaseEstimate(
        init_ms=init_ms,
        startup_ms=startup_ms,
        execution_ms=window.total_ms if window else 0,
        teardown_ms=teardown_ms,
    )


def timeline_window(records: Iterable[ExecutionRecord]) -> TimelineWindow | None:
    """Return the global ``[min start, max end]`` window, or None without starts."""

    ordered = _by_start(records)
    if not ordered:
        return None
    start = ordered[0].start_time
    end = max(record.end_time or record.start_time for record in ordered)  # type: ignore[type-var]
    return TimelineWindow(start=start, end=end)  # type: ignore[arg-type]


def timeline_positions(
    records: Sequence[ExecutionRecord],
    *,
    min_width_percent: float = 1.0,
    default_worker: str = DEFAULT_WORKER,
) -> list[TimelinePosition]:
    """Place each started record as a bar relative to the global window.

    Widths are floored to ``min_width_percent`` so instant tests stay visible;
    when the window has zero length every bar sits at 0/0.
    """

    window = timeline_window(records)
    if window is None:
        return []
    total_ms = window.total_ms
    positions: list[TimelinePosition] = []
    for record in _by_start(records):
        if total_ms <= 0:
            offset = 0.0
            width = 0.0
        else:
            duration = record.effective_duration_ms() if record.end_time is not None else 0
            offset = _ms_between(window.start, record.start_time) / total_ms * 100  # type: ignore[arg-type]
            width = max(duration / total_ms * 100, min_width_percent)
        positions.append(
            TimelinePosition(
                record_id=record.id,
                worker_id=_worker_of(record, default_worker),
                offset_percent=round(offset, 4),
                width_percent=round(width, 4),
            )
        )
    return positions


def parallel_efficiency(
    records: Sequence[ExecutionRecord],
    *,
    max_concurrent: int | None = None,
) -> float:
    """Share of the available lane-time actually spent running tests.

    ``sum(durations) / (wall_clock_ms * max_concurrent) * 100``.
    """

    timed = [record for record in records if record.has_window()]
    window = timeline_window(timed)
    peak = max_concurrent_tests(timed) if max_concurrent is None else max_concurrent
    if window is None or window.total_ms <= 0 or peak <= 0:
        return 0.0
    busy_ms = sum(record.effective_duration_ms() for record in timed)
    return round(busy_ms / (window.total_ms * peak) * 100, 2)


def analyze_timeline(
    records: Iterable[ExecutionRecord],
    *,
    settings: TimelineSettings | None = None,
) -> TimelineAnalysis:
    """Run every timeline computation over one snapshot of records."""

    cfg = settings or TimelineSettings()
    snapshot = tuple(records)
    skipped = sum(1 for record in snapshot if not record.has_window())
    if skipped:
        LOGGER.debug(
            "Skipped %d of %d records without a complete start/end window",
            skipped,
            len(snapshot),
        )

    peak = max_concurrent_tests(snapshot)
    lanes = group_by_worker(snapshot, default_worker=cfg.default_worker)
    return TimelineAnalysis(
        total_records=len(snapshot),
        skipped_records=skipped,
        max_concurrent_tests=peak,
        parallel=detect_parallel_execution(snapshot),
        thread_count=len(lanes),
        parallel_efficiency=parallel_efficiency(snapshot, max_concurrent=peak),
        phases=estimate_resource_phases(
            snapshot,
            init_ms=cfg.init_estimate_ms,
            teardown_ms=cfg.teardown_estimate_ms,
            startup_cap_ms=cfg.startup_cap_ms,
        ),
        window=timeline_window(snapshot),
        lanes={worker: tuple(record.id for record in lane) for worker, lane in lanes.items()},
        positions=tuple(
            timeline_positions(
                snapshot,
                min_width_percent=cfg.min_bar_width_percent,
                default_worker=cfg.default_worker,
            )
        ),
    )
