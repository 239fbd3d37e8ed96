"""Run-level aggregation: status counts, suites, trends and test reliability."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Iterable, Mapping, Sequence

from reporting.schemas import ExecutionRecord, TestStatus

DEFAULT_SUITE = "Default Suite"

__all__ = [
    "ExecutionSummary",
    "TrendData",
    "HistoricalResult",
    "build_summary",
    "percentage_change",
    "compute_trend",
    "reliability_score",
]


@dataclass(slots=True, frozen=True)
class ExecutionSummary:
    """Headline numbers for one run."""

    total: int
    passed: int
    failed: int
    broken: int
    skipped: int
    retried: int
    pass_rate: float
    duration_ms: int
    suites: dict[str, int] = field(default_factory=dict)
    started_at: datetime | None = None
    finished_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "passed": self.passed,
            "failed": self.failed,
            "broken": self.broken,
            "skipped": self.skipped,
            "retried": self.retried,
            "pass_rate": self.pass_rate,
            "duration_ms": self.duration_ms,
            "suites": dict(self.suites),
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "ExecutionSummary":
        def _when(value: Any) -> datetime | None:
            if isinstance(value, str) and value:
                return datetime.fromisoformat(value)
            return None

        return cls(
            total=int(payload.get("total") or 0),
            passed=int(payload.get("passed") or 0),
            failed=int(payload.get("failed") or 0),
            broken=int(payload.get("broken") or 0),
            skipped=int(payload.get("skipped") or 0),
            retried=int(payload.get("retried") or 0),
            pass_rate=float(payload.get("pass_rate") or 0.0),
            duration_ms=int(payload.get("duration_ms") or 0),
            suites={str(key): int(value) for key, value in (payload.get("suites") or {}).items()},
            started_at=_when(payload.get("started_at")),
            finished_at=_when(payload.get("finished_at")),
        )


@dataclass(slots=True, frozen=True)
class TrendData:
    """Change against the previous run; percentages except ``pass_rate_change`` (points)."""

    test_count_change: float = 0.0
    pass_rate_change: float = 0.0
    duration_change: float = 0.0
    has_baseline: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "test_count_change": self.test_count_change,
            "pass_rate_change": self.pass_rate_change,
            "duration_change": self.duration_change,
            "has_baseline": self.has_baseline,
        }


@dataclass(slots=True, frozen=True)
class HistoricalResult:
    test_name: str
    status: str
    executed_at: datetime


def build_summary(records: Iterable[ExecutionRecord]) -> ExecutionSummary:
    snapshot = list(records)
    statuses = Counter(record.status for record in snapshot)
    total = len(snapshot)
    passed = statuses[TestStatus.PASSED]
    retried = sum(
        1 for record in snapshot if record.status == TestStatus.RETRIED or record.retry_count > 0
    )
    suites = Counter(record.suite or DEFAULT_SUITE for record in snapshot)

    starts = [record.start_time for record in snapshot if record.start_time is not None]
    ends = [record.end_time for record in snapshot if record.end_time is not None]
    started_at = min(starts) if starts else None
    finished_at = max(ends) if ends else None
    duration_ms = 0
    if started_at is not None and finished_at is not None and finished_at > started_at:
        duration_ms = (finished_at - started_at) // timedelta(milliseconds=1)

    return ExecutionSummary(
        total=total,
        passed=passed,
        failed=statuses[TestStatus.FAILED],
        broken=statuses[TestStatus.BROKEN],
        skipped=statuses[TestStatus.SKIPPED],
        retried=retried,
        pass_rate=round(passed * 100.0 / total, 2) if total else 0.0,
        duration_ms=duration_ms,
        suites={name: suites[name] for name in sorted(suites)},
        started_at=started_at,
        finished_at=finished_at,
    )


def percentage_change(old: float, new: float) -> float:
    if old == 0:
        return 0.0
    return (new - old) / old * 100


def compute_trend(current: ExecutionSummary, previous: ExecutionSummary | None) -> TrendData:
    """Compare ``current`` against the previous run's summary, if any."""

    if previous is None:
        return TrendData()
    return TrendData(
        test_count_change=round(percentage_change(previous.total, current.total), 2),
        pass_rate_change=round(current.pass_rate - previous.pass_rate, 2),
        duration_change=round(percentage_change(previous.duration_ms, current.duration_ms), 2),
        has_baseline=True,
    )


def reliability_score(
    name: str,
    history: Sequence[HistoricalResult],
    *,
    window: int = 10,
) -> float:
    """Score 0-100 for how stable a test's outcome is across recent runs.

    Every status flip between consecutive runs costs 10 points; fewer than
    three runs is not enough data and scores 100.
    """

    recent = sorted(
        (entry for entry in history if entry.test_name == name),
        key=lambda entry: entry.executed_at,
        reverse=True,
    )[:window]
    if len(recent) < 3:
        return 100.0
    flips = sum(1 for newer, older in zip(recent, recent[1:]) if newer.status != older.status)
    return max(0.0, min(100.0, 100.0 - flips * 10.0))
