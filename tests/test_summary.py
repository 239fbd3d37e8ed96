from __future__ import annotations

from datetime import datetime, timedelta, timezone

from reporting.schemas import ExecutionRecord, TestStatus
from reporting.summary import (
    DEFAULT_SUITE,
    ExecutionSummary,
    HistoricalResult,
    build_summary,
    compute_trend,
    percentage_change,
    reliability_score,
)

T0 = datetime(2025, 11, 8, 9, 30, tzinfo=timezone.utc)


def _record(
    record_id: str,
    status: TestStatus,
    *,
    suite: str | None = "login",
    start_s: int = 0,
    **extra,
) -> ExecutionRecord:
    start = T0 + timedelta(seconds=start_s)
    return ExecutionRecord(
        id=record_id,
        status=status,
        suite=suite,
        start_time=start,
        end_time=start + timedelta(seconds=2),
        **extra,
    )


def _summary(total: int, pass_rate: float, duration_ms: int) -> ExecutionSummary:
    return ExecutionSummary(
        total=total,
        passed=0,
        failed=0,
        broken=0,
        skipped=0,
        retried=0,
        pass_rate=pass_rate,
        duration_ms=duration_ms,
    )


def test_build_summary_counts_statuses_and_suites() -> None:
    records = [
        _record("1", TestStatus.PASSED, start_s=0),
        _record("2", TestStatus.PASSED, start_s=1, retry_count=1),
        _record("3", TestStatus.FAILED, suite=None, start_s=3),
        _record("4", TestStatus.BROKEN, suite="checkout", start_s=5),
        _record("5", TestStatus.SKIPPED, suite="checkout", start_s=8),
        _record("6", TestStatus.RETRIED, start_s=9),
    ]

    summary = build_summary(records)

    assert summary.total == 6
    assert summary.passed == 2
    assert summary.failed == 1
    assert summary.broken == 1
    assert summary.skipped == 1
    assert summary.retried == 2
    assert summary.pass_rate == 33.33
    assert summary.suites == {"Default Suite": 1, "checkout": 2, "login": 3}
    assert list(summary.suites) == sorted(summary.suites)
    assert summary.started_at == T0
    assert summary.finished_at == T0 + timedelta(seconds=11)
    assert summary.duration_ms == 11_000


def test_build_summary_empty_input() -> None:
    summary = build_summary([])

    assert summary.total == 0
    assert summary.pass_rate == 0.0
    assert summary.duration_ms == 0
    assert summary.started_at is None
    assert summary.to_dict()["finished_at"] is None


def test_summary_dict_round_trip_keeps_fields() -> None:
    summary = build_summary([_record("1", TestStatus.PASSED, suite=None)])

    restored = ExecutionSummary.from_dict(summary.to_dict())

    assert restored == summary
    assert restored.suites == {DEFAULT_SUITE: 1}


def test_percentage_change_handles_zero_baseline() -> None:
    assert percentage_change(0, 10) == 0.0
    assert percentage_change(50, 75) == 50.0
    assert percentage_change(200, 100) == -50.0


def test_compute_trend_against_previous_run() -> None:
    current = _summary(total=12, pass_rate=91.5, duration_ms=45_000)
    previous = _summary(total=10, pass_rate=95.0, duration_ms=60_000)

    trend = compute_trend(current, previous)

    assert trend.has_baseline is True
    assert trend.test_count_change == 20.0
    assert trend.pass_rate_change == -3.5
    assert trend.duration_change == -25.0


def test_compute_trend_without_baseline_is_flat() -> None:
    trend = compute_trend(_summary(total=3, pass_rate=100.0, duration_ms=10), None)

    assert trend.to_dict() == {
        "test_count_change": 0.0,
        "pass_rate_change": 0.0,
        "duration_change": 0.0,
        "has_baseline": False,
    }


def _history(name: str, statuses: list[str]) -> list[HistoricalResult]:
    return [
        HistoricalResult(test_name=name, status=status, executed_at=T0 + timedelta(days=index))
        for index, status in enumerate(statuses)
    ]


def test_reliability_needs_three_runs() -> None:
    assert reliability_score("login", []) == 100.0
    assert reliability_score("login", _history("login", ["PASSED", "FAILED"])) == 100.0


def test_reliability_penalizes_status_flips() -> None:
    history = _history("login", ["PASSED", "FAILED", "PASSED", "PASSED"]) + _history(
        "other", ["FAILED", "PASSED", "FAILED"]
    )

    assert reliability_score("login", history) == 80.0
    assert reliability_score("other", history) == 80.0


def test_reliability_only_uses_recent_window_and_clamps() -> None:
    flapping = ["PASSED", "FAILED"] * 8
    history = _history("flaky", ["FAILED"] * 5 + flapping)

    assert reliability_score("flaky", history) == 10.0
    assert reliability_score("flaky", history, window=3) == 80.0
    assert reliability_score("flaky", _history("flaky", ["PASSED", "FAILED"] * 10), window=20) == 0.0
