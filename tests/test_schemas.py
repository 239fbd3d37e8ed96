from __future__ import annotations

from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from reporting.schemas import ExecutionRecord, TestStatus


def test_record_accepts_camel_case_export() -> None:
    record = ExecutionRecord.model_validate(
        {
            "id": "login-1",
            "suiteName": "Login",
            "startTime": "2025-11-08T10:00:00.000Z",
            "endTime": "2025-11-08T10:00:01.250Z",
            "durationMillis": 1200,
            "threadName": "TestNG-worker-2",
            "status": "FAILED",
            "retryCount": 1,
        }
    )

    assert record.suite == "Login"
    assert record.worker_id == "TestNG-worker-2"
    assert record.status is TestStatus.FAILED
    assert record.status.is_failure
    assert record.retry_count == 1
    assert record.has_window()
    assert record.elapsed_ms() == 1250
    assert record.effective_duration_ms() == 1200


def test_record_defaults_and_duration_fallbacks() -> None:
    start = datetime(2025, 11, 8, 10, 0, tzinfo=timezone.utc)
    running = ExecutionRecord(id="r", start_time=start, status=TestStatus.RUNNING)

    assert running.has_window() is False
    assert running.worker_id is None
    assert running.elapsed_ms() == 0
    assert running.effective_duration_ms() == 0
    assert running.status.is_terminal is False
    assert ExecutionRecord(id="x").status is TestStatus.PENDING
    assert ExecutionRecord(id="d", duration_ms=30).elapsed_ms() == 30


def test_offset_less_timestamps_are_read_as_utc() -> None:
    aware = ExecutionRecord.model_validate(
        {"id": "aware", "startTime": "2025-01-01T00:00:00Z", "endTime": "2025-01-01T00:00:01Z"}
    )
    naive = ExecutionRecord.model_validate(
        {"id": "naive", "startTime": "2025-01-01T00:00:00.500", "endTime": "2025-01-01T00:00:02"}
    )

    assert naive.start_time == datetime(2025, 1, 1, 0, 0, 0, 500000, tzinfo=timezone.utc)
    assert naive.end_time is not None and naive.end_time.tzinfo is not None
    assert naive.elapsed_ms() == 1500
    assert aware.start_time is not None and aware.start_time < naive.start_time


def test_record_is_immutable_and_validates() -> None:
    record = ExecutionRecord(id="a")
    with pytest.raises(ValidationError):
        record.id = "b"  # type: ignore[misc]
    with pytest.raises(ValidationError):
        ExecutionRecord(id="neg", duration_ms=-1)
    with pytest.raises(ValidationError):
        ExecutionRecord.model_validate({"id": "bad", "status": "EXPLODED"})
