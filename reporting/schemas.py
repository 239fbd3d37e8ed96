"""Pydantic DTOs for test execution records handed over by the report aggregator."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from enum import Enum

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator


class TestStatus(str, Enum):
    """Lifecycle/result states a test execution can report."""

    __test__ = False

    PENDING = "PENDING"
    RUNNING = "RUNNING"
    PASSED = "PASSED"
    FAILED = "FAILED"
    BROKEN = "BROKEN"
    SKIPPED = "SKIPPED"
    RETRIED = "RETRIED"

    @property
    def is_failure(self) -> bool:
        return self in {TestStatus.FAILED, TestStatus.BROKEN}

    @property
    def is_terminal(self) -> bool:
        return self not in {TestStatus.PENDING, TestStatus.RUNNING}


class ExecutionRecord(BaseModel):
    """Timing/result metadata for one test execution."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str = Field(description="Opaque unique identifier")
    name: str | None = Field(default=None, description="Display name of the test")
    suite: str | None = Field(
        default=None,
        validation_alias=AliasChoices("suite", "suiteName", "suite_name"),
        description="Suite the test belongs to",
    )
    start_time: datetime | None = Field(
        default=None,
        validation_alias=AliasChoices("start_time", "startTime"),
        description="When the test started",
    )
    end_time: datetime | None = Field(
        default=None,
        validation_alias=AliasChoices("end_time", "endTime"),
        description="When the test finished (None while still running)",
    )
    duration_ms: int | None = Field(
        default=None,
        ge=0,
        validation_alias=AliasChoices("duration_ms", "durationMillis", "duration"),
        description="Stored elapsed time; may disagree with end_time - start_time",
    )
    worker_id: str | None = Field(
        default=None,
        validation_alias=AliasChoices("worker_id", "workerId", "thread_name", "threadName"),
        description="Execution lane (thread/worker) the test ran in",
    )
    status: TestStatus = Field(default=TestStatus.PENDING)
    retry_count: int = Field(
        default=0,
        ge=0,
        validation_alias=AliasChoices("retry_count", "retryCount"),
    )

    @field_validator("start_time", "end_time")
    @classmethod
    def assume_utc(cls, value: datetime | None) -> datetime | None:
        """Offset-less timestamps are read as UTC so every record compares on one clock."""

        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    def has_window(self) -> bool:
        return self.start_time is not None and self.end_time is not None

    def elapsed_ms(self) -> int:
        """Milliseconds between start and end, falling back to the stored duration."""

        if self.start_time is not None and self.end_time is not None:
            return (self.end_time - self.start_time) // timedelta(milliseconds=1)
        return self.duration_ms or 0

    def effective_duration_ms(self) -> int:
        if self.duration_ms is not None:
            return self.duration_ms
        return self.elapsed_ms()
