# src/testmgr/history/models.py
#
"""
Session and per-test records kept by the history manager.

Serialized field names follow the exported JSON shape (camelCase, ISO 8601
timestamps), so a stored history and an export read the same way.
"""

import uuid
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from attrs import define, field, mutable

from testmgr.catalog import TestStatus


class RecordStatus(Enum):
    PASSED = "passed"
    FAILED = "failed"
    SKIPPED = "skipped"
    ERROR = "error"

    @property
    def is_failure(self) -> bool:
        return self in (RecordStatus.FAILED, RecordStatus.ERROR)

    @property
    def test_status(self) -> TestStatus:
        if self.is_failure:
            return TestStatus.FAILED
        return TestStatus.PASSED if self == RecordStatus.PASSED else TestStatus.SKIPPED

    @classmethod
    def from_test_status(cls, status: TestStatus) -> "RecordStatus | None":
        """Only explicit results are recorded; in-flight and unknown statuses map to None."""
        return {
            TestStatus.PASSED: cls.PASSED,
            TestStatus.FAILED: cls.FAILED,
            TestStatus.SKIPPED: cls.SKIPPED,
        }.get(status)


def new_record_id() -> str:
    return uuid.uuid4().hex[:12]


def utc_now() -> datetime:
    return datetime.now(UTC)


def _parse_timestamp(value: str) -> datetime:
    parsed = datetime.fromisoformat(value)
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)


@define(frozen=True, slots=True)
class TestRunRecord:
    """One outcome of one test inside a session."""

    __test__ = False

    canonical_id: str
    test_name: str
    status: RecordStatus
    duration_ms: float = 0.0
    error_message: str | None = None
    timestamp: datetime = field(factory=utc_now)
    record_id: str = field(factory=new_record_id)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.record_id,
            "timestamp": self.timestamp.isoformat(),
            "dottedPath": self.canonical_id,
            "testName": self.test_name,
            "status": self.status.value,
            "duration": self.duration_ms,
        }
        if self.error_message is not None:
            data["errorMessage"] = self.error_message
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TestRunRecord":
        return cls(
            canonical_id=data["dottedPath"],
            test_name=data.get("testName") or data["dottedPath"].rsplit(".", 1)[-1],
            status=RecordStatus(data["status"]),
            duration_ms=float(data.get("duration", 0.0)),
            error_message=data.get("errorMessage"),
            timestamp=_parse_timestamp(data["timestamp"]),
            record_id=data.get("id") or new_record_id(),
        )


@mutable(slots=True)
class RunSession:
    """
    One invocation of the test runner.

    Counters reflect every outcome recorded, even after the record list has
    been capped to its newest entries.
    """

    session_id: str = field(factory=new_record_id)
    start_time: datetime = field(factory=utc_now)
    end_time: datetime | None = field(default=None)
    total: int = field(default=0)
    passed: int = field(default=0)
    failed: int = field(default=0)
    skipped: int = field(default=0)
    duration_ms: float = field(default=0.0)
    tests: list[TestRunRecord] = field(factory=list)

    @property
    def is_sealed(self) -> bool:
        return self.end_time is not None

    def count(self, status: RecordStatus, delta: int = 1) -> None:
        self.total += delta
        if status == RecordStatus.PASSED:
            self.passed += delta
        elif status.is_failure:
            self.failed += delta
        elif status == RecordStatus.SKIPPED:
            self.skipped += delta

    def seal(self, end_time: datetime | None = None) -> None:
        self.end_time = end_time or utc_now()
        self.duration_ms = max(0.0, (self.end_time - self.start_time).total_seconds() * 1000.0)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.session_id,
            "startTime": self.start_time.isoformat(),
            "endTime": self.end_time.isoformat() if self.end_time else None,
            "totalTests": self.total,
            "passed": self.passed,
            "failed": self.failed,
            "skipped": self.skipped,
            "duration": self.duration_ms,
            "tests": [record.to_dict() for record in self.tests],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RunSession":
        end_time = data.get("endTime")
        return cls(
            session_id=data.get("id") or new_record_id(),
            start_time=_parse_timestamp(data["startTime"]),
            end_time=_parse_timestamp(end_time) if end_time else None,
            total=int(data.get("totalTests", 0)),
            passed=int(data.get("passed", 0)),
            failed=int(data.get("failed", 0)),
            skipped=int(data.get("skipped", 0)),
            duration_ms=float(data.get("duration", 0.0)),
            tests=[TestRunRecord.from_dict(item) for item in data.get("tests", [])],
        )


@define(frozen=True, slots=True)
class TestAggregate:
    """Per-identifier figures across every retained session."""

    __test__ = False

    canonical_id: str
    runs: int
    failures: int
    mean_duration_ms: float
    last_status: RecordStatus

    @property
    def failure_rate(self) -> float:
        return self.failures / self.runs if self.runs else 0.0


@define(frozen=True, slots=True)
class HistorySummary:
    sessions: int
    tests: int
    passed: int
    failed: int
    skipped: int
    mean_session_duration_ms: float
    mean_test_duration_ms: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "totalSessions": self.sessions,
            "totalTests": self.tests,
            "totalPassed": self.passed,
            "totalFailed": self.failed,
            "totalSkipped": self.skipped,
            "avgSessionDuration": self.mean_session_duration_ms,
            "avgTestDuration": self.mean_test_duration_ms,
        }


# 🔼⚙️
