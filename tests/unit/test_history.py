# tests/unit/test_history.py

"""Tests for session history, persistence and analytics."""

import json
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest

from testmgr.catalog import TestStatus
from testmgr.config import HistoryConfig
from testmgr.history import HistoryManager, JsonFileStore
from testmgr.history.manager import HISTORY_KEY
from testmgr.history.models import RecordStatus, RunSession, TestRunRecord


class MemoryStore:
    def __init__(self, data=None):
        self.data = dict(data or {})

    def get(self, key, default=None):
        return self.data.get(key, default)

    def set(self, key, value):
        self.data[key] = value


def run_session(history: HistoryManager, results: dict[str, RecordStatus], duration_ms: float = 10.0) -> RunSession:
    history.start_session()
    for canonical_id, status in results.items():
        history.record_test(canonical_id, status, duration_ms=duration_ms)
    return history.end_session()


@pytest.fixture
def history(history_config: HistoryConfig) -> HistoryManager:
    return HistoryManager(history_config, MemoryStore())


class TestSessions:
    def test_end_session_seals_and_stores_newest_first(self, history: HistoryManager):
        first = run_session(history, {"a.T.test_1": RecordStatus.PASSED})
        second = run_session(history, {"a.T.test_1": RecordStatus.FAILED})

        assert history.sessions == [second, first]
        assert history.last_session is second
        assert first.is_sealed and second.is_sealed
        assert history.current_session is None

    def test_counters(self, history: HistoryManager):
        session = run_session(
            history,
            {
                "a.T.test_1": RecordStatus.PASSED,
                "a.T.test_2": RecordStatus.FAILED,
                "a.T.test_3": RecordStatus.ERROR,
                "a.T.test_4": RecordStatus.SKIPPED,
            },
        )
        assert (session.total, session.passed, session.failed, session.skipped) == (4, 1, 2, 1)

    def test_record_opens_session_when_needed(self, history: HistoryManager):
        record = history.record_test("a.T.test_1", RecordStatus.PASSED)
        assert record is not None
        assert history.current_session is not None

    def test_catalog_statuses_are_translated(self, history: HistoryManager):
        history.start_session()
        assert history.record_test("a.T.test_1", TestStatus.PASSED).status is RecordStatus.PASSED
        assert history.record_test("a.T.test_2", TestStatus.FAILED).status is RecordStatus.FAILED
        assert history.record_test("a.T.test_3", TestStatus.PENDING) is None
        assert history.record_test("a.T.test_4", TestStatus.UNKNOWN) is None
        assert history.current_session.total == 2

    def test_second_outcome_replaces_first(self, history: HistoryManager):
        history.start_session()
        first = history.record_test("a.T.test_1", RecordStatus.FAILED, duration_ms=5.0)
        second = history.record_test("a.T.test_1", RecordStatus.FAILED, error_message="Traceback...")
        session = history.end_session()

        assert len(session.tests) == 1
        assert session.total == 1 and session.failed == 1
        assert second.timestamp == first.timestamp
        assert second.duration_ms == 5.0
        assert second.error_message == "Traceback..."

    def test_replacement_adjusts_counters(self, history: HistoryManager):
        history.start_session()
        history.record_test("a.T.test_1", RecordStatus.PASSED)
        history.record_test("a.T.test_1", RecordStatus.FAILED)
        session = history.end_session()

        assert (session.total, session.passed, session.failed) == (1, 0, 1)

    def test_session_capacity_evicts_oldest(self, history: HistoryManager):
        sessions = [run_session(history, {"a.T.test_1": RecordStatus.PASSED}) for _ in range(7)]

        assert len(history.sessions) == 5
        assert history.sessions[0] is sessions[-1]
        assert sessions[0] not in history.sessions

    def test_per_session_cap_keeps_newest_records(self):
        history = HistoryManager(HistoryConfig(max_tests_per_session=2))
        session = run_session(
            history,
            {"t1": RecordStatus.PASSED, "t2": RecordStatus.PASSED, "t3": RecordStatus.FAILED},
        )

        assert [r.canonical_id for r in session.tests] == ["t2", "t3"]
        assert session.total == 3

    def test_end_without_session_is_noop(self, history: HistoryManager):
        assert history.end_session() is None

    def test_clear(self, history: HistoryManager):
        run_session(history, {"t": RecordStatus.PASSED})
        history.clear()
        assert history.sessions == []
        assert history.summary().sessions == 0

    def test_listeners_notified(self, history: HistoryManager):
        calls = []
        unsubscribe = history.subscribe(lambda: calls.append(1))
        run_session(history, {"t": RecordStatus.PASSED})
        unsubscribe()
        history.clear()
        assert calls == [1]


class TestFlakiness:
    def test_alternating_results_score_one(self, history: HistoryManager):
        for status in (RecordStatus.PASSED, RecordStatus.FAILED, RecordStatus.PASSED, RecordStatus.FAILED):
            run_session(history, {"a.T.test_flaky": status})

        assert history.flakiness("a.T.test_flaky") == pytest.approx(1.0)
        assert history.flaky_tests() == [("a.T.test_flaky", pytest.approx(1.0))]

    def test_single_transition(self, history: HistoryManager):
        for status in (RecordStatus.PASSED, RecordStatus.PASSED, RecordStatus.FAILED):
            run_session(history, {"t": status})
        assert history.flakiness("t") == pytest.approx(0.5)

    def test_too_few_runs_score_zero(self, history: HistoryManager):
        run_session(history, {"t": RecordStatus.PASSED})
        run_session(history, {"t": RecordStatus.FAILED})
        assert history.flakiness("t") == 0.0
        assert history.flaky_tests() == []

    def test_stable_test_is_not_flaky(self, history: HistoryManager):
        for _ in range(4):
            run_session(history, {"t": RecordStatus.FAILED})
        assert history.flakiness("t") == 0.0

    def test_skips_count_as_failing(self, history: HistoryManager):
        for status in (RecordStatus.PASSED, RecordStatus.SKIPPED, RecordStatus.PASSED):
            run_session(history, {"t": status})
        assert history.flakiness("t") == pytest.approx(1.0)


class TestAnalytics:
    def test_slowest_and_most_failing(self, history: HistoryManager):
        history.start_session()
        history.record_test("fast", RecordStatus.PASSED, duration_ms=1.0)
        history.record_test("slow", RecordStatus.FAILED, duration_ms=90.0)
        history.end_session()
        history.start_session()
        history.record_test("fast", RecordStatus.FAILED, duration_ms=3.0)
        history.record_test("slow", RecordStatus.FAILED, duration_ms=110.0)
        history.end_session()

        slowest = history.slowest_tests(limit=1)
        assert [a.canonical_id for a in slowest] == ["slow"]
        assert slowest[0].mean_duration_ms == pytest.approx(100.0)

        failing = history.most_failing_tests()
        assert [(a.canonical_id, a.failure_rate) for a in failing] == [("slow", 1.0), ("fast", 0.5)]
        assert history.aggregates()["fast"].last_status is RecordStatus.FAILED

    def test_test_history_newest_first(self, history: HistoryManager):
        run_session(history, {"t": RecordStatus.PASSED})
        run_session(history, {"t": RecordStatus.FAILED})
        assert [r.status for r in history.test_history("t")] == [RecordStatus.FAILED, RecordStatus.PASSED]

    def test_summary(self, history: HistoryManager):
        run_session(history, {"a": RecordStatus.PASSED, "b": RecordStatus.FAILED}, duration_ms=20.0)
        run_session(history, {"a": RecordStatus.SKIPPED}, duration_ms=20.0)

        summary = history.summary()

        assert (summary.sessions, summary.tests, summary.passed, summary.failed, summary.skipped) == (2, 3, 1, 1, 1)
        assert summary.mean_test_duration_ms == pytest.approx(20.0)

    def test_export_json_shape(self, history: HistoryManager):
        run_session(history, {"a.T.test_1": RecordStatus.FAILED})
        exported = json.loads(history.export_json())

        assert set(exported) == {"exportDate", "summary", "sessions"}
        assert exported["summary"]["totalSessions"] == 1
        (session,) = exported["sessions"]
        assert session["totalTests"] == 1
        assert session["tests"][0]["dottedPath"] == "a.T.test_1"
        assert session["tests"][0]["testName"] == "test_1"
        assert session["tests"][0]["status"] == "failed"


class TestPersistence:
    def test_round_trip_through_json_file(self, tmp_path: Path, history_config: HistoryConfig):
        path = tmp_path / ".testmgr" / "history.json"
        history = HistoryManager(history_config, JsonFileStore(path))
        run_session(history, {"a.T.test_1": RecordStatus.PASSED})

        stored = json.loads(path.read_text())
        assert HISTORY_KEY in stored

        reloaded = HistoryManager(history_config, JsonFileStore(path))
        assert len(reloaded.sessions) == 1
        assert reloaded.sessions[0].tests[0].canonical_id == "a.T.test_1"
        assert reloaded.sessions[0].tests[0].status is RecordStatus.PASSED

    def test_corrupt_file_starts_empty(self, tmp_path: Path, history_config: HistoryConfig):
        path = tmp_path / "history.json"
        path.write_text("{not json")

        history = HistoryManager(history_config, JsonFileStore(path))
        assert history.sessions == []

        run_session(history, {"t": RecordStatus.PASSED})
        assert len(json.loads(path.read_text())[HISTORY_KEY]) == 1

    def test_malformed_sessions_start_empty(self, history_config: HistoryConfig):
        store = MemoryStore({HISTORY_KEY: [{"id": "x"}]})
        assert HistoryManager(history_config, store).sessions == []

    def test_stored_sessions_capped_on_load(self):
        sessions = []
        start = datetime(2024, 1, 1, tzinfo=UTC)
        for i in range(4):
            session = RunSession(start_time=start + timedelta(minutes=i))
            session.seal(start + timedelta(minutes=i, seconds=1))
            sessions.append(session.to_dict())
        store = MemoryStore({HISTORY_KEY: sessions})

        history = HistoryManager(HistoryConfig(max_sessions=2), store)

        assert len(history.sessions) == 2

    def test_record_serialization(self):
        record = TestRunRecord(canonical_id="a.T.test_1", test_name="test_1", status=RecordStatus.ERROR)
        data = record.to_dict()
        assert "errorMessage" not in data
        assert TestRunRecord.from_dict(data) == record
