# src/testmgr/history/manager.py

"""
Session history and the analytics derived from it.
"""

import json
from collections import defaultdict
from collections.abc import Callable
from datetime import datetime

import attrs
import structlog

from testmgr.catalog import TestStatus
from testmgr.config.models import HistoryConfig
from testmgr.exceptions import HistoryStorageError
from testmgr.history.models import (
    HistorySummary,
    RecordStatus,
    RunSession,
    TestAggregate,
    TestRunRecord,
    utc_now,
)
from testmgr.history.store import KeyValueStore
from testmgr.telemetry import StructLogger

log: StructLogger = structlog.get_logger("history")

HISTORY_KEY = "testHistory"
MIN_RUNS_FOR_FLAKINESS = 3

HistoryListener = Callable[[], None]


class HistoryManager:
    """
    Keeps sealed sessions newest-first, capped at ``max_sessions``.

    One session is open at a time. ``record_test`` opens one when needed and
    ``end_session`` seals it, evicts the oldest sessions over capacity and
    persists the result.
    """

    def __init__(self, config: HistoryConfig, store: KeyValueStore | None = None):
        self.config = config
        self.store = store
        self._sessions: list[RunSession] = []
        self._current: RunSession | None = None
        self._listeners: list[HistoryListener] = []
        self._load()

    # --- Persistence ---
    def _load(self) -> None:
        if self.store is None:
            return
        try:
            stored = self.store.get(HISTORY_KEY, [])
            sessions = [RunSession.from_dict(item) for item in stored or []]
        except HistoryStorageError as e:
            log.warning("History storage unreadable, starting empty", error=str(e), emoji_key="history")
            return
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            log.warning("Stored history is malformed, starting empty", error=str(e), emoji_key="history")
            return
        self._sessions = sessions[: self.config.max_sessions]
        log.debug("History loaded", sessions=len(self._sessions))

    def _save(self) -> None:
        if self.store is None:
            return
        try:
            self.store.set(HISTORY_KEY, [session.to_dict() for session in self._sessions])
        except HistoryStorageError as e:
            log.warning("History could not be saved, keeping it in memory", error=str(e), emoji_key="history")

    # --- Listeners ---
    def subscribe(self, listener: HistoryListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener()

    # --- Session lifecycle ---
    @property
    def sessions(self) -> list[RunSession]:
        """Sealed sessions, newest first."""
        return list(self._sessions)

    @property
    def current_session(self) -> RunSession | None:
        return self._current

    @property
    def last_session(self) -> RunSession | None:
        return self._sessions[0] if self._sessions else None

    def start_session(self) -> RunSession:
        if self._current is not None:
            log.debug("Sealing unfinished session before starting a new one", session_id=self._current.session_id)
            self.end_session()
        self._current = RunSession()
        log.debug("History session started", session_id=self._current.session_id)
        return self._current

    def record_test(
        self,
        canonical_id: str,
        status: RecordStatus | TestStatus,
        duration_ms: float | None = None,
        error_message: str | None = None,
        test_name: str | None = None,
    ) -> TestRunRecord | None:
        """
        Appends an outcome to the open session, opening one if needed.

        A second outcome for the same identifier within a session replaces the
        first, keeping its original timestamp. Statuses that are not a result
        (pending, running, unknown) are ignored.
        """
        if isinstance(status, TestStatus):
            record_status = RecordStatus.from_test_status(status)
            if record_status is None:
                return None
        else:
            record_status = status

        session = self._current or self.start_session()
        for index, existing in enumerate(session.tests):
            if existing.canonical_id != canonical_id:
                continue
            session.count(existing.status, -1)
            session.count(record_status)
            replaced = attrs.evolve(
                existing,
                status=record_status,
                duration_ms=existing.duration_ms if duration_ms is None else duration_ms,
                error_message=error_message if error_message is not None else existing.error_message,
            )
            session.tests[index] = replaced
            return replaced

        record = TestRunRecord(
            canonical_id=canonical_id,
            test_name=test_name or canonical_id.rsplit(".", 1)[-1],
            status=record_status,
            duration_ms=duration_ms or 0.0,
            error_message=error_message,
        )
        session.tests.append(record)
        session.count(record_status)

        overflow = len(session.tests) - self.config.max_tests_per_session
        if overflow > 0:
            del session.tests[:overflow]
        return record

    def end_session(self, end_time: datetime | None = None) -> RunSession | None:
        """Seals the open session, evicts over capacity and persists. No-op when none is open."""
        session = self._current
        if session is None:
            return None
        self._current = None
        session.seal(end_time)

        self._sessions.insert(0, session)
        evicted = len(self._sessions) - self.config.max_sessions
        if evicted > 0:
            del self._sessions[self.config.max_sessions :]
            log.debug("Evicted oldest sessions", count=evicted)

        log.info(
            "History session recorded",
            session_id=session.session_id,
            total=session.total,
            passed=session.passed,
            failed=session.failed,
            skipped=session.skipped,
            emoji_key="history",
        )
        self._save()
        self._notify()
        return session

    def clear(self) -> None:
        self._sessions = []
        self._current = None
        self._save()
        log.info("History cleared", emoji_key="history")
        self._notify()

    # --- Analytics ---
    def _all_records(self) -> list[TestRunRecord]:
        return [record for session in self._sessions for record in session.tests]

    def test_history(self, canonical_id: str) -> list[TestRunRecord]:
        """Every retained record for one identifier, newest first."""
        records = [r for r in self._all_records() if r.canonical_id == canonical_id]
        return sorted(records, key=lambda r: r.timestamp, reverse=True)

    def flakiness(self, canonical_id: str) -> float:
        """
        Pass/fail transitions divided by (runs - 1) over the chronological
        history. Anything but a pass counts as failing. Fewer than three runs
        score 0.
        """
        # Oldest session first, so equal timestamps keep recording order.
        records = sorted(
            (r for session in reversed(self._sessions) for r in session.tests if r.canonical_id == canonical_id),
            key=lambda r: r.timestamp,
        )
        if len(records) < MIN_RUNS_FOR_FLAKINESS:
            return 0.0
        outcomes = [r.status == RecordStatus.PASSED for r in records]
        transitions = sum(1 for prev, curr in zip(outcomes, outcomes[1:]) if prev != curr)
        return transitions / (len(outcomes) - 1)

    def flaky_tests(self, limit: int = 10) -> list[tuple[str, float]]:
        """Identifiers with a non-zero flakiness score, highest first."""
        scored = [(cid, self.flakiness(cid)) for cid in {r.canonical_id for r in self._all_records()}]
        scored = [item for item in scored if item[1] > 0]
        scored.sort(key=lambda item: (-item[1], item[0]))
        return scored[:limit]

    def aggregates(self) -> dict[str, TestAggregate]:
        grouped: dict[str, list[TestRunRecord]] = defaultdict(list)
        for record in self._all_records():
            grouped[record.canonical_id].append(record)

        result = {}
        for canonical_id, records in grouped.items():
            newest = max(records, key=lambda r: r.timestamp)
            result[canonical_id] = TestAggregate(
                canonical_id=canonical_id,
                runs=len(records),
                failures=sum(1 for r in records if r.status.is_failure),
                mean_duration_ms=sum(r.duration_ms for r in records) / len(records),
                last_status=newest.status,
            )
        return result

    def slowest_tests(self, limit: int = 10) -> list[TestAggregate]:
        ranked = sorted(self.aggregates().values(), key=lambda a: (-a.mean_duration_ms, a.canonical_id))
        return ranked[:limit]

    def most_failing_tests(self, limit: int = 10) -> list[TestAggregate]:
        failing = [a for a in self.aggregates().values() if a.failures > 0]
        failing.sort(key=lambda a: (-a.failure_rate, a.canonical_id))
        return failing[:limit]

    def summary(self) -> HistorySummary:
        sessions = self._sessions
        total_tests = sum(s.total for s in sessions)
        record_durations = [r.duration_ms for r in self._all_records()]
        return HistorySummary(
            sessions=len(sessions),
            tests=total_tests,
            passed=sum(s.passed for s in sessions),
            failed=sum(s.failed for s in sessions),
            skipped=sum(s.skipped for s in sessions),
            mean_session_duration_ms=sum(s.duration_ms for s in sessions) / len(sessions) if sessions else 0.0,
            mean_test_duration_ms=sum(record_durations) / len(record_durations) if record_durations else 0.0,
        )

    def export_json(self) -> str:
        return json.dumps(
            {
                "exportDate": utc_now().isoformat(),
                "summary": self.summary().to_dict(),
                "sessions": [session.to_dict() for session in self._sessions],
            },
            indent=2,
        )


# 🔼⚙️
