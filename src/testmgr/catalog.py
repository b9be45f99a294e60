# src/testmgr/catalog.py
#
"""
Defines the catalog of test statuses keyed by canonical identifier.

The store is created once by the orchestrator and handed to every component
that reads or writes statuses. Writes are batched: listeners get one change
notification per debounce window with the set of identifiers touched.
"""

from collections import Counter
from collections.abc import Callable, Iterable
from enum import Enum, auto
from typing import TYPE_CHECKING

import structlog
from attrs import define, field, mutable

from testmgr.scheduler import DebouncedNotifier
from testmgr.telemetry import StructLogger

if TYPE_CHECKING:
    from testmgr.discovery.models import TestEntity

log: StructLogger = structlog.get_logger("catalog")

DEFAULT_NOTIFY_INTERVAL = 0.2  # seconds

ChangeListener = Callable[[frozenset[str]], None]


class TestStatus(Enum):
    """Lifecycle status of a single test identifier."""

    UNKNOWN = auto()  # Discovered but never run, or outcome could not be determined.
    PENDING = auto()  # Queued in the current run, no output seen yet.
    RUNNING = auto()  # Transcript announced the test, result not printed yet.
    PASSED = auto()
    FAILED = auto()
    SKIPPED = auto()
    ABORTED = auto()


TestStatus.__test__ = False  # type: ignore[attr-defined]

IN_FLIGHT_STATUSES = frozenset({TestStatus.PENDING, TestStatus.RUNNING})
TERMINAL_STATUSES = frozenset(
    {TestStatus.PASSED, TestStatus.FAILED, TestStatus.SKIPPED, TestStatus.UNKNOWN, TestStatus.ABORTED}
)

STATUS_EMOJI_MAP = {
    TestStatus.UNKNOWN: "❔",
    TestStatus.PENDING: "⏳",
    TestStatus.RUNNING: "🔄",
    TestStatus.PASSED: "✅",
    TestStatus.FAILED: "❌",
    TestStatus.SKIPPED: "⏭️",
    TestStatus.ABORTED: "⏹️",
}


def combine_statuses(statuses: Iterable[TestStatus]) -> TestStatus:
    """
    Folds child statuses into one. Failures dominate, then in-flight work,
    then unknowns; the result is passed only when every child passed or was
    skipped, and skipped only when all of them were.
    """
    seen = set(statuses)
    if not seen:
        return TestStatus.UNKNOWN
    for status in (TestStatus.FAILED, TestStatus.RUNNING, TestStatus.PENDING, TestStatus.ABORTED):
        if status in seen:
            return status
    if seen == {TestStatus.SKIPPED}:
        return TestStatus.SKIPPED
    if TestStatus.UNKNOWN in seen:
        return TestStatus.UNKNOWN
    return TestStatus.PASSED


@define(frozen=True, slots=True)
class ExpectedActual:
    """Expected/actual pair extracted from an assertion failure."""

    expected: str
    actual: str


@mutable(slots=True)
class CatalogRecord:
    """Current knowledge about one test identifier."""

    canonical_id: str = field()
    status: TestStatus = field(default=TestStatus.UNKNOWN)
    last_failure_message: str | None = field(default=None)
    last_duration_ms: float | None = field(default=None)
    last_diff: ExpectedActual | None = field(default=None)

    @property
    def emoji(self) -> str:
        return STATUS_EMOJI_MAP.get(self.status, "❓")

    def update_status(self, new_status: TestStatus, failure_message: str | None = None) -> bool:
        """Applies a status change. Returns False when nothing changed."""
        old_status = self.status
        if old_status == new_status and failure_message is None:
            return False

        self.status = new_status
        if new_status == TestStatus.FAILED:
            # The failure message belongs to the FAILED transition only.
            if failure_message is not None:
                self.last_failure_message = failure_message
            elif old_status != TestStatus.FAILED:
                self.last_failure_message = None
        elif new_status in IN_FLIGHT_STATUSES:
            self.last_diff = None

        log.debug(
            "Test status changed",
            canonical_id=self.canonical_id,
            old_status=old_status.name,
            new_status=new_status.name,
        )
        return True


class CatalogStore:
    """In-memory map from canonical identifier to CatalogRecord."""

    def __init__(self, notify_interval: float = DEFAULT_NOTIFY_INTERVAL):
        self._records: dict[str, CatalogRecord] = {}
        self._listeners: list[ChangeListener] = []
        self._changed: set[str] = set()
        self._notifier = DebouncedNotifier(notify_interval, self._emit_changes, name="catalog")

    def __contains__(self, canonical_id: object) -> bool:
        return canonical_id in self._records

    def __len__(self) -> int:
        return len(self._records)

    # --- Reads ---
    def get(self, canonical_id: str) -> CatalogRecord | None:
        return self._records.get(canonical_id)

    def get_status(self, canonical_id: str) -> TestStatus | None:
        record = self._records.get(canonical_id)
        return record.status if record else None

    def keys(self) -> list[str]:
        return list(self._records)

    def records(self) -> list[CatalogRecord]:
        return list(self._records.values())

    def failed_ids(self) -> list[str]:
        return [cid for cid, rec in self._records.items() if rec.status == TestStatus.FAILED]

    def ids_with_status(self, *statuses: TestStatus) -> list[str]:
        wanted = set(statuses)
        return [cid for cid, rec in self._records.items() if rec.status in wanted]

    def counts(self) -> Counter[TestStatus]:
        return Counter(rec.status for rec in self._records.values())

    def rollup_status(self, entity: "TestEntity") -> TestStatus:
        """
        Derives a status for any entity from its runnable descendants.

        Failures dominate, then in-flight work, then unknowns; a node is passed
        only when every leaf passed or was skipped.
        """
        own = self.get_status(entity.canonical_id)
        if not entity.children:
            return own or TestStatus.UNKNOWN
        if own == TestStatus.FAILED:
            # A failing class or module fixture fails the group regardless of its cases.
            return own
        return combine_statuses(self.rollup_status(child) for child in entity.children)

    # --- Writes ---
    def register(self, canonical_id: str) -> bool:
        """Creates an UNKNOWN record if none exists. Existing records are never touched."""
        if canonical_id in self._records:
            return False
        self._records[canonical_id] = CatalogRecord(canonical_id=canonical_id)
        self._mark_changed(canonical_id)
        return True

    def _ensure(self, canonical_id: str) -> CatalogRecord:
        record = self._records.get(canonical_id)
        if record is None:
            record = CatalogRecord(canonical_id=canonical_id)
            self._records[canonical_id] = record
        return record

    def set_status(
        self,
        canonical_id: str,
        status: TestStatus,
        failure_message: str | None = None,
    ) -> None:
        record = self._ensure(canonical_id)
        if record.update_status(status, failure_message if status == TestStatus.FAILED else None):
            self._mark_changed(canonical_id)

    def set_failure_message(self, canonical_id: str, message: str) -> None:
        record = self._ensure(canonical_id)
        record.last_failure_message = message
        self._mark_changed(canonical_id)

    def set_duration(self, canonical_id: str, duration_ms: float) -> None:
        record = self._ensure(canonical_id)
        record.last_duration_ms = duration_ms
        self._mark_changed(canonical_id)

    def set_diff(self, canonical_id: str, diff: ExpectedActual) -> None:
        record = self._ensure(canonical_id)
        record.last_diff = diff
        self._mark_changed(canonical_id)

    def reset_to_pending(self, canonical_ids: Iterable[str]) -> list[str]:
        """Marks every given identifier PENDING ahead of a new run."""
        reset = []
        for canonical_id in canonical_ids:
            self.set_status(canonical_id, TestStatus.PENDING)
            reset.append(canonical_id)
        log.debug("Reset identifiers to pending", count=len(reset))
        return reset

    def reclassify(self, from_statuses: Iterable[TestStatus], to_status: TestStatus) -> list[str]:
        """Moves every record in one of ``from_statuses`` to ``to_status``."""
        moved = self.ids_with_status(*from_statuses)
        for canonical_id in moved:
            self.set_status(canonical_id, to_status)
        return moved

    def clear(self) -> None:
        """Removes every record. The only path that deletes records."""
        removed = set(self._records)
        self._records.clear()
        log.info("Catalog cleared", removed=len(removed))
        self._changed |= removed
        self._notifier.trigger()

    # --- Notifications ---
    def subscribe(self, listener: ChangeListener) -> Callable[[], None]:
        """Registers a change listener and returns a callable that removes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def flush_notifications(self) -> None:
        """Emits any batched change notification immediately."""
        self._notifier.flush()

    def _mark_changed(self, canonical_id: str) -> None:
        self._changed.add(canonical_id)
        self._notifier.trigger()

    def _emit_changes(self) -> None:
        if not self._changed:
            return
        changed = frozenset(self._changed)
        self._changed.clear()
        for listener in list(self._listeners):
            listener(changed)


# 🔼⚙️
