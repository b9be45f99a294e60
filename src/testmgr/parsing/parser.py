# src/testmgr/parsing/parser.py

"""
Turns the streamed transcript of one run into catalog status writes.

``feed`` only appends to a buffer. ``tick`` (called periodically by the run
handler) and ``flush`` (called once on process exit) drain every complete line
and apply it through a small state machine::

    TRANSCRIPT --FAIL:/ERROR:--> FAILURE_HEADER --"-----"--> FAILURE_DETAIL
        ^                                                         |
        +---------------- "=====" / "-----" separator ------------+

``finalize`` then resolves every identifier of the run still in flight.
"""

import re
import time
from collections.abc import Callable, Iterable, Mapping, Sequence
from enum import Enum, auto

import structlog
from attrs import define

from testmgr.catalog import IN_FLIGHT_STATUSES, CatalogStore, ExpectedActual, TestStatus, combine_statuses
from testmgr.discovery.models import TestEntity
from testmgr.parsing.lexer import LineKind, LineToken, ResultMarker, classify_line, reported_id
from testmgr.telemetry import StructLogger

log: StructLogger = structlog.get_logger("parsing.parser")

PLACEHOLDER_FAILURE_MESSAGE = "Test failed. See the failure summary for details."

_ASSERTION_DIFF_RE = re.compile(r"^\s*AssertionError: (?P<first>.+?) != (?P<second>.+?)\s*$")

MARKER_STATUS = {
    ResultMarker.OK: TestStatus.PASSED,
    ResultMarker.EXPECTED_FAILURE: TestStatus.PASSED,
    ResultMarker.SKIPPED: TestStatus.SKIPPED,
    ResultMarker.FAIL: TestStatus.FAILED,
    ResultMarker.ERROR: TestStatus.FAILED,
    ResultMarker.UNEXPECTED_SUCCESS: TestStatus.FAILED,
}


class ParserState(Enum):
    TRANSCRIPT = auto()
    FAILURE_HEADER = auto()
    FAILURE_DETAIL = auto()


@define(frozen=True, slots=True)
class TestOutcome:
    """One resolved result, handed to the outcome callback."""

    __test__ = False

    canonical_id: str
    status: TestStatus
    duration_ms: float | None = None
    error_message: str | None = None


OutcomeCallback = Callable[[TestOutcome], None]


def extract_diff(lines: Iterable[str]) -> ExpectedActual | None:
    """
    Finds the last ``AssertionError: first != second`` line of a traceback.

    ``assertEqual(actual, expected)`` is the common call order, so the second
    operand is reported as the expected value.
    """
    found = None
    for line in lines:
        match = _ASSERTION_DIFF_RE.match(line)
        if match:
            found = ExpectedActual(expected=match.group("second"), actual=match.group("first"))
    return found


def children_map(target: TestEntity | None) -> dict[str, tuple[str, ...]]:
    """Runnable child ids of every runnable node under ``target`` that has any."""
    if target is None:
        return {}
    mapping: dict[str, tuple[str, ...]] = {}
    for entity in target.walk():
        runnable_children = tuple(c.canonical_id for c in entity.children if c.kind.is_runnable)
        if runnable_children:
            mapping[entity.canonical_id] = runnable_children
    return mapping


class OutputParser:
    """
    Streaming state machine for one run.

    Args:
        catalog: Store that receives status writes.
        target: The entity that was run, or None for the whole suite or an
            explicit id list. Suite-terminal lines only resolve a leaf target.
        tracked_ids: Identifiers reset to pending for this run; ``finalize``
            resolves whichever of them are still in flight.
        on_outcome: Called for each resolved result.
        clock: Monotonic time source, in seconds.
    """

    def __init__(
        self,
        catalog: CatalogStore,
        target: TestEntity | None = None,
        tracked_ids: Sequence[str] = (),
        on_outcome: OutcomeCallback | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.catalog = catalog
        self.target = target
        self.tracked_ids = list(tracked_ids)
        self.on_outcome = on_outcome
        self._clock = clock
        self.children = children_map(target)

        self._buffer = ""
        # Complete lines waiting for the next tick, each with the time its newline arrived.
        self._ready: list[tuple[str, float]] = []
        self._last_data_at = clock()
        self._last_resolution_at = self._last_data_at
        self.pending_id: str | None = None
        self.state = ParserState.TRANSCRIPT

        self._failure_id: str | None = None
        self._failure_lines: list[str] = []
        self._reported: dict[str, TestStatus] = {}
        self._opened: list[str] = []
        self.lines_processed = 0
        self.suite_success: bool | None = None

    # --- Input ---
    def feed(self, chunk: str) -> None:
        """Buffers a chunk. Lines completed by it are stamped with the current time."""
        if not chunk:
            return
        now = self._clock()
        self._last_data_at = now
        *complete, self._buffer = (self._buffer + chunk).split("\n")
        self._ready.extend((line, now) for line in complete)

    def tick(self) -> int:
        """Processes every complete line currently buffered. Returns the line count."""
        if not self._ready:
            return 0
        ready, self._ready = self._ready, []
        processed = 0
        for raw, arrived_at in ready:
            processed += self._process(raw.splitlines() or [""], arrived_at)
        return processed

    def flush(self) -> int:
        """Processes everything left, including a trailing unterminated line."""
        processed = self.tick()
        if self._buffer:
            tail, self._buffer = self._buffer, ""
            processed += self._process(tail.splitlines() or [tail], self._last_data_at)
        if self.state != ParserState.TRANSCRIPT:
            self._close_failure_block()
        return processed

    @property
    def reported(self) -> Mapping[str, TestStatus]:
        """Identifiers resolved from output so far, with the status reported."""
        return dict(self._reported)

    # --- Line handling ---
    def _process(self, lines: list[str], arrived_at: float) -> int:
        for line in lines:
            self._apply(classify_line(line), arrived_at)
        self.lines_processed += len(lines)
        return len(lines)

    def _apply(self, token: LineToken, arrived_at: float) -> None:
        if self.state == ParserState.FAILURE_DETAIL:
            if token.kind == LineKind.SEPARATOR:
                self._close_failure_block()
                return
            self._failure_lines.append(token.text)
            return

        if self.state == ParserState.FAILURE_HEADER:
            if token.kind == LineKind.SEPARATOR and token.separator == "-":
                self.state = ParserState.FAILURE_DETAIL
                return
            # Header without a detail block; fall through and treat the line normally.
            self._close_failure_block()

        match token.kind:
            case LineKind.CASE_OPEN:
                self._open_case(token)
            case LineKind.TRANSCRIPT_RESULT:
                self._transcript_result(token, arrived_at)
            case LineKind.SUMMARY_FAILURE:
                self._summary_failure(token, arrived_at)
            case LineKind.SUITE_TERMINAL:
                self._suite_terminal(token, arrived_at)
            case LineKind.SEPARATOR | LineKind.UNRECOGNIZED:
                pass

    def _open_case(self, token: LineToken) -> None:
        canonical_id = reported_id(token)
        if canonical_id is None:
            return
        self.pending_id = canonical_id
        if self.catalog.get_status(canonical_id) in (None, TestStatus.PENDING, TestStatus.UNKNOWN):
            self.catalog.set_status(canonical_id, TestStatus.RUNNING)
            self._opened.append(canonical_id)

    def _transcript_result(self, token: LineToken, arrived_at: float) -> None:
        canonical_id = reported_id(token) or self.pending_id
        self.pending_id = None
        if canonical_id is None or token.marker is None:
            log.debug("Result marker without a test to attach it to", line=token.text)
            return
        status = MARKER_STATUS[token.marker]
        message = PLACEHOLDER_FAILURE_MESSAGE if status == TestStatus.FAILED else None
        self._resolve(canonical_id, status, arrived_at, message)

    def _summary_failure(self, token: LineToken, arrived_at: float) -> None:
        canonical_id = reported_id(token)
        if canonical_id is None:
            return
        if self._reported.get(canonical_id) != TestStatus.FAILED:
            self._resolve(canonical_id, TestStatus.FAILED, arrived_at, PLACEHOLDER_FAILURE_MESSAGE)
        self._failure_id = canonical_id
        self._failure_lines = []
        self.state = ParserState.FAILURE_HEADER

    def _suite_terminal(self, token: LineToken, arrived_at: float) -> None:
        self.suite_success = token.success
        if self.target is None or not self.target.is_leaf or not self.target.kind.is_runnable:
            return
        target_id = self.target.canonical_id
        status = TestStatus.PASSED if token.success else TestStatus.FAILED
        if self._reported.get(target_id) == status:
            return
        message = PLACEHOLDER_FAILURE_MESSAGE if status == TestStatus.FAILED else None
        self._resolve(target_id, status, arrived_at, message)

    def _close_failure_block(self) -> None:
        canonical_id = self._failure_id
        lines = self._failure_lines
        self._failure_id = None
        self._failure_lines = []
        self.state = ParserState.TRANSCRIPT
        if canonical_id is None:
            return

        message = "\n".join(lines).strip()
        if message:
            self.catalog.set_failure_message(canonical_id, message)
        diff = extract_diff(lines)
        if diff is not None:
            self.catalog.set_diff(canonical_id, diff)
        if message and self.on_outcome is not None:
            record = self.catalog.get(canonical_id)
            duration = record.last_duration_ms if record else None
            self.on_outcome(TestOutcome(canonical_id, TestStatus.FAILED, duration, message))

    def _resolve(
        self,
        canonical_id: str,
        status: TestStatus,
        arrived_at: float,
        message: str | None = None,
    ) -> None:
        duration_ms = max(0.0, (arrived_at - self._last_resolution_at) * 1000.0)
        self._last_resolution_at = arrived_at

        self.catalog.set_status(canonical_id, status, message)
        self.catalog.set_duration(canonical_id, duration_ms)
        self._reported[canonical_id] = status
        log.debug("Parsed test result", canonical_id=canonical_id, status=status.name, duration_ms=round(duration_ms, 1))
        if self.on_outcome is not None:
            self.on_outcome(TestOutcome(canonical_id, status, duration_ms, message))

    # --- Finalization ---
    def finalize(self, exit_code: int, fail_fast: bool = False, cancelled: bool = False) -> dict[str, TestStatus]:
        """
        Resolves every tracked identifier still pending or running.

        Leaves are settled from the exit code first; groups with runnable
        children then take the combined status of those children, deepest
        first. Returns the identifiers changed here with their new status.
        """
        if cancelled:
            fallback = TestStatus.SKIPPED
        elif exit_code == 0:
            fallback = TestStatus.PASSED
        elif fail_fast:
            fallback = TestStatus.SKIPPED
        else:
            fallback = TestStatus.UNKNOWN

        resolved: dict[str, TestStatus] = {}
        # Ids announced by the runner but never discovered are resolved as well.
        candidates = dict.fromkeys([*self.tracked_ids, *self._opened])
        outstanding = [cid for cid in candidates if self.catalog.get_status(cid) in IN_FLIGHT_STATUSES]

        for canonical_id in outstanding:
            if canonical_id not in self.children:
                self.catalog.set_status(canonical_id, fallback)
                resolved[canonical_id] = fallback

        groups = [cid for cid in outstanding if cid in self.children]
        for canonical_id in sorted(groups, key=lambda cid: cid.count("."), reverse=True):
            child_statuses = [
                self.catalog.get_status(child) or TestStatus.UNKNOWN for child in self.children[canonical_id]
            ]
            status = combine_statuses(child_statuses)
            if status in IN_FLIGHT_STATUSES:
                status = fallback
            self.catalog.set_status(canonical_id, status)
            resolved[canonical_id] = status

        self.pending_id = None
        log.debug(
            "Run finalized",
            exit_code=exit_code,
            fail_fast=fail_fast,
            cancelled=cancelled,
            resolved=len(resolved),
        )
        return resolved


# 🔼⚙️
