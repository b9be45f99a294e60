# src/testmgr/runtime/run_handler.py
"""
Executes one test run: build, spawn, reset, stream, parse, finalize, record.
"""
import asyncio
import time
from collections import Counter
from collections.abc import Callable, Sequence

import structlog
from attrs import define, field

from testmgr.catalog import IN_FLIGHT_STATUSES, CatalogStore, TestStatus
from testmgr.discovery.models import TestEntity
from testmgr.exceptions import RunInProgressError
from testmgr.history import HistoryManager
from testmgr.parsing import OutputParser, TestOutcome
from testmgr.telemetry import StructLogger
from testmgr.testing import CommandBuilder, Invocation, ProcessChannel

log: StructLogger = structlog.get_logger("runtime.run_handler")

RunListener = Callable[["RunSummary"], None]


@define(frozen=True, slots=True)
class RunSummary:
    """Final state of one run, as seen by the caller."""

    targets: tuple[str, ...] = field(converter=tuple)
    command: str
    exit_code: int
    cancelled: bool
    statuses: dict[str, TestStatus]
    case_ids: tuple[str, ...] = field(converter=tuple)
    duration_ms: float = 0.0
    session_id: str | None = None

    def counts(self) -> Counter[TestStatus]:
        """Status histogram over the leaf identifiers of the run."""
        return Counter(self.statuses[cid] for cid in self.case_ids if cid in self.statuses)

    def ids_with_status(self, status: TestStatus) -> list[str]:
        return [cid for cid in self.case_ids if self.statuses.get(cid) == status]

    @property
    def success(self) -> bool:
        if self.cancelled:
            return False
        return self.exit_code == 0 and not self.ids_with_status(TestStatus.FAILED)


class RunHandler:
    """
    Drives a single run at a time against a reusable process channel.

    The catalog is reset to pending only after the process has been spawned,
    so a spawn failure leaves every status untouched.
    """

    def __init__(
        self,
        catalog: CatalogStore,
        builder: CommandBuilder,
        channel_provider: Callable[[], ProcessChannel],
        history: HistoryManager | None = None,
        tick_interval: float = 0.2,
    ):
        self.catalog = catalog
        self.builder = builder
        self._channel_provider = channel_provider
        self.history = history
        self.tick_interval = tick_interval
        self._channel: ProcessChannel | None = None
        self._running = False
        self._cancel_requested = False
        self._listeners: list[RunListener] = []
        log.debug("RunHandler initialized.")

    @property
    def is_running(self) -> bool:
        return self._running

    def subscribe(self, listener: RunListener) -> Callable[[], None]:
        """Registers a callback for every completed run and returns its remover."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _record_outcome(self, outcome: TestOutcome) -> None:
        if self.history is not None:
            self.history.record_test(
                outcome.canonical_id,
                outcome.status,
                duration_ms=outcome.duration_ms,
                error_message=outcome.error_message,
            )

    async def _tick_loop(self, parser: OutputParser) -> None:
        while True:
            await asyncio.sleep(self.tick_interval)
            parser.tick()

    async def execute(
        self,
        targets: str | Sequence[str],
        tracked_ids: Sequence[str],
        target_entity: TestEntity | None = None,
        debug: bool = False,
    ) -> RunSummary:
        """
        Runs ``targets`` and returns once the process has exited and every
        tracked identifier is resolved.

        Raises:
            RunInProgressError: a run is already active on this handler.
            ProcessSpawnError: the process could not be started.
            ConfigurationError: the command template cannot be rendered.
        """
        if self._running:
            raise RunInProgressError("A test run is already in progress")

        invocation: Invocation = self.builder.build(targets, debug=debug)
        run_log = log.bind(targets=list(invocation.targets) or ["<all>"], debug=debug)
        parser = OutputParser(
            self.catalog,
            target=target_entity,
            tracked_ids=tracked_ids,
            on_outcome=self._record_outcome,
        )

        self._running = True
        self._cancel_requested = False
        started = time.monotonic()
        try:
            channel = self._channel_provider()
            self._channel = channel
            await channel.start(invocation, parser.feed)
        except BaseException:
            self._running = False
            self._channel = None
            raise

        # No await between spawn and reset: nothing is parsed before every id is pending.
        self.catalog.reset_to_pending(tracked_ids)
        session = self.history.start_session() if self.history is not None else None
        run_log.info("Test run started", tracked=len(tracked_ids), emoji_key="run")

        tick_task = asyncio.create_task(self._tick_loop(parser))
        exit_code: int | None = None
        try:
            exit_code = await channel.wait()
        except asyncio.CancelledError:
            channel.cancel()
            self._cancel_requested = True
            raise
        finally:
            tick_task.cancel()
            parser.flush()
            cancelled = self._cancel_requested or exit_code is None
            parser.finalize(
                exit_code if exit_code is not None else -1,
                fail_fast=invocation.fail_fast,
                cancelled=cancelled,
            )
            if self.history is not None:
                self.history.end_session()
            self.catalog.flush_notifications()
            self._running = False
            self._channel = None

        duration_ms = (time.monotonic() - started) * 1000.0
        statuses = {cid: self.catalog.get_status(cid) or TestStatus.UNKNOWN for cid in tracked_ids}
        case_ids = [cid for cid in tracked_ids if cid not in parser.children]
        summary = RunSummary(
            targets=invocation.targets,
            command=invocation.command_line,
            exit_code=exit_code,
            cancelled=cancelled,
            statuses=statuses,
            case_ids=case_ids,
            duration_ms=duration_ms,
            session_id=session.session_id if session is not None else None,
        )
        counts = summary.counts()
        run_log.info(
            "Test run finished",
            exit_code=exit_code,
            cancelled=cancelled,
            passed=counts[TestStatus.PASSED],
            failed=counts[TestStatus.FAILED],
            skipped=counts[TestStatus.SKIPPED],
            unknown=counts[TestStatus.UNKNOWN],
            duration_ms=round(duration_ms),
            emoji_key="success" if summary.success else "fail",
        )
        for listener in list(self._listeners):
            listener(summary)
        return summary

    def cancel(self) -> bool:
        """
        Interrupts the active run. Everything still pending or running becomes
        skipped straight away; output that arrives before exit is still parsed.
        """
        if not self._running or self._channel is None:
            log.debug("Cancel requested with no active run")
            return False
        self._cancel_requested = True
        self._channel.cancel()
        skipped = self.catalog.reclassify(IN_FLIGHT_STATUSES, TestStatus.SKIPPED)
        log.info("Test run cancelled", skipped=len(skipped), emoji_key="run")
        return True


# 🔼⚙️
