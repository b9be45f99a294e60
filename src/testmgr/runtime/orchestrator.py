# src/testmgr/runtime/orchestrator.py

"""
High-level coordinator for testmgr.
Owns every runtime component and is the only place they are wired together.
"""

import asyncio
from collections.abc import Sequence
from pathlib import Path

import structlog

from testmgr.catalog import CatalogStore
from testmgr.config import TestmgrConfig
from testmgr.discovery import DiscoveryEngine, EntityKind, TestEntity
from testmgr.exceptions import RunInProgressError
from testmgr.history import HistoryManager, JsonFileStore
from testmgr.telemetry import StructLogger
from testmgr.testing import CommandBuilder, ProcessChannel, get_process_channel

from .run_handler import RunHandler, RunListener, RunSummary
from .watch_engine import WatchEngine

log: StructLogger = structlog.get_logger("runtime.orchestrator")


class TestOrchestrator:
    """
    Instantiates and coordinates the catalog, discovery, execution, history
    and watch components for one project root.

    A single run may be active at a time; ``run`` while another is in flight
    raises RunInProgressError.
    """

    __test__ = False

    def __init__(
        self,
        config: TestmgrConfig,
        project_root: Path,
        history: HistoryManager | None = None,
    ):
        self.config = config
        self.project_root = project_root.resolve()
        self.catalog = CatalogStore(notify_interval=config.runner.notify_interval_ms / 1000.0)
        self.discovery = DiscoveryEngine(self.project_root, config.discovery, self.catalog)
        self.builder = CommandBuilder(config.runner, self.project_root)
        if history is None:
            storage_path = config.history.storage_path
            if not storage_path.is_absolute():
                storage_path = self.project_root / storage_path
            history = HistoryManager(config.history, JsonFileStore(storage_path))
        self.history = history
        self._channel: ProcessChannel | None = None
        self.run_handler = RunHandler(
            self.catalog,
            self.builder,
            self._get_channel,
            history=self.history,
            tick_interval=config.runner.tick_interval_ms / 1000.0,
        )
        self.watch = WatchEngine(
            self.project_root,
            config.watch,
            run_targets=self.run_many,
            rediscover=self.discovery.discover_one,
        )
        self._discovered = False

    def _get_channel(self) -> ProcessChannel:
        """Creates the process channel on first use and reuses it afterwards."""
        if self._channel is None:
            self._channel = get_process_channel(self.config.runner.channel)
            log.debug("Process channel created", channel=type(self._channel).__name__)
        return self._channel

    @property
    def is_running(self) -> bool:
        return self.run_handler.is_running

    # --- Discovery ---
    async def discover(self) -> list[TestEntity]:
        roots = await self.discovery.discover_all()
        self._discovered = True
        self.catalog.flush_notifications()
        return roots

    async def _ensure_discovered(self) -> None:
        if not self._discovered:
            await self.discover()

    def _all_runnable_ids(self) -> list[str]:
        return [e.canonical_id for e in self.discovery.iter_entities() if e.kind.is_runnable]

    def _ids_under(self, target_id: str) -> list[str]:
        """Runnable ids of an entity and its descendants, or a dotted-prefix match for undiscovered targets."""
        entity = self.discovery.find(target_id)
        if entity is not None:
            return entity.runnable_ids()
        prefix = f"{target_id}."
        matched = [cid for cid in self._all_runnable_ids() if cid == target_id or cid.startswith(prefix)]
        return matched or [target_id]

    def _scope(self, targets: Sequence[str]) -> TestEntity | None:
        """
        Entity handed to the parser for a run: the target itself for a single
        discovered target, otherwise an unnamed node over every known target
        so group results can still roll up from their cases.
        """
        if len(targets) == 1 and targets[0]:
            return self.discovery.find(targets[0])
        if not any(targets):
            children = self.discovery.roots
        else:
            children = [e for e in (self.discovery.find(t) for t in targets) if e is not None]
        return TestEntity(name="", kind=EntityKind.DIRECTORY, canonical_id="", children=children)

    def _tracked_ids(self, targets: Sequence[str]) -> list[str]:
        if not any(targets):
            return self._all_runnable_ids()
        tracked: dict[str, None] = {}
        for target in targets:
            tracked.update(dict.fromkeys(self._ids_under(target)))
        return list(tracked)

    # --- Runs ---
    def subscribe_runs(self, listener: RunListener):
        return self.run_handler.subscribe(listener)

    async def run(self, target_id: str = "", debug: bool = False) -> RunSummary:
        """
        Runs one entity (or the whole suite for ``""``).

        Raises:
            RunInProgressError: another run is active.
            ProcessSpawnError: the test process could not be started.
        """
        if self.is_running:
            raise RunInProgressError("A test run is already in progress")
        await self._ensure_discovered()

        targets = [target_id]
        log.info("Run requested", target=target_id or "<all>", debug=debug, emoji_key="run")
        return await self.run_handler.execute(
            target_id,
            self._tracked_ids(targets),
            target_entity=self._scope(targets),
            debug=debug,
        )

    async def run_many(self, target_ids: Sequence[str]) -> RunSummary:
        """Runs several targets in one invocation. ``[""]`` runs everything."""
        targets = [t for t in target_ids if t]
        if len(targets) <= 1:
            return await self.run(targets[0] if targets else "")
        if self.is_running:
            raise RunInProgressError("A test run is already in progress")
        await self._ensure_discovered()
        return await self.run_handler.execute(
            targets, self._tracked_ids(targets), target_entity=self._scope(targets)
        )

    async def run_failed(self) -> RunSummary | None:
        """Re-runs every identifier currently marked failed. Returns None when none are."""
        failed = self.catalog.failed_ids()
        if not failed:
            log.info("No failed tests to re-run", emoji_key="run")
            return None
        if self.is_running:
            raise RunInProgressError("A test run is already in progress")

        # A failed group covers its cases; passing both would run them twice.
        targets = [cid for cid in failed if not any(cid.startswith(f"{other}.") for other in failed)]
        log.info("Re-running failed tests", count=len(targets), emoji_key="run")
        return await self.run_handler.execute(
            targets, self._tracked_ids(targets), target_entity=self._scope(targets)
        )

    def seed_from_history(self) -> int:
        """
        Restores statuses from the newest recorded session into the catalog,
        so ``run_failed`` works in a fresh process. Returns the number seeded.
        """
        session = self.history.last_session
        if session is None:
            return 0
        seeded = 0
        for record in session.tests:
            self.catalog.set_status(record.canonical_id, record.status.test_status, record.error_message)
            seeded += 1
        self.catalog.flush_notifications()
        log.debug("Catalog seeded from history", session_id=session.session_id, records=seeded)
        return seeded

    def cancel(self) -> bool:
        return self.run_handler.cancel()

    # --- Watch mode ---
    def enable_watch(self) -> None:
        self.watch.enable()

    def disable_watch(self) -> None:
        self.watch.disable()

    def toggle_watch(self) -> bool:
        return self.watch.toggle()

    # --- Lifecycle ---
    async def close(self) -> None:
        """Stops watching, interrupts a running test process and releases the channel."""
        log.info("Orchestrator shutting down.")
        if self.is_running:
            self.cancel()
        await self.watch.close()
        if self._channel is not None:
            # Give a cancelled process a moment to exit before the channel goes away.
            for _ in range(10):
                if not self._channel.is_busy:
                    break
                await asyncio.sleep(0.1)
            self._channel.close()
            self._channel = None
        self.catalog.flush_notifications()
        log.info("Orchestrator cleanup complete.")


# 🔼⚙️
