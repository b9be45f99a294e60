# src/testmgr/runtime/watch_engine.py

"""
Change-driven re-runs.

Changed paths accumulate in a pending set; one DebouncedNotifier re-armed per
event drains the whole set when the window closes. Drained batches are
processed one at a time.
"""

import asyncio
import os
from collections.abc import Awaitable, Callable, Sequence
from enum import Enum, auto
from pathlib import Path, PurePath

import structlog

from testmgr.config.models import WatchConfig
from testmgr.discovery.scanner import module_dotted_path
from testmgr.exceptions import RunInProgressError
from testmgr.monitor import EXCLUDED_PATH_PARTS, MonitoredEvent, MonitoringService, is_excluded
from testmgr.scheduler import DebouncedNotifier
from testmgr.telemetry import StructLogger

log: StructLogger = structlog.get_logger("runtime.watch")

RunTargets = Callable[[Sequence[str]], Awaitable[object]]
Rediscover = Callable[[Path], Awaitable[object]]


class WatchState(Enum):
    DISABLED = auto()
    ENABLED = auto()


def is_test_file(path: PurePath) -> bool:
    name = path.name
    return name.startswith("test_") or "_test" in name or name == "tests.py"


def companion_names(path: PurePath) -> tuple[str, str]:
    return (f"test_{path.stem}.py", f"{path.stem}_test.py")


def find_companion(changed: Path, project_root: Path) -> Path | None:
    """
    Locates the test module for a non-test source file.

    Searches the whole root for ``test_<stem>.py`` and ``<stem>_test.py``;
    when several exist the one with the shortest path relative to the changed
    file's directory wins. A ``tests.py`` beside the changed file is the last
    resort.
    """
    names = set(companion_names(changed))
    candidates = []
    for dirpath, dirnames, filenames in os.walk(project_root):
        dirnames[:] = [d for d in dirnames if not any(part in d for part in EXCLUDED_PATH_PARTS)]
        for filename in filenames:
            if filename in names:
                candidates.append(Path(dirpath) / filename)

    if candidates:
        return min(candidates, key=lambda c: (len(os.path.relpath(c, changed.parent)), str(c)))

    sibling = changed.parent / "tests.py"
    if sibling.is_file() and sibling != changed:
        return sibling
    return None


class WatchEngine:
    """
    DISABLED <-> ENABLED. Enabling installs the filesystem observer; disabling
    removes it and discards whatever was pending.

    Args:
        project_root: Root that is watched and that dotted paths are relative to.
        config: Watch settings (pattern, debounce window, affected-only).
        run_targets: Coroutine that runs the given canonical ids; ``[""]``
            means the whole suite.
        rediscover: Coroutine that re-scans one changed test file before it runs.
    """

    def __init__(
        self,
        project_root: Path,
        config: WatchConfig,
        run_targets: RunTargets,
        rediscover: Rediscover | None = None,
    ):
        self.project_root = project_root.resolve()
        self.config = config
        self._run_targets = run_targets
        self._rediscover = rediscover
        self.state = WatchState.DISABLED
        self._pending: set[Path] = set()
        self._notifier = DebouncedNotifier(config.debounce_ms / 1000.0, self._on_window_closed, name="watch")
        self._monitor: MonitoringService | None = None
        self._batch_lock = asyncio.Lock()
        self._batch_tasks: set[asyncio.Task] = set()
        self.batches_processed = 0

    @property
    def is_enabled(self) -> bool:
        return self.state == WatchState.ENABLED

    @property
    def pending_paths(self) -> frozenset[Path]:
        return frozenset(self._pending)

    # --- State machine ---
    def enable(self) -> None:
        if self.is_enabled:
            return
        monitor = MonitoringService(self.project_root, self.config.pattern, self.on_event)
        monitor.start()
        self._monitor = monitor
        self.state = WatchState.ENABLED
        log.info("Watch mode enabled", debounce_ms=self.config.debounce_ms, emoji_key="watch")

    def disable(self) -> None:
        if not self.is_enabled:
            return
        if self._monitor is not None:
            self._monitor.stop()
            self._monitor = None
        self._notifier.cancel()
        discarded = len(self._pending)
        self._pending.clear()
        self.state = WatchState.DISABLED
        log.info("Watch mode disabled", discarded_changes=discarded, emoji_key="watch")

    def toggle(self) -> bool:
        if self.is_enabled:
            self.disable()
        else:
            self.enable()
        return self.is_enabled

    async def close(self) -> None:
        self.disable()
        if self._batch_tasks:
            await asyncio.gather(*self._batch_tasks, return_exceptions=True)

    # --- Event intake ---
    def on_event(self, event: MonitoredEvent) -> None:
        """Runs on the event loop for every filtered filesystem event."""
        if not self.is_enabled:
            return
        self.record_change(event.src_path)

    def record_change(self, path: Path) -> None:
        try:
            relative = path.relative_to(self.project_root)
        except ValueError:
            return
        if is_excluded(relative.as_posix()):
            return
        self._pending.add(path)
        self._notifier.trigger()
        log.debug("Change recorded", path=str(relative), pending=len(self._pending))

    def _on_window_closed(self) -> None:
        if not self._pending:
            return
        batch = sorted(self._pending)
        self._pending.clear()
        task = asyncio.get_running_loop().create_task(self.process_batch(batch))
        self._batch_tasks.add(task)
        task.add_done_callback(self._batch_tasks.discard)

    # --- Batch handling ---
    def resolve_targets(self, changed: Sequence[Path]) -> list[str]:
        """Maps changed files to the dotted test modules to run, without duplicates."""
        targets: list[str] = []
        for path in changed:
            test_file = path if is_test_file(path) else find_companion(path, self.project_root)
            if test_file is None:
                log.debug("No companion test module for change", path=str(path))
                continue
            if not test_file.exists():
                continue
            target = module_dotted_path(PurePath(test_file.relative_to(self.project_root)))
            if target not in targets:
                targets.append(target)
        return targets

    async def process_batch(self, changed: Sequence[Path]) -> list[str]:
        """Handles one drained window. Returns the targets that were run."""
        async with self._batch_lock:
            batch_log = log.bind(files=[p.name for p in changed])
            if self._rediscover is not None:
                for path in changed:
                    if is_test_file(path):
                        await self._rediscover(path)

            if self.config.run_affected_only:
                targets = await asyncio.to_thread(self.resolve_targets, changed)
            else:
                targets = [""]

            if not targets:
                batch_log.info("Changes have no related tests", emoji_key="watch")
                return []

            batch_log.info("Running tests for changed files", targets=targets, emoji_key="watch")
            try:
                await self._run_targets(targets)
            except RunInProgressError:
                if self.is_enabled:
                    self._pending.update(changed)
                    self._notifier.trigger()
                    batch_log.info("Another run is active, changes requeued for the next window", emoji_key="watch")
                else:
                    batch_log.warning("Skipping watch-triggered run, another run is active", emoji_key="watch")
            except Exception as e:
                # A failed run must not stop watch mode.
                batch_log.error("Watch-triggered run failed", error=str(e), exc_info=True)
            self.batches_processed += 1
            return targets


# 🔼⚙️
