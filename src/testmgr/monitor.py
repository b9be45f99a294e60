# src/testmgr/monitor.py

"""
Filesystem monitoring for watch mode.

watchdog delivers events on its own observer thread; the handler filters them
and hands the survivors to the event loop with ``call_soon_threadsafe``, so
everything downstream runs on the loop.
"""

import asyncio
from collections.abc import Callable
from fnmatch import fnmatch
from pathlib import Path, PurePath

import structlog
from attrs import define
from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from testmgr.exceptions import MonitoringSetupError
from testmgr.telemetry import StructLogger

log: StructLogger = structlog.get_logger("monitor")

# Substrings of a root-relative path that never trigger a run.
EXCLUDED_PATH_PARTS = (
    "__pycache__",
    ".venv",
    "venv",
    ".git",
    "migrations",
    "node_modules",
    ".pyc",
    "__init__.py",
)


@define(frozen=True, slots=True)
class MonitoredEvent:
    """A filtered filesystem event. ``src_path`` is absolute."""

    event_type: str
    src_path: Path
    is_directory: bool = False


def is_excluded(relative_path: str) -> bool:
    return any(part in relative_path for part in EXCLUDED_PATH_PARTS)


def matches_pattern(relative_path: PurePath, pattern: str) -> bool:
    """
    Glob test against a root-relative path.

    ``**/`` may also match zero directories, so ``**/*.py`` accepts
    ``manage.py`` at the project root.
    """
    text = relative_path.as_posix()
    if fnmatch(text, pattern):
        return True
    while pattern.startswith("**/"):
        pattern = pattern[3:]
        if fnmatch(text, pattern):
            return True
    return False


class ChangeEventHandler(FileSystemEventHandler):
    """Forwards file events under ``root`` that match ``pattern`` to the loop."""

    def __init__(
        self,
        root: Path,
        pattern: str,
        loop: asyncio.AbstractEventLoop,
        on_event: Callable[[MonitoredEvent], None],
    ):
        super().__init__()
        self.root = root
        self.pattern = pattern
        self._loop = loop
        self._on_event = on_event

    def _accept(self, path: Path) -> bool:
        try:
            relative = path.relative_to(self.root)
        except ValueError:
            return False
        if is_excluded(relative.as_posix()):
            return False
        return matches_pattern(PurePath(relative), self.pattern)

    def _forward(self, event_type: str, raw_path: str | bytes) -> None:
        path = Path(raw_path.decode() if isinstance(raw_path, bytes) else raw_path)
        if not self._accept(path):
            return
        monitored = MonitoredEvent(event_type=event_type, src_path=path)
        try:
            self._loop.call_soon_threadsafe(self._on_event, monitored)
        except RuntimeError:
            # Loop already closed during shutdown.
            log.debug("Dropping filesystem event after loop shutdown", path=str(path))

    def on_created(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._forward("created", event.src_path)

    def on_modified(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._forward("modified", event.src_path)

    def on_deleted(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._forward("deleted", event.src_path)

    def on_moved(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._forward("deleted", event.src_path)
            self._forward("moved", event.dest_path)


class MonitoringService:
    """Owns one watchdog observer over the project root."""

    def __init__(self, root: Path, pattern: str, on_event: Callable[[MonitoredEvent], None]):
        self.root = root.resolve()
        self.pattern = pattern
        self._on_event = on_event
        self._observer: Observer | None = None

    @property
    def is_running(self) -> bool:
        return self._observer is not None and self._observer.is_alive()

    def start(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        if self.is_running:
            return
        loop = loop or asyncio.get_running_loop()
        handler = ChangeEventHandler(self.root, self.pattern, loop, self._on_event)
        observer = Observer()
        try:
            observer.schedule(handler, str(self.root), recursive=True)
            observer.start()
        except OSError as e:
            raise MonitoringSetupError(f"Cannot watch '{self.root}'", details=e) from e
        self._observer = observer
        log.info("Filesystem monitoring started", root=str(self.root), pattern=self.pattern, emoji_key="watch")

    def stop(self) -> None:
        observer = self._observer
        self._observer = None
        if observer is None:
            return
        observer.stop()
        if observer.is_alive():
            observer.join(timeout=2.0)
        log.info("Filesystem monitoring stopped", root=str(self.root), emoji_key="watch")


# 🔼⚙️
