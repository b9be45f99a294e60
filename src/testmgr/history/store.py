# src/testmgr/history/store.py

"""
Durable key-value storage for history, scoped to one project.
"""

import json
import os
import tempfile
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

import structlog

from testmgr.exceptions import HistoryStorageError
from testmgr.telemetry import StructLogger

log: StructLogger = structlog.get_logger("history.store")


@runtime_checkable
class KeyValueStore(Protocol):
    """Minimal storage the history manager needs: JSON-compatible values by key."""

    def get(self, key: str, default: Any = None) -> Any:
        ...

    def set(self, key: str, value: Any) -> None:
        ...


class JsonFileStore:
    """
    Keeps every key in a single JSON object on disk.

    Writes go to a temporary file in the same directory and are moved into
    place, so a crash never leaves a half-written file behind.
    """

    def __init__(self, path: Path):
        self.path = path

    def _read_all(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            content = self.path.read_text(encoding="utf-8")
        except OSError as e:
            raise HistoryStorageError(f"Cannot read history file '{self.path}'", details=e) from e
        if not content.strip():
            return {}
        try:
            data = json.loads(content)
        except json.JSONDecodeError as e:
            raise HistoryStorageError(f"History file '{self.path}' is not valid JSON", details=e) from e
        if not isinstance(data, dict):
            raise HistoryStorageError(f"History file '{self.path}' does not hold a JSON object")
        return data

    def get(self, key: str, default: Any = None) -> Any:
        return self._read_all().get(key, default)

    def set(self, key: str, value: Any) -> None:
        try:
            data = self._read_all()
        except HistoryStorageError as e:
            log.warning("Overwriting unreadable history file", path=str(self.path), error=str(e))
            data = {}
        data[key] = value

        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as handle:
                    json.dump(data, handle, indent=2)
                os.replace(tmp_name, self.path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as e:
            raise HistoryStorageError(f"Cannot write history file '{self.path}'", details=e) from e
        log.debug("History stored", path=str(self.path), key=key)


# 🔼⚙️
