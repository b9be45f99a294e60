# src/testmgr/discovery/engine.py

"""
Keeps the current discovery snapshot for a project and registers every
runnable entity in the catalog.
"""

import asyncio
from collections.abc import Iterator
from pathlib import Path, PurePath

import structlog

from testmgr.catalog import CatalogStore
from testmgr.config.models import DiscoveryConfig
from testmgr.discovery.models import EntityKind, TestEntity, sorted_children
from testmgr.discovery.scanner import DEFAULT_TEST_BASE_CLASSES, scan_source
from testmgr.exceptions import DiscoveryError
from testmgr.telemetry import StructLogger

log: StructLogger = structlog.get_logger("discovery.engine")

# Directory names never descended into during discovery.
EXCLUDED_DIRS = frozenset({"node_modules", "venv", ".venv", "env", ".env", "__pycache__", ".git"})


def read_source(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8", errors="replace")
    except OSError as e:
        raise DiscoveryError("Cannot read source file", file_path=str(path), details=e) from e


class DiscoveryEngine:
    """
    Scans a project root for test modules and maintains the entity hierarchy.

    The snapshot is kept per file; ``discover_one`` replaces a single file's
    subtree without rescanning the rest of the project.
    """

    def __init__(self, project_root: Path, config: DiscoveryConfig, catalog: CatalogStore):
        self.project_root = project_root.resolve()
        self.config = config
        self.catalog = catalog
        self.known_bases = DEFAULT_TEST_BASE_CLASSES | frozenset(config.base_classes)
        self._files: dict[PurePath, TestEntity] = {}
        self._roots: list[TestEntity] = []
        self._index: dict[str, TestEntity] = {}

    # --- Snapshot access ---
    @property
    def roots(self) -> list[TestEntity]:
        return list(self._roots)

    def find(self, canonical_id: str) -> TestEntity | None:
        return self._index.get(canonical_id)

    def iter_entities(self) -> Iterator[TestEntity]:
        for root in self._roots:
            yield from root.walk()

    def file_entity(self, path: Path) -> TestEntity | None:
        return self._files.get(self._relative(path))

    # --- Discovery ---
    def _relative(self, path: Path) -> PurePath:
        path = path if path.is_absolute() else self.project_root / path
        return PurePath(path.resolve().relative_to(self.project_root))

    def _is_excluded(self, relative: PurePath) -> bool:
        return any(part in EXCLUDED_DIRS for part in relative.parts[:-1])

    def find_test_files(self) -> list[Path]:
        """Files under the root that match the discovery pattern, in stable order."""
        files = []
        for path in self.project_root.glob(self.config.file_pattern):
            if not path.is_file() or path.suffix != ".py":
                continue
            if self._is_excluded(PurePath(path.relative_to(self.project_root))):
                continue
            files.append(path)
        return sorted(files)

    def _scan_file(self, path: Path) -> TestEntity | None:
        relative = self._relative(path)
        text = read_source(path)
        return scan_source(
            text,
            relative,
            path,
            method_prefix=self.config.method_prefix,
            known_bases=self.known_bases,
        )

    async def discover_all(self) -> list[TestEntity]:
        """Rebuilds the whole hierarchy from disk."""
        discover_log = log.bind(root=str(self.project_root), pattern=self.config.file_pattern)
        files = await asyncio.to_thread(self.find_test_files)
        if not files:
            discover_log.info("No test files found", emoji_key="discover")

        results = await asyncio.gather(
            *(asyncio.to_thread(self._scan_file, path) for path in files),
            return_exceptions=True,
        )

        snapshot: dict[PurePath, TestEntity] = {}
        for path, result in zip(files, results, strict=True):
            if isinstance(result, DiscoveryError):
                discover_log.warning("Skipping unreadable test file", path=str(path), error=str(result))
                continue
            if isinstance(result, BaseException):
                discover_log.error("Failed to scan test file", path=str(path), error=str(result), exc_info=result)
                continue
            if result is not None:
                snapshot[self._relative(path)] = result

        self._files = snapshot
        self._rebuild()
        discover_log.info(
            "Discovery complete",
            files_scanned=len(files),
            test_files=len(snapshot),
            entities=len(self._index),
            emoji_key="discover",
        )
        return self.roots

    async def discover_one(self, path: Path) -> TestEntity | None:
        """
        Rescans one file and swaps its subtree in place.

        Returns the new file entity, or None when the file no longer holds tests
        (or cannot be read), in which case it is dropped from the hierarchy.
        """
        relative = self._relative(path)
        try:
            entity = await asyncio.to_thread(self._scan_file, path)
        except DiscoveryError as e:
            log.warning("Skipping unreadable test file", path=str(path), error=str(e))
            entity = None

        if entity is None:
            self._files.pop(relative, None)
        else:
            self._files[relative] = entity
        self._rebuild()
        log.debug("Rediscovered file", path=str(relative), has_tests=entity is not None)
        return entity

    def forget(self, path: Path) -> None:
        """Removes a file's subtree, e.g. after the file was deleted."""
        relative = self._relative(path)
        if self._files.pop(relative, None) is not None:
            self._rebuild()
            log.debug("Forgot file", path=str(relative))

    # --- Tree assembly ---
    def _rebuild(self) -> None:
        self._roots = assemble_tree(self._files)
        self._index = {entity.canonical_id: entity for entity in self.iter_entities()}
        for entity in self._index.values():
            if entity.kind.is_runnable:
                self.catalog.register(entity.canonical_id)


def assemble_tree(files: dict[PurePath, TestEntity]) -> list[TestEntity]:
    """
    Nests file entities under directory entities.

    Directory nodes are keyed by the path so far, so files sharing a directory
    collapse into one node.
    """
    # path-so-far -> (child directory keys, file entities)
    dirs: dict[PurePath, tuple[set[PurePath], list[TestEntity]]] = {}
    top = PurePath()
    dirs[top] = (set(), [])

    for relative, entity in files.items():
        parent = top
        for i in range(1, len(relative.parts)):
            key = PurePath(*relative.parts[:i])
            dirs.setdefault(key, (set(), []))
            dirs[parent][0].add(key)
            parent = key
        dirs[parent][1].append(entity)

    def build(key: PurePath) -> list[TestEntity]:
        sub_dirs, file_entities = dirs[key]
        nodes = [
            TestEntity(
                name=sub.name,
                kind=EntityKind.DIRECTORY,
                canonical_id=".".join(sub.parts),
                children=build(sub),
            )
            for sub in sub_dirs
        ]
        return list(sorted_children(nodes + file_entities))

    return build(top)


# 🔼⚙️
