# src/testmgr/discovery/models.py

"""
Immutable tree of discovered test entities.
"""

from collections.abc import Iterator
from enum import Enum
from pathlib import Path

from attrs import define, field


class EntityKind(Enum):
    """Position of an entity in the hierarchy. Directories and files are structural."""

    DIRECTORY = "directory"
    FILE = "file"
    GROUP = "group"
    CASE = "case"

    @property
    def is_structural(self) -> bool:
        return self in (EntityKind.DIRECTORY, EntityKind.FILE)

    @property
    def is_runnable(self) -> bool:
        return not self.is_structural


# Presentation order: structural kinds first, then leaves.
KIND_RANK = {
    EntityKind.DIRECTORY: 0,
    EntityKind.FILE: 1,
    EntityKind.GROUP: 2,
    EntityKind.CASE: 3,
}


@define(frozen=True, slots=True)
class SourceLocation:
    """A file and a 0-based, inclusive line span."""

    path: Path
    start_line: int
    end_line: int


@define(frozen=True, slots=True)
class TestEntity:
    """A node of the discovery hierarchy. Never mutated after construction."""

    __test__ = False

    name: str
    kind: EntityKind
    canonical_id: str
    location: SourceLocation | None = field(default=None)
    children: tuple["TestEntity", ...] = field(default=(), converter=tuple)

    @property
    def is_leaf(self) -> bool:
        return not self.children

    def walk(self) -> Iterator["TestEntity"]:
        """Depth-first, pre-order traversal including this entity."""
        yield self
        for child in self.children:
            yield from child.walk()

    def runnable_ids(self) -> list[str]:
        """Identifiers of this entity and its descendants that can carry a status."""
        return [e.canonical_id for e in self.walk() if e.kind.is_runnable]


def sort_key(entity: TestEntity) -> tuple[int, str, str]:
    return (KIND_RANK[entity.kind], entity.name.lower(), entity.name)


def sorted_children(children: list[TestEntity] | tuple[TestEntity, ...]) -> tuple[TestEntity, ...]:
    return tuple(sorted(children, key=sort_key))


# 🔼⚙️
