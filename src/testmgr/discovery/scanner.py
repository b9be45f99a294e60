# src/testmgr/discovery/scanner.py

"""
Lexical scan of a single test module.

The scan is one forward pass over the file's lines. Each line is classified
into a small token set (group declaration, case declaration, top-level
statement, indented/blank line); a current-group register decides which
group a case declaration belongs to. It is not a Python parser.
"""

import re
from collections.abc import Iterable
from enum import Enum, auto
from pathlib import Path, PurePath

from attrs import define, field

from testmgr.discovery.models import EntityKind, SourceLocation, TestEntity, sorted_children

DEFAULT_TEST_BASE_CLASSES = frozenset(
    {
        # Django
        "TestCase",
        "TransactionTestCase",
        "SimpleTestCase",
        "LiveServerTestCase",
        "StaticLiveServerTestCase",
        # Django REST Framework
        "APITestCase",
        "APISimpleTestCase",
        "APITransactionTestCase",
        # unittest / asyncio
        "AsyncTestCase",
        "IsolatedAsyncioTestCase",
        "TestSuite",
    }
)

TEST_MARKER = "Test"

_GROUP_RE = re.compile(r"^class\s+(?P<name>\w+)\s*(?:\((?P<bases>[^)]*)\)?)?")
_CASE_RE = re.compile(r"^(?P<indent>\s+)(?:async\s+)?def\s+(?P<name>\w+)")


class SourceLineKind(Enum):
    GROUP_OPEN = auto()
    CASE_OPEN = auto()
    TOP_LEVEL = auto()  # Function or decorator at column 0; closes the current group.
    INNER = auto()  # Anything else, including column-0 string continuations.


@define(frozen=True, slots=True)
class SourceToken:
    kind: SourceLineKind
    name: str | None = None
    bases: tuple[str, ...] = ()
    indent: int = 0


def classify_source_line(line: str) -> SourceToken:
    """Maps one raw source line to a SourceToken."""
    stripped = line.strip()
    if not stripped or stripped.startswith("#") or line[0] in " \t":
        if stripped.startswith(("def ", "async def")):
            match = _CASE_RE.match(line)
            if match:
                return SourceToken(
                    SourceLineKind.CASE_OPEN,
                    name=match.group("name"),
                    indent=len(match.group("indent").expandtabs(4)),
                )
        return SourceToken(SourceLineKind.INNER)

    if line.startswith("class "):
        match = _GROUP_RE.match(line)
        if match:
            bases = match.group("bases") or ""
            return SourceToken(
                SourceLineKind.GROUP_OPEN,
                name=match.group("name"),
                bases=tuple(b.strip() for b in bases.split(",") if b.strip()),
            )

    if line.startswith(("def ", "async def ", "@")):
        return SourceToken(SourceLineKind.TOP_LEVEL)

    # Module statements, closing brackets and multi-line string bodies.
    return SourceToken(SourceLineKind.INNER)


def base_class_name(base: str) -> str:
    """Reduces a qualified parent (``django.test.TestCase``) to its final segment."""
    base = base.split("[", 1)[0].strip()
    return base.rsplit(".", 1)[-1]


def is_test_group(name: str, bases: Iterable[str], known_bases: frozenset[str]) -> bool:
    """
    A class is a test group when its name starts with ``Test``, or one of its
    parents is a known test base class or itself starts with ``Test``.
    """
    if name.startswith(TEST_MARKER):
        return True
    for base in bases:
        if "=" in base:
            # keyword argument such as metaclass=...
            continue
        parent = base_class_name(base)
        if parent in known_bases or parent.startswith(TEST_MARKER):
            return True
    return False


def has_group_marker(text: str) -> bool:
    """Cheap pre-check: a file with no class declaration cannot hold a test group."""
    return "class " in text


def module_dotted_path(relative_path: PurePath) -> str:
    """``users/tests/test_views.py`` -> ``users.tests.test_views``."""
    parts = list(relative_path.parts)
    parts[-1] = PurePath(parts[-1]).stem
    return ".".join(parts)


@define(slots=True)
class _OpenGroup:
    name: str
    start: int
    end: int
    cases: dict[str, tuple[int, int]] = field(factory=dict)
    last_case: str | None = None
    # Indentation of the first method; deeper defs are nested helpers.
    method_indent: int | None = None


def scan_source(
    text: str,
    relative_path: PurePath,
    absolute_path: Path,
    method_prefix: str = "test_",
    known_bases: frozenset[str] = DEFAULT_TEST_BASE_CLASSES,
) -> TestEntity | None:
    """
    Builds the file entity for one module, or None when it holds no tests.

    Repeated class or method names inside one module replace the earlier
    definition, the same way the interpreter rebinds them.
    """
    if not has_group_marker(text):
        return None

    file_id = module_dotted_path(relative_path)
    groups: dict[str, _OpenGroup] = {}
    current: _OpenGroup | None = None

    for lineno, line in enumerate(text.splitlines()):
        token = classify_source_line(line)

        if token.kind is SourceLineKind.GROUP_OPEN:
            assert token.name is not None
            if is_test_group(token.name, token.bases, known_bases):
                current = _OpenGroup(name=token.name, start=lineno, end=lineno)
                groups.pop(token.name, None)
                groups[token.name] = current
            else:
                current = None
            continue

        if token.kind is SourceLineKind.TOP_LEVEL:
            current = None
            continue

        if current is None:
            continue

        if token.kind is SourceLineKind.CASE_OPEN and (
            current.method_indent is None or token.indent <= current.method_indent
        ):
            assert token.name is not None
            if current.method_indent is None:
                current.method_indent = token.indent
            current.end = lineno
            if token.name.startswith(method_prefix):
                current.cases.pop(token.name, None)
                current.cases[token.name] = (lineno, lineno)
                current.last_case = token.name
            else:
                current.last_case = None
            continue

        # Indented lines extend the open method; column-0 lines only pass through.
        if line.strip() and line[0] in " \t":
            current.end = lineno
            if current.last_case is not None:
                start, _ = current.cases[current.last_case]
                current.cases[current.last_case] = (start, lineno)

    if not groups:
        return None

    group_entities = []
    for group in groups.values():
        group_id = f"{file_id}.{group.name}"
        cases = [
            TestEntity(
                name=case_name,
                kind=EntityKind.CASE,
                canonical_id=f"{group_id}.{case_name}",
                location=SourceLocation(absolute_path, start, end),
            )
            for case_name, (start, end) in group.cases.items()
        ]
        group_entities.append(
            TestEntity(
                name=group.name,
                kind=EntityKind.GROUP,
                canonical_id=group_id,
                location=SourceLocation(absolute_path, group.start, group.end),
                children=sorted_children(cases),
            )
        )

    return TestEntity(
        name=relative_path.name,
        kind=EntityKind.FILE,
        canonical_id=file_id,
        location=SourceLocation(absolute_path, 0, 0),
        children=sorted_children(group_entities),
    )


# 🔼⚙️
