# src/testmgr/parsing/lexer.py

"""
Line classifier for the verbose unittest/Django test transcript.

Every line maps to exactly one LineToken. Classification is a fixed sequence
of checks on the ANSI-stripped line; anything that matches none of them is
UNRECOGNIZED, never an error.

Shapes recognised (verbosity 2)::

    test_login (users.tests.TestUserViews) ... ok
    test_slow (users.tests.TestUserViews)            <- result on a later line
    Checks the slow path ... skipped 'needs network'
    ======================================================================
    FAIL: test_logout (users.tests.TestUserViews)
    ----------------------------------------------------------------------
    FAILED (failures=1, errors=2)
    OK (skipped=1)
"""

import re
from enum import Enum, auto

from attrs import define, field

ANSI_ESCAPE_RE = re.compile(r"\x1b\[[0-9;?]*[ -/]*[@-~]|\x1b[@-Z\\-_]")

# "<name> (<dotted.path>)" at the end of the text before the result marker.
_CASE_HEAD_RE = re.compile(r"(?P<name>[\w.]+) \((?P<path>\w+(?:\.\w+)+)\)\s*$")
_RESULT_RE = re.compile(
    r"(?:^|\s)\.\.\.\s*(?P<result>ok|skipped|FAIL|ERROR|expected failure|unexpected success)(?=\s|$)"
)
_BARE_RESULT_RE = re.compile(r"^(?P<result>ok|skipped|FAIL|ERROR|expected failure|unexpected success)(?=\s|$)")
_SUMMARY_RE = re.compile(r"^(?P<kind>FAIL|ERROR): (?P<name>[\w.]+) \((?P<path>[\w.]+)\)")
_COUNT_RE = re.compile(r"(?P<key>[a-z][a-z ]*)=(?P<value>\d+)")

SEPARATOR_MIN_LENGTH = 10
FAILED_IMPORT_PREFIX = "unittest.loader._FailedTest."


class LineKind(Enum):
    CASE_OPEN = auto()
    TRANSCRIPT_RESULT = auto()
    SUMMARY_FAILURE = auto()
    SEPARATOR = auto()
    SUITE_TERMINAL = auto()
    UNRECOGNIZED = auto()


class ResultMarker(Enum):
    OK = "ok"
    SKIPPED = "skipped"
    FAIL = "FAIL"
    ERROR = "ERROR"
    EXPECTED_FAILURE = "expected failure"
    UNEXPECTED_SUCCESS = "unexpected success"

    @property
    def is_failure(self) -> bool:
        return self in (ResultMarker.FAIL, ResultMarker.ERROR, ResultMarker.UNEXPECTED_SUCCESS)


@define(frozen=True, slots=True)
class LineToken:
    kind: LineKind
    text: str
    name: str | None = None
    path: str | None = None
    marker: ResultMarker | None = None
    success: bool | None = None
    counts: dict[str, int] = field(factory=dict)
    separator: str | None = None

    @property
    def canonical_id(self) -> str | None:
        if self.name is None or self.path is None:
            return None
        return qualify(self.name, self.path)


def strip_ansi(text: str) -> str:
    return ANSI_ESCAPE_RE.sub("", text)


def qualify(name: str, path: str) -> str:
    """
    Joins a case name to the path printed in parentheses, unless the runner
    already printed the fully qualified id (Python 3.11+ does).
    """
    if path == name or path.endswith(f".{name}"):
        return path
    return f"{path}.{name}"


def _parse_counts(text: str) -> dict[str, int]:
    return {m.group("key").strip(): int(m.group("value")) for m in _COUNT_RE.finditer(text)}


def classify_line(raw: str) -> LineToken:
    """Classifies one transcript line. Never raises."""
    text = strip_ansi(raw).rstrip("\r\n")
    stripped = text.strip()

    if not stripped:
        return LineToken(LineKind.UNRECOGNIZED, text)

    if len(stripped) >= SEPARATOR_MIN_LENGTH and len(set(stripped)) == 1 and stripped[0] in "=-":
        return LineToken(LineKind.SEPARATOR, text, separator=stripped[0])

    summary = _SUMMARY_RE.match(stripped)
    if summary:
        return LineToken(
            LineKind.SUMMARY_FAILURE,
            text,
            name=summary.group("name"),
            path=summary.group("path"),
            marker=ResultMarker(summary.group("kind")),
        )

    if stripped == "OK" or stripped.startswith("OK ("):
        return LineToken(LineKind.SUITE_TERMINAL, text, success=True, counts=_parse_counts(stripped))
    if stripped.startswith("FAILED (") or stripped == "FAILED":
        return LineToken(LineKind.SUITE_TERMINAL, text, success=False, counts=_parse_counts(stripped))

    result = _RESULT_RE.search(text)
    if result:
        head = _CASE_HEAD_RE.search(text[: result.start()])
        return LineToken(
            LineKind.TRANSCRIPT_RESULT,
            text,
            name=head.group("name") if head else None,
            path=head.group("path") if head else None,
            marker=ResultMarker(result.group("result")),
        )

    bare = _BARE_RESULT_RE.match(stripped)
    if bare:
        # Result printed on its own line after test output broke the transcript line.
        return LineToken(LineKind.TRANSCRIPT_RESULT, text, marker=ResultMarker(bare.group("result")))

    head_text = text.split(" ... ", 1)[0]
    head = _CASE_HEAD_RE.search(head_text)
    if head:
        return LineToken(LineKind.CASE_OPEN, text, name=head.group("name"), path=head.group("path"))

    return LineToken(LineKind.UNRECOGNIZED, text)


def reported_id(token: LineToken) -> str | None:
    """
    Canonical id a transcript line or ``FAIL:``/``ERROR:`` header reports on.

    Class and module fixtures fail the enclosing id itself, and an import
    failure reported through unittest's ``_FailedTest`` names the module.
    """
    if token.name is None or token.path is None:
        return None
    if token.path.startswith(FAILED_IMPORT_PREFIX):
        return token.name
    if token.name in FIXTURE_NAMES:
        return token.path
    return qualify(token.name, token.path)


FIXTURE_NAMES = frozenset({"setUpClass", "tearDownClass", "setUpModule", "tearDownModule"})


# 🔼⚙️
