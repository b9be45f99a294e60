#
# src/testmgr/parsing/__init__.py
#
"""
Streaming parser for the test runner's verbose transcript.
"""

from .lexer import LineKind, LineToken, ResultMarker, classify_line, qualify, strip_ansi
from .parser import OutputParser, ParserState, TestOutcome, extract_diff

__all__ = [
    "LineKind",
    "LineToken",
    "OutputParser",
    "ParserState",
    "ResultMarker",
    "TestOutcome",
    "classify_line",
    "extract_diff",
    "qualify",
    "strip_ansi",
]
