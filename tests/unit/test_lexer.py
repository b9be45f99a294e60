# tests/unit/test_lexer.py

"""Tests for transcript line classification."""

import pytest

from testmgr.parsing import LineKind, ResultMarker, classify_line, qualify, strip_ansi
from testmgr.parsing.lexer import reported_id


class TestQualify:
    def test_joins_name_and_path(self):
        assert qualify("test_login", "users.tests.TestViews") == "users.tests.TestViews.test_login"

    def test_already_qualified_path_kept(self):
        assert (
            qualify("test_login", "users.tests.TestViews.test_login") == "users.tests.TestViews.test_login"
        )


def test_strip_ansi():
    assert strip_ansi("\x1b[32mok\x1b[0m") == "ok"


class TestClassifyLine:
    @pytest.mark.parametrize(
        "line, marker",
        [
            ("test_login (users.tests.TestViews) ... ok", ResultMarker.OK),
            ("test_login (users.tests.TestViews) ... FAIL", ResultMarker.FAIL),
            ("test_login (users.tests.TestViews) ... ERROR", ResultMarker.ERROR),
            ("test_login (users.tests.TestViews) ... skipped 'no network'", ResultMarker.SKIPPED),
            ("test_login (users.tests.TestViews) ... expected failure", ResultMarker.EXPECTED_FAILURE),
            ("test_login (users.tests.TestViews) ... unexpected success", ResultMarker.UNEXPECTED_SUCCESS),
        ],
    )
    def test_transcript_results(self, line, marker):
        token = classify_line(line)
        assert token.kind is LineKind.TRANSCRIPT_RESULT
        assert token.marker is marker
        assert token.canonical_id == "users.tests.TestViews.test_login"

    def test_python_311_qualified_form(self):
        token = classify_line("test_login (users.tests.TestViews.test_login) ... ok")
        assert token.canonical_id == "users.tests.TestViews.test_login"

    def test_docstring_line_carries_result_without_id(self):
        token = classify_line("Checks the login form ... ok")
        assert token.kind is LineKind.TRANSCRIPT_RESULT
        assert token.canonical_id is None
        assert token.marker is ResultMarker.OK

    def test_colored_line(self):
        token = classify_line("test_a (app.tests.T) ... \x1b[32mok\x1b[0m\r\n")
        assert token.kind is LineKind.TRANSCRIPT_RESULT
        assert token.marker is ResultMarker.OK

    def test_case_open_without_result(self):
        token = classify_line("test_slow (app.tests.TestSlow) ... ")
        assert token.kind is LineKind.CASE_OPEN
        assert token.canonical_id == "app.tests.TestSlow.test_slow"

    def test_bare_result_line(self):
        token = classify_line("ok")
        assert token.kind is LineKind.TRANSCRIPT_RESULT
        assert token.canonical_id is None
        assert token.marker is ResultMarker.OK

    def test_summary_failure_header(self):
        token = classify_line("ERROR: test_save (orders.tests.OrderTests)")
        assert token.kind is LineKind.SUMMARY_FAILURE
        assert token.marker is ResultMarker.ERROR
        assert token.canonical_id == "orders.tests.OrderTests.test_save"

    @pytest.mark.parametrize("line, separator", [("=" * 70, "="), ("-" * 70, "-")])
    def test_separators(self, line, separator):
        token = classify_line(line)
        assert token.kind is LineKind.SEPARATOR
        assert token.separator == separator

    def test_short_dash_run_is_not_a_separator(self):
        assert classify_line("-----").kind is LineKind.UNRECOGNIZED

    def test_suite_terminal_ok(self):
        token = classify_line("OK (skipped=2)")
        assert token.kind is LineKind.SUITE_TERMINAL
        assert token.success is True
        assert token.counts == {"skipped": 2}

    def test_suite_terminal_failed(self):
        token = classify_line("FAILED (failures=1, errors=2, expected failures=1)")
        assert token.kind is LineKind.SUITE_TERMINAL
        assert token.success is False
        assert token.counts == {"failures": 1, "errors": 2, "expected failures": 1}

    @pytest.mark.parametrize(
        "line",
        [
            "",
            "Creating test database for alias 'default'...",
            "Ran 12 tests in 0.345s",
            "Traceback (most recent call last):",
            "System check identified no issues (0 silenced).",
        ],
    )
    def test_noise_is_unrecognized(self, line):
        assert classify_line(line).kind is LineKind.UNRECOGNIZED


class TestReportedId:
    def test_regular_case(self):
        token = classify_line("FAIL: test_a (app.tests.TestA)")
        assert reported_id(token) == "app.tests.TestA.test_a"

    @pytest.mark.parametrize("fixture", ["setUpClass", "tearDownClass"])
    def test_class_fixture_fails_group(self, fixture):
        token = classify_line(f"ERROR: {fixture} (app.tests.TestA)")
        assert reported_id(token) == "app.tests.TestA"

    def test_module_fixture_fails_module(self):
        token = classify_line("ERROR: setUpModule (app.tests)")
        assert reported_id(token) == "app.tests"

    def test_import_failure_names_module(self):
        token = classify_line("ERROR: app.tests (unittest.loader._FailedTest.app.tests)")
        assert reported_id(token) == "app.tests"

    def test_transcript_fixture_line(self):
        token = classify_line("setUpClass (app.tests.TestA) ... ERROR")
        assert reported_id(token) == "app.tests.TestA"

    def test_transcript_import_failure_line(self):
        token = classify_line("app.tests (unittest.loader._FailedTest.app.tests) ... ERROR")
        assert token.kind is LineKind.TRANSCRIPT_RESULT
        assert reported_id(token) == "app.tests"
