"""Tests for test-output classification."""

from __future__ import annotations

import re

import pytest

from autopatch.analysis.classifier import (
    ErrorClassifier,
    deduplicate,
    extract_file_path,
    generate_summary,
    is_failure_marker,
)
from autopatch.analysis.patterns import DEFAULT_PATTERNS, PatternFamily
from autopatch.core.models import Category, ErrorRecord, ErrorType, Severity


@pytest.fixture
def classifier() -> ErrorClassifier:
    return ErrorClassifier()


class TestAnalyze:
    def test_database_error_after_fail_marker(self, classifier: ErrorClassifier):
        output = "FAIL src/x.test.ts\n  Table 'user' doesn't exist\n"

        errors = classifier.analyze(output)

        assert len(errors) == 1
        error = errors[0]
        assert error.file == "src/x.test.ts"
        assert error.type == ErrorType.DATABASE
        assert error.category == Category.DATABASE
        assert error.severity == Severity.CRITICAL
        assert error.matches == ["user"]
        assert error.message == "FAIL src/x.test.ts"

    def test_unclassified_block_stays_unknown(self, classifier: ErrorClassifier):
        errors = classifier.analyze("FAIL src/a.test.js\n  something odd happened\n")

        assert len(errors) == 1
        assert errors[0].type == ErrorType.UNKNOWN
        assert errors[0].category == Category.UNKNOWN
        assert errors[0].severity == Severity.MEDIUM

    def test_lines_before_first_marker_are_ignored(self, classifier: ErrorClassifier):
        output = "Cannot find module 'react'\nPASS src/ok.test.ts\n"
        assert classifier.analyze(output) == []

    def test_later_line_reclassifies_open_record(self, classifier: ErrorClassifier):
        output = "\n".join([
            "FAIL src/App.test.tsx",
            "  Cannot find module 'react' from 'src/App.tsx'",
            "  expect(received).toBe(expected)",
        ])

        errors = classifier.analyze(output)

        assert len(errors) == 1
        assert errors[0].type == ErrorType.TESTING
        assert errors[0].severity == Severity.LOW

    def test_each_marker_opens_new_record(self, classifier: ErrorClassifier):
        output = "\n".join([
            "FAIL src/a.test.ts",
            "  Cannot find module 'react'",
            "FAIL src/b.test.ts",
            "  Object is possibly 'null'",
        ])

        errors = classifier.analyze(output)

        assert [e.file for e in errors] == ["src/a.test.ts", "src/b.test.ts"]
        assert [e.type for e in errors] == [ErrorType.IMPORT, ErrorType.TYPESCRIPT]

    def test_stack_frame_sets_location_and_starts_trace(self, classifier: ErrorClassifier):
        output = "\n".join([
            "✕ renders the header",
            "  TypeError: Cannot read property 'name' of undefined",
            "    at Header (src/Header.tsx:12:5)",
            "    at renderWithHooks (node_modules/react-dom.js:1:1)",
        ])

        errors = classifier.analyze(output)

        assert len(errors) == 1
        error = errors[0]
        assert error.file == "src/Header.tsx"
        assert error.line_number == 1
        assert error.column == 1
        assert error.stack_trace == [
            "at Header (src/Header.tsx:12:5)",
            "at renderWithHooks (node_modules/react-dom.js:1:1)",
        ]
        assert error.type == ErrorType.REACT

    def test_marker_file_is_not_overwritten_by_frame(self, classifier: ErrorClassifier):
        output = "FAIL src/a.test.tsx\n  at Object.<anonymous> (src/util.ts:3:7)\n"

        error = classifier.analyze(output)[0]

        assert error.file == "src/a.test.tsx"
        assert error.line_number == 3
        assert error.column == 7

    def test_duplicate_blocks_are_dropped(self, classifier: ErrorClassifier):
        block = "FAIL src/a.test.ts\n  Cannot find module 'react'\n"
        assert len(classifier.analyze(block + block)) == 1

    def test_repeated_analysis_is_identical(self, classifier: ErrorClassifier):
        output = (
            "FAIL src/a.test.ts\n"
            "  Cannot find module 'react'\n"
            "    at Object.<anonymous> (src/a.test.ts:3:14)\n"
            "FAIL src/b.test.ts\n"
            "  Table 'user' doesn't exist\n"
            "FAIL src/a.test.ts\n"
            "  Cannot find module 'react'\n"
            "  ✕ renders (12 ms)\n"
        )

        first = classifier.analyze(output)
        second = classifier.analyze(output)

        assert first == second
        keys = [e.dedup_key for e in first]
        assert len(keys) == len(set(keys))

    def test_detail_keeps_classifying_line(self, classifier: ErrorClassifier):
        error = classifier.analyze("FAIL src/a.test.ts\n  Cannot find module './utils'\n")[0]

        assert error.detail == "Cannot find module './utils'"
        assert "./utils" in error.text

    def test_severity_is_fixed_per_type(self, classifier: ErrorClassifier):
        lines = [
            "Cannot find module 'x'",
            "Named export 'Foo' not found",
            "Cannot find name 'foo'",
            "no such table: users",
            "Rendered more hooks than during the previous render",
            "SyntaxError: Unexpected end of input",
            "Unable to find an element",
        ]
        output = "\n".join(f"FAIL src/f{i}.test.ts\n  {line}" for i, line in enumerate(lines))

        errors = classifier.analyze(output)

        expected = {family.type: (family.severity, family.category) for family in DEFAULT_PATTERNS}
        assert len(errors) == len(lines)
        for error in errors:
            assert (error.severity, error.category) == expected[error.type]

    def test_custom_pattern_table(self):
        family = PatternFamily(
            ErrorType.SYNTAX, Category.SYNTAX, Severity.HIGH, (re.compile(r"boom (\w+)"),)
        )
        classifier = ErrorClassifier(patterns=(family,))

        error = classifier.analyze("FAIL src/a.test.ts\n  boom here\n")[0]

        assert error.type == ErrorType.SYNTAX
        assert error.matches == ["here"]


class TestClassify:
    def test_groups_only(self, classifier: ErrorClassifier):
        result = classifier.classify("Unknown column 'emial' in 'field list'")
        assert result.type == ErrorType.DATABASE
        assert result.matches == ["emial", "field list"]

    def test_pattern_without_groups(self, classifier: ErrorClassifier):
        result = classifier.classify("Object is possibly 'undefined'.")
        assert result.type == ErrorType.TYPESCRIPT
        assert result.matches == []

    def test_no_match(self, classifier: ErrorClassifier):
        assert classifier.classify("all good") is None


class TestHelpers:
    @pytest.mark.parametrize("line", ["FAIL src/a.test.ts", "✕ does a thing", "× e2e step"])
    def test_failure_markers(self, line: str):
        assert is_failure_marker(line)

    def test_not_a_marker(self):
        assert not is_failure_marker("PASS src/a.test.ts")

    def test_extract_keeps_tsx_extension(self):
        assert extract_file_path("FAIL src/components/Nav.test.tsx (5.2 s)") == "src/components/Nav.test.tsx"

    def test_extract_error_in(self):
        assert extract_file_path("Error in src/pages/index.jsx") == "src/pages/index.jsx"

    def test_extract_none(self):
        assert extract_file_path("✕ renders correctly") is None

    def test_deduplicate_keeps_first(self):
        first = ErrorRecord(message="m", file="a.ts", type=ErrorType.IMPORT, matches=["x"])
        second = ErrorRecord(message="m", file="a.ts", type=ErrorType.IMPORT, matches=["y"])
        other = ErrorRecord(message="m", file="b.ts", type=ErrorType.IMPORT)

        result = deduplicate([first, second, other])

        assert result == [first, other]
        assert result[0].matches == ["x"]

    def test_generate_summary(self):
        errors = [
            ErrorRecord(message="a", file="a.ts", type=ErrorType.IMPORT,
                        category=Category.DEPENDENCY, severity=Severity.HIGH),
            ErrorRecord(message="b", file="a.ts", type=ErrorType.EXPORT,
                        category=Category.DEPENDENCY, severity=Severity.HIGH),
            ErrorRecord(message="c", file=None),
        ]

        summary = generate_summary(errors)

        assert summary.total == 3
        assert summary.by_category == {"dependency": 2, "unknown": 1}
        assert summary.by_severity == {"high": 2, "medium": 1}
        assert summary.by_type == {"import": 1, "export": 1, "unknown": 1}
        assert summary.files == ["a.ts"]
