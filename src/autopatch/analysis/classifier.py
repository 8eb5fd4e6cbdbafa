"""Error classifier: turns raw test-runner output into ErrorRecords."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from autopatch.analysis.patterns import (
    DEFAULT_PATTERNS,
    FAILURE_MARKERS,
    FILE_PATH_PATTERNS,
    STACK_FRAME_PATTERN,
    PatternFamily,
)
from autopatch.core.models import Category, ErrorRecord, ErrorSummary, ErrorType, Severity

logger = logging.getLogger(__name__)


@dataclass
class Classification:
    type: ErrorType
    category: Category
    severity: Severity
    matches: list[str]


class ErrorClassifier:
    """Parses test output line by line into deduplicated error records.

    A new record opens at every failure marker (``FAIL``, ``✕``, ``×``).
    Every subsequent line of that block is run through the pattern table;
    a hit overwrites the record's classification, so the last matching line
    before the next marker decides the type.
    """

    def __init__(self, patterns: tuple[PatternFamily, ...] = DEFAULT_PATTERNS):
        self.patterns = patterns

    def analyze(self, raw_output: str) -> list[ErrorRecord]:
        """Analyze test output and extract errors."""
        errors: list[ErrorRecord] = []
        current: ErrorRecord | None = None
        in_stack_trace = False

        for raw_line in raw_output.split("\n"):
            line = raw_line.strip()
            if not line:
                continue

            if is_failure_marker(line):
                if current is not None:
                    errors.append(current)
                current = ErrorRecord(message=line, file=extract_file_path(line))
                in_stack_trace = False

            if current is None:
                continue

            classification = self.classify(line)
            if classification:
                current.type = classification.type
                current.category = classification.category
                current.severity = classification.severity
                current.matches = classification.matches
                current.detail = line

            frame = STACK_FRAME_PATTERN.search(line)
            if frame:
                current.file = current.file or frame.group(1)
                current.line_number = int(frame.group(2))
                current.column = int(frame.group(3))
                in_stack_trace = True

            if in_stack_trace:
                current.stack_trace.append(line)

        if current is not None:
            errors.append(current)

        deduped = deduplicate(errors)
        logger.debug("Classified %d errors (%d before dedup)", len(deduped), len(errors))
        return deduped

    def classify(self, message: str) -> Classification | None:
        """Return the first family whose pattern matches ``message``."""
        for family in self.patterns:
            for pattern in family.patterns:
                match = pattern.search(message)
                if match:
                    return Classification(
                        type=family.type,
                        category=family.category,
                        severity=family.severity,
                        matches=[g if g is not None else "" for g in match.groups()],
                    )
        return None


def is_failure_marker(line: str) -> bool:
    return any(marker in line for marker in FAILURE_MARKERS)


def extract_file_path(line: str) -> str | None:
    """Extract a file path from a failure-marker line."""
    for pattern in FILE_PATH_PATTERNS:
        match = pattern.search(line)
        if match:
            return match.group(1)
    return None


def deduplicate(errors: list[ErrorRecord]) -> list[ErrorRecord]:
    """Drop records whose (file, type, message) was already seen."""
    seen: set[tuple] = set()
    unique = []
    for error in errors:
        key = error.dedup_key
        if key in seen:
            continue
        seen.add(key)
        unique.append(error)
    return unique


def generate_summary(errors: list[ErrorRecord]) -> ErrorSummary:
    """Tally errors by category, severity and type."""
    summary = ErrorSummary(total=len(errors))
    for error in errors:
        cat = error.category.value
        sev = error.severity.value
        typ = error.type.value
        summary.by_category[cat] = summary.by_category.get(cat, 0) + 1
        summary.by_severity[sev] = summary.by_severity.get(sev, 0) + 1
        summary.by_type[typ] = summary.by_type.get(typ, 0) + 1
        if error.file and error.file not in summary.files:
            summary.files.append(error.file)
    return summary
