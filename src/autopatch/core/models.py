"""Shared data models used across autopatch modules."""

from __future__ import annotations

import enum
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone


class ErrorType(enum.Enum):
    IMPORT = "import"
    EXPORT = "export"
    TYPESCRIPT = "typescript"
    DATABASE = "database"
    REACT = "react"
    SYNTAX = "syntax"
    TESTING = "testing"
    UNKNOWN = "unknown"


class Category(enum.Enum):
    DEPENDENCY = "dependency"
    TYPES = "types"
    DATABASE = "database"
    REACT = "react"
    SYNTAX = "syntax"
    ASSERTION = "assertion"
    UNKNOWN = "unknown"


class Severity(enum.Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def weight(self) -> int:
        return _SEVERITY_WEIGHTS[self]


_SEVERITY_WEIGHTS = {
    Severity.CRITICAL: 3,
    Severity.HIGH: 2,
    Severity.MEDIUM: 1,
    Severity.LOW: 0,
}


class ApplyResultType(enum.Enum):
    APPLIED = "applied"
    SUGGESTION = "suggestion"


def iso_timestamp() -> str:
    """UTC ISO-8601 timestamp, e.g. ``2026-10-19T05:15:00.123456Z``."""
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


def file_safe_timestamp() -> str:
    """ISO-8601 timestamp with ``:`` and ``.`` dashed for use in file names."""
    return iso_timestamp().replace(":", "-").replace(".", "-")


@dataclass
class ErrorRecord:
    """A single failure detected in test-runner output."""

    message: str
    file: str | None = None
    type: ErrorType = ErrorType.UNKNOWN
    category: Category = Category.UNKNOWN
    severity: Severity = Severity.MEDIUM
    matches: list[str] = field(default_factory=list)
    stack_trace: list[str] = field(default_factory=list)
    line_number: int | None = None
    column: int | None = None
    # Output line that produced the current classification.
    detail: str = ""

    @property
    def text(self) -> str:
        """Marker line plus the classifying line, for message matching."""
        if self.detail and self.detail != self.message:
            return f"{self.message}\n{self.detail}"
        return self.message

    @property
    def dedup_key(self) -> tuple[str | None, ErrorType, str]:
        return (self.file, self.type, self.message)

    def to_dict(self) -> dict:
        return {
            "file": self.file,
            "type": self.type.value,
            "category": self.category.value,
            "severity": self.severity.value,
            "message": self.message,
            "matches": list(self.matches),
            "lineNumber": self.line_number,
            "column": self.column,
        }


@dataclass
class ErrorSummary:
    """Tally of classified errors."""

    total: int = 0
    by_category: dict[str, int] = field(default_factory=dict)
    by_severity: dict[str, int] = field(default_factory=dict)
    by_type: dict[str, int] = field(default_factory=dict)
    files: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "total": self.total,
            "byCategory": dict(self.by_category),
            "bySeverity": dict(self.by_severity),
            "byType": dict(self.by_type),
            "files": list(self.files),
        }


@dataclass
class Replacement:
    """Pattern replacement inside a file. ``count=0`` replaces every match."""

    old: str | re.Pattern
    new: str
    count: int = 0


@dataclass
class FileEdit:
    """One edit to one file.

    Exactly one shape must be populated: ``content`` (whole-file write),
    ``insert_at`` + ``insert_content`` (line insertion), or ``replace``.
    """

    file: str
    content: str | None = None
    insert_at: int | None = None
    insert_content: str | None = None
    replace: Replacement | None = None

    @property
    def shape(self) -> str | None:
        shapes = []
        if self.content is not None:
            shapes.append("content")
        if self.insert_at is not None or self.insert_content is not None:
            if self.insert_at is None or self.insert_content is None:
                return None
            shapes.append("insert")
        if self.replace is not None:
            shapes.append("replace")
        if len(shapes) != 1:
            return None
        return shapes[0]


@dataclass
class PatchCandidate:
    """A proposed remedy for one error."""

    error: ErrorRecord
    strategy: str
    confidence: float
    changes: list[FileEdit] = field(default_factory=list)
    description: str = ""
    suggestion: str = ""

    @property
    def is_suggestion(self) -> bool:
        return not self.changes


@dataclass
class BackupRecord:
    """Snapshot of a file taken right before a patch touched it."""

    original_path: str
    backup_path: str
    timestamp: str
    attempt: int


@dataclass
class ApplyResult:
    """Outcome of attempting one patch."""

    success: bool
    patch: PatchCandidate
    attempt: int
    type: ApplyResultType = ApplyResultType.APPLIED
    backups: list[BackupRecord] = field(default_factory=list)
    changes_applied: int = 0
    error: str | None = None
    message: str = ""

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "type": self.type.value,
            "error": self.patch.error.type.value,
            "strategy": self.patch.strategy,
            "file": self.patch.error.file,
            "message": self.message or self.error,
            "changes": self.changes_applied,
        }


@dataclass
class ApplyBatch:
    """All results of one ``apply_patches`` call."""

    results: list[ApplyResult] = field(default_factory=list)

    @property
    def applied_patches(self) -> list[PatchCandidate]:
        return [r.patch for r in self.results if r.success]

    @property
    def success_count(self) -> int:
        return sum(1 for r in self.results if r.success)

    @property
    def failure_count(self) -> int:
        return sum(1 for r in self.results if not r.success)


@dataclass
class RunResult:
    """Result of one test-command invocation."""

    success: bool
    output: str = ""
    exit_code: int | None = None
    duration_ms: int = 0
    suite: str = ""
    file: str | None = None
    error: str = ""

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "exitCode": self.exit_code,
            "duration": self.duration_ms,
            "suite": self.suite,
            "file": self.file,
            "error": self.error,
        }


@dataclass
class TestSummary:
    """Aggregate over a set of suite runs."""

    __test__ = False

    total_suites: int = 0
    passed_suites: int = 0
    failed_suites: int = 0
    total_duration_ms: int = 0

    @property
    def success_rate(self) -> float:
        if self.total_suites == 0:
            return 0.0
        return self.passed_suites / self.total_suites * 100


@dataclass
class CycleResult:
    """One generate -> apply -> retest iteration."""

    attempt: int
    errors: list[ErrorRecord] = field(default_factory=list)
    patches: list[PatchCandidate] = field(default_factory=list)
    patch_results: ApplyBatch = field(default_factory=ApplyBatch)
    failing_files: list[str] = field(default_factory=list)


@dataclass
class SessionResult:
    """Terminal output of the orchestration loop."""

    cycles: list[CycleResult] = field(default_factory=list)
    final_success: bool = False
    total_patches: int = 0
    successful_patches: int = 0
    test_results: dict[str, RunResult] = field(default_factory=dict)
    initial_errors: list[ErrorRecord] = field(default_factory=list)
    cancelled: bool = False

    @property
    def all_results(self) -> list[ApplyResult]:
        return [r for c in self.cycles for r in c.patch_results.results]

    def to_dict(self) -> dict:
        return {
            "cycles": len(self.cycles),
            "finalSuccess": self.final_success,
            "totalPatches": self.total_patches,
            "successfulPatches": self.successful_patches,
        }
