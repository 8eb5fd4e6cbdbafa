"""Markdown patch-cycle report (``patch_cycle_log.md``)."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

from autopatch.core.models import (
    ApplyResult,
    ApplyResultType,
    ErrorRecord,
    ErrorSummary,
    PatchCandidate,
    RunResult,
    iso_timestamp,
)

logger = logging.getLogger(__name__)

REPORT_FILENAME = "patch_cycle_log.md"
MESSAGE_LIMIT = 300

SEVERITY_EMOJI = {
    "critical": "🔥",
    "high": "🔴",
    "medium": "🟡",
    "low": "🟢",
}

PERFORMANCE_LABELS = (
    ("total", "Total Execution Time"),
    ("test", "Test Execution Time"),
    ("analysis", "Error Analysis Time"),
    ("generation", "Patch Generation Time"),
    ("application", "Patch Application Time"),
    ("retest", "Re-test Time"),
)


@dataclass
class SessionInfo:
    session_id: str
    start_time: str
    end_time: str | None = None
    duration_ms: int = 0


@dataclass
class ReportData:
    """Everything the report renders, gathered at the end of a run."""

    session: SessionInfo
    test_results: dict[str, RunResult] = field(default_factory=dict)
    errors: list[ErrorRecord] = field(default_factory=list)
    error_summary: ErrorSummary = field(default_factory=ErrorSummary)
    patches: list[PatchCandidate] = field(default_factory=list)
    results: list[ApplyResult] = field(default_factory=list)
    performance: dict[str, int] | None = None

    @property
    def success_count(self) -> int:
        return sum(1 for r in self.results if r.success)

    @property
    def failure_count(self) -> int:
        return len(self.results) - self.success_count


def format_duration(ms: int | float | None) -> str:
    if not ms:
        return "0ms"
    if ms < 1000:
        return f"{int(ms)}ms"
    if ms < 60_000:
        return f"{ms / 1000:.1f}s"
    return f"{ms / 60_000:.1f}m"


def success_rate(data: ReportData) -> float:
    if not data.results:
        return 0.0
    return data.success_count / len(data.results) * 100


def build_markdown_report(data: ReportData, max_errors: int = 20, max_patches: int = 15) -> str:
    s = data.session
    sections = [
        "# Auto-Patch Cycle Log",
        "",
        "## Session Information",
        f"- **Session ID**: {s.session_id}",
        f"- **Start Time**: {s.start_time}",
        f"- **End Time**: {s.end_time or 'In Progress'}",
        f"- **Duration**: {format_duration(s.duration_ms)}",
        "",
        "## Executive Summary",
        f"- **Total Errors Detected**: {len(data.errors)}",
        f"- **Patches Generated**: {len(data.patches)}",
        f"- **Successful Patches**: {data.success_count}",
        f"- **Failed Patches**: {data.failure_count}",
        f"- **Success Rate**: {success_rate(data):.1f}%",
        "",
        "## Test Execution Results",
        "",
        _test_results_table(data.test_results),
        "## Error Analysis",
        "",
        "### Error Distribution by Category",
        _distribution_table(data.error_summary.by_category),
        "### Error Distribution by Severity",
        _distribution_table(data.error_summary.by_severity),
        "### Detailed Error List",
        _error_list(data.errors[:max_errors]),
        "## Patch Generation & Application",
        "",
        "### Patch Strategy Success Rates",
        _strategy_table(data.results),
        "### Detailed Patch Results",
        _patch_list(data.results[:max_patches]),
        "## Performance Metrics",
        _performance_section(data),
        "",
        "## Manual Intervention Required",
        "",
        _manual_section(data.results),
        "## Recommendations",
        "",
        _recommendations(data),
        "",
        "---",
        f"*Generated on {iso_timestamp()} by Auto-Patch System*",
        "",
    ]
    return "\n".join(sections)


def write_report(path: Path, data: ReportData, max_errors: int = 20, max_patches: int = 15) -> Path:
    """Render the report and overwrite ``path`` with it."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(build_markdown_report(data, max_errors, max_patches), encoding="utf-8")
    logger.info("Patch cycle log generated: %s", path)
    return path


def _test_results_table(results: dict[str, RunResult]) -> str:
    rows = [
        "| Test Suite | Status | Duration | Errors |",
        "|------------|--------|----------|--------|",
    ]
    for suite, result in results.items():
        status = "✅ PASS" if result.success else "❌ FAIL"
        errors = "-" if result.success else "🔴"
        rows.append(f"| {suite} | {status} | {format_duration(result.duration_ms)} | {errors} |")
    return "\n".join(rows) + "\n"


def _distribution_table(distribution: dict[str, int]) -> str:
    rows = [
        "| Type | Count | Percentage |",
        "|------|-------|------------|",
    ]
    total = sum(distribution.values())
    for name, count in distribution.items():
        pct = count / total * 100 if total else 0.0
        rows.append(f"| {name} | {count} | {pct:.1f}% |")
    return "\n".join(rows) + "\n"


def _error_list(errors: list[ErrorRecord]) -> str:
    blocks = []
    for i, error in enumerate(errors, 1):
        message = error.message[:MESSAGE_LIMIT]
        if len(error.message) > MESSAGE_LIMIT:
            message += "..."
        severity = error.severity.value
        lines = [
            f"#### Error {i}: {error.type.value}",
            "",
            f"- **File**: `{error.file or 'Unknown'}`",
            f"- **Category**: {error.category.value}",
            f"- **Severity**: {SEVERITY_EMOJI.get(severity, '⚪')} {severity}",
            f"- **Message**: {message}",
        ]
        if error.line_number:
            lines.append(f"- **Line**: {error.line_number}")
        blocks.append("\n".join(lines) + "\n")
    return "\n".join(blocks)


def _strategy_table(results: list[ApplyResult]) -> str:
    stats: dict[str, list[int]] = {}
    for result in results:
        entry = stats.setdefault(result.patch.strategy or "unknown", [0, 0])
        entry[1] += 1
        if result.success:
            entry[0] += 1

    rows = [
        "| Strategy | Success | Total | Rate |",
        "|----------|---------|-------|------|",
    ]
    for strategy, (ok, total) in stats.items():
        rate = ok / total * 100 if total else 0.0
        rows.append(f"| {strategy} | {ok} | {total} | {rate:.1f}% |")
    return "\n".join(rows) + "\n"


def _patch_list(results: list[ApplyResult]) -> str:
    blocks = []
    for i, result in enumerate(results, 1):
        status = "✅ SUCCESS" if result.success else "❌ FAILED"
        lines = [
            f"#### Patch {i}: {status}",
            "",
            f"- **Strategy**: {result.patch.strategy or 'Unknown'}",
            f"- **Error Type**: {result.patch.error.type.value}",
            f"- **File**: `{result.patch.error.file or 'Unknown'}`",
            f"- **Type**: {result.type.value}",
        ]
        if result.message:
            lines.append(f"- **Message**: {result.message}")
        if result.error:
            lines.append(f"- **Error**: {result.error}")
        if result.changes_applied:
            lines.append(f"- **Changes**: {result.changes_applied} modifications")
        blocks.append("\n".join(lines) + "\n")
    return "\n".join(blocks)


def _performance_section(data: ReportData) -> str:
    perf = data.performance
    if not perf:
        return "Performance data not available."

    lines = [
        f"- **{label}**: {format_duration(perf.get(key, 0))}"
        for key, label in PERFORMANCE_LABELS
    ]
    total = perf.get("total", 0)
    if data.errors:
        lines.append(f"- **Average Time per Error**: {format_duration(total / len(data.errors))}")
    if data.patches:
        lines.append(f"- **Average Time per Patch**: {format_duration(total / len(data.patches))}")
    return "\n".join(lines)


def _manual_section(results: list[ApplyResult]) -> str:
    manual = [r for r in results if not r.success or r.type == ApplyResultType.SUGGESTION]
    if not manual:
        return "✅ No manual intervention required. All patches were applied successfully.\n"

    lines = [f"⚠️ **{len(manual)} items require manual attention:**", ""]
    for i, result in enumerate(manual, 1):
        lines.append(f"{i}. **File**: `{result.patch.error.file or 'Unknown'}`")
        lines.append(f"   **Strategy**: {result.patch.strategy or 'Unknown'}")
        lines.append(f"   **Issue**: {result.message or result.error or 'Unknown issue'}")
        lines.append("")
    return "\n".join(lines) + "\n"


def build_recommendations(data: ReportData) -> list[str]:
    recommendations = []
    summary = data.error_summary

    if summary.by_type.get("import", 0) > 5:
        recommendations.append("Consider reviewing import organization and dependency management")
    if summary.by_type.get("typescript", 0) > 3:
        recommendations.append("Review TypeScript configuration and type definitions")
    if summary.by_severity.get("critical", 0) > 0:
        recommendations.append("⚠️ Critical errors detected - immediate attention required")
    if data.results and success_rate(data) < 70:
        recommendations.append("Low patch success rate - consider improving error patterns or manual review")

    if not recommendations:
        recommendations.append("✅ System is performing well. Consider running auto-patch regularly.")
    return recommendations


def _recommendations(data: ReportData) -> str:
    return "\n".join(f"{i}. {rec}" for i, rec in enumerate(build_recommendations(data), 1))
