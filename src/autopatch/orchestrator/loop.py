"""Orchestration loop: test, classify, patch, re-test, repeat."""

from __future__ import annotations

import logging
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterator

from autopatch.analysis.classifier import ErrorClassifier, generate_summary
from autopatch.core.config import AutoPatchConfig, get_autopatch_dir, resolve_path
from autopatch.core.models import (
    ApplyBatch,
    CycleResult,
    ErrorRecord,
    ErrorSummary,
    RunResult,
    SessionResult,
    iso_timestamp,
)
from autopatch.fix.applier import PatchApplier
from autopatch.fix.engine import PatchStrategyEngine
from autopatch.fix.tables import DEFAULT_TABLES
from autopatch.reporting.report import REPORT_FILENAME, ReportData, SessionInfo, write_report
from autopatch.reporting.session_log import SessionLog
from autopatch.runner.test_runner import SubprocessTestRunner, TestRunner, extract_failing_files

logger = logging.getLogger(__name__)


@dataclass
class InitialTestOutcome:
    has_failures: bool
    test_results: dict[str, RunResult] = field(default_factory=dict)
    errors: list[ErrorRecord] = field(default_factory=list)
    summary: ErrorSummary = field(default_factory=ErrorSummary)
    failing_files: list[str] = field(default_factory=list)


@dataclass
class RetestOutcome:
    all_passed: bool
    output: str = ""
    results: list[RunResult] = field(default_factory=list)


@dataclass
class RunOutcome:
    """What ``OrchestrationLoop.run`` hands back to the caller."""

    session: SessionResult
    report: ReportData
    report_path: Path

    @property
    def success(self) -> bool:
        return self.session.final_success


class PhaseTimer:
    """Accumulates wall-clock milliseconds per named phase."""

    def __init__(self) -> None:
        self._start = time.monotonic()
        self.durations: dict[str, int] = {}

    @contextmanager
    def phase(self, name: str) -> Iterator[None]:
        start = time.monotonic()
        try:
            yield
        finally:
            elapsed = int((time.monotonic() - start) * 1000)
            self.durations[name] = self.durations.get(name, 0) + elapsed

    def elapsed_ms(self) -> int:
        return int((time.monotonic() - self._start) * 1000)

    def metrics(self) -> dict[str, int]:
        return {"total": self.elapsed_ms(), **self.durations}


class OrchestrationLoop:
    """Drives bounded patch cycles until the failing tests pass.

    Each cycle generates patches for the current errors, applies them, and
    re-runs only the test files those errors named.  The loop halts early
    when nothing could be generated or applied.  A set ``cancel`` event
    stops the loop at the next phase boundary; an in-flight patch is never
    interrupted.
    """

    def __init__(
        self,
        config: AutoPatchConfig,
        runner: TestRunner,
        classifier: ErrorClassifier,
        engine: PatchStrategyEngine,
        applier: PatchApplier,
        session_log: SessionLog,
        report_path: Path | None = None,
        cancel: threading.Event | None = None,
    ):
        self.config = config
        self.runner = runner
        self.classifier = classifier
        self.engine = engine
        self.applier = applier
        self.session_log = session_log
        self.report_path = report_path or session_log.log_dir / REPORT_FILENAME
        self.cancel = cancel
        self.timer = PhaseTimer()

    @property
    def cancelled(self) -> bool:
        return self.cancel is not None and self.cancel.is_set()

    def run(self) -> RunOutcome:
        """Run the whole session and write the report.

        Failing to converge is reported through the outcome, not raised.
        Infrastructure errors are logged as ``system_error`` and re-raised.
        """
        logger.info(
            "Starting auto-patch: max attempts %d, timeout %dms",
            self.config.max_attempts, self.config.timeout_ms,
        )
        try:
            initial = self.run_initial_tests()
            if not initial.has_failures:
                logger.info("All tests passing, no patches needed")
                session = SessionResult(final_success=True)
            else:
                session = self.execute_patch_cycles(initial.errors)
            session.test_results = initial.test_results
            session.initial_errors = initial.errors
            return self._finish(session, initial.summary)
        except Exception as e:
            logger.error("Auto-patch run failed: %s", e)
            self.session_log.log_system_error(e)
            raise

    def run_initial_tests(self) -> InitialTestOutcome:
        logger.info("Running initial test suite")
        with self.timer.phase("test"):
            results = self.runner.run_all()
        self.session_log.log_test_execution(results)

        if all(r.success for r in results.values()):
            return InitialTestOutcome(has_failures=False, test_results=results)

        output = "\n".join(r.output for r in results.values())
        with self.timer.phase("analysis"):
            errors = self.classifier.analyze(output)
            summary = generate_summary(errors)
        logger.info("Found %d errors across %d files", len(errors), len(summary.files))
        self.session_log.log_error_analysis(errors, summary)

        return InitialTestOutcome(
            has_failures=True,
            test_results=results,
            errors=errors,
            summary=summary,
            failing_files=extract_failing_files(output),
        )

    def execute_patch_cycles(self, errors: list[ErrorRecord]) -> SessionResult:
        session = SessionResult()
        current = errors
        attempt = 1
        max_attempts = self.config.max_attempts

        while attempt <= max_attempts and current:
            if self.cancelled:
                session.cancelled = True
                break

            logger.info("Starting patch cycle %d/%d with %d errors", attempt, max_attempts, len(current))
            cycle = self.execute_cycle(current, attempt)
            session.cycles.append(cycle)
            session.total_patches += len(cycle.patch_results.results)
            session.successful_patches += cycle.patch_results.success_count

            if self.cancelled:
                session.cancelled = True
                break

            if cycle.patch_results.success_count == 0:
                logger.warning("No patches applied successfully, stopping cycles")
                break

            retest = self.retest(cycle.failing_files)
            if retest.all_passed:
                logger.info("All tests now passing")
                session.final_success = True
                break

            with self.timer.phase("analysis"):
                current = self.classifier.analyze(retest.output)
            logger.info("%d errors remaining", len(current))
            attempt += 1

        return session

    def execute_cycle(self, errors: list[ErrorRecord], attempt: int) -> CycleResult:
        """Generate and apply patches for one attempt; no re-testing."""
        limited = errors[: self.config.error_analysis.max_errors_per_cycle]
        cycle = CycleResult(attempt=attempt, errors=limited)

        with self.timer.phase("generation"):
            cycle.patches = self.engine.generate_patches(limited)
        self.session_log.log_patch_generation(cycle.patches)

        if not cycle.patches:
            logger.warning("No patches could be generated")
            return cycle

        if self.cancelled:
            return cycle

        logger.info("Applying %d patches", len(cycle.patches))
        with self.timer.phase("application"):
            cycle.patch_results = self.applier.apply_patches(cycle.patches, attempt)
        self.session_log.log_patch_application(cycle.patch_results, attempt)

        for error in limited:
            if error.file and error.file not in cycle.failing_files:
                cycle.failing_files.append(error.file)
        return cycle

    def retest(self, files: list[str]) -> RetestOutcome:
        """Re-run only ``files``; an empty list counts as all passed."""
        if not files:
            return RetestOutcome(all_passed=True)

        logger.info("Re-testing %d files", len(files))
        with self.timer.phase("retest"):
            results = [self.runner.run_file(f) for f in files]
        return RetestOutcome(
            all_passed=all(r.success for r in results),
            output="\n".join(r.output for r in results),
            results=results,
        )

    def patch_watch_output(self, output: str) -> ApplyBatch | None:
        """Classify one watch-mode run and apply whatever patches it yields."""
        errors = self.classifier.analyze(output)
        if not errors:
            return None

        logger.info("Detected %d new errors, auto-patching", len(errors))
        patches = self.engine.generate_patches(errors)
        if not patches:
            return None
        batch = self.applier.apply_patches(patches, attempt=1)
        self.session_log.log_patch_application(batch, 1)
        return batch

    def _finish(self, session: SessionResult, summary: ErrorSummary) -> RunOutcome:
        report = ReportData(
            session=SessionInfo(
                session_id=self.session_log.session_id,
                start_time=self.session_log.start_time,
                end_time=iso_timestamp(),
                duration_ms=self.timer.elapsed_ms(),
            ),
            test_results=session.test_results,
            errors=session.initial_errors,
            error_summary=summary,
            patches=[p for c in session.cycles for p in c.patches],
            results=session.all_results,
            performance=self.timer.metrics(),
        )
        log_cfg = self.config.logging
        write_report(
            self.report_path,
            report,
            max_errors=log_cfg.max_errors_in_report,
            max_patches=log_cfg.max_patches_in_report,
        )
        self.session_log.log_cycle_completion({**session.to_dict(), "cancelled": session.cancelled})
        return RunOutcome(session=session, report=report, report_path=self.report_path)


def build_loop(
    config: AutoPatchConfig,
    project_path: Path | None = None,
    cancel: threading.Event | None = None,
) -> OrchestrationLoop:
    """Wire the default collaborators from ``config``."""
    project_path = (project_path or Path.cwd()).resolve()
    get_autopatch_dir(project_path)

    runner = SubprocessTestRunner(
        config.test_runner.commands,
        project_path,
        suite_timeout_s=config.timeout_ms / 1000,
        file_timeout_s=config.test_runner.default_timeout_ms / 1000,
    )
    pg = config.patch_generation
    tables = DEFAULT_TABLES.extended(
        import_corrections=pg.import_corrections,
        typo_corrections=pg.typo_corrections,
        table_name_corrections=pg.table_name_corrections,
    )
    thresholds = None
    if config.error_analysis.enforce_thresholds:
        thresholds = dict(config.error_analysis.confidence_thresholds)

    applier = PatchApplier(
        project_path,
        backup_dir=resolve_path(project_path, config.backup.directory),
        log_path=resolve_path(project_path, config.patch_log),
        confidence_thresholds=thresholds,
    )
    session_log = SessionLog(
        resolve_path(project_path, config.logging.directory),
        include_stack_traces=config.logging.include_stack_traces,
    )
    return OrchestrationLoop(
        config,
        runner,
        ErrorClassifier(),
        PatchStrategyEngine(project_path, tables=tables),
        applier,
        session_log,
        cancel=cancel,
    )
