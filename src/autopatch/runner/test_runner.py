"""Runs the project's JavaScript test suites as subprocesses."""

from __future__ import annotations

import json
import logging
import re
import subprocess
import threading
import time
from pathlib import Path
from typing import Callable, Protocol

from autopatch.core.config import SuiteCommands
from autopatch.core.models import RunResult, TestSummary

logger = logging.getLogger(__name__)

SUITES = ("jest", "playwright", "storybook")

# Marks the end of one jest run in watch mode.
WATCH_RUN_MARKER = "Test Suites:"

_SUITE_FILE_PATTERNS = (
    ("jest", re.compile(r"\.(?:test|spec)\.(?:js|ts|jsx|tsx)$")),
    ("playwright", re.compile(r"\.e2e\.(?:js|ts)$")),
    ("storybook", re.compile(r"\.stories\.(?:js|ts|jsx|tsx)$")),
)

_FAILING_FILE_PATTERNS = (
    re.compile(r"FAIL\s+(.+\.(?:test|spec)\.(?:tsx|jsx|ts|js))"),
    re.compile(r"(\S+\.e2e\.(?:ts|js))\s+›.*×"),
    re.compile(r"(\S+\.stories\.(?:tsx|jsx|ts|js)).*FAIL"),
    re.compile(r"Error in\s+(.+\.(?:tsx|jsx|ts|js))"),
)


class TestRunner(Protocol):
    """What the orchestration loop needs from a test runner."""

    def run_suite(self, suite: str) -> RunResult: ...

    def run_file(self, path: str) -> RunResult: ...

    def run_all(self) -> dict[str, RunResult]: ...


class SubprocessTestRunner:
    """Shells out to the configured suite commands.

    A command that times out or cannot be started yields a failed
    :class:`RunResult`; nothing here raises for a broken test run.
    """

    def __init__(
        self,
        commands: dict[str, SuiteCommands],
        project_path: Path | None = None,
        suite_timeout_s: float = 300,
        file_timeout_s: float = 120,
    ):
        self.commands = commands
        self.project_path = project_path or Path.cwd()
        self.suite_timeout_s = suite_timeout_s
        self.file_timeout_s = file_timeout_s

    def run_all(self) -> dict[str, RunResult]:
        """Run every configured suite, one after another."""
        logger.info("Running all test suites")
        return {suite: self.run_suite(suite) for suite in self.commands}

    def run_suite(self, suite: str) -> RunResult:
        commands = self.commands.get(suite)
        if commands is None or not commands.all:
            return RunResult(success=False, suite=suite, error=f"Unknown test suite: {suite}")
        return self._execute(commands.all, self.suite_timeout_s, suite=suite)

    def run_file(self, path: str) -> RunResult:
        suite = detect_suite(path)
        commands = self.commands.get(suite) or self.commands.get("jest")
        if commands is None or not commands.single:
            return RunResult(success=False, suite=suite, file=path, error=f"No single-file command for {suite}")
        logger.info("Re-running test: %s", path)
        command = commands.single.replace("{file}", path)
        return self._execute(command, self.file_timeout_s, suite=suite, file=path)

    def watch(
        self,
        callback: Callable[[str], None],
        stop: threading.Event | None = None,
    ) -> int:
        """Stream the jest watch command, handing each completed run to ``callback``.

        Blocks until the process exits or ``stop`` is set; returns the exit code.
        """
        commands = self.commands.get("jest")
        if commands is None or not commands.watch:
            raise ValueError("No watch command configured for jest")

        logger.info("Starting test watch mode: %s", commands.watch)
        proc = subprocess.Popen(
            commands.watch,
            shell=True,
            cwd=self.project_path,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            stdin=subprocess.DEVNULL,
            text=True,
        )
        buffer = ""
        try:
            assert proc.stdout is not None
            for line in proc.stdout:
                buffer += line
                if WATCH_RUN_MARKER in buffer:
                    callback(buffer)
                    buffer = ""
                if stop is not None and stop.is_set():
                    break
        finally:
            if proc.poll() is None:
                proc.terminate()
            proc.wait()
        return proc.returncode

    def _execute(self, command: str, timeout_s: float, suite: str, file: str | None = None) -> RunResult:
        logger.debug("Executing: %s", command)
        start = time.monotonic()
        try:
            proc = subprocess.run(
                command,
                shell=True,
                cwd=self.project_path,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                stdin=subprocess.DEVNULL,
                text=True,
                timeout=timeout_s,
            )
        except subprocess.TimeoutExpired as e:
            return RunResult(
                success=False,
                output=_partial(e.stdout) + _partial(e.stderr),
                duration_ms=_elapsed_ms(start),
                suite=suite,
                file=file,
                error=f"Command timed out after {int(timeout_s * 1000)}ms: {command}",
            )
        except OSError as e:
            return RunResult(
                success=False,
                duration_ms=_elapsed_ms(start),
                suite=suite,
                file=file,
                error=str(e),
            )

        return RunResult(
            success=proc.returncode == 0,
            output=proc.stdout + proc.stderr,
            exit_code=proc.returncode,
            duration_ms=_elapsed_ms(start),
            suite=suite,
            file=file,
            error=proc.stderr,
        )


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)


def _partial(stream: str | bytes | None) -> str:
    """Output captured before a timeout; bytes even in text mode."""
    if stream is None:
        return ""
    if isinstance(stream, bytes):
        return stream.decode("utf-8", errors="replace")
    return stream


def detect_suite(path: str) -> str:
    """Pick the suite that owns a test file by its name; jest by default."""
    for suite, pattern in _SUITE_FILE_PATTERNS:
        if pattern.search(path):
            return suite
    return "jest"


def extract_failing_files(output: str) -> list[str]:
    """Failing test files named in runner output, in first-seen order."""
    files: list[str] = []
    for line in output.split("\n"):
        for pattern in _FAILING_FILE_PATTERNS:
            match = pattern.search(line)
            if match:
                if match.group(1) not in files:
                    files.append(match.group(1))
                break
    return files


def summarize(results: dict[str, RunResult]) -> TestSummary:
    summary = TestSummary()
    for result in results.values():
        summary.total_suites += 1
        summary.total_duration_ms += result.duration_ms
        if result.success:
            summary.passed_suites += 1
        else:
            summary.failed_suites += 1
    return summary


def detect_test_scripts(project_path: Path) -> dict[str, bool]:
    """Which suites ``package.json`` declares a script for."""
    found = {suite: False for suite in SUITES}
    package_json = project_path / "package.json"
    try:
        scripts = json.loads(package_json.read_text(encoding="utf-8")).get("scripts", {})
    except (OSError, json.JSONDecodeError) as e:
        logger.warning("Could not read package.json: %s", e)
        return found

    found["jest"] = bool(scripts.get("test") or scripts.get("test:unit"))
    found["playwright"] = bool(scripts.get("test:e2e") or scripts.get("test:playwright"))
    found["storybook"] = bool(scripts.get("test:storybook"))
    return found
