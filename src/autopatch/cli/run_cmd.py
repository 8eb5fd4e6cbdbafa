"""autopatch run and test commands."""

from __future__ import annotations

import signal
import sys
import threading
from pathlib import Path

import click

from autopatch.core.config import ConfigError, load_config
from autopatch.core.output import (
    console,
    error_console,
    format_ms,
    print_session_summary,
    print_test_results,
    setup_logging,
)
from autopatch.orchestrator.loop import build_loop
from autopatch.runner.test_runner import detect_test_scripts, summarize


def _run_session(project: Path | None, env: str | None, overrides: dict, strict: bool) -> None:
    project_path = (project or Path.cwd()).resolve()
    try:
        config = load_config(project_path, env=env, overrides=overrides, validate=True)
    except ConfigError as e:
        error_console.print(f"\n  [red]{e}[/red]\n")
        sys.exit(1)

    setup_logging(config.logging.level)

    if not any(detect_test_scripts(project_path).values()):
        console.print("  [yellow]No test scripts found in package.json[/yellow]")

    # Ctrl-C stops at the next phase boundary instead of mid-edit.
    cancel = threading.Event()
    previous = signal.signal(signal.SIGINT, lambda *_: cancel.set())
    try:
        loop = build_loop(config, project_path, cancel=cancel)
        console.print(f"\n  [bold]Auto-patch[/bold]  max attempts {config.max_attempts}\n")
        outcome = loop.run()
    except OSError as e:
        error_console.print(f"\n  [red]Auto-patch system failed: {e}[/red]\n")
        sys.exit(1)
    finally:
        signal.signal(signal.SIGINT, previous)

    console.print()
    print_test_results(outcome.session.test_results)
    if outcome.session.test_results:
        totals = summarize(outcome.session.test_results)
        console.print(
            f"  {totals.passed_suites}/{totals.total_suites} suites passed"
            f" in {format_ms(totals.total_duration_ms)}\n"
        )
    print_session_summary(outcome.session, str(outcome.report_path))

    if strict and not outcome.success:
        sys.exit(1)


@click.command()
@click.option("--project", type=click.Path(exists=True, file_okay=False, path_type=Path),
              help="Project root (defaults to the current directory)")
@click.option("--env", type=click.Choice(["development", "test", "production"]),
              help="Configuration profile (overrides AUTOPATCH_ENV)")
@click.option("--max-attempts", type=int, help="Maximum patch cycles")
@click.option("--strict", is_flag=True, help="Exit non-zero if tests still fail")
def run(project: Path | None, env: str | None, max_attempts: int | None, strict: bool):
    """Run tests and patch failures until they pass or attempts run out."""
    overrides = {}
    if max_attempts is not None:
        overrides["max_attempts"] = max_attempts
    _run_session(project, env, overrides, strict)


@click.command()
@click.option("--project", type=click.Path(exists=True, file_okay=False, path_type=Path),
              help="Project root (defaults to the current directory)")
@click.option("--env", type=click.Choice(["development", "test", "production"]),
              help="Configuration profile (overrides AUTOPATCH_ENV)")
@click.option("--strict", is_flag=True, help="Exit non-zero if tests still fail")
def test(project: Path | None, env: str | None, strict: bool):
    """Single-attempt run: one patch cycle, then stop."""
    _run_session(project, env, {"max_attempts": 1}, strict)
