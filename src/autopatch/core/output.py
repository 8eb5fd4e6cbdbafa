"""Rich terminal formatting for autopatch output."""

from __future__ import annotations

import logging

from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from autopatch.core.models import ApplyBatch, ApplyResult, ApplyResultType, RunResult, SessionResult

console = Console()
error_console = Console(stderr=True)


def setup_logging(level: str = "info") -> None:
    """Route the ``autopatch`` loggers through a RichHandler."""
    handler = RichHandler(console=error_console, show_path=False, markup=False)
    handler.setFormatter(logging.Formatter("%(message)s"))
    root = logging.getLogger("autopatch")
    root.handlers[:] = [handler]
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    root.propagate = False


def format_ms(ms: int) -> str:
    if ms < 1000:
        return f"{ms}ms"
    return f"{ms / 1000:.1f}s"


def print_test_results(results: dict[str, RunResult]) -> None:
    """Print one row per suite run."""
    table = Table(show_header=True, header_style="bold", box=None, padding=(0, 2))
    table.add_column("Suite")
    table.add_column("Status")
    table.add_column("Duration", justify="right")
    for suite, result in results.items():
        status = "[green]PASS[/green]" if result.success else "[red]FAIL[/red]"
        table.add_row(suite, status, format_ms(result.duration_ms))
    console.print(table)


def print_apply_result(result: ApplyResult) -> None:
    """Print a single patch result."""
    patch = result.patch
    target = patch.error.file or "unknown file"
    if not result.success:
        console.print(f"  [red]❌ {patch.strategy}[/red]  {target}  {result.error}")
    elif result.type == ApplyResultType.SUGGESTION:
        console.print(f"  [yellow]⚠️  {patch.strategy}[/yellow]  {target}")
        console.print(f"     [cyan]-> {result.message}[/cyan]")
    else:
        console.print(f"  [green]✅ {patch.strategy}[/green]  {target}  {result.message}")


def print_apply_batch(batch: ApplyBatch) -> None:
    for result in batch.results:
        print_apply_result(result)
    console.print(
        f"  {batch.success_count}/{len(batch.results)} patches successful"
    )


def print_session_summary(session: SessionResult, report_path: str) -> None:
    """Print the end-of-run summary panel."""
    if session.final_success:
        status = "[green bold]PASSED[/green bold]"
        border = "green"
    elif session.cancelled:
        status = "[yellow bold]CANCELLED[/yellow bold]"
        border = "yellow"
    else:
        status = "[red bold]FAILED[/red bold]"
        border = "red"

    lines = [
        "",
        f"  Cycles Executed:     {len(session.cycles)}",
        f"  Total Patches:       {session.total_patches}",
        f"  Successful Patches:  {session.successful_patches}",
        f"  Final Status:        {status}",
        "",
        f"  Report: {report_path}",
    ]

    manual = [
        r for r in session.all_results
        if not r.success or r.type == ApplyResultType.SUGGESTION
    ]
    if manual:
        lines.append("")
        lines.append(f"  [yellow]{len(manual)} item(s) need manual attention.[/yellow]")

    lines.append("")
    console.print(Panel(
        "\n".join(lines),
        title="[bold]Auto-Patch Summary[/bold]",
        border_style=border,
        padding=(0, 1),
    ))
