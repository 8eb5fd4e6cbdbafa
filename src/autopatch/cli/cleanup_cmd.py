"""autopatch cleanup command."""

from __future__ import annotations

from pathlib import Path

import click

from autopatch.core.config import load_config, resolve_path
from autopatch.core.output import console
from autopatch.fix.applier import PatchApplier


@click.command()
@click.option("--project", type=click.Path(exists=True, file_okay=False, path_type=Path),
              help="Project root (defaults to the current directory)")
@click.option("--days", type=float, help="Delete backups older than this many days")
@click.option("--list", "list_backups", is_flag=True, help="List backups instead of deleting")
@click.option("--stats", is_flag=True, help="Show patch log statistics")
def cleanup(project: Path | None, days: float | None, list_backups: bool, stats: bool):
    """Remove old patch backups.

    Deletion is permanent: a pruned backup can no longer restore its file.
    """
    project_path = (project or Path.cwd()).resolve()
    config = load_config(project_path)
    applier = PatchApplier(
        project_path,
        backup_dir=resolve_path(project_path, config.backup.directory),
        log_path=resolve_path(project_path, config.patch_log),
    )

    if stats:
        _show_stats(applier)
        return

    if list_backups:
        backups = applier.get_backup_info()
        if not backups:
            console.print("\n  No backups found.\n")
            return
        console.print("\n  [bold]Patch Backups[/bold]\n")
        for backup in backups:
            console.print(f"  {backup.file}  [dim]{backup.size / 1024:.1f} KB[/dim]")
        console.print()
        return

    retention = days if days is not None else config.backup.retention_days
    console.print("\n  Cleaning up auto-patch data...")
    removed = applier.clean_backups(retention)
    console.print(f"  Cleaned {removed} old backup files\n")


def _show_stats(applier: PatchApplier) -> None:
    stats = applier.get_patch_statistics()
    console.print("\n  [bold]Patch Statistics[/bold]\n")
    console.print(f"  Batches logged:      {stats.total_attempts}")
    console.print(f"  Successful patches:  [green]{stats.successful_patches}[/green]")
    console.print(f"  Failed patches:      [red]{stats.failed_patches}[/red]")
    if stats.by_strategy:
        console.print("\n  By strategy:")
        for strategy, count in sorted(stats.by_strategy.items(), key=lambda kv: -kv[1]):
            console.print(f"    {strategy:<24} {count}")
    console.print()
