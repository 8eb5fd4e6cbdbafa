"""autopatch watch command."""

from __future__ import annotations

import sys
import threading
from pathlib import Path

import click

from autopatch.core.config import ConfigError, load_config
from autopatch.core.output import console, error_console, print_apply_batch, setup_logging
from autopatch.orchestrator.loop import build_loop


@click.command()
@click.option("--project", type=click.Path(exists=True, file_okay=False, path_type=Path),
              help="Project root (defaults to the current directory)")
@click.option("--env", type=click.Choice(["development", "test", "production"]),
              help="Configuration profile (overrides AUTOPATCH_ENV)")
def watch(project: Path | None, env: str | None):
    """Watch tests and auto-patch each failing run.

    Streams the jest watch command; every completed run is classified and
    patched in place. Stop with Ctrl-C.
    """
    project_path = (project or Path.cwd()).resolve()
    try:
        config = load_config(project_path, env=env, validate=True)
    except ConfigError as e:
        error_console.print(f"\n  [red]{e}[/red]\n")
        sys.exit(1)

    setup_logging(config.logging.level)
    stop = threading.Event()
    try:
        loop = build_loop(config, project_path, cancel=stop)
    except OSError as e:
        error_console.print(f"\n  [red]Auto-patch system failed: {e}[/red]\n")
        sys.exit(1)

    def on_run(output: str) -> None:
        batch = loop.patch_watch_output(output)
        if batch is not None:
            print_apply_batch(batch)

    console.print("\n  [bold]Starting auto-patch watch mode[/bold]  [dim](Ctrl-C to stop)[/dim]\n")
    try:
        loop.runner.watch(on_run, stop=stop)
    except KeyboardInterrupt:
        stop.set()
        console.print("\n  [dim]Watch mode stopped.[/dim]\n")
    except (OSError, ValueError) as e:
        error_console.print(f"\n  [red]Failed to start watch mode: {e}[/red]\n")
        sys.exit(1)
