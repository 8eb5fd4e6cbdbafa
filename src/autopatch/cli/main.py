"""Click CLI entry point for autopatch."""

from __future__ import annotations

import click

from autopatch._version import __version__


@click.group(invoke_without_command=True)
@click.version_option(version=__version__, prog_name="autopatch")
@click.pass_context
def cli(ctx: click.Context):
    """autopatch - automated repair loop for failing test suites.

    Runs your tests, classifies the failures, patches what it can,
    and re-runs the failing files. With no command, runs `autopatch run`.
    """
    if ctx.invoked_subcommand is None:
        ctx.invoke(run)


# Import and register subcommands
from autopatch.cli.run_cmd import run, test  # noqa: E402
from autopatch.cli.watch_cmd import watch  # noqa: E402
from autopatch.cli.cleanup_cmd import cleanup  # noqa: E402

cli.add_command(run)
cli.add_command(test)
cli.add_command(watch)
cli.add_command(cleanup)


if __name__ == "__main__":
    cli()
