from autopatch.cli.main import cli

cli()
