from logship.cli import cli

cli()
