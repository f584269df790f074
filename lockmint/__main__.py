from lockmint.cli import cli

cli()
