from coveralls_report.cli import cli

cli()
