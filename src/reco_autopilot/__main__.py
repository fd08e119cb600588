from reco_autopilot.cli.main import cli

cli()
