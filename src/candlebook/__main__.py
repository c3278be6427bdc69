from candlebook.cli.app import run

run()
