"""Allow ``python -m lineage_engine.cli``."""

from lineage_engine.cli.app import app

app()
