"""Allow ``python -m nanobatch``."""

from nanobatch.cli import app

app()
