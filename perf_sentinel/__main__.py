"""Allow ``python -m perf_sentinel``."""

from .cli.main import app

app(prog_name="perf-sentinel")
