import io
import json
import logging

import pytest

import spending_anomaly.observability.logging as log_mod
from spending_anomaly.observability.logging import JsonTraceFormatter


class JsonLines:
    """Buffer that a JSON log handler writes into, readable as parsed lines."""

    def __init__(self):
        self.stream = io.StringIO()

    def records(self) -> list[dict]:
        return [json.loads(line) for line in self.stream.getvalue().splitlines() if line]

    def messages(self, level: str | None = None) -> list[str]:
        return [r["message"] for r in self.records() if level is None or r["level"] == level]


@pytest.fixture
def json_logs():
    """Lets a test run the logging setup again; removes its JSON handler afterwards."""
    root = logging.getLogger()
    saved_level, saved_done = root.level, log_mod._setup_done
    log_mod._setup_done = False

    yield JsonLines()

    for handler in root.handlers[:]:
        if isinstance(handler.formatter, JsonTraceFormatter):
            root.removeHandler(handler)
    root.setLevel(saved_level)
    log_mod._setup_done = saved_done
