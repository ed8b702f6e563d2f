"""
Unit tests for structured logging setup.
"""

from __future__ import annotations

import json
import logging

import pytest
import structlog

from personaflux.config import LoggingConfig
from personaflux.telemetry import setup_logging


@pytest.fixture
def restore_logging():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    structlog.reset_defaults()
    structlog.contextvars.clear_contextvars()
    root.handlers[:] = handlers
    root.setLevel(level)


class TestSetupLogging:
    def test_sets_level_and_single_handler(self, restore_logging):
        setup_logging(LoggingConfig(level="debug", format="console"))
        root = logging.getLogger()
        assert root.level == logging.DEBUG
        assert len(root.handlers) == 1

    def test_repeat_calls_replace_handler(self, restore_logging):
        setup_logging(LoggingConfig())
        setup_logging(LoggingConfig())
        assert len(logging.getLogger().handlers) == 1

    def test_json_output_carries_system(self, restore_logging, capsys):
        setup_logging(LoggingConfig(level="INFO", format="json"), instance_id="node-a")
        structlog.get_logger().bind(system="evolution").info("evolution_started", agent_id="a1")
        line = capsys.readouterr().out.strip().splitlines()[-1]
        record = json.loads(line)
        assert record["event"] == "evolution_started"
        assert record["system"] == "evolution"
        assert record["agent_id"] == "a1"
        assert record["instance_id"] == "node-a"
        assert record["level"] == "info"
