"""Tests for logging configuration."""

import json
import logging

from leasecore.logging_config import JsonFormatter, get_logging_config


class TestLoggingConfig:
    def test_console_format_by_default(self):
        config = get_logging_config("debug", "console")
        assert config["loggers"]["leasecore"]["level"] == "DEBUG"
        assert "format" in config["formatters"]["default"]

    def test_json_format(self):
        config = get_logging_config("INFO", "json")
        assert config["formatters"]["default"]["()"] == "leasecore.logging_config.JsonFormatter"


class TestJsonFormatter:
    def test_one_object_per_record(self):
        record = logging.LogRecord(
            "leasecore.services.ledger.poster", logging.INFO, __file__, 1,
            "Posted %s", ("JE202503001",), None,
        )
        payload = json.loads(JsonFormatter().format(record))
        assert payload["level"] == "INFO"
        assert payload["logger"] == "leasecore.services.ledger.poster"
        assert payload["message"] == "Posted JE202503001"
        assert "exception" not in payload
