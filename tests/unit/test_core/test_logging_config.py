"""Tests for logging configuration and formatters."""

import io
import json
import logging

import pytest

from repo_condenser.core.context import run_context
from repo_condenser.core.logging_config import (
    PACKAGE_LOGGER,
    HumanReadableFormatter,
    StructuredFormatter,
    configure_logging,
    get_logger,
)


def _record(message="hello", name="repo_condenser.core.condense.pipeline", **extra):
    record = logging.LogRecord(name, logging.INFO, __file__, 1, message, None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestStructuredFormatter:
    """Tests for JSON-lines output."""

    def test_basic_fields(self):
        """Records carry timestamp, level, logger and message."""
        entry = json.loads(StructuredFormatter().format(_record(correlation_id="run_x")))
        assert entry["level"] == "INFO"
        assert entry["logger"] == "repo_condenser.core.condense.pipeline"
        assert entry["message"] == "hello"
        assert entry["correlation_id"] == "run_x"
        assert "timestamp" in entry

    def test_extra_fields(self):
        """User extras are collected; unserializable values are stringified."""
        entry = json.loads(StructuredFormatter().format(_record(unit="a.py", obj=object())))
        assert entry["extra"]["unit"] == "a.py"
        assert entry["extra"]["obj"].startswith("<object")

    def test_extras_can_be_omitted(self):
        """include_extra=False drops extras."""
        entry = json.loads(StructuredFormatter(include_extra=False).format(_record(unit="a.py")))
        assert "extra" not in entry


class TestHumanReadableFormatter:
    """Tests for the compact format."""

    def test_shortens_package_logger_name(self):
        """The package prefix is stripped from logger names."""
        line = HumanReadableFormatter(include_timestamp=False).format(
            _record(correlation_id="run_abc")
        )
        assert line == "[INFO] [run_abc] core.condense.pipeline: hello"

    def test_no_correlation_id(self):
        """A missing correlation ID is left out."""
        line = HumanReadableFormatter(include_timestamp=False).format(_record(correlation_id="-"))
        assert line == "[INFO] core.condense.pipeline: hello"


class TestConfigureLogging:
    """Tests for configure_logging."""

    def test_structured_output_with_context(self, reset_package_logger):
        """Log lines include the active run's correlation ID."""
        stream = io.StringIO()
        configure_logging(level="debug", format="structured", stream=stream)

        with run_context(label="acme") as ctx:
            logging.getLogger("repo_condenser.core.condense.pipeline").info("condensing")

        entry = json.loads(stream.getvalue().strip())
        assert entry["message"] == "condensing"
        assert entry["correlation_id"] == ctx.correlation_id
        assert entry["run_label"] == "acme"

    def test_replaces_handlers(self, reset_package_logger):
        """Calling twice leaves a single handler."""
        configure_logging(stream=io.StringIO())
        logger = configure_logging(format="human", stream=io.StringIO())
        assert len(logger.handlers) == 1
        assert isinstance(logger.handlers[0].formatter, HumanReadableFormatter)

    def test_level_filtering(self, reset_package_logger):
        """Records below the level are dropped."""
        stream = io.StringIO()
        configure_logging(level=logging.WARNING, format="human", stream=stream)
        logging.getLogger(PACKAGE_LOGGER).info("hidden")
        assert stream.getvalue() == ""

    def test_unknown_format(self, reset_package_logger):
        """Unknown formats are rejected."""
        with pytest.raises(ValueError, match="Unknown log format"):
            configure_logging(format="xml")


class TestGetLogger:
    """Tests for get_logger."""

    def test_prefixes_name(self):
        """Names outside the package namespace are prefixed."""
        assert get_logger("cli").name == "repo_condenser.cli"
        assert get_logger("repo_condenser.config").name == "repo_condenser.config"
