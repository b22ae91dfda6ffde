"""
Tests for logging configuration.
"""

import io
import json
import logging

import pytest

from activealchemy.config import Settings
from activealchemy.logging_config import (
    PACKAGE_LOGGER,
    HumanFormatter,
    LogContext,
    StructuredFormatter,
    get_logger,
    log_context,
    setup_logging,
)


@pytest.fixture
def package_logger():
    logger = logging.getLogger(PACKAGE_LOGGER)
    level = logger.level
    yield logger
    for handler in logger.handlers[:]:
        logger.removeHandler(handler)
    logger.setLevel(level)


class TestSetupLogging:
    """Tests for setup_logging."""

    def test_json_output_with_context(self, package_logger):
        stream = io.StringIO()
        setup_logging(Settings(log_format="json", log_level="DEBUG"), stream=stream)

        with log_context(model="Person", operation="save"):
            get_logger("activealchemy.model").debug("saving")

        record = json.loads(stream.getvalue().splitlines()[-1])
        assert record["level"] == "DEBUG"
        assert record["logger"] == "activealchemy.model"
        assert record["message"] == "saving"
        assert record["context"] == {"model": "Person", "operation": "save"}

    def test_human_output(self, package_logger):
        stream = io.StringIO()
        logger = setup_logging(Settings(), stream=stream)

        assert logger is package_logger
        assert logger.level == logging.INFO

        get_logger("activealchemy.validations").debug("hidden")
        get_logger("activealchemy.validations").warning("shown")

        output = stream.getvalue()
        assert "hidden" not in output
        assert "WARNING" in output
        assert "shown" in output
        assert "\033[" not in output

    def test_level_override_replaces_handlers(self, package_logger):
        setup_logging(Settings(), level="error", stream=io.StringIO())
        setup_logging(Settings(), level="error", stream=io.StringIO())

        assert package_logger.level == logging.ERROR
        assert len(package_logger.handlers) == 1


class TestFormatters:
    def make_record(self, level=logging.INFO):
        return logging.LogRecord("activealchemy.test", level, __file__, 1, "hello %s", ("world",), None)

    def test_structured_formatter(self):
        data = json.loads(StructuredFormatter().format(self.make_record()))
        assert data["message"] == "hello world"
        assert "context" not in data

    def test_human_formatter_colors(self):
        text = HumanFormatter(use_color=True).format(self.make_record(logging.ERROR))
        assert "\033[31m" in text
        assert "hello world" in text


class TestLogContext:
    def test_nested_contexts_restore(self):
        with log_context(model="Person"):
            with log_context(operation="save"):
                assert LogContext.get_context() == {"model": "Person", "operation": "save"}
            assert LogContext.get_context() == {"model": "Person"}
        assert LogContext.get_context() == {}
