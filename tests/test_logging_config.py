"""Tests for logging setup and the JSON formatter."""

import io
import json
import logging
from unittest.mock import patch

from gcs_cli.logging_config import (
    ROOT_LOGGER,
    JSONFormatter,
    get_logger,
    log_duration,
    setup_logging,
)


def _record(**extra):
    record = logging.LogRecord("gcs_cli.tokens", logging.WARNING, __file__, 1, "hello %s", ("world",), None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestJSONFormatter:
    def test_basic_fields(self):
        data = json.loads(JSONFormatter().format(_record()))

        assert data["level"] == "WARNING"
        assert data["logger"] == "gcs_cli.tokens"
        assert data["message"] == "hello world"
        assert "profile" not in data

    def test_extra_fields(self):
        data = json.loads(
            JSONFormatter().format(_record(profile="alice", operation="save", duration_ms=1.5))
        )

        assert data["profile"] == "alice"
        assert data["operation"] == "save"
        assert data["duration_ms"] == 1.5


class TestSetupLogging:
    def test_handlers_write_to_stderr(self):
        stream = io.StringIO()
        with patch("gcs_cli.logging_config.sys.stderr", stream):
            setup_logging(level="INFO", json_format=True)

        get_logger("tokens").info("stored", extra={"profile": "bob"})

        line = json.loads(stream.getvalue().strip())
        assert line["message"] == "stored"
        assert line["profile"] == "bob"

    def test_repeat_setup_replaces_handlers(self):
        setup_logging()
        setup_logging()

        assert len(logging.getLogger(ROOT_LOGGER).handlers) == 1

    def test_unknown_level_defaults_to_warning(self):
        setup_logging(level="chatty")

        assert logging.getLogger(ROOT_LOGGER).level == logging.WARNING


def test_log_duration(caplog):
    logger = get_logger("test")

    with caplog.at_level(logging.DEBUG, logger=ROOT_LOGGER):
        with log_duration(logger, "save token"):
            pass

    assert "save token completed in" in caplog.text
    assert caplog.records[-1].operation == "save token"
