"""
Tests for logging setup.
"""
import json
import logging
import sys

import pytest

from rxparse.config import LoggingSettings
from rxparse.logging_config import JsonFormatter, setup_logging


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield root
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()
    for handler in handlers:
        root.addHandler(handler)
    root.setLevel(level)


class TestJsonFormatter:

    def test_renders_message_and_extras(self):
        record = logging.LogRecord("rxparse.jobs", logging.INFO, __file__, 1, "Cleaned up %d old jobs", (3,), None)
        record.job_id = "abc"

        payload = json.loads(JsonFormatter().format(record))

        assert payload["level"] == "INFO"
        assert payload["logger"] == "rxparse.jobs"
        assert payload["message"] == "Cleaned up 3 old jobs"
        assert payload["job_id"] == "abc"

    def test_includes_exception(self):
        try:
            raise ValueError("boom")
        except ValueError:
            record = logging.LogRecord("x", logging.ERROR, __file__, 1, "failed", None, sys.exc_info())

        payload = json.loads(JsonFormatter().format(record))
        assert "ValueError: boom" in payload["exc_info"]


class TestSetupLogging:

    def test_text_format_with_file(self, tmp_path, restore_root_logger):
        log_file = tmp_path / "parser.log"
        setup_logging(LoggingSettings(level="debug", format="text", file=str(log_file)))

        logging.getLogger("rxparse.test").debug("hello file")
        for handler in restore_root_logger.handlers:
            handler.flush()

        assert restore_root_logger.level == logging.DEBUG
        assert "hello file" in log_file.read_text(encoding="utf-8")
        assert logging.getLogger("openai").level == logging.WARNING

    def test_json_format(self, restore_root_logger):
        setup_logging(LoggingSettings(level="INFO", format="json"))

        assert len(restore_root_logger.handlers) == 1
        assert isinstance(restore_root_logger.handlers[0].formatter, JsonFormatter)
