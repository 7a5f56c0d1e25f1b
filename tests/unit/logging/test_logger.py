# tests/unit/logging/test_logger.py — v1
"""Tests for logging/logger.py — formatters and setup."""

from __future__ import annotations

import json
import logging

from previewflow.logging.context import clear_context, set_phase_context, set_run_context
from previewflow.logging.logger import ROOT_LOGGER, JsonFormatter, TextFormatter, setup_logging


def _record(msg: str = "Hello", level: int = logging.INFO) -> logging.LogRecord:
    return logging.LogRecord(
        name="previewflow.test", level=level, pathname="", lineno=0,
        msg=msg, args=(), exc_info=None,
    )


class TestJsonFormatter:
    def setup_method(self):
        clear_context()

    def teardown_method(self):
        clear_context()

    def test_format_basic(self):
        parsed = json.loads(JsonFormatter().format(_record()))
        assert parsed["level"] == "INFO"
        assert parsed["message"] == "Hello"
        assert parsed["logger"] == "previewflow.test"
        assert "timestamp" in parsed
        assert "context" not in parsed

    def test_format_with_context(self):
        set_run_context("run1")
        set_phase_context("deploy", "deploy:admin-site")
        parsed = json.loads(JsonFormatter().format(_record()))
        assert parsed["context"] == {
            "run_id": "run1", "phase": "deploy", "step": "deploy:admin-site",
        }

    def test_extra_data(self):
        record = _record()
        record.data = {"site": "admin-site"}
        parsed = json.loads(JsonFormatter().format(record))
        assert parsed["data"] == {"site": "admin-site"}


class TestTextFormatter:
    def teardown_method(self):
        clear_context()

    def test_format_basic(self):
        output = TextFormatter().format(_record("Hello text"))
        assert "Hello text" in output
        assert "INFO" in output

    def test_phase_in_line(self):
        set_phase_context("build", "build:admin")
        output = TextFormatter().format(_record())
        assert "[build]" in output
        assert "(build:admin)" in output


class TestSetupLogging:
    def teardown_method(self):
        root = logging.getLogger(ROOT_LOGGER)
        for handler in root.handlers:
            handler.close()
        root.handlers.clear()
        root.setLevel(logging.NOTSET)

    def test_console_only(self):
        setup_logging(level="DEBUG", log_format="json")
        root = logging.getLogger(ROOT_LOGGER)
        assert root.level == logging.DEBUG
        assert len(root.handlers) == 1
        assert isinstance(root.handlers[0].formatter, JsonFormatter)

    def test_reinit_does_not_duplicate(self):
        setup_logging()
        setup_logging()
        assert len(logging.getLogger(ROOT_LOGGER).handlers) == 1

    def test_with_file(self, tmp_path):
        log_file = tmp_path / "logs" / "previewflow.log"
        setup_logging(log_file=str(log_file))
        assert len(logging.getLogger(ROOT_LOGGER).handlers) == 2
        assert log_file.parent.is_dir()
