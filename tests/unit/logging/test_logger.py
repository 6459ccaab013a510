# tests/unit/logging/test_logger.py — v1
"""Tests for logging/logger.py — logger factory and formatters."""

from __future__ import annotations

import json
import logging

import pytest

from scriptconveyor.logging.context import clear_context, set_item_context, set_stage_context
from scriptconveyor.logging.logger import (
    JsonFormatter,
    TextFormatter,
    get_logger,
    parse_size,
    setup_logging,
)


def _record(msg: str) -> logging.LogRecord:
    return logging.LogRecord(
        name="test", level=logging.INFO, pathname="", lineno=0,
        msg=msg, args=(), exc_info=None,
    )


class TestJsonFormatter:
    def setup_method(self):
        clear_context()

    def teardown_method(self):
        clear_context()

    def test_format_basic(self):
        parsed = json.loads(JsonFormatter().format(_record("Hello")))
        assert parsed["level"] == "INFO"
        assert parsed["message"] == "Hello"
        assert "timestamp" in parsed
        assert "context" not in parsed

    def test_format_with_context(self):
        set_item_context("item-1", "owner-1")
        set_stage_context("writer")
        parsed = json.loads(JsonFormatter().format(_record("test msg")))
        assert parsed["context"] == {"item_id": "item-1", "owner_id": "owner-1", "stage": "writer"}


class TestTextFormatter:
    def teardown_method(self):
        clear_context()

    def test_format_basic(self):
        output = TextFormatter().format(_record("Hello text"))
        assert "Hello text" in output
        assert "INFO" in output

    def test_format_with_item(self):
        set_item_context("item-9", "owner-1")
        set_stage_context("qc")
        output = TextFormatter().format(_record("x"))
        assert "[item-9]" in output
        assert "(qc)" in output


class TestParseSize:
    @pytest.mark.parametrize("text,expected", [
        ("10MB", 10 * 1024**2),
        ("512kb", 512 * 1024),
        ("1 GB", 1024**3),
    ])
    def test_valid(self, text, expected):
        assert parse_size(text) == expected

    def test_invalid(self):
        with pytest.raises(ValueError):
            parse_size("ten megs")


class TestGetLogger:
    def test_returns_logger(self):
        assert get_logger("test_module").name == "scriptconveyor.test_module"


class TestSetupLogging:
    def test_setup_json(self):
        setup_logging(level="DEBUG", log_format="json")
        root = logging.getLogger("scriptconveyor")
        assert root.level == logging.DEBUG
        assert len(root.handlers) == 1

    def test_setup_with_file(self, tmp_path):
        log_file = tmp_path / "logs" / "conveyor.log"
        setup_logging(level="INFO", log_format="text", log_file=str(log_file))
        root = logging.getLogger("scriptconveyor")
        assert len(root.handlers) == 2
        assert log_file.parent.is_dir()
        setup_logging(level="INFO", log_format="text")
