"""Unit tests for flow_engine.logging_setup."""

from __future__ import annotations

import json
import logging
import sys

import pytest

from flow_engine.config import Settings
from flow_engine.logging_setup import JSONFormatter, configure_logging


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers = root.handlers[:]
    level = root.level
    yield root
    root.handlers[:] = handlers
    root.setLevel(level)


def _record(**kwargs) -> logging.LogRecord:
    defaults = dict(
        name="flow_engine.test",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg="built %d nodes",
        args=(3,),
        exc_info=None,
    )
    defaults.update(kwargs)
    return logging.LogRecord(**defaults)


class TestJSONFormatter:
    def test_basic_payload(self):
        payload = json.loads(JSONFormatter().format(_record()))
        assert payload["level"] == "INFO"
        assert payload["logger"] == "flow_engine.test"
        assert payload["message"] == "built 3 nodes"
        assert payload["timestamp"].endswith("+00:00")
        assert "operation" not in payload
        assert "exc_info" not in payload

    def test_operation_extra(self):
        record = _record()
        record.operation = "lineage.build"
        assert json.loads(JSONFormatter().format(record))["operation"] == "lineage.build"

    def test_exception_info(self):
        try:
            raise ValueError("bad")
        except ValueError:
            record = _record(exc_info=sys.exc_info())
        payload = json.loads(JSONFormatter().format(record))
        assert "ValueError: bad" in payload["exc_info"]


class TestConfigureLogging:
    def test_structured(self, restore_root_logger):
        configure_logging(Settings(structured_logging=True, log_level="warning"))
        (handler,) = restore_root_logger.handlers
        assert isinstance(handler.formatter, JSONFormatter)
        assert restore_root_logger.level == logging.WARNING

    def test_text(self, restore_root_logger):
        configure_logging(Settings(structured_logging=False, log_level="ERROR"))
        assert restore_root_logger.level == logging.ERROR
        assert not any(isinstance(h.formatter, JSONFormatter) for h in restore_root_logger.handlers)

    def test_debug_overrides_level(self, restore_root_logger):
        configure_logging(Settings(debug=True, log_level="ERROR"))
        assert restore_root_logger.level == logging.DEBUG
