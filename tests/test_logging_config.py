"""Tests for the logging configuration."""

import json
import logging

from src.bpmf.logging_config import JSONFormatter, setup_logging


def test_json_formatter_includes_extra_fields():
    record = logging.LogRecord(
        name="src.bpmf.model",
        level=logging.INFO,
        pathname=__file__,
        lineno=10,
        msg="iter %d done",
        args=(3,),
        exc_info=None,
    )
    record.iteration = 3
    record.loss = 1.25

    data = json.loads(JSONFormatter().format(record))

    assert data["message"] == "iter 3 done"
    assert data["level"] == "INFO"
    assert data["logger"] == "src.bpmf.model"
    assert data["iteration"] == 3
    assert data["loss"] == 1.25


def test_setup_logging_installs_single_handler():
    root = logging.getLogger()
    saved_handlers, saved_level = root.handlers[:], root.level
    try:
        setup_logging("DEBUG", json_format=True)
        setup_logging("WARNING", json_format=True)

        assert root.level == logging.WARNING
        assert len(root.handlers) == 1
        assert isinstance(root.handlers[0].formatter, JSONFormatter)
    finally:
        root.handlers[:] = saved_handlers
        root.setLevel(saved_level)
