"""Tests for structured logging setup."""

import json
import logging

import pytest
import structlog

from hive.utils.logging import bind_context, configure_logging, get_logger


@pytest.fixture(autouse=True)
def _restore_logging():
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()
    for handler in handlers:
        root.addHandler(handler)
    root.setLevel(level)
    structlog.contextvars.clear_contextvars()
    structlog.reset_defaults()


def _events(path):
    return [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines()]


def test_events_written_to_log_file(tmp_path) -> None:
    log_file = tmp_path / "logs" / "hive.log"
    configure_logging("INFO", log_file=log_file, console=False)

    get_logger("hive.test").info("file_event", answer=42)

    [event] = _events(log_file)
    assert event["event"] == "file_event"
    assert event["answer"] == 42
    assert event["level"] == "info"
    assert event["logger"] == "hive.test"
    assert "timestamp" in event


def test_level_filters_events(tmp_path) -> None:
    log_file = tmp_path / "hive.log"
    configure_logging("warning", log_file=log_file, console=False)
    logger = get_logger("hive.test")

    logger.info("quiet_event")
    logger.warning("loud_event")

    assert [event["event"] for event in _events(log_file)] == ["loud_event"]


def test_bound_context_is_merged(tmp_path) -> None:
    log_file = tmp_path / "hive.log"
    configure_logging("DEBUG", log_file=log_file, console=False)
    bind_context(command="route")

    get_logger("hive.test").debug("with_context")

    [event] = _events(log_file)
    assert event["command"] == "route"


def test_reconfigure_replaces_handlers(tmp_path) -> None:
    configure_logging("INFO", log_file=tmp_path / "first.log", console=False)
    configure_logging("INFO", log_file=tmp_path / "second.log", console=True)

    root = logging.getLogger()
    assert len(root.handlers) == 2
    assert logging.getLogger("httpx").level == logging.WARNING

    get_logger("hive.test").info("second_only")
    assert (tmp_path / "first.log").read_text(encoding="utf-8") == ""
    assert _events(tmp_path / "second.log")[0]["event"] == "second_only"
