"""Tests for logging setup."""

import logging

import pytest

from health_core.config import log, setup_logging
from health_core.logsink import LogSink


@pytest.fixture
def restore_logger():
    handlers, level, propagate = list(log.handlers), log.level, log.propagate
    yield
    for handler in list(log.handlers):
        log.removeHandler(handler)
        handler.close()
    for handler in handlers:
        log.addHandler(handler)
    log.setLevel(level)
    log.propagate = propagate


def test_setup_logging_routes_agent_log_to_sink(tmp_path, restore_logger):
    path = tmp_path / "logs" / "health.log"

    sink = setup_logging(path, console=False)
    log.info("Content fetched from %s", "https://intranet")
    log.debug("not written at INFO level")

    assert isinstance(sink, LogSink)
    lines = path.read_text(encoding="utf-8").splitlines()
    assert len(lines) == 1
    assert lines[0].endswith("[INFO] Content fetched from https://intranet")


def test_setup_logging_replaces_previous_handlers(tmp_path, restore_logger):
    setup_logging(tmp_path / "a.log", console=True)
    sink = setup_logging(tmp_path / "b.log", console=False)

    assert log.handlers == [sink]
    assert not any(isinstance(h, logging.StreamHandler) for h in log.handlers)


def test_oversized_log_from_previous_run_is_archived(tmp_path, restore_logger):
    path = tmp_path / "health.log"
    path.write_text("x" * 500)

    sink = setup_logging(path, max_bytes=100, console=False)

    assert len(sink.archives()) == 1
    assert not path.exists()
