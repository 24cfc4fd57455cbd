"""Tests for workstate.logging."""

from __future__ import annotations

import logging
from pathlib import Path

import pytest

from workstate.logging import ComponentFilter, configure_logging, get_logger


@pytest.fixture(autouse=True)
def _restore_loggers():
    yield
    logger = logging.getLogger("workstate")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.propagate = True
    logger.setLevel(logging.NOTSET)
    logging.getLogger("apscheduler").setLevel(logging.NOTSET)


def test_get_logger_nests_under_package() -> None:
    assert get_logger("pipeline").name == "workstate.pipeline"
    assert get_logger().name == "workstate"


def test_component_filter_strips_package_prefix() -> None:
    record = logging.LogRecord("workstate.llm.client", logging.INFO, __file__, 1, "msg", None, None)
    foreign = logging.LogRecord("apscheduler", logging.INFO, __file__, 1, "msg", None, None)

    ComponentFilter().filter(record)
    ComponentFilter().filter(foreign)

    assert record.component == "llm.client"
    assert foreign.component == "apscheduler"


def test_configure_logging_does_not_stack_handlers() -> None:
    configure_logging()
    logger = configure_logging(verbose=True)

    assert len(logger.handlers) == 1
    assert logger.level == logging.DEBUG
    assert logger.propagate is False
    assert logging.getLogger("apscheduler").level == logging.DEBUG


def test_chatty_libraries_are_quiet_by_default() -> None:
    configure_logging()

    assert logging.getLogger("apscheduler").level == logging.WARNING


def test_log_file_receives_component_lines(tmp_path: Path) -> None:
    log_file = tmp_path / "logs" / "workstate.log"
    configure_logging(log_file=log_file)

    get_logger("scheduler").info("Scheduler started")
    for handler in logging.getLogger("workstate").handlers:
        handler.flush()

    assert "INFO scheduler: Scheduler started" in log_file.read_text(encoding="utf-8")
