"""Logging setup shared by the CLI, the scheduler and the HTTP service."""

from __future__ import annotations

import logging
from pathlib import Path

_ROOT = "workstate"
# Third-party loggers that flood the console on every scheduler tick or request.
_CHATTY_LIBRARIES = ("apscheduler", "httpx", "uvicorn.access")


class ComponentFilter(logging.Filter):
    """Adds ``component``: the logger name relative to the workstate hierarchy."""

    def filter(self, record: logging.LogRecord) -> bool:
        name = record.name
        if name.startswith(f"{_ROOT}."):
            record.component = name[len(_ROOT) + 1 :]
        else:
            record.component = name
        return True


def get_logger(component: str | None = None) -> logging.Logger:
    """Return ``workstate.<component>``, or the package logger itself."""
    return logging.getLogger(f"{_ROOT}.{component}" if component else _ROOT)


def configure_logging(
    *, verbose: bool = False, log_file: Path | None = None
) -> logging.Logger:
    """Route workstate logs to stderr (and optionally a file) at INFO or DEBUG."""
    level = logging.DEBUG if verbose else logging.INFO
    logger = logging.getLogger(_ROOT)
    logger.setLevel(level)
    logger.propagate = False

    # Repeated CLI invocations in one process must not stack handlers.
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    component_filter = ComponentFilter()
    console = logging.StreamHandler()
    console.setLevel(level)
    console.addFilter(component_filter)
    console.setFormatter(logging.Formatter("[workstate:%(component)s] %(levelname)s %(message)s"))
    logger.addHandler(console)

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(level)
        file_handler.addFilter(component_filter)
        file_handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)s %(component)s: %(message)s")
        )
        logger.addHandler(file_handler)

    for name in _CHATTY_LIBRARIES:
        logging.getLogger(name).setLevel(logging.DEBUG if verbose else logging.WARNING)

    return logger


__all__ = ["ComponentFilter", "configure_logging", "get_logger"]
