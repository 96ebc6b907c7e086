"""Logging utilities for CLI and pipeline modules."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, MutableMapping

DEFAULT_LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
DEFAULT_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
PACKAGE_LOGGER_NAME = "feedback_archive"


class RunLoggerAdapter(logging.LoggerAdapter):
    """Prefix every message with the owning run id (`run_id=... event ...`)."""

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> tuple[Any, MutableMapping[str, Any]]:
        run_id = (self.extra or {}).get("run_id", "-")
        return f"[{run_id}] {msg}", kwargs


def bind_run(logger: logging.Logger | logging.LoggerAdapter, run_id: str) -> RunLoggerAdapter:
    """Return an adapter that tags messages from one export/import run."""

    base = logger.logger if isinstance(logger, logging.LoggerAdapter) else logger
    return RunLoggerAdapter(base, {"run_id": run_id})


def configure_logging(log_file: Path | None = None, level: int = logging.INFO) -> logging.Logger:
    """Configure process-wide console logging, plus a file handler when `log_file` is set."""

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    formatter = logging.Formatter(fmt=DEFAULT_LOG_FORMAT, datefmt=DEFAULT_DATE_FORMAT)

    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)
        handler.close()

    stream_handler = logging.StreamHandler()
    stream_handler.setFormatter(formatter)
    stream_handler.setLevel(level)
    root_logger.addHandler(stream_handler)

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(formatter)
        file_handler.setLevel(level)
        root_logger.addHandler(file_handler)

    logger = logging.getLogger(PACKAGE_LOGGER_NAME)
    logger.setLevel(level)
    return logger
