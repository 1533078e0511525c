"""Logging setup shared by ``tbflow_io`` and the ``tbflow`` application."""

# Module responsibilities:
# - Attach rotating file + console handlers to a named logger exactly once.
# - Resolve the log directory (explicit argument, ``TBFLOW_LOG_DIR``, then a default).
# - Provide get_logger() returning loggers scoped under ``tbflow_io``.

from __future__ import annotations

import logging
import logging.handlers
import os
import sys
import threading
from pathlib import Path
from typing import Dict, Optional, TextIO

LOG_DIR_ENV = "TBFLOW_LOG_DIR"
DEFAULT_LOG_BASE = Path.home() / "TBFlow" / "logs"
PACKAGE_LOGGER = "tbflow_io"
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
MAX_BYTES = 2 * 1024 * 1024
BACKUP_COUNT = 3

_CONFIGURED: Dict[str, logging.Logger] = {}
_LOCK = threading.Lock()


def resolve_log_dir(log_dir: Optional[Path] = None, default: Optional[Path] = None) -> Path:
    """Pick the log directory and make sure it exists."""

    env_dir = os.getenv(LOG_DIR_ENV)
    target = Path(log_dir) if log_dir else Path(env_dir) if env_dir else (default or DEFAULT_LOG_BASE)
    target.mkdir(parents=True, exist_ok=True)
    return target


def configure_logger(
    name: str,
    filename: str,
    log_dir: Optional[Path] = None,
    *,
    default_dir: Optional[Path] = None,
    stream: Optional[TextIO] = None,
) -> logging.Logger:
    """Configure logger ``name`` once and return it.

    Later calls return the already configured logger and ignore their
    arguments, so the first caller decides where the file lands.
    """

    with _LOCK:
        configured = _CONFIGURED.get(name)
        if configured is not None:
            return configured

        log_path = resolve_log_dir(log_dir, default_dir) / filename
        formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT)

        file_handler = logging.handlers.RotatingFileHandler(
            log_path, maxBytes=MAX_BYTES, backupCount=BACKUP_COUNT, encoding="utf-8"
        )
        file_handler.setFormatter(formatter)

        console_handler = logging.StreamHandler(stream or sys.stderr)
        console_handler.setFormatter(formatter)

        logger = logging.getLogger(name)
        logger.setLevel(logging.INFO)
        logger.addHandler(file_handler)
        logger.addHandler(console_handler)
        logger.propagate = False

        _CONFIGURED[name] = logger
        return logger


def get_logger(name: str, log_dir: Optional[Path] = None) -> logging.Logger:
    """Return ``tbflow_io.<name>``, configuring the package logger on first use."""

    configure_logger(PACKAGE_LOGGER, "tbflow_io.log", log_dir)
    return logging.getLogger(f"{PACKAGE_LOGGER}.{name}")
