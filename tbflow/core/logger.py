from __future__ import annotations

import logging
import sys
from pathlib import Path

from tbflow_io.utils.log import configure_logger

from .profiles import _work_dir

APP_LOGGER = "tbflow"


def get_logger(log_dir: Path | None = None) -> logging.Logger:
    """Return the application logger writing to ./tbflow/work/logs/app.log and stdout.

    ``TBFLOW_LOG_DIR`` overrides the directory; rotation and format are shared
    with the ``tbflow_io`` package logger.
    """

    return configure_logger(
        APP_LOGGER,
        "app.log",
        log_dir,
        default_dir=_work_dir() / "logs",
        stream=sys.stdout,
    )
