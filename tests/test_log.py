from __future__ import annotations

import io
import logging
from pathlib import Path

import pytest

from tbflow.core.logger import get_logger as get_app_logger
from tbflow_io.utils.log import LOG_FORMAT, configure_logger, get_logger


def test_configure_logger_attaches_handlers_once(tmp_path: Path) -> None:
    stream = io.StringIO()
    first = configure_logger("tbflow_tests.once", "once.log", tmp_path, stream=stream)
    again = configure_logger("tbflow_tests.once", "other.log", tmp_path / "elsewhere")

    assert again is first
    assert len(first.handlers) == 2
    assert not first.propagate

    first.info("hello")
    for handler in first.handlers:
        handler.flush()
    assert "[INFO] tbflow_tests.once: hello" in stream.getvalue()
    assert "hello" in (tmp_path / "once.log").read_text(encoding="utf-8")
    assert not (tmp_path / "elsewhere").exists()


def test_log_dir_falls_back_to_environment(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("TBFLOW_LOG_DIR", str(tmp_path / "from-env"))

    logger = configure_logger("tbflow_tests.env", "env.log", stream=io.StringIO())

    assert (tmp_path / "from-env" / "env.log").exists()
    assert logger.level == logging.INFO


def test_package_and_app_loggers_share_format() -> None:
    package = logging.getLogger("tbflow_io")
    get_logger("decode")
    app = get_app_logger()

    assert get_logger("decode").name == "tbflow_io.decode"
    for logger in (package, app):
        formats = {handler.formatter._fmt for handler in logger.handlers}
        assert formats == {LOG_FORMAT}
