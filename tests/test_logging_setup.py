# tests/test_logging_setup.py

from __future__ import annotations

import logging
from pathlib import Path

import pytest

from worktimer.logging_setup import _ConsoleNoiseFilter, setup_logging


def _record(name: str, level: int) -> logging.LogRecord:
    return logging.LogRecord(name, level, __file__, 1, "msg", None, None)


def test_console_filter_quiets_periodic_and_foreign_loggers() -> None:
    f = _ConsoleNoiseFilter()

    assert f.filter(_record("worktimer.core.workspace", logging.DEBUG))
    assert not f.filter(_record("worktimer.timer.ticker", logging.INFO))
    assert f.filter(_record("worktimer.timer.ticker", logging.WARNING))
    assert not f.filter(_record("py.warnings", logging.WARNING))
    assert not f.filter(_record("asyncio", logging.WARNING))
    assert f.filter(_record("asyncio", logging.ERROR))


@pytest.fixture()
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    for h in list(root.handlers):
        root.removeHandler(h)
        h.close()
    for h in handlers:
        root.addHandler(h)
    root.setLevel(level)
    logging.captureWarnings(False)


def test_setup_logging_writes_file(tmp_path: Path, restore_root_logger) -> None:
    log_file = setup_logging(log_dir=tmp_path / "logs", console_level=logging.WARNING)
    setup_logging(log_dir=tmp_path / "logs", console_level=logging.WARNING)

    logging.getLogger("worktimer.test").debug("hello file")
    for h in logging.getLogger().handlers:
        h.flush()

    assert log_file == tmp_path / "logs" / "worktimer.log"
    assert len(logging.getLogger().handlers) == 2
    assert "hello file" in log_file.read_text(encoding="utf-8")
