"""Tests for core.logger."""

import logging
import threading

import pytest

from autotrader.core.logger import setup_logging


@pytest.fixture
def package_logger():
    yield
    root = logging.getLogger("autotrader")
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()


def test_file_lines_carry_scheduler_thread_name(tmp_path, package_logger):
    root = setup_logging("DEBUG", tmp_path, "run.log")
    log = logging.getLogger("autotrader.scheduler")
    t = threading.Thread(target=log.info, args=("cycle done",), name="scheduler-LTCUSDT")
    t.start()
    t.join()
    for handler in root.handlers:
        handler.flush()
    line = (tmp_path / "run.log").read_text(encoding="utf-8").strip()
    assert "| scheduler-LTCUSDT | autotrader.scheduler | cycle done" in line
    assert "| INFO     |" in line


def test_repeated_setup_replaces_handlers(tmp_path, package_logger):
    setup_logging("INFO", tmp_path, "a.log")
    root = setup_logging("WARNING", tmp_path, "b.log")
    assert len(root.handlers) == 2
    assert root.level == logging.WARNING
    assert logging.getLogger("urllib3").level == logging.WARNING
