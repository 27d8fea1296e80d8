"""
Unit tests for logging setup.
"""

import logging

import pytest

from auctionhouse.utils.logger import LOG_FILE, ROOT_LOGGER, AuctionLogger, get_logger, setup_logging


@pytest.fixture(autouse=True)
def restore_default_logging():
    yield
    AuctionLogger.configure()


class TestLogging:

    def test_subsystem_loggers_share_root(self):
        assert get_logger("scheduler").name == f"{ROOT_LOGGER}.scheduler"

    def test_log_file_written(self, tmp_path):
        setup_logging(log_dir=tmp_path / "logs")
        get_logger("service").info("auction opened")

        for handler in logging.getLogger(ROOT_LOGGER).handlers:
            handler.flush()
        content = (tmp_path / "logs" / LOG_FILE).read_text()
        assert "auctionhouse.service: auction opened" in content

    def test_reconfigure_replaces_handlers(self, tmp_path):
        setup_logging(log_dir=tmp_path)
        setup_logging()
        assert len(logging.getLogger(ROOT_LOGGER).handlers) == 1

    def test_debug_levels(self):
        setup_logging(debug=True)
        assert logging.getLogger(ROOT_LOGGER).level == logging.DEBUG
        assert logging.getLogger("uvicorn.access").level == logging.DEBUG

        setup_logging()
        assert logging.getLogger(ROOT_LOGGER).level == logging.INFO
        assert logging.getLogger("uvicorn.access").level == logging.WARNING
