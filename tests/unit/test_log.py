# tests/unit/test_log.py
"""Tests for logging setup driven by Settings."""

import logging
from logging.handlers import RotatingFileHandler

import pytest

from mycosync.core.config import Settings
from mycosync.core.log import configure_logging


@pytest.fixture
def root_logger():
    root = logging.getLogger()
    level, handlers = root.level, list(root.handlers)
    yield root
    for h in root.handlers:
        if h not in handlers:
            h.close()
    root.handlers = handlers
    root.setLevel(level)


class TestConfigureLogging:
    def test_level_and_rotation_come_from_settings(self, root_logger, tmp_path):
        cfg = Settings(
            log_level="debug",
            log_file=str(tmp_path / "grow.log"),
            log_max_bytes=1024,
            log_backup_count=2,
        )

        configure_logging(cfg)

        assert root_logger.level == logging.DEBUG
        files = [h for h in root_logger.handlers if isinstance(h, RotatingFileHandler)]
        assert len(files) == 1
        assert files[0].maxBytes == 1024
        assert files[0].backupCount == 2
        assert logging.getLogger("httpx").level == logging.WARNING

    def test_empty_log_file_disables_file_handler(self, root_logger):
        before = len(root_logger.handlers)

        configure_logging(Settings(log_file="", log_format="%(levelname)s %(message)s"))

        added = root_logger.handlers[before:]
        assert len(added) == 1
        assert not isinstance(added[0], RotatingFileHandler)
        assert added[0].formatter._fmt == "%(levelname)s %(message)s"
