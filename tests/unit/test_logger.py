"""Unit tests for logger module."""

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path

import pytest

from geocrawl.core.logger import LOG_FORMAT, get_logger


class TestLoggerCreation:
    """Test logger creation and handler setup."""

    def test_logger_creates_console_handler(self, tmp_path: Path) -> None:
        logger = get_logger("test_module", log_level="INFO", log_file=tmp_path / "t.log")

        console_handlers = [
            h
            for h in logger.handlers
            if isinstance(h, logging.StreamHandler)
            and not isinstance(h, RotatingFileHandler)
        ]
        assert len(console_handlers) == 1
        assert console_handlers[0].level == logging.INFO

    def test_logger_creates_rotating_file_handler(self, tmp_path: Path) -> None:
        log_file = tmp_path / "nested" / "geocrawl.log"
        logger = get_logger("test_module", log_file=log_file)

        file_handlers = [h for h in logger.handlers if isinstance(h, RotatingFileHandler)]
        assert len(file_handlers) == 1

        file_handler = file_handlers[0]
        # 100MB = 104857600 bytes
        assert file_handler.maxBytes == 104857600
        assert file_handler.backupCount == 5
        assert file_handler.level == logging.DEBUG
        assert log_file.parent.exists()

    def test_reconfiguring_replaces_handlers(self, tmp_path: Path) -> None:
        get_logger("test_reconfigure", log_file=tmp_path / "a.log")
        logger = get_logger("test_reconfigure", log_file=tmp_path / "b.log")

        assert len(logger.handlers) == 2


class TestLoggerFormatting:
    """Test logger formatting configuration."""

    def test_logger_formats_human_readable(self, tmp_path: Path) -> None:
        logger = get_logger("test_format", log_file=tmp_path / "f.log")

        for handler in logger.handlers:
            assert handler.formatter is not None
            assert handler.formatter._fmt == LOG_FORMAT

    def test_messages_reach_log_file(self, tmp_path: Path) -> None:
        log_file = tmp_path / "out.log"
        logger = get_logger("test_output", log_level="DEBUG", log_file=log_file)

        logger.debug("debug detail")
        for handler in logger.handlers:
            handler.flush()

        content = log_file.read_text()
        assert "| DEBUG | test_output | debug detail" in content


class TestLoggerLevels:
    """Test log level handling."""

    def test_level_is_case_insensitive(self, tmp_path: Path) -> None:
        logger = get_logger("test_level", log_level="debug", log_file=tmp_path / "l.log")
        assert logger.level == logging.DEBUG

    def test_invalid_level_raises(self, tmp_path: Path) -> None:
        with pytest.raises(ValueError, match="Invalid log level"):
            get_logger("test_invalid", log_level="VERBOSE", log_file=tmp_path / "i.log")

    def test_console_level_overrides_base_level(self, tmp_path: Path) -> None:
        logger = get_logger(
            "test_console",
            log_level="INFO",
            log_file=tmp_path / "c.log",
            console_level="warning",
        )

        levels = {type(h): h.level for h in logger.handlers}
        assert logger.level == logging.INFO
        assert levels[logging.StreamHandler] == logging.WARNING
        assert levels[RotatingFileHandler] == logging.DEBUG
