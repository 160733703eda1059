"""
Tests for logging system.
"""

import pytest

from git_backup.logger.logger import StructuredLogger, configure_loggers, create_logger, get_logger


@pytest.fixture
def log_config(tmp_path):
    """Create a test log configuration."""
    class LogConfig:
        level = "DEBUG"
        file_path = str(tmp_path / "logs" / "test.log")
        max_file_size = 10  # 10 MB
        backup_count = 3

    return LogConfig()


@pytest.fixture
def console_config():
    class LogConfig:
        level = "INFO"
        file_path = None
        max_file_size = 10
        backup_count = 3

    return LogConfig()


def test_structured_logger_creation(log_config):
    """Test creating a structured logger."""
    logger = StructuredLogger("test", log_config)
    assert logger.name == "test"
    assert logger.logger.name == "git_backup.test"
    assert len(logger.logger.handlers) == 2


def test_console_only_logger(console_config):
    """Test no file handler is added without a file path."""
    logger = StructuredLogger("console_only", console_config)
    assert len(logger.logger.handlers) == 1


def test_logger_info_message(log_config, capsys):
    """Test info log message."""
    logger = StructuredLogger("test", log_config)
    logger.info("Info message")
    captured = capsys.readouterr()
    assert "Info message" in captured.err or "Info message" in captured.out


def test_logger_error_message(log_config, capsys):
    """Test error log message."""
    logger = StructuredLogger("test", log_config)
    logger.error("Error message")
    captured = capsys.readouterr()
    assert "Error message" in captured.err or "Error message" in captured.out


def test_logger_level_filters_debug(console_config, capsys):
    logger = StructuredLogger("quiet", console_config)
    logger.debug("Hidden message")
    captured = capsys.readouterr()
    assert "Hidden message" not in captured.err + captured.out
    assert logger.is_enabled_for(20)
    assert not logger.is_enabled_for(10)


def test_logger_file_creation(log_config):
    """Test that logger creates the log directory and file."""
    logger = StructuredLogger("test", log_config)
    logger.info("Test message")

    for handler in logger.logger.handlers:
        handler.flush()

    from pathlib import Path
    log_file = Path(log_config.file_path)
    assert log_file.exists()
    assert "Test message" in log_file.read_text(encoding="utf-8")


def test_get_logger(log_config):
    """Test getting logger instance."""
    logger1 = get_logger("test_app", log_config)
    logger2 = get_logger("test_app", log_config)

    # Should return same instance
    assert logger1 is logger2


def test_create_logger(log_config):
    """Test creating new logger instance."""
    logger1 = create_logger("new_logger", log_config)
    logger2 = create_logger("new_logger", log_config)

    assert logger1 is not logger2
    assert get_logger("new_logger") is logger2


def test_configure_loggers(console_config, log_config):
    """Test cached loggers are rebuilt with the new configuration."""
    logger = get_logger("reconfigured", console_config)
    assert len(logger.logger.handlers) == 1

    configure_loggers(log_config)

    rebuilt = get_logger("reconfigured")
    assert rebuilt is not logger
    assert rebuilt.log_config is log_config
    # both wrap the same stdlib logger
    assert logger.logger is rebuilt.logger
    assert len(rebuilt.logger.handlers) == 2


def test_logger_with_format(log_config, capsys):
    """Test logger with formatted messages."""
    logger = StructuredLogger("test", log_config)
    logger.info("Message with %s", "parameter")

    captured = capsys.readouterr()
    assert "Message with parameter" in captured.err or "Message with parameter" in captured.out


def test_logger_exception(log_config, capsys):
    """Test logger exception method."""
    logger = StructuredLogger("test", log_config)

    try:
        raise ValueError("Test error")
    except ValueError:
        logger.exception("An error occurred")

    captured = capsys.readouterr()
    assert "An error occurred" in captured.err or "An error occurred" in captured.out


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
