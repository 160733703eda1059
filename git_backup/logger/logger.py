"""
Logging system for git-backup.

Provides structured logging with optional file rotation and color output.
"""

import logging
import logging.handlers
from pathlib import Path

import colorlog


class StructuredLogger:
    """Structured logging system with file rotation and color output."""

    def __init__(self, name: str, log_config):
        """Initialize logger.

        Args:
            name: Logger name
            log_config: LogConfig instance with logging configuration
        """
        self.name = name
        self.log_config = log_config
        self.logger = self._setup_logger()

    def _setup_logger(self) -> logging.Logger:
        """Setup logger with handlers.

        Returns:
            Configured logger instance
        """
        logger = logging.getLogger(f"git_backup.{self.name}")
        logger.setLevel(self.log_config.level)

        # Clear existing handlers
        logger.handlers.clear()

        logger.addHandler(self._create_console_handler())

        if self.log_config.file_path:
            Path(self.log_config.file_path).parent.mkdir(parents=True, exist_ok=True)
            logger.addHandler(self._create_file_handler())

        return logger

    def _create_console_handler(self) -> logging.StreamHandler:
        """Create console handler with color output."""
        handler = colorlog.StreamHandler()
        handler.setLevel(self.log_config.level)

        formatter = colorlog.ColoredFormatter(
            "%(log_color)s[%(asctime)s]%(reset)s %(levelname)-8s %(name)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
            log_colors={
                "DEBUG": "cyan",
                "INFO": "green",
                "WARNING": "yellow",
                "ERROR": "red",
                "CRITICAL": "red,bg_white",
            }
        )
        handler.setFormatter(formatter)
        return handler

    def _create_file_handler(self) -> logging.Handler:
        """Create file handler with rotation."""
        handler = logging.handlers.RotatingFileHandler(
            self.log_config.file_path,
            maxBytes=self.log_config.max_file_size * 1024 * 1024,  # MB
            backupCount=self.log_config.backup_count,
            encoding="utf-8"
        )
        handler.setLevel(self.log_config.level)
        handler.setFormatter(logging.Formatter(
            "[%(asctime)s] %(levelname)-8s %(name)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S"
        ))
        return handler

    def is_enabled_for(self, level: int) -> bool:
        return self.logger.isEnabledFor(level)

    def debug(self, message: str, *args, **kwargs) -> None:
        self.logger.debug(message, *args, **kwargs)

    def info(self, message: str, *args, **kwargs) -> None:
        self.logger.info(message, *args, **kwargs)

    def warning(self, message: str, *args, **kwargs) -> None:
        self.logger.warning(message, *args, **kwargs)

    def error(self, message: str, *args, exc_info=False, **kwargs) -> None:
        self.logger.error(message, *args, exc_info=exc_info, **kwargs)

    def critical(self, message: str, *args, **kwargs) -> None:
        self.logger.critical(message, *args, **kwargs)

    def exception(self, message: str, *args, **kwargs) -> None:
        self.logger.exception(message, *args, **kwargs)


class DefaultLogConfig:
    level = "INFO"
    file_path = None
    max_file_size = 100
    backup_count = 10


# Global logger instances
_loggers: dict = {}


def get_logger(name: str, log_config=None) -> StructuredLogger:
    """Get or create a logger instance.

    Args:
        name: Logger name
        log_config: Optional LogConfig instance (uses default if not provided)

    Returns:
        StructuredLogger instance
    """
    if name not in _loggers:
        _loggers[name] = StructuredLogger(name, log_config or DefaultLogConfig())
    return _loggers[name]


def create_logger(name: str, log_config) -> StructuredLogger:
    """Create a new logger instance (overwriting if exists)."""
    _loggers[name] = StructuredLogger(name, log_config)
    return _loggers[name]


def configure_loggers(log_config) -> None:
    """Re-create every cached logger with ``log_config``.

    Used by the CLI once the configuration is known, so loggers created
    earlier with the defaults pick up the configured level and file.
    """
    for name in list(_loggers):
        create_logger(name, log_config)
