"""
Logging System - Centralized logging management.

Provides colored console logging and file logging with log rotation, and the
``logger`` service that turns the kernel's report channels into log records.
"""

from __future__ import annotations

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import TYPE_CHECKING, Any

import colorlog

from aetherpack.config.models import LoggingSettings
from aetherpack.kernel.service import Service

if TYPE_CHECKING:
    from aetherpack.kernel.context import Context

APP_LOGGER = "aetherpack.app"

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


class LogManager:
    """
    Centralized logging configuration and management.

    Provides consistent formatting across all loggers with support for:
    - Colored console output
    - File logging with rotation

    Handlers are only installed by ``configure``; importing the kernel never
    touches the root logger.
    """

    _instance: LogManager | None = None
    _initialized: bool = False

    def __new__(cls) -> LogManager:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __init__(self) -> None:
        if LogManager._initialized:
            return

        LogManager._initialized = True
        self._loggers: dict[str, logging.Logger] = {}
        self._handlers: list[logging.Handler] = []
        self._log_level = logging.INFO

    def configure(self, settings: LoggingSettings) -> None:
        """Install (or replace) the console and file handlers on the root logger."""
        root = logging.getLogger()
        for handler in self._handlers:
            root.removeHandler(handler)
            handler.close()
        self._handlers = []

        self._log_level = getattr(logging, settings.level, logging.INFO)

        if settings.colorize:
            console_formatter: logging.Formatter = colorlog.ColoredFormatter(
                "%(log_color)s%(asctime)s | %(levelname)-8s | %(name)s%(reset)s | %(message)s",
                datefmt=DATE_FORMAT,
                log_colors={
                    "DEBUG": "green",
                    "INFO": "green",
                    "WARNING": "yellow",
                    "ERROR": "red",
                    "CRITICAL": "red,bg_white",
                },
            )
        else:
            console_formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setFormatter(console_formatter)
        console_handler.setLevel(self._log_level)
        self._handlers.append(console_handler)

        if settings.file:
            log_file = Path(settings.file)
            log_file.parent.mkdir(parents=True, exist_ok=True)
            file_handler = RotatingFileHandler(
                log_file,
                maxBytes=10 * 1024 * 1024,  # 10 MB
                backupCount=5,
                encoding="utf-8",
            )
            file_handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
            file_handler.setLevel(logging.DEBUG)
            self._handlers.append(file_handler)

        root.setLevel(logging.DEBUG)
        for handler in self._handlers:
            root.addHandler(handler)

    @property
    def handlers(self) -> list[logging.Handler]:
        return list(self._handlers)

    def get_logger(self, name: str) -> logging.Logger:
        """Get or create a logger with the given name."""
        if name not in self._loggers:
            self._loggers[name] = logging.getLogger(name)
        return self._loggers[name]

    def set_level(self, level: int | str) -> None:
        """Set the logging level for the console handler."""
        if isinstance(level, str):
            level = getattr(logging, level.upper(), logging.INFO)

        self._log_level = level
        for handler in self._handlers:
            if not isinstance(handler, RotatingFileHandler):
                handler.setLevel(level)


# Global log manager instance
_log_manager: LogManager | None = None


def get_log_manager() -> LogManager:
    """Get the global log manager instance."""
    global _log_manager
    if _log_manager is None:
        _log_manager = LogManager()
    return _log_manager


def get_logger(name: str) -> logging.Logger:
    """Get a logger with the given name."""
    return get_log_manager().get_logger(name)


class LoggerService(Service):
    """
    The ``logger`` service.

    Forwards ``internal/info``, ``internal/warning`` and ``internal/error`` to
    the ``aetherpack.app`` logger, and hands out named loggers to plugins
    through ``ctx.logger(name)``.
    """

    name = "logger"
    Config = LoggingSettings

    def __init__(self, ctx: Context, config: LoggingSettings) -> None:
        super().__init__(ctx, "logger", immediate=True)
        self.config = config
        self.logger = get_logger(APP_LOGGER)

        if config.setup:
            get_log_manager().configure(config)

        for channel, level in (
            ("info", logging.INFO),
            ("warning", logging.WARNING),
            ("error", logging.ERROR),
        ):
            ctx.on(f"internal/{channel}", self._forward(level))

    def __call__(self, name: str) -> logging.Logger:
        return get_logger(f"{APP_LOGGER}.{name}")

    def _forward(self, level: int) -> Any:
        def forward(message: str, *args: Any) -> None:
            error = next((arg for arg in args if isinstance(arg, BaseException)), None)
            self.logger.log(level, message, *args, exc_info=error)

        return forward
