"""Tests for the logging system and the logger service."""

from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler

import colorlog
import pytest

from aetherpack.config import LoggingSettings
from aetherpack.kernel.logging import LoggerService, get_log_manager


@pytest.fixture()
def log_manager():
    manager = get_log_manager()
    root = logging.getLogger()
    level = root.level
    yield manager
    for handler in manager.handlers:
        root.removeHandler(handler)
        handler.close()
    root.setLevel(level)


def test_reports_are_forwarded_to_app_logger(app, caplog):
    with caplog.at_level(logging.INFO):
        app.lifecycle.report("info", "hello %s", "world")
        app.lifecycle.report("error", "broken %s", "thing")

    records = [(r.name, r.levelno, r.getMessage()) for r in caplog.records]
    assert ("aetherpack.app", logging.INFO, "hello world") in records
    assert ("aetherpack.app", logging.ERROR, "broken thing") in records


def test_report_attaches_exception(app, caplog):
    error = RuntimeError("kaboom")
    with caplog.at_level(logging.ERROR):
        app.lifecycle.report("error", "failed: %s", error)

    assert caplog.records[-1].exc_info[1] is error


def test_report_falls_back_without_logger_service(app, caplog):
    app.dispose(LoggerService)
    assert app.get_service("logger") is None

    with caplog.at_level(logging.WARNING):
        app.lifecycle.report("warning", "no listeners")

    assert caplog.records[-1].name == "aetherpack.kernel.lifecycle"
    assert caplog.records[-1].getMessage() == "no listeners"


def test_context_logger_uses_service(app):
    scope = app.plugin(lambda ctx, config: None)

    assert scope.ctx.logger("http").name == "aetherpack.app.http"
    assert app.get_service("logger")("db").name == "aetherpack.app.db"


def test_context_logger_without_service(app):
    app.dispose(LoggerService)
    assert app.logger("x").name == "aetherpack.plugin.x"


def test_configure_installs_console_and_file_handlers(log_manager, tmp_path):
    log_file = tmp_path / "logs" / "aetherpack.log"
    log_manager.configure(LoggingSettings(level="warning", file=str(log_file)))

    console, file_handler = log_manager.handlers
    assert isinstance(console.formatter, colorlog.ColoredFormatter)
    assert console.level == logging.WARNING
    assert isinstance(file_handler, RotatingFileHandler)
    assert log_file.parent.is_dir()
    assert all(handler in logging.getLogger().handlers for handler in log_manager.handlers)


def test_configure_replaces_previous_handlers(log_manager):
    log_manager.configure(LoggingSettings(colorize=False))
    first = log_manager.handlers
    log_manager.configure(LoggingSettings(colorize=False))

    assert len(log_manager.handlers) == 1
    assert not isinstance(log_manager.handlers[0].formatter, colorlog.ColoredFormatter)
    assert first[0] not in logging.getLogger().handlers


def test_set_level_only_touches_console(log_manager, tmp_path):
    log_manager.configure(LoggingSettings(file=str(tmp_path / "a.log")))
    log_manager.set_level("error")

    console, file_handler = log_manager.handlers
    assert console.level == logging.ERROR
    assert file_handler.level == logging.DEBUG
