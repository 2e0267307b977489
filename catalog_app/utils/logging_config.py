"""
Logging setup for the catalog resolver.

Console and rotating-file handlers share one formatter, structured JSON in
production and plain text elsewhere, and are attached to both ``app.logger``
and the ``catalog_app`` package logger used by the batch jobs.
"""

from __future__ import annotations

import logging
import os
import sys
from logging.handlers import RotatingFileHandler

from flask import Flask
from flask.logging import default_handler
from pythonjsonlogger import jsonlogger

PACKAGE_LOGGER = "catalog_app"
_HANDLER_MARKER = "_catalog_handler"

TEXT_FORMAT = "[%(asctime)s] [%(levelname)s] [%(name)s]: %(message)s"


class CatalogJsonFormatter(jsonlogger.JsonFormatter):
    """JSON formatter stamping every record with the service name, version and environment."""

    def __init__(self, *args, app_name: str = "catalog-resolver", app_version: str = "", environment: str = "", **kwargs):
        super().__init__(*args, **kwargs)
        self._service = {"name": app_name, "version": app_version, "environment": environment}

    def add_fields(self, log_record, record, message_dict):
        super().add_fields(log_record, record, message_dict)
        log_record["level"] = record.levelname
        log_record["logger"] = record.name
        log_record["service"] = dict(self._service)
        if record.exc_info and record.exc_info[0] is not None:
            log_record["error"] = {
                "type": record.exc_info[0].__name__,
                "message": str(record.exc_info[1]),
            }


def _build_formatter(app: Flask) -> logging.Formatter:
    if str(app.config.get("LOG_FORMAT", "text")).lower() == "json":
        return CatalogJsonFormatter(
            "%(asctime)s %(levelname)s %(name)s %(message)s",
            app_name=app.config.get("APP_NAME", "catalog-resolver"),
            app_version=app.config.get("APP_VERSION", ""),
            environment=app.config.get("METRICS_ENV", ""),
        )
    return logging.Formatter(TEXT_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")


def _build_handlers(app: Flask, formatter: logging.Formatter, level: int) -> list[logging.Handler]:
    handlers: list[logging.Handler] = []
    if app.config.get("ENABLE_CONSOLE_LOGGING", True):
        console = logging.StreamHandler(sys.stdout)
        handlers.append(console)
    if app.config.get("ENABLE_FILE_LOGGING", False):
        log_dir = app.config.get("LOG_DIR", "logs")
        os.makedirs(log_dir, exist_ok=True)
        file_handler = RotatingFileHandler(
            os.path.join(log_dir, app.config.get("LOG_FILE_NAME", "catalog.log")),
            maxBytes=app.config.get("LOG_FILE_MAX_BYTES", 10_485_760),
            backupCount=app.config.get("LOG_FILE_BACKUP_COUNT", 10),
            encoding="utf-8",
        )
        handlers.append(file_handler)
    for handler in handlers:
        handler.setFormatter(formatter)
        handler.setLevel(level)
        setattr(handler, _HANDLER_MARKER, True)
    return handlers


def _reset_handlers(logger: logging.Logger) -> None:
    for handler in list(logger.handlers):
        if getattr(handler, _HANDLER_MARKER, False):
            logger.removeHandler(handler)
            handler.close()


def setup_logging(app: Flask) -> None:
    """
    Configure ``app.logger`` and the package logger from the app config.

    Safe to call repeatedly; handlers installed by an earlier call are closed
    and replaced so reconfiguring in tests does not duplicate output.
    """

    level_name = str(app.config.get("LOG_LEVEL", "INFO")).upper()
    level = logging.getLevelName(level_name)
    if not isinstance(level, int):
        level = logging.INFO

    formatter = _build_formatter(app)
    package_logger = logging.getLogger(PACKAGE_LOGGER)
    app.logger.removeHandler(default_handler)

    for logger in (app.logger, package_logger):
        _reset_handlers(logger)
        logger.setLevel(level)
        for handler in _build_handlers(app, formatter, level):
            logger.addHandler(handler)

    # Without our own handlers, let records reach the root logger
    package_logger.propagate = not package_logger.handlers
    app.logger.debug("Logging configured (level=%s, format=%s)", level_name, app.config.get("LOG_FORMAT"))
