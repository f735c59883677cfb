"""Logging configuration and setup."""

import logging
import logging.config
import os
import sys
from typing import Dict, Any, Optional

from llm_dispatch.config.models import Environment, LogLevel


ROOT_LOGGER = "llm_dispatch"


def get_logging_config(
    environment: Environment,
    log_level: LogLevel,
    enable_json: bool = False
) -> Dict[str, Any]:
    """Get logging configuration based on environment and settings."""

    if environment == Environment.PRODUCTION or enable_json:
        formatter_class = "llm_dispatch.logging.formatters.JSONFormatter"
    else:
        formatter_class = "llm_dispatch.logging.formatters.StructuredFormatter"

    config = {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "structured": {
                "()": formatter_class,
            },
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "level": log_level.value,
                "formatter": "structured",
                "stream": sys.stdout,
            },
        },
        "loggers": {
            ROOT_LOGGER: {
                "level": log_level.value,
                "handlers": ["console"],
                "propagate": False,
            },
            "uvicorn": {
                "level": log_level.value,
                "handlers": ["console"],
                "propagate": False,
            },
            "uvicorn.access": {
                "level": log_level.value,
                "handlers": ["console"],
                "propagate": False,
            },
            "fastapi": {
                "level": log_level.value,
                "handlers": ["console"],
                "propagate": False,
            },
            # Vendor SDK chatter stays at WARNING unless debugging
            "httpx": {
                "level": "DEBUG" if log_level == LogLevel.DEBUG else "WARNING",
                "handlers": ["console"],
                "propagate": False,
            },
        },
        "root": {
            "level": log_level.value,
            "handlers": ["console"],
        },
    }

    if environment == Environment.PRODUCTION:
        config["handlers"]["file"] = {
            "class": "logging.handlers.RotatingFileHandler",
            "level": log_level.value,
            "formatter": "structured",
            "filename": "logs/llm_dispatch.log",
            "maxBytes": 10485760,  # 10MB
            "backupCount": 5,
        }

        for logger_config in config["loggers"].values():
            logger_config["handlers"].append("file")
        config["root"]["handlers"].append("file")

    return config


def setup_logging(
    environment: Environment = Environment.DEVELOPMENT,
    log_level: LogLevel = LogLevel.INFO,
    enable_json: bool = False
) -> None:
    """Setup logging configuration for the application."""
    if environment == Environment.PRODUCTION:
        os.makedirs("logs", exist_ok=True)

    config = get_logging_config(environment, log_level, enable_json)
    logging.config.dictConfig(config)

    logger = get_logger("logging")
    logger.info(
        "Logging configured",
        extra={
            "environment": environment.value,
            "log_level": log_level.value,
            "json_format": enable_json,
        }
    )


def get_logger(name: str) -> logging.Logger:
    """Get a logger under the package namespace."""
    if name == ROOT_LOGGER or name.startswith(f"{ROOT_LOGGER}."):
        return logging.getLogger(name)
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")


def log_exception(
    logger: logging.Logger,
    message: str,
    exc_info: Optional[BaseException] = None,
    extra: Optional[Dict[str, Any]] = None
) -> None:
    """Log an exception with detailed context."""
    log_extra = dict(extra or {})

    if exc_info:
        log_extra.update({
            "exception_type": type(exc_info).__name__,
            "exception_message": str(exc_info),
        })

    logger.error(message, extra=log_extra, exc_info=exc_info)


def log_performance(
    logger: logging.Logger,
    operation: str,
    duration: float,
    extra: Optional[Dict[str, Any]] = None
) -> None:
    """Log performance metrics for an operation. ``duration`` is in seconds."""
    log_extra = dict(extra or {})
    log_extra.update({
        "operation": operation,
        "duration_ms": round(duration * 1000, 2),
        "performance": True,
    })

    logger.info(f"Operation completed: {operation}", extra=log_extra)
