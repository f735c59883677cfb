"""Logging module for structured logging and dispatch events."""

from .config import setup_logging, get_logger, log_exception, log_performance
from .middleware import LoggingMiddleware
from .formatters import StructuredFormatter, JSONFormatter
from .utils import create_event_logger, DispatchEventLogger

__all__ = [
    "setup_logging",
    "get_logger",
    "log_exception",
    "log_performance",
    "LoggingMiddleware",
    "StructuredFormatter",
    "JSONFormatter",
    "create_event_logger",
    "DispatchEventLogger",
]
