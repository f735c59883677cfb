"""Dispatch event logging helpers."""

import logging
from typing import Any, Dict, Optional

from .config import get_logger


# Observability events emitted by the dispatch layer and their log levels
EVENT_LEVELS: Dict[str, int] = {
    "retry_scheduled": logging.WARNING,
    "circuit_opened": logging.WARNING,
    "circuit_half_open": logging.INFO,
    "circuit_closed": logging.INFO,
    "fallback_advance": logging.WARNING,
    "fallback_succeeded": logging.INFO,
    "fallback_exhausted": logging.ERROR,
    "registry_initialized": logging.INFO,
    "adapter_created": logging.INFO,
    "registry_reload": logging.INFO,
    "registry_health": logging.INFO,
}


def create_event_logger(name: str) -> 'DispatchEventLogger':
    """Create an event logger for a dispatch component."""
    return DispatchEventLogger(name)


class DispatchEventLogger:
    """Specialized logger for structured dispatch events.

    Every record carries an ``event`` field naming the event and a
    ``component`` field naming the emitter, so log pipelines can filter on
    them without parsing messages.
    """

    def __init__(self, name: str):
        self.component = name
        self.logger = get_logger(f"events.{name}")

    def log_event(
        self,
        event: str,
        message: Optional[str] = None,
        level: Optional[int] = None,
        **extra: Any
    ) -> None:
        """Log a dispatch event with structured context."""
        event_data = {
            "event": event,
            "component": self.component,
            **extra
        }
        if level is None:
            level = EVENT_LEVELS.get(event, logging.INFO)
        self.logger.log(level, message or f"Dispatch event: {event}", extra=event_data)

    def retry_scheduled(self, adapter_id: str, attempt: int, delay_ms: float, error: BaseException) -> None:
        self.log_event(
            "retry_scheduled",
            f"Retrying {adapter_id} after attempt {attempt} in {delay_ms:.0f}ms: {error}",
            adapter_id=adapter_id,
            attempt=attempt,
            delay_ms=delay_ms,
            error_type=type(error).__name__,
        )

    def circuit_transition(self, event: str, breaker: str, failures: int) -> None:
        self.log_event(
            event,
            f"Circuit {breaker}: {event.replace('circuit_', '').replace('_', '-')}",
            breaker=breaker,
            consecutive_failures=failures,
        )

    def fallback_advance(self, adapter_id: str, position: int, error: BaseException) -> None:
        self.log_event(
            "fallback_advance",
            f"Adapter {adapter_id} failed, advancing fallback chain: {error}",
            adapter_id=adapter_id,
            position=position,
            error_type=type(error).__name__,
        )
