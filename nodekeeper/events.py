"""Structured event sinks.

Components never log progress through a global logger of their own choosing;
they receive an :class:`EventSink` and call ``sink.emit(event, **fields)``.
``main.py`` wires a :class:`LoggingEventSink`, tests wire a recording sink.
"""

import logging
from typing import Any, Dict, Optional, Protocol


class EventSink(Protocol):
    """Receiver of structured progress events."""

    def emit(self, event: str, **fields: Any) -> None:
        ...


class NullEventSink:
    """Sink that discards every event."""

    def emit(self, event: str, **fields: Any) -> None:
        return None


# Per-event log levels; anything not listed is logged at INFO.
EVENT_LEVELS: Dict[str, int] = {
    "attempt_failed": logging.WARNING,
    "request_failed": logging.ERROR,
    "proxy_unsupported": logging.WARNING,
    "step_failed": logging.WARNING,
    "wallet_failed": logging.ERROR,
    "invite_invalid": logging.ERROR,
}

STATUS_ICONS: Dict[str, str] = {
    "success": "✅",
    "failed": "❌",
    "processing": "➡️",
    "start": "🚀",
}


class LoggingEventSink:
    """Render events as log lines on a standard-library logger.

    Args:
        logger: Target logger.  Defaults to ``nodekeeper.events``.
        levels: Optional per-event level overrides merged over
            :data:`EVENT_LEVELS`.
    """

    def __init__(self, logger: Optional[logging.Logger] = None, levels: Optional[Dict[str, int]] = None):
        self.logger = logger or logging.getLogger(__name__)
        self.levels = dict(EVENT_LEVELS)
        if levels:
            self.levels.update(levels)

    def emit(self, event: str, **fields: Any) -> None:
        level = self.levels.get(event, logging.INFO)
        if not self.logger.isEnabledFor(level):
            return
        self.logger.log(level, self.format(event, fields))

    @staticmethod
    def format(event: str, fields: Dict[str, Any]) -> str:
        """Format an event as ``[icon] event key=value ...``."""
        icon = STATUS_ICONS.get(str(fields.get("status", "")), "")
        rendered = " ".join(f"{key}={value}" for key, value in fields.items())
        prefix = f"{icon} {event}" if icon else event
        return f"{prefix} {rendered}".rstrip()
