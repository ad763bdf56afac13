"""
Structured Logging
==================

Bounded Context: Observability

JSON logs for pipeline and messaging events. Every line is one JSON object
carrying the typed event, the component, and the execution context (thread)
it was emitted from, which is what tells the camera, inference, and UI
contexts apart when reading a trace.

The event fields travel on the standard LogRecord (via `extra`). Component
loggers propagate to the shared `leafwatch` logger, which writes JSON lines to
stderr; hosts add their own handlers there with attach_handler() (the
inspector adds its log file).

Example:
    >>> logger = StructuredLogger(component="scheduler")
    >>> logger.info(
    ...     event=LogEvent.RESULT_PUBLISHED,
    ...     message="Published result",
    ...     metadata={'frame_id': 123, 'confidence': 0.91}
    ... )

Output:
    {"timestamp": "2025-10-24T15:30:45.123456+00:00", "level": "INFO",
     "component": "scheduler", "thread": "inference_0",
     "event": "frame.result.published", "message": "Published result",
     "metadata": {"frame_id": 123, "confidence": 0.91}}
"""

import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from .events import LogEvent

_FIELDS_ATTR = "leafwatch_fields"
PARENT_LOGGER = "leafwatch"


class JSONFormatter(logging.Formatter):
    """Render a record (structured or plain) as one JSON line."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            'timestamp': datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            'level': record.levelname,
            'thread': record.threadName,
        }

        fields = getattr(record, _FIELDS_ATTR, None)
        if fields is not None:
            entry.update(fields)
        else:
            entry['component'] = record.name
        entry['message'] = record.getMessage()

        if record.exc_info and record.exc_info[1] is not None:
            exc = record.exc_info[1]
            entry['exception'] = {
                'type': type(exc).__name__,
                'message': str(exc),
                'traceback': self.formatException(record.exc_info),
            }

        return json.dumps(entry, default=str)


def _parent_logger() -> logging.Logger:
    """The shared `leafwatch` logger, with its JSON console handler."""
    parent = logging.getLogger(PARENT_LOGGER)
    if not parent.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(JSONFormatter())
        parent.addHandler(handler)
        # Keep JSON lines out of the root's plain console format
        parent.propagate = False
    return parent


def attach_handler(handler: logging.Handler) -> logging.Handler:
    """
    Send every structured record to `handler` as well.

    Handlers without a formatter get JSONFormatter.

    Example:
        >>> attach_handler(logging.FileHandler("logs/inspector.log"))
    """
    if handler.formatter is None:
        handler.setFormatter(JSONFormatter())
    _parent_logger().addHandler(handler)
    return handler


def detach_handler(handler: logging.Handler) -> None:
    logging.getLogger(PARENT_LOGGER).removeHandler(handler)


class StructuredLogger:
    """
    Event-typed front end to a standard logger.

    Records go to `leafwatch.<component>` and propagate to the shared
    `leafwatch` logger, which owns the handlers (JSON console by default,
    plus whatever attach_handler() adds).

    Thread Safety:
        Thread-safe via Python's logging module.
    """

    def __init__(
        self,
        component: str,
        level: int = logging.INFO,
        logger_name: Optional[str] = None
    ):
        self.component = component
        self.logger = logging.getLogger(logger_name or f"leafwatch.{component}")
        self.logger.setLevel(level)
        _parent_logger()

    def _log(
        self,
        level: int,
        event: LogEvent,
        message: str,
        metadata: Optional[Dict[str, Any]] = None,
        exc_info: Optional[BaseException] = None
    ) -> None:
        if not self.logger.isEnabledFor(level):
            return

        fields = {'component': self.component, 'event': event.value}
        if metadata:
            fields['metadata'] = metadata

        self.logger.log(level, message, exc_info=exc_info, extra={_FIELDS_ATTR: fields})

    def debug(self, event: LogEvent, message: str, metadata: Optional[Dict[str, Any]] = None) -> None:
        """High-frequency events (dropped frames, per-frame results)."""
        self._log(logging.DEBUG, event, message, metadata)

    def info(self, event: LogEvent, message: str, metadata: Optional[Dict[str, Any]] = None) -> None:
        self._log(logging.INFO, event, message, metadata)

    def warning(self, event: LogEvent, message: str, metadata: Optional[Dict[str, Any]] = None) -> None:
        self._log(logging.WARNING, event, message, metadata)

    def error(
        self,
        event: LogEvent,
        message: str,
        metadata: Optional[Dict[str, Any]] = None,
        exc_info: Optional[BaseException] = None
    ) -> None:
        """
        Log an error, with the exception's type, message, and traceback.

        Example:
            >>> try:
            ...     engine.infer(tensor)
            ... except InferenceError as e:
            ...     logger.error(
            ...         event=LogEvent.FRAME_FAILED,
            ...         message="Inference failed",
            ...         exc_info=e,
            ...         metadata={'frame_id': 123}
            ...     )
        """
        self._log(logging.ERROR, event, message, metadata, exc_info)

    def set_level(self, level: int) -> None:
        self.logger.setLevel(level)


def create_logger(component: str, level: int = logging.INFO) -> StructuredLogger:
    """Factory for a StructuredLogger (`create_logger("scheduler", logging.DEBUG)`)."""
    return StructuredLogger(component=component, level=level)
