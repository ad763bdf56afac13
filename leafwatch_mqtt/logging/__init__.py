"""
Structured Logging for Leafwatch
================================

Bounded Context: Observability

This module provides JSON-structured logging for pipeline and messaging events.

Design:
- JSON output (parseable by ELK, CloudWatch, Loki)
- Typed events (enums prevent typos)
- Contextual metadata (frame_id, backend, etc.)
- Execution context (thread name) on every line

Public API
----------
    LogEvent: Typed event names (enum)
    StructuredLogger: JSON logger implementation
    JSONFormatter: Renders records as JSON lines
    create_logger: Factory function
    attach_handler: Add a handler (e.g. a log file) for every structured record

Example:
    >>> from leafwatch_mqtt.logging import StructuredLogger, LogEvent
    >>> logger = StructuredLogger(component="scheduler")
    >>> logger.info(
    ...     event=LogEvent.PIPELINE_READY,
    ...     message="Model loaded, pipeline ready",
    ...     metadata={'backend': 'cpu'}
    ... )
"""

from .events import LogEvent
from .structured import (
    JSONFormatter,
    StructuredLogger,
    attach_handler,
    create_logger,
    detach_handler,
)

__all__ = [
    'LogEvent',
    'JSONFormatter',
    'StructuredLogger',
    'create_logger',
    'attach_handler',
    'detach_handler',
]
