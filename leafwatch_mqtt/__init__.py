"""
Leafwatch MQTT Communication Package
====================================

Bounded Context: Observability and Result Mirroring

This package provides structured logging for the inspection pipeline and
MQTT messaging for mirroring results to remote observers.

Architecture:
- schemas/: Immutable message structures (ResultMessage, Timestamp)
- publishers/: Message producers (ResultPublisher)
- logging/: Structured JSON logging for observability

Public API
----------
Schemas:
    Timestamp, ResultMessage

Publishers:
    BasePublisher, ResultPublisher

Logging:
    LogEvent, StructuredLogger, create_logger
"""

__version__ = "1.0.0"

from .schemas import (
    Timestamp,
    ResultMessage,
)

from .publishers import (
    BasePublisher,
    ResultPublisher,
)

from .logging import (
    LogEvent,
    StructuredLogger,
    attach_handler,
    create_logger,
)

__all__ = [
    '__version__',
    'Timestamp',
    'ResultMessage',
    'BasePublisher',
    'ResultPublisher',
    'LogEvent',
    'StructuredLogger',
    'create_logger',
    'attach_handler',
]
