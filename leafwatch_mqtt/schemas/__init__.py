"""
Leafwatch MQTT Schemas
=====================

Bounded Context: Data Structures

Design:
- Frozen dataclasses (immutability)
- to_dict() / from_dict() for JSON round trips
- Schema versioning for evolution

Public API
----------
    Timestamp: ISO 8601 timestamp wrapper
    ResultMessage: Mirrored inspection result
"""

from .common import Timestamp
from .result import ResultMessage, SCHEMA_VERSION

__all__ = [
    'Timestamp',
    'ResultMessage',
    'SCHEMA_VERSION',
]
