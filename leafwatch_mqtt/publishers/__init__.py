"""
MQTT Publishers
==============

Bounded Context: Message Production

Public API
----------
    BasePublisher: Abstract publisher (for custom publishers)
    ResultPublisher: Inspection result publisher
"""

from .base import BasePublisher
from .result import ResultPublisher

__all__ = [
    'BasePublisher',
    'ResultPublisher',
]
