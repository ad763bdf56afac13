"""
leafwatch_control - remote control of an inspector over MQTT

Architecture:
  - CommandRegistry: explicit command registration
  - MQTTControlPlane: MQTT client, command reception, status publishing
  - Commands at QoS 1, status retained
"""

from .registry import CommandRegistry, CommandNotAvailableError
from .plane import MQTTControlPlane

__all__ = [
    "CommandRegistry",
    "CommandNotAvailableError",
    "MQTTControlPlane",
]
