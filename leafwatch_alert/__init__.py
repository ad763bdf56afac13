"""
leafwatch_alert - Audible alert for high-confidence detections

Architecture:
- ToneRequest: sine tone description and PCM synthesis (int16, mono)
- AlertSignal: plays one tone at a time, replacing any tone in flight
- open_output_stream: default sounddevice playback stream
"""

from leafwatch_alert.tone import ToneRequest
from leafwatch_alert.player import AlertSignal, open_output_stream

__all__ = [
    "ToneRequest",
    "AlertSignal",
    "open_output_stream",
]
