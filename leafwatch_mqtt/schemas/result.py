"""
Result Message Schema
=====================

Bounded Context: Inspection Result Mirroring

This module defines the schema for inspection results mirrored via MQTT.
One message is produced per published InspectionSnapshot; nothing is
persisted and consumers only ever need the latest value.

Message Flow:
    Scheduler → StateSink (UI thread) → ResultMessage → ResultPublisher → MQTT
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional

from .common import Timestamp

SCHEMA_VERSION = "1.0"

_LABELS = {"Positive", "Negative"}


@dataclass(frozen=True)
class ResultMessage:
    """
    Latest inspection state of one service.

    Attributes:
        schema_version: Message schema version (for evolution)
        timestamp: ISO 8601 timestamp of message creation
        service_id: Inspector instance identifier
        frame_id: Frame the result was computed from (0 while waiting)
        result_text: Overlay text shown to the user
        confidence: Model confidence [0.0, 1.0]
        label: "Positive", "Negative", or None while waiting
        ready: Model loaded
        preview_available: Camera bound
        alert_enabled: Audible alert toggle

    Example:
        >>> msg = ResultMessage.from_snapshot(sink.snapshot, service_id="field_01")
        >>> msg.to_dict()['label']
        'Positive'
    """
    schema_version: str
    timestamp: Timestamp
    service_id: str
    frame_id: int
    result_text: str
    confidence: float
    label: Optional[str] = None
    ready: bool = False
    preview_available: bool = True
    alert_enabled: bool = False

    def __post_init__(self):
        """Validate invariants."""
        if not (0.0 <= self.confidence <= 1.0):
            raise ValueError(
                f"Confidence must be in [0.0, 1.0], got {self.confidence}"
            )
        if self.frame_id < 0:
            raise ValueError(f"Frame ID must be >= 0, got {self.frame_id}")
        if self.label is not None and self.label not in _LABELS:
            raise ValueError(f"Label must be one of {sorted(_LABELS)}, got {self.label}")

    @classmethod
    def from_snapshot(cls, snapshot, service_id: str) -> 'ResultMessage':
        """Build from an InspectionSnapshot."""
        label = snapshot.label
        return cls(
            schema_version=SCHEMA_VERSION,
            timestamp=Timestamp.now(),
            service_id=service_id,
            frame_id=snapshot.frame_id,
            result_text=snapshot.result_text,
            confidence=float(snapshot.confidence),
            label=label.value if label is not None else None,
            ready=snapshot.ready,
            preview_available=snapshot.preview_available,
            alert_enabled=snapshot.alert_enabled,
        )

    @property
    def is_positive(self) -> bool:
        return self.label == "Positive"

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to JSON-compatible dict."""
        return {
            'schema_version': self.schema_version,
            'timestamp': self.timestamp.to_dict(),
            'service_id': self.service_id,
            'frame_id': self.frame_id,
            'result_text': self.result_text,
            'confidence': self.confidence,
            'label': self.label,
            'ready': self.ready,
            'preview_available': self.preview_available,
            'alert_enabled': self.alert_enabled,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ResultMessage':
        """Deserialize from dict.

        Raises:
            ValueError: If required fields missing or invalid
        """
        try:
            return cls(
                schema_version=str(data['schema_version']),
                timestamp=Timestamp(value=data['timestamp']),
                service_id=str(data['service_id']),
                frame_id=int(data['frame_id']),
                result_text=str(data['result_text']),
                confidence=float(data['confidence']),
                label=data.get('label'),
                ready=bool(data.get('ready', False)),
                preview_available=bool(data.get('preview_available', True)),
                alert_enabled=bool(data.get('alert_enabled', False)),
            )
        except KeyError as e:
            raise ValueError(f"Missing required ResultMessage field: {e}")
        except (TypeError, ValueError) as e:
            raise ValueError(f"Invalid ResultMessage data: {e}")
