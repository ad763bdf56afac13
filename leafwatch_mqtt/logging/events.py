"""
Structured Log Event Types
==========================

Bounded Context: Observability Event Taxonomy

This module defines typed event names for structured logging.

Design:
- Enum-based (prevents typos, enables autocomplete)
- Hierarchical naming (namespace.category.action)
- Searchable in log aggregators (Elasticsearch, CloudWatch Insights)

Event Naming Convention:
    <component>.<category>.<action>

    component: pipeline, frame, model, alert, mqtt, error
    category: dropped, loaded, published
    action: success, failed

Example Log Query (CloudWatch Insights):
    fields @timestamp, event, message, metadata.frame_id
    | filter event = "frame.failed"
    | stats count() by bin(5m)
"""

from enum import Enum


class LogEvent(str, Enum):
    """
    Typed log event names for structured logging.

    Categories:
    - pipeline.*: Pipeline lifecycle
    - frame.*: Per-frame outcomes
    - model.*: Model loading and backend selection
    - alert.*: Audible alert
    - mqtt.*: MQTT broker interactions
    - error.*: Error conditions
    """

    # ========== Pipeline Events ==========
    PIPELINE_READY = "pipeline.ready"
    """Model loaded, frames may enter conversion."""

    PIPELINE_DEGRADED = "pipeline.degraded"
    """Camera could not be bound, running without preview."""

    PIPELINE_STOPPED = "pipeline.stopped"
    """Worker released and pending frames cancelled."""

    # ========== Frame Events ==========
    FRAME_DROPPED = "frame.dropped"
    """Frame rejected (pacer, busy worker, or not ready) and released."""

    FRAME_FAILED = "frame.failed"
    """Conversion, preprocessing, or inference failed for one frame."""

    RESULT_PUBLISHED = "frame.result.published"
    """Inference result handed to the UI thread."""

    # ========== Model Events ==========
    MODEL_LOADED = "model.loaded"
    """Model loaded on an execution backend."""

    MODEL_BACKEND_FALLBACK = "model.backend.fallback"
    """Optional accelerator unavailable, trying the next backend."""

    # ========== Alert Events ==========
    ALERT_TRIGGERED = "alert.triggered"
    """Alert tone started."""

    ALERT_TOGGLED = "alert.toggled"
    """User enabled or disabled the alert."""

    # ========== MQTT Events ==========
    MQTT_CONNECTED = "mqtt.connected"
    """MQTT broker connection established."""

    MQTT_DISCONNECTED = "mqtt.disconnected"
    """MQTT broker connection lost."""

    MQTT_PUBLISH_SUCCESS = "mqtt.publish.success"
    """Message successfully published to broker."""

    MQTT_PUBLISH_FAILED = "mqtt.publish.failed"
    """Message publication failed."""

    RESULT_SERIALIZED = "mqtt.result.serialized"
    """Result message serialized to JSON."""

    # ========== Error Events ==========
    MODEL_LOAD_ERROR = "error.model_load"
    """No backend could load the model; pipeline will not become ready."""

    CAMERA_BIND_ERROR = "error.camera_bind"
    """Camera source could not be bound."""

    ALERT_ERROR = "error.alert"
    """Alert tone could not be played."""

    SERIALIZATION_ERROR = "error.serialization"
    """Failed to serialize message to JSON."""

    MQTT_CONNECTION_ERROR = "error.mqtt_connection"
    """Failed to connect to MQTT broker."""
