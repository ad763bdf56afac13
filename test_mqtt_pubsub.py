"""
Test MQTT Result Mirror and Control Plane (Without Real Broker)
==============================================================

Exercises serialization of mirrored results, command dispatch through the
control plane, and the CLI payload helpers without a running broker: MQTT
clients are constructed but never connected.

Usage:
    python test_mqtt_pubsub.py
    pytest test_mqtt_pubsub.py
"""

import io
import json
import logging
import tempfile
from pathlib import Path

import pytest

from leafwatch_cli.cli import build_command, format_result
from leafwatch_control import CommandNotAvailableError, CommandRegistry, MQTTControlPlane
from leafwatch_mqtt import LogEvent, ResultPublisher, StructuredLogger, attach_handler, create_logger
from leafwatch_mqtt.logging import detach_handler
from leafwatch_mqtt.schemas import SCHEMA_VERSION, ResultMessage, Timestamp
from leafwatch_processor import InspectionSnapshot, Label
from leafwatch_processor.config import MQTTConfig


def make_publisher():
    return ResultPublisher(
        broker_host="localhost",
        topic="leafwatch/data/results/field_01",
        service_id="field_01",
        logger=create_logger("test"),
    )


def make_control_plane():
    """Control plane whose status messages are recorded instead of sent."""
    plane = MQTTControlPlane(
        broker_host="localhost",
        broker_port=1883,
        command_topic="leafwatch/control/field_01/commands",
        status_topic="leafwatch/control/field_01/status",
        client_id="leafwatch_control_test",
    )
    statuses = []
    plane.publish_status = lambda status, payload=None: statuses.append((status, payload))
    return plane, statuses


def test_result_serialization():
    """A mirrored result survives JSON encoding."""
    print("\n" + "=" * 60)
    print("TEST: Result Serialization/Deserialization")
    print("=" * 60)

    publisher = make_publisher()
    snapshot = InspectionSnapshot(
        result_text="Leaf roll detected",
        confidence=0.91,
        label=Label.POSITIVE,
        ready=True,
        alert_enabled=True,
        frame_id=42,
    )

    msg = ResultMessage.from_snapshot(snapshot, service_id="field_01")
    assert msg.schema_version == SCHEMA_VERSION
    assert msg.label == "Positive"
    assert msg.is_positive
    print("✓ ResultMessage built from snapshot")

    json_str = json.dumps(publisher.format_message(msg))
    reconstructed = ResultMessage.from_dict(json.loads(json_str))
    print(f"✓ Serialized to JSON ({len(json_str)} bytes)")

    assert reconstructed == msg
    assert reconstructed.timestamp.to_datetime().tzinfo is not None
    print("✓ Verification passed: Original == Reconstructed")

    waiting = ResultMessage.from_snapshot(InspectionSnapshot(), service_id="field_01")
    assert waiting.label is None
    assert not waiting.is_positive
    assert waiting.result_text == "Waiting for input..."
    print("✓ Waiting state has no label")


def test_result_message_validation():
    print("\n" + "=" * 60)
    print("TEST: Result Validation")
    print("=" * 60)

    base = dict(
        schema_version="1.0",
        timestamp=Timestamp.now(),
        service_id="field_01",
        frame_id=1,
        result_text="x",
        confidence=0.5,
    )
    with pytest.raises(ValueError):
        ResultMessage(**{**base, "confidence": 1.5})
    with pytest.raises(ValueError):
        ResultMessage(**{**base, "frame_id": -1})
    with pytest.raises(ValueError):
        ResultMessage(**{**base, "label": "Maybe"})

    with pytest.raises(ValueError):
        ResultMessage.from_dict({"schema_version": "1.0"})
    with pytest.raises(ValueError):
        ResultMessage.from_dict({**base, "timestamp": "t", "confidence": "high"})
    print("✓ Invalid fields rejected")


def test_publisher_offline():
    print("\n" + "=" * 60)
    print("TEST: Publisher without broker")
    print("=" * 60)

    publisher = make_publisher()
    assert not publisher.is_connected()
    assert publisher.publish_snapshot(InspectionSnapshot()) is False
    assert publisher.publish_snapshot(InspectionSnapshot()) is False
    stats = publisher.get_stats()
    assert stats["skipped"] == 2
    assert stats["published"] == 0
    assert stats["connected"] is False
    print("✓ Offline results skipped and counted")

    # Never started
    publisher.disconnect()

    config = MQTTConfig(broker="broker.local", port=1884, qos=1)
    publisher = ResultPublisher.from_config(config, "vine_07", logger=create_logger("test"))
    assert publisher.topic == "leafwatch/data/results/vine_07"
    assert publisher.broker_port == 1884
    assert publisher.qos == 1
    print(f"✓ Topic expanded: {publisher.topic}")


def test_structured_log_line():
    print("\n" + "=" * 60)
    print("TEST: Structured log line")
    print("=" * 60)

    logger = StructuredLogger(component="scheduler", level=logging.DEBUG,
                              logger_name="leafwatch.test_structured")
    stream = io.StringIO()
    handler = attach_handler(logging.StreamHandler(stream))

    try:
        logger.debug(event=LogEvent.FRAME_DROPPED, message="Frame dropped",
                     metadata={"frame_id": 9, "reason": "paced"})
        try:
            raise ValueError("bad tensor")
        except ValueError as e:
            logger.error(event=LogEvent.FRAME_FAILED, message="Frame failed", exc_info=e)

        logger.set_level(logging.INFO)
        logger.debug(event=LogEvent.FRAME_DROPPED, message="filtered")
    finally:
        detach_handler(handler)

    lines = [json.loads(line) for line in stream.getvalue().splitlines()]
    assert len(lines) == 2

    dropped, failed = lines
    assert dropped["event"] == "frame.dropped"
    assert dropped["component"] == "scheduler"
    assert dropped["level"] == "DEBUG"
    assert dropped["metadata"] == {"frame_id": 9, "reason": "paced"}
    assert dropped["thread"]
    assert failed["exception"]["type"] == "ValueError"
    assert "bad tensor" in failed["exception"]["traceback"]
    print(f"✓ {dropped}")


def test_structured_events_reach_log_file(tmp_path):
    print("\n" + "=" * 60)
    print("TEST: Structured events in the log file")
    print("=" * 60)

    log_file = tmp_path / "inspector.log"
    handler = attach_handler(logging.FileHandler(log_file))

    try:
        create_logger("engine").info(
            event=LogEvent.MODEL_LOADED,
            message="Model loaded",
            metadata={"backend": "cpu"},
        )
    finally:
        detach_handler(handler)
        handler.close()

    entry = json.loads(log_file.read_text().splitlines()[-1])
    assert entry["event"] == "model.loaded"
    assert entry["component"] == "engine"
    assert entry["metadata"] == {"backend": "cpu"}

    # Detached handlers see nothing further
    create_logger("engine").info(event=LogEvent.MODEL_LOADED, message="again")
    assert len(log_file.read_text().splitlines()) == 1
    print(f"✓ {entry['event']} written to {log_file.name}")


def test_command_registry():
    print("\n" + "=" * 60)
    print("TEST: Command Registry")
    print("=" * 60)

    registry = CommandRegistry()
    registry.register("status", lambda data: {"ok": True}, "Report state")

    assert registry.execute("status") == {"ok": True}
    assert registry.is_available("status")
    assert registry.get_help() == {"status": "Report state"}
    assert len(registry) == 1

    with pytest.raises(ValueError):
        registry.register("status", lambda data: None, "again")
    with pytest.raises(ValueError):
        registry.register("Toggle Alert", lambda data: None, "bad name")
    with pytest.raises(CommandNotAvailableError):
        registry.execute("reboot")
    print("✓ Duplicate, invalid, and unknown commands rejected")


def test_control_plane_dispatch():
    print("\n" + "=" * 60)
    print("TEST: Control Plane Dispatch")
    print("=" * 60)

    plane, statuses = make_control_plane()
    toggles = []
    plane.command_registry.register("toggle_alert", lambda data: toggles.append(data), "Flip")
    plane.command_registry.register("status", lambda data: {"label": "Negative"}, "State")

    assert plane.handle_payload(b'{"command": "toggle_alert"}') is None
    assert toggles == [{"command": "toggle_alert"}]
    assert statuses == []
    print("✓ toggle_alert executed, no reply")

    reply = plane.handle_payload(b'{"command": "STATUS"}')
    assert reply == {"label": "Negative"}
    assert statuses[-1] == ("status", {"label": "Negative"})
    print("✓ status reply published")

    assert plane.handle_payload(b'{"command": "reboot"}') is None
    status, payload = statuses[-1]
    assert status == "command_rejected"
    assert payload["command"] == "reboot"
    print("✓ Unknown command rejected")

    count = len(statuses)
    assert plane.handle_payload(b"not json") is None
    assert plane.handle_payload(b'["toggle_alert"]') is None
    assert plane.handle_payload(b"{}") is None
    assert len(statuses) == count
    assert len(toggles) == 1
    print("✓ Malformed payloads ignored")


def test_control_plane_status_message():
    plane = MQTTControlPlane.from_config(MQTTConfig(broker="localhost"), "field_01")
    assert plane.command_topic == "leafwatch/control/field_01/commands"
    assert plane.status_topic == "leafwatch/control/field_01/status"

    message = plane.build_status("running")
    assert message["status"] == "running"
    assert message["client_id"] == "leafwatch_control_field_01"
    assert "payload" not in message

    message = plane.build_status("stats", {"published": 3})
    assert message["payload"] == {"published": 3}

    # Never connected
    plane.disconnect()
    assert not plane.is_connected


def test_cli_helpers():
    print("\n" + "=" * 60)
    print("TEST: CLI helpers")
    print("=" * 60)

    assert build_command("toggle-alert") == {"command": "toggle_alert"}
    assert build_command("stats") == {"command": "stats"}
    with pytest.raises(ValueError):
        build_command("reboot")

    msg = ResultMessage.from_snapshot(
        InspectionSnapshot(
            result_text="No leaf roll detected",
            confidence=0.12,
            label=Label.NEGATIVE,
            ready=True,
            frame_id=7,
        ),
        service_id="field_01",
    )
    line = format_result(msg.to_dict())
    assert "field_01" in line
    assert "frame=7" in line
    assert "No leaf roll detected (0.12)" in line
    print(f"✓ {line}")


def main():
    """Run all tests."""
    print("\n🍃 leafwatch_mqtt - Result Mirror and Control Tests")
    print("=" * 60)
    print("Testing without real MQTT broker")
    print("=" * 60)

    test_result_serialization()
    test_result_message_validation()
    test_publisher_offline()
    test_structured_log_line()
    with tempfile.TemporaryDirectory() as tmp:
        test_structured_events_reach_log_file(Path(tmp))
    test_command_registry()
    test_control_plane_dispatch()
    test_control_plane_status_message()
    test_cli_helpers()

    print("\n" + "=" * 60)
    print("✅ ALL TESTS PASSED!")
    print("=" * 60)


if __name__ == "__main__":
    main()
