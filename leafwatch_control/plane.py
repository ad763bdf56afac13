"""
MQTTControlPlane - remote commands and status for one inspector

Bounded Context: MQTT connection management + command reception
Responsibilities:
  - MQTT connection lifecycle (connect, disconnect)
  - Command reception on the command topic
  - Status publishing on the status topic
  - Command delegation to CommandRegistry

QoS Policy:
  - Commands: QoS 1 (at-least-once delivery)
  - Status: QoS 1 + retained (last status persisted)

Threading:
  - paho-mqtt runs its own network thread (loop_start/loop_stop)
  - Command handlers run in that thread; anything touching UI state must be
    handed to the UI context by the handler
"""

import json
import logging
from datetime import datetime, timezone
from threading import Event
from typing import Any, Dict, Optional

import paho.mqtt.client as mqtt

from .registry import CommandRegistry, CommandNotAvailableError

logger = logging.getLogger(__name__)


class MQTTControlPlane:
    """
    MQTT Control Plane for receiving commands and publishing status.

    Example:
        control_plane = MQTTControlPlane(
            broker_host="localhost",
            broker_port=1883,
            command_topic="leafwatch/control/field_01/commands",
            status_topic="leafwatch/control/field_01/status",
            client_id="leafwatch_control_field_01",
        )
        control_plane.command_registry.register("status", handler, "Report state")

        if control_plane.connect(timeout=5.0):
            ...
        control_plane.disconnect()
    """

    def __init__(
        self,
        broker_host: str,
        broker_port: int,
        command_topic: str,
        status_topic: str,
        client_id: str,
        username: Optional[str] = None,
        password: Optional[str] = None,
    ):
        self.broker_host = broker_host
        self.broker_port = broker_port
        self.command_topic = command_topic
        self.status_topic = status_topic
        self.client_id = client_id

        self.client = mqtt.Client(
            mqtt.CallbackAPIVersion.VERSION2,
            client_id=client_id,
            protocol=mqtt.MQTTv311,
        )
        self.client.on_connect = self._on_connect
        self.client.on_message = self._on_message
        self.client.on_disconnect = self._on_disconnect

        if username and password:
            self.client.username_pw_set(username, password)

        self._connected = Event()
        self._running = False

        self.command_registry = CommandRegistry()

    @classmethod
    def from_config(cls, mqtt_config, service_id: str) -> "MQTTControlPlane":
        """Build from an MQTTConfig; {service_id} in topics is expanded."""
        return cls(
            broker_host=mqtt_config.broker,
            broker_port=mqtt_config.port,
            command_topic=mqtt_config.command_topic.format(service_id=service_id),
            status_topic=mqtt_config.status_topic.format(service_id=service_id),
            client_id=f"leafwatch_control_{service_id}",
            username=mqtt_config.username,
            password=mqtt_config.password,
        )

    @property
    def is_connected(self) -> bool:
        return self._connected.is_set()

    def connect(self, timeout: float = 5.0) -> bool:
        """
        Connect to MQTT broker with timeout.

        Returns:
            True if connected successfully, False otherwise
        """
        try:
            logger.info(f"🔌 Connecting to MQTT broker: {self.broker_host}:{self.broker_port}")
            self.client.connect(self.broker_host, self.broker_port, keepalive=60)
        except OSError as e:
            logger.error(f"❌ Error connecting to MQTT: {e}")
            return False

        self.client.loop_start()
        self._running = True

        if self._connected.wait(timeout=timeout):
            logger.info("✅ MQTT Control Plane connected")
            return True

        logger.error(f"❌ Connection timeout after {timeout}s")
        return False

    def disconnect(self) -> None:
        """Disconnect from MQTT broker. Safe to call multiple times."""
        if not self._running:
            return

        logger.info("🔌 Disconnecting from MQTT broker")
        self.publish_status("disconnected")
        self.client.disconnect()
        self.client.loop_stop()
        self._running = False
        self._connected.clear()
        logger.info("✅ MQTT Control Plane disconnected")

    def build_status(self, status: str, payload: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        message = {
            "status": status,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "client_id": self.client_id,
        }
        if payload:
            message["payload"] = payload
        return message

    def publish_status(self, status: str, payload: Optional[Dict[str, Any]] = None) -> None:
        """
        Publish a status update (QoS 1, retained).

        Args:
            status: Status string (e.g., "running", "alert_enabled", "stats")
            payload: Optional JSON-serializable details
        """
        message = self.build_status(status, payload)

        try:
            body = json.dumps(message)
        except (TypeError, ValueError) as e:
            logger.error(f"❌ Error serializing status '{status}': {e}")
            return

        self.client.publish(self.status_topic, body, qos=1, retain=True)
        logger.debug(f"📤 Status published: {status}")

    # ===== MQTT Callbacks (run in MQTT thread) =====

    def _on_connect(self, client, userdata, flags, reason_code, properties):
        if reason_code.is_failure:
            logger.error(f"❌ Connection failed ({reason_code})")
            self._connected.clear()
            return

        logger.info(f"✅ Connected to broker ({reason_code})")
        client.subscribe(self.command_topic, qos=1)
        logger.info(f"📥 Subscribed to: {self.command_topic} (QoS 1)")

        self.publish_status("connected")
        self._connected.set()

    def _on_disconnect(self, client, userdata, flags, reason_code, properties):
        if reason_code.is_failure:
            logger.warning(f"⚠️ Unexpected disconnection ({reason_code})")
        else:
            logger.info("✅ Disconnected from broker")
        self._connected.clear()

    def _on_message(self, client, userdata, msg):
        # An exception escaping here would stop paho's network loop
        try:
            self.handle_payload(msg.payload)
        except Exception as e:
            logger.error(f"❌ Error processing message: {e}", exc_info=True)

    def handle_payload(self, raw: bytes) -> Optional[Dict[str, Any]]:
        """
        Decode one command message and execute it.

        Returns:
            The handler's reply payload, or None if the message was rejected
        """
        try:
            command_data = json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            logger.error(f"❌ Error decoding command: {raw!r} ({e})")
            return None

        if not isinstance(command_data, dict):
            logger.warning(f"⚠️ Command payload is not an object: {command_data!r}")
            return None

        command = str(command_data.get("command", "")).lower()
        if not command:
            logger.warning("⚠️ Empty command received")
            return None

        logger.info(f"🎯 Executing command: {command}")
        try:
            reply = self.command_registry.execute(command, command_data)
        except CommandNotAvailableError as e:
            logger.warning(f"⚠️ {e}")
            self.publish_status("command_rejected", {"command": command, "error": str(e)})
            return None

        if reply is not None:
            self.publish_status(command, reply)
        return reply
