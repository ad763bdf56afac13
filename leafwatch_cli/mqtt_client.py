"""
MQTT client wrapper for talking to a running inspector.

Sends control commands (QoS 1) and reads result / status messages.
"""

import json
import threading
from typing import Any, Callable, Dict, Optional

import paho.mqtt.client as mqtt


class MQTTCommandClient:
    """
    Short-lived MQTT client for the CLI.

    Each call connects, does its work, and disconnects.
    """

    def __init__(
        self,
        broker: str = "localhost",
        port: int = 1883,
        username: Optional[str] = None,
        password: Optional[str] = None
    ):
        self.broker = broker
        self.port = port

        self.client = mqtt.Client(mqtt.CallbackAPIVersion.VERSION2)
        if username and password:
            self.client.username_pw_set(username, password)

    def _connect(self) -> None:
        try:
            self.client.connect(self.broker, self.port, keepalive=60)
        except OSError as e:
            raise ConnectionError(
                f"Unable to connect to MQTT broker at {self.broker}:{self.port}. "
                "Is mosquitto running?"
            ) from e
        self.client.loop_start()

    def _disconnect(self) -> None:
        self.client.disconnect()
        self.client.loop_stop()

    def send_command(
        self,
        topic: str,
        command: Dict[str, Any],
        qos: int = 1,
        timeout: float = 5.0
    ) -> None:
        """
        Publish one command.

        Raises:
            ConnectionError: If unable to connect to MQTT broker
            TimeoutError: If the broker did not acknowledge in time
        """
        payload = json.dumps(command)

        self._connect()
        try:
            info = self.client.publish(topic, payload, qos=qos)
            info.wait_for_publish(timeout=timeout)
            if not info.is_published():
                raise TimeoutError(f"Command not acknowledged within {timeout}s")
        finally:
            self._disconnect()

        print(f"✅ Command sent: {command.get('command', 'unknown')}")

    def collect(
        self,
        topic: str,
        on_payload: Callable[[Dict[str, Any]], None],
        count: int = 1,
        timeout: Optional[float] = None
    ) -> int:
        """
        Subscribe to a topic and pass decoded JSON messages to on_payload.

        Args:
            topic: Topic to subscribe to
            on_payload: Called with each decoded message (paho thread)
            count: Stop after this many messages (0: until timeout)
            timeout: Stop after this many seconds (None: until count)

        Returns:
            Number of messages received
        """
        received = 0
        done = threading.Event()

        def _on_message(client, userdata, msg):
            nonlocal received
            try:
                data = json.loads(msg.payload.decode("utf-8"))
            except (UnicodeDecodeError, json.JSONDecodeError):
                print(f"⚠️  Ignoring non-JSON message on {msg.topic}")
                return

            on_payload(data)
            received += 1
            if count and received >= count:
                done.set()

        def _on_connect(client, userdata, flags, reason_code, properties):
            client.subscribe(topic, qos=1)

        self.client.on_message = _on_message
        self.client.on_connect = _on_connect

        self._connect()
        try:
            done.wait(timeout=timeout)
        finally:
            self._disconnect()

        return received
