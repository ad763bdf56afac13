"""
Base MQTT Publisher
==================

Bounded Context: MQTT Infrastructure

Abstract base for the result mirror. Publishing is best-effort: the pipeline
never waits on the broker, and messages produced while offline are skipped
(counted, not queued), since consumers only care about the latest value.

Connection Policy:
- connect() starts the paho network loop and waits up to `timeout` for the
  first CONNACK
- The loop keeps retrying in the background (1s → 30s backoff), so a broker
  that comes up after the inspector still starts receiving results
- disconnect() is idempotent

Threading:
- publish() is called from the UI thread (StateSink listener)
- paho's network thread owns the socket and runs the callbacks
"""

import json
import threading
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import paho.mqtt.client as mqtt

from ..logging import LogEvent, StructuredLogger

RECONNECT_MIN_DELAY_S = 1
RECONNECT_MAX_DELAY_S = 30


class BasePublisher(ABC):
    """
    Best-effort JSON publisher on one topic.

    Subclasses implement format_message() to turn a domain object into a
    JSON-compatible dict.

    Attributes:
        topic: Topic every message goes to
        qos: 0 by default (results are superseded by the next frame anyway)
    """

    def __init__(
        self,
        broker_host: str,
        broker_port: int,
        topic: str,
        client_id: str,
        logger: StructuredLogger,
        username: Optional[str] = None,
        password: Optional[str] = None,
        qos: int = 0
    ):
        self.broker_host = broker_host
        self.broker_port = broker_port
        self.topic = topic
        self.client_id = client_id
        self.logger = logger
        self.qos = qos

        self.client = mqtt.Client(
            mqtt.CallbackAPIVersion.VERSION2,
            client_id=client_id,
            protocol=mqtt.MQTTv311,
        )
        if username and password:
            self.client.username_pw_set(username, password)
        self.client.reconnect_delay_set(RECONNECT_MIN_DELAY_S, RECONNECT_MAX_DELAY_S)

        self.client.on_connect = self._on_connect
        self.client.on_disconnect = self._on_disconnect

        self._connected = threading.Event()
        self._loop_started = False

        self._counts = {'published': 0, 'skipped': 0, 'failed': 0}
        self._counts_lock = threading.Lock()

    @property
    def broker(self) -> str:
        return f"{self.broker_host}:{self.broker_port}"

    # ===== paho callbacks (network thread) =====

    def _on_connect(self, client, userdata, flags, reason_code, properties) -> None:
        if reason_code.is_failure:
            self.logger.error(
                event=LogEvent.MQTT_CONNECTION_ERROR,
                message=f"Broker refused connection ({reason_code})",
                metadata={'broker': self.broker}
            )
            return

        self._connected.set()
        self.logger.info(
            event=LogEvent.MQTT_CONNECTED,
            message="Result mirror connected",
            metadata={'broker': self.broker, 'client_id': self.client_id, 'topic': self.topic}
        )

    def _on_disconnect(self, client, userdata, flags, reason_code, properties) -> None:
        was_connected = self._connected.is_set()
        self._connected.clear()
        if was_connected:
            self.logger.warning(
                event=LogEvent.MQTT_DISCONNECTED,
                message="Result mirror lost the broker",
                metadata={'broker': self.broker, 'reason_code': str(reason_code)}
            )

    # ===== Lifecycle =====

    def connect(self, timeout: float = 5.0) -> bool:
        """
        Start connecting and wait for the first CONNACK.

        Returns:
            True if connected within timeout. On False the client keeps
            retrying in the background.
        """
        if not self._loop_started:
            try:
                self.client.connect_async(self.broker_host, self.broker_port)
            except (OSError, ValueError) as e:
                self.logger.error(
                    event=LogEvent.MQTT_CONNECTION_ERROR,
                    message="Invalid broker address",
                    exc_info=e,
                    metadata={'broker': self.broker}
                )
                return False

            self.client.loop_start()
            self._loop_started = True

        if self._connected.wait(timeout=timeout):
            return True

        self.logger.warning(
            event=LogEvent.MQTT_CONNECTION_ERROR,
            message="Broker not reachable yet, retrying in background",
            metadata={'broker': self.broker, 'timeout': timeout}
        )
        return False

    def disconnect(self) -> None:
        """Stop the network loop. Safe to call multiple times."""
        if not self._loop_started:
            return

        self.client.disconnect()
        self.client.loop_stop()
        self._loop_started = False
        self._connected.clear()

        self.logger.info(
            event=LogEvent.MQTT_DISCONNECTED,
            message="Result mirror stopped",
            metadata=self.get_stats()
        )

    def is_connected(self) -> bool:
        return self._connected.is_set()

    # ===== Publication =====

    @abstractmethod
    def format_message(self, *args, **kwargs) -> Dict[str, Any]:
        """Return a JSON-compatible dict for publication."""
        raise NotImplementedError("Subclasses must implement format_message()")

    def publish(self, message_data: Dict[str, Any], retain: bool = False) -> bool:
        """
        Serialize and hand one message to the network thread.

        Returns:
            True if queued for sending, False if skipped or rejected
        """
        if not self._connected.is_set():
            self._count('skipped')
            self.logger.debug(
                event=LogEvent.MQTT_PUBLISH_FAILED,
                message="Offline, message skipped",
                metadata={'topic': self.topic}
            )
            return False

        try:
            payload = json.dumps(message_data)
        except (TypeError, ValueError) as e:
            self._count('failed')
            self.logger.error(
                event=LogEvent.SERIALIZATION_ERROR,
                message="Message is not JSON-serializable",
                exc_info=e,
                metadata={'topic': self.topic}
            )
            return False

        info = self.client.publish(self.topic, payload, qos=self.qos, retain=retain)
        if info.rc != mqtt.MQTT_ERR_SUCCESS:
            self._count('failed')
            self.logger.warning(
                event=LogEvent.MQTT_PUBLISH_FAILED,
                message=f"Publish rejected by client (rc={info.rc})",
                metadata={'topic': self.topic}
            )
            return False

        published = self._count('published')
        self.logger.debug(
            event=LogEvent.MQTT_PUBLISH_SUCCESS,
            message="Published message",
            metadata={'topic': self.topic, 'published': published, 'qos': self.qos}
        )
        return True

    def _count(self, key: str) -> int:
        with self._counts_lock:
            self._counts[key] += 1
            return self._counts[key]

    def get_stats(self) -> Dict[str, Any]:
        """Counters plus connection state."""
        with self._counts_lock:
            stats = dict(self._counts)
        stats['connected'] = self._connected.is_set()
        stats['broker'] = self.broker
        stats['topic'] = self.topic
        return stats
