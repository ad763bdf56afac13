"""
Result Publisher
================

Bounded Context: Inspection Result Mirroring

Publishes every InspectionSnapshot change as a ResultMessage. Intended to be
subscribed to the StateSink, so it runs on the UI thread; publication itself
is non-blocking (paho queues the packet for its network thread).

Example:
    >>> publisher = ResultPublisher(
    ...     broker_host="localhost",
    ...     topic="leafwatch/data/results/field_01",
    ...     service_id="field_01",
    ...     logger=create_logger("result_publisher"),
    ... )
    >>> publisher.connect()
    >>> sink.subscribe(publisher.publish_snapshot)
"""

from typing import Dict, Any, Optional
from .base import BasePublisher
from ..schemas import ResultMessage
from ..logging import StructuredLogger, LogEvent


class ResultPublisher(BasePublisher):
    """Publisher for mirrored inspection results (QoS 0, not retained)."""

    def __init__(
        self,
        broker_host: str,
        topic: str,
        service_id: str,
        logger: StructuredLogger,
        broker_port: int = 1883,
        client_id: Optional[str] = None,
        username: Optional[str] = None,
        password: Optional[str] = None,
        qos: int = 0
    ):
        super().__init__(
            broker_host=broker_host,
            broker_port=broker_port,
            topic=topic,
            client_id=client_id or f"leafwatch_results_{service_id}",
            logger=logger,
            username=username,
            password=password,
            qos=qos
        )
        self.service_id = service_id

    @classmethod
    def from_config(cls, mqtt_config, service_id: str, logger: StructuredLogger) -> 'ResultPublisher':
        """Build from an MQTTConfig; {service_id} in the topic is expanded."""
        return cls(
            broker_host=mqtt_config.broker,
            broker_port=mqtt_config.port,
            topic=mqtt_config.result_topic.format(service_id=service_id),
            service_id=service_id,
            logger=logger,
            username=mqtt_config.username,
            password=mqtt_config.password,
            qos=mqtt_config.qos,
        )

    def format_message(self, result_msg: ResultMessage) -> Dict[str, Any]:
        formatted = result_msg.to_dict()

        self.logger.debug(
            event=LogEvent.RESULT_SERIALIZED,
            message="Serialized result message",
            metadata={'frame_id': result_msg.frame_id, 'label': result_msg.label}
        )
        return formatted

    def publish_result(self, result_msg: ResultMessage) -> bool:
        """Publish a result message. Returns True if handed to the client."""
        return self.publish(self.format_message(result_msg))

    def publish_snapshot(self, snapshot) -> bool:
        """StateSink listener: mirror an InspectionSnapshot."""
        return self.publish_result(
            ResultMessage.from_snapshot(snapshot, service_id=self.service_id)
        )
