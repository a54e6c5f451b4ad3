"""Publish MQTT con deadline."""

from __future__ import annotations

import logging

import paho.mqtt.client as mqtt

from ..errors import TransportError

logger = logging.getLogger(__name__)


class MQTTPublisher:
    """Publica y espera el ack del broker hasta `timeout` segundos.

    No llamar desde el hilo de red de paho (on_message): wait_for_publish
    necesita que ese hilo siga corriendo.
    """

    def __init__(self, client: mqtt.Client, qos: int = 1):
        self._client = client
        self._qos = qos

    def publish(self, topic: str, payload: bytes, timeout: float) -> None:
        if not topic:
            raise TransportError("topic cannot be empty")
        if not payload:
            raise TransportError("payload cannot be empty")

        try:
            info = self._client.publish(topic, payload, qos=self._qos)
            if info.rc != mqtt.MQTT_ERR_SUCCESS:
                raise TransportError(
                    f"publish to {topic} rejected: {mqtt.error_string(info.rc)}"
                )
            info.wait_for_publish(timeout=timeout)
            published = info.is_published()
        except (ValueError, RuntimeError) as e:
            raise TransportError(f"publish to {topic} failed: {e}") from e

        if not published:
            raise TransportError(f"publish to {topic} not acknowledged within {timeout:.1f}s")

        logger.debug("[MQTT] Published %d bytes to %s", len(payload), topic)
