"""Receptor MQTT del pipeline.

Usa paho-mqtt: se suscribe a los wildcards de los stages, y cada mensaje
entrante se encola como InboundMessage para los workers del
AsyncMessageProcessor. El hilo de red de paho nunca procesa.
"""

from __future__ import annotations

import logging
import time
from dataclasses import asdict, dataclass
from typing import Optional, Sequence

import paho.mqtt.client as mqtt

from ..pipeline.handlers import InboundMessage
from .async_processor import AsyncMessageProcessor
from .publisher import MQTTPublisher

logger = logging.getLogger(__name__)


@dataclass
class ReceiveCounters:
    """Contadores del receptor (solo los toca el hilo de red de paho)."""

    received: int = 0
    enqueued: int = 0
    queue_full: int = 0
    not_running: int = 0
    reconnects: int = 0
    last_message_at: float = 0.0

    @property
    def rejected(self) -> int:
        return self.queue_full + self.not_running

    def as_dict(self) -> dict:
        return {**asdict(self), "rejected": self.rejected}


def create_mqtt_client(client_id: str) -> mqtt.Client:
    return mqtt.Client(
        client_id=f"{client_id}-{int(time.time())}",
        protocol=mqtt.MQTTv311,
        callback_api_version=mqtt.CallbackAPIVersion.VERSION2,
    )


class PipelineReceiver:
    """Conecta al broker, suscribe los stages y alimenta el procesador."""

    def __init__(
        self,
        client: mqtt.Client,
        topics: Sequence[str],
        broker_host: str = "localhost",
        broker_port: int = 1883,
        username: Optional[str] = None,
        password: Optional[str] = None,
        keepalive: int = 20,
        qos: int = 1,
    ):
        self.broker_host = broker_host
        self.broker_port = broker_port
        self.username = username
        self.password = password
        self.keepalive = keepalive
        self.topics = list(topics)
        self.qos = qos

        self._client = client
        self._processor: Optional[AsyncMessageProcessor] = None
        self._running = False
        self._connected = False
        self._ever_connected = False

        self._counters = ReceiveCounters()

    @property
    def publisher(self) -> MQTTPublisher:
        """Publisher sobre la misma conexión (para el stage raw)."""
        return MQTTPublisher(self._client, qos=self.qos)

    def start(
        self,
        processor: Optional[AsyncMessageProcessor] = None,
        connect_timeout: float = 5.0,
    ) -> bool:
        """Inicia workers y conexión. False si el broker no responde a tiempo.

        Sin processor solo se conecta (uso de publicación, p. ej. el simulador).
        """
        self._processor = processor
        if processor is not None:
            processor.start()

        self._client.on_connect = self._on_connect
        self._client.on_disconnect = self._on_disconnect
        self._client.on_message = self._on_message

        if self.username and self.password:
            self._client.username_pw_set(self.username, self.password)

        logger.info("[MQTT] Connecting to %s:%d", self.broker_host, self.broker_port)
        try:
            self._client.connect(self.broker_host, self.broker_port, keepalive=self.keepalive)
        except OSError as e:
            logger.error("[MQTT] Connection failed: %s", e)
            if processor is not None:
                processor.stop(drain=False)
            return False

        self._client.loop_start()
        self._running = True

        # Esperar conexión
        waited = 0.0
        while not self._connected and waited < connect_timeout:
            time.sleep(0.1)
            waited += 0.1

        if self._connected:
            logger.info("[MQTT] Started successfully")
            return True

        logger.error("[MQTT] Connection timeout")
        return False

    def stop(self, drain_timeout: Optional[float] = None) -> None:
        """Deja de aceptar, drena lo que está en vuelo y desconecta.

        La conexión sigue abierta mientras se drena: el stage raw aún publica.
        """
        if not self._running:
            return
        self._running = False

        if self._connected and self.topics:
            self._client.unsubscribe(self.topics)

        if self._processor is not None:
            self._processor.stop(drain=True, timeout=drain_timeout)

        self._client.loop_stop()
        self._client.disconnect()
        logger.info("[MQTT] Stopped. %s", self._counters_line())

    def _on_connect(self, client, userdata, flags, reason_code, properties=None):
        """Callback de conexión."""
        if reason_code.is_failure:
            self._connected = False
            logger.error("[MQTT] Connection failed: %s", reason_code)
            return

        if self._ever_connected:
            self._counters.reconnects += 1
        self._ever_connected = True
        self._connected = True
        logger.info("[MQTT] Connected to broker")

        if self.topics:
            client.subscribe([(topic, self.qos) for topic in self.topics])
            logger.info("[MQTT] Subscribed to %s", ", ".join(self.topics))

    def _on_disconnect(self, client, userdata, disconnect_flags, reason_code, properties=None):
        """Callback de desconexión."""
        self._connected = False
        logger.warning("[MQTT] Disconnected (%s)", reason_code)

    def _on_message(self, client, userdata, msg):
        """Callback de mensaje: solo encola."""
        self._counters.received += 1
        self._counters.last_message_at = time.time()

        if not self._running or self._processor is None:
            self._counters.not_running += 1
            return

        if self._processor.enqueue(InboundMessage(topic=msg.topic, payload=bytes(msg.payload))):
            self._counters.enqueued += 1
        else:
            self._counters.queue_full += 1

        if self._counters.received % 1000 == 0:
            logger.info("[MQTT] %s", self._counters_line())

    def _counters_line(self) -> str:
        c = self._counters
        return (
            f"received={c.received} enqueued={c.enqueued} queue_full={c.queue_full} "
            f"not_running={c.not_running} reconnects={c.reconnects}"
        )

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def is_connected(self) -> bool:
        return self._connected

    @property
    def stats(self) -> dict:
        return {
            "running": self._running,
            "connected": self._connected,
            "broker": f"{self.broker_host}:{self.broker_port}",
            "topics": list(self.topics),
            **self._counters.as_dict(),
            "processor": self._processor.metrics if self._processor else None,
        }

    def health_check(self) -> dict:
        return {
            "healthy": self._running and self._connected,
            "running": self._running,
            "connected": self._connected,
        }
