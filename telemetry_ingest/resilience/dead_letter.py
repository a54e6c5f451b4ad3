"""Dead Letter Queue para mensajes descartados por el pipeline.

El pipeline no reintenta: MalformedPayload y UnknownSensor se descartan.
Si la DLQ está habilitada, el mensaje original queda en un Redis Stream para
análisis posterior; si no, solo se loguea.
"""

from __future__ import annotations

import base64
import logging
import time
from datetime import datetime, timezone
from typing import Optional

import redis

logger = logging.getLogger(__name__)


class DeadLetterQueue:
    """Dead Letter Queue usando Redis Streams.

    Attributes:
        stream_name: Nombre del stream en Redis
        max_len: Máximo de entradas (aproximado, usa MAXLEN ~)
    """

    STREAM_NAME = "dlq:telemetry"
    DEFAULT_MAX_LEN = 10000

    def __init__(
        self,
        redis_client: Optional[redis.Redis] = None,
        stream_name: str = STREAM_NAME,
        max_len: int = DEFAULT_MAX_LEN,
    ):
        self._redis = redis_client
        self._stream = stream_name
        self._max_len = max_len
        self._enabled = redis_client is not None

        # Stats
        self._total_sent = 0
        self._send_errors = 0

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def stats(self) -> dict:
        return {
            "enabled": self._enabled,
            "stream_name": self._stream,
            "total_sent": self._total_sent,
            "send_errors": self._send_errors,
        }

    def send(
        self,
        topic: str,
        payload: bytes,
        error: str,
        error_type: str,
        source: str,
    ) -> bool:
        """Envía un mensaje fallido a la DLQ.

        El payload raw es binario: se guarda en base64.

        Returns:
            True si se envió correctamente, False si falló o DLQ deshabilitada.
        """
        if not self._enabled:
            logger.warning(
                "DLQ_DISABLED topic=%s error_type=%s error=%s source=%s",
                topic, error_type, error, source,
            )
            return False

        entry = {
            "topic": topic,
            "payload_b64": base64.b64encode(payload[:5000]).decode("ascii"),
            "error": str(error)[:1000],
            "error_type": error_type,
            "source": source,
            "timestamp": str(time.time()),
            "created_at": datetime.now(timezone.utc).isoformat(),
        }

        try:
            self._redis.xadd(
                self._stream,
                entry,
                maxlen=self._max_len,
                approximate=True,
            )
        except redis.RedisError as e:
            self._send_errors += 1
            logger.error("DLQ_SEND_ERROR err=%s topic=%s", e, topic)
            return False

        self._total_sent += 1
        logger.info("DLQ_SENT source=%s error_type=%s topic=%s", source, error_type, topic)
        return True


def create_dead_letter_queue(
    enabled: bool,
    redis_url: str,
    stream_name: str = DeadLetterQueue.STREAM_NAME,
    max_len: int = DeadLetterQueue.DEFAULT_MAX_LEN,
) -> Optional[DeadLetterQueue]:
    """Factory: None si está deshabilitada o Redis no responde."""
    if not enabled:
        logger.info("RESILIENCE DLQ disabled by DLQ_ENABLED=false")
        return None

    try:
        client = redis.Redis.from_url(
            redis_url,
            decode_responses=False,
            socket_timeout=5.0,
            socket_connect_timeout=5.0,
        )
        client.ping()
    except redis.RedisError as e:
        logger.warning("RESILIENCE Redis connection failed, DLQ disabled: %s", e)
        return None

    logger.info("RESILIENCE DLQ initialized (stream=%s, max=%d)", stream_name, max_len)
    return DeadLetterQueue(redis_client=client, stream_name=stream_name, max_len=max_len)
