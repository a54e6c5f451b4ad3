"""Simulador: publica muestras raw aleatorias para cada sensor conocido.

Los topics salen de la tabla sensors; cada intervalo se publica una muestra
de 12 bytes en raw/<topic>. Sirve para probar el pipeline sin hardware.
"""

from __future__ import annotations

import logging
import random
import threading
from datetime import datetime, timezone
from typing import Callable, Optional

from .codec import encode_raw
from .errors import PipelineError
from .pipeline.handlers import MessagePublisher
from .topics import RAW_PREFIX, stage_topic

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL_MS = 1000
VALUE_RANGE = (0, 100)


class RawSimulator:
    def __init__(
        self,
        publisher: MessagePublisher,
        topics: Callable[[], list[str]],
        interval_ms: int = DEFAULT_INTERVAL_MS,
        timeout: float = 10.0,
        timestamp_unit: str = "ms",
        rng: Optional[random.Random] = None,
    ):
        self._publisher = publisher
        self._topics = topics
        self._interval = interval_ms / 1000.0
        self._timeout = timeout
        self._timestamp_unit = timestamp_unit
        self._rng = rng or random.Random()
        self.published = 0
        self.failed = 0

    def tick(self) -> int:
        """Una ronda: una muestra por topic. Devuelve cuántas se publicaron."""
        sent = 0
        for topic in self._topics():
            value = self._rng.randint(*VALUE_RANGE)
            payload = encode_raw(value, datetime.now(timezone.utc), unit=self._timestamp_unit)
            raw_topic = stage_topic(RAW_PREFIX, topic)
            try:
                self._publisher.publish(raw_topic, payload, timeout=self._timeout)
            except PipelineError as e:
                self.failed += 1
                logger.warning("[SIMULATOR] Publish failed topic=%s: %s", raw_topic, e)
                continue
            sent += 1
            logger.debug("[SIMULATOR] Sent value=%d to %s", value, raw_topic)
        self.published += sent
        return sent

    def run(self, stop_event: threading.Event) -> None:
        logger.info("[SIMULATOR] Started interval=%.3fs", self._interval)
        while not stop_event.is_set():
            sent = self.tick()
            if sent == 0:
                logger.info("[SIMULATOR] No topics to publish, waiting...")
            stop_event.wait(self._interval)
        logger.info("[SIMULATOR] Stopped published=%d failed=%d", self.published, self.failed)
