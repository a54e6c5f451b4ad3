"""Despacho de un mensaje a todos los stage handlers.

Cada suscriptor recibe todos los stages (wildcard compartido): el mensaje se
ofrece a cada handler y el primero que no lo ignora decide el resultado.
"""

from __future__ import annotations

import logging
import threading
from typing import Optional, Sequence

from ..errors import MalformedPayload, UnknownSensor
from ..resilience.dead_letter import DeadLetterQueue
from .handlers import HandlerResult, InboundMessage, MessageStatus, StageHandler

logger = logging.getLogger(__name__)

# Errores esperables de datos: warning, no error.
_DATA_ERRORS = (MalformedPayload, UnknownSensor)


class PipelineDispatcher:
    def __init__(
        self,
        handlers: Sequence[StageHandler],
        dead_letter: Optional[DeadLetterQueue] = None,
    ):
        self._handlers = list(handlers)
        self._dlq = dead_letter
        self._lock = threading.Lock()
        self._counts = {MessageStatus.ACKED: 0, MessageStatus.FAILED: 0, MessageStatus.IGNORED: 0}

    @property
    def handlers(self) -> list[StageHandler]:
        return list(self._handlers)

    def dispatch(self, message: InboundMessage) -> HandlerResult:
        for handler in self._handlers:
            result = handler.handle(message)
            if not result.ignored:
                self._report(message, result)
                return result

        logger.debug("[DISPATCH] Ignored topic=%s", message.topic)
        result = HandlerResult(topic=message.topic, stage="none").advance(MessageStatus.IGNORED)
        self._count(result)
        return result

    def _report(self, message: InboundMessage, result: HandlerResult) -> None:
        self._count(result)
        if not result.failed:
            return

        error = result.error
        if isinstance(error, _DATA_ERRORS):
            logger.warning("[DISPATCH] Dropped topic=%s stage=%s %s: %s",
                           message.topic, result.stage, error.kind, error)
        else:
            logger.error("[DISPATCH] Failed topic=%s stage=%s %s: %s",
                         message.topic, result.stage, error.kind, error)

        if self._dlq is not None:
            self._dlq.send(
                topic=message.topic,
                payload=message.payload,
                error=str(error),
                error_type=error.kind,
                source=result.stage,
            )

    def _count(self, result: HandlerResult) -> None:
        with self._lock:
            self._counts[result.status] += 1

    @property
    def stats(self) -> dict:
        with self._lock:
            return {status.value: count for status, count in self._counts.items()}
