"""Handlers de stage del pipeline.

Máquina de estados por mensaje:

    RECEIVED -> MATCHED | IGNORED
    MATCHED  -> DECODED -> TRANSFORMED -> REPUBLISHED | PERSISTED -> ACKED

IGNORED, ACKED y FAILED son terminales. Un handler nunca lanza por un mensaje
malo: el error queda en el HandlerResult.
"""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Protocol

from ..codec import decode_intermediate, decode_raw, encode_intermediate, widen
from ..errors import PipelineError
from ..storage.gateway import StorageGateway
from ..topics import PROCESSED_PREFIX, RAW_PREFIX, match, stage_topic
from .lookup import SensorLookup

logger = logging.getLogger(__name__)

DEFAULT_DEADLINE_SECONDS = 10.0


class MessageStatus(Enum):
    RECEIVED = "received"
    MATCHED = "matched"
    IGNORED = "ignored"
    DECODED = "decoded"
    TRANSFORMED = "transformed"
    REPUBLISHED = "republished"
    PERSISTED = "persisted"
    ACKED = "acked"
    FAILED = "failed"


TERMINAL_STATUSES = frozenset({MessageStatus.IGNORED, MessageStatus.ACKED, MessageStatus.FAILED})


@dataclass(frozen=True)
class InboundMessage:
    topic: str
    payload: bytes
    received_at: float = field(default_factory=time.time)


@dataclass
class HandlerResult:
    """Resultado de un mensaje en un stage."""

    topic: str
    stage: str
    history: list[MessageStatus] = field(default_factory=lambda: [MessageStatus.RECEIVED])
    error: Optional[PipelineError] = None
    next_topic: Optional[str] = None
    record_id: Optional[int] = None

    @property
    def status(self) -> MessageStatus:
        return self.history[-1]

    @property
    def ignored(self) -> bool:
        return self.status is MessageStatus.IGNORED

    @property
    def acked(self) -> bool:
        return self.status is MessageStatus.ACKED

    @property
    def failed(self) -> bool:
        return self.status is MessageStatus.FAILED

    def advance(self, status: MessageStatus) -> "HandlerResult":
        if self.status in TERMINAL_STATUSES:
            raise RuntimeError(f"message already terminal ({self.status.value}), cannot move to {status.value}")
        self.history.append(status)
        return self

    def fail(self, error: PipelineError) -> "HandlerResult":
        self.error = error
        return self.advance(MessageStatus.FAILED)


class MessagePublisher(Protocol):
    def publish(self, topic: str, payload: bytes, timeout: float) -> None:
        """Publica con deadline. Lanza TransportError si falla o expira."""


class StageHandler(ABC):
    """Base común: match del prefijo, manejo uniforme de errores."""

    name: str = "stage"

    def __init__(self, prefix: str):
        self.prefix = prefix

    def handle(self, message: InboundMessage) -> HandlerResult:
        result = HandlerResult(topic=message.topic, stage=self.name)

        remainder = match(message.topic, self.prefix)
        if remainder is None:
            return result.advance(MessageStatus.IGNORED)
        result.advance(MessageStatus.MATCHED)
        logger.debug("[%s] data incoming from topic: %s", self.name.upper(), message.topic)

        try:
            self._process(result, remainder, message.payload)
        except PipelineError as e:
            return result.fail(e)
        except Exception as e:
            logger.exception("[%s] Unexpected error topic=%s", self.name.upper(), message.topic)
            return result.fail(PipelineError(f"unexpected error: {e}"))

        return result.advance(MessageStatus.ACKED)

    @abstractmethod
    def _process(self, result: HandlerResult, remainder: str, payload: bytes) -> None:
        ...


class RawStageHandler(StageHandler):
    """raw/<path> (12 bytes) -> <processed_prefix>/<path> (JSON)."""

    name = "raw"

    def __init__(
        self,
        publisher: MessagePublisher,
        processed_prefix: str = PROCESSED_PREFIX,
        timeout: float = DEFAULT_DEADLINE_SECONDS,
        timestamp_unit: str = "ms",
    ):
        super().__init__(RAW_PREFIX)
        self._publisher = publisher
        self._processed_prefix = processed_prefix
        self._timeout = timeout
        self._timestamp_unit = timestamp_unit

    def _process(self, result: HandlerResult, remainder: str, payload: bytes) -> None:
        sample = widen(decode_raw(payload, unit=self._timestamp_unit))
        result.advance(MessageStatus.DECODED)

        next_payload = encode_intermediate(sample.value, sample.timestamp)
        next_topic = stage_topic(self._processed_prefix, remainder)
        result.advance(MessageStatus.TRANSFORMED)

        self._publisher.publish(next_topic, next_payload, timeout=self._timeout)
        result.next_topic = next_topic
        result.advance(MessageStatus.REPUBLISHED)


class StoreStageHandler(StageHandler):
    """<processed_prefix>/<path> (JSON) -> fila en records.

    Con prefix="" acepta topics bare section/module/sensor.
    """

    name = "store"

    def __init__(
        self,
        gateway: StorageGateway,
        lookup: SensorLookup,
        prefix: str = PROCESSED_PREFIX,
    ):
        super().__init__(prefix)
        self._gateway = gateway
        self._lookup = lookup
        if prefix == "":
            self.name = "bare"

    def _process(self, result: HandlerResult, remainder: str, payload: bytes) -> None:
        sample = decode_intermediate(payload)
        result.advance(MessageStatus.DECODED)

        sensor_id = self._lookup.resolve(remainder)
        result.advance(MessageStatus.TRANSFORMED)

        record = self._gateway.insert_record(sensor_id, sample.value, sample.timestamp)
        result.record_id = record.id
        result.advance(MessageStatus.PERSISTED)
        logger.debug("[STORE] Record id=%s sensor=%s value=%.4f", record.id, sensor_id, sample.value)
