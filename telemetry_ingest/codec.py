"""Codec de cable para muestras de sensores.

Dos formatos:
- raw: 12 bytes big-endian -> int64 timestamp epoch (ms o ns) + int32 valor
- intermedio: JSON {"value": float, "timestamp": ISO-8601}, usado en el salto
  raw -> processed para desacoplar el stage de persistencia del formato binario.
"""

from __future__ import annotations

import struct
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

import orjson
from pydantic import BaseModel, ValidationError, field_validator

from .errors import MalformedPayload

RAW_PAYLOAD_SIZE = 12
_RAW_STRUCT = struct.Struct(">qi")
_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

_UNITS = {
    "ms": timedelta(milliseconds=1),
    "ns": timedelta(microseconds=1),  # datetime no baja de microsegundos
}


@dataclass(frozen=True)
class RawSample:
    value: int
    timestamp: datetime


@dataclass(frozen=True)
class Sample:
    value: float
    timestamp: datetime


class IntermediatePayload(BaseModel):
    """Schema del payload intermedio.

    Formato esperado:
    {
        "value": 42.0,
        "timestamp": "2026-01-31T08:00:00.123000+00:00"
    }
    """

    value: float
    timestamp: datetime

    @field_validator("value", mode="before")
    @classmethod
    def value_must_be_number(cls, v: Any):
        if isinstance(v, bool) or not isinstance(v, (int, float)):
            raise ValueError("value must be a number")
        return v

    @field_validator("timestamp", mode="before")
    @classmethod
    def timestamp_must_be_iso_string(cls, v: Any):
        # Se parsea aquí: el modo lax de pydantic también acepta epoch en string.
        if not isinstance(v, str):
            raise ValueError("timestamp must be an ISO-8601 string")
        try:
            return datetime.fromisoformat(v.replace("Z", "+00:00"))
        except ValueError:
            raise ValueError(f"timestamp is not ISO-8601: {v!r}") from None

    @field_validator("timestamp")
    @classmethod
    def timestamp_as_utc(cls, v: datetime) -> datetime:
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v


def _unit_step(unit: str) -> timedelta:
    try:
        return _UNITS[unit]
    except KeyError:
        raise ValueError(f"unsupported timestamp unit: {unit!r}") from None


def decode_raw(payload: bytes, unit: str = "ms") -> RawSample:
    """Decodifica una muestra raw de 12 bytes.

    Raises:
        MalformedPayload: si la longitud no es exactamente 12 bytes, o si el
            timestamp cae fuera del rango de datetime (años 1 a 9999).
    """
    if len(payload) != RAW_PAYLOAD_SIZE:
        raise MalformedPayload(
            f"invalid raw payload length: expected {RAW_PAYLOAD_SIZE}, got {len(payload)}"
        )

    ticks, value = _RAW_STRUCT.unpack(payload)
    if unit == "ns":
        ticks //= 1000

    try:
        timestamp = _EPOCH + ticks * _unit_step(unit)
    except OverflowError as e:
        raise MalformedPayload(f"raw timestamp out of range: {ticks}") from e

    return RawSample(value=value, timestamp=timestamp)


def encode_raw(value: int, timestamp: datetime, unit: str = "ms") -> bytes:
    """Inverso de decode_raw (simulador y tests)."""
    if timestamp.tzinfo is None:
        timestamp = timestamp.replace(tzinfo=timezone.utc)

    ticks = (timestamp - _EPOCH) // _unit_step(unit)
    if unit == "ns":
        ticks *= 1000

    try:
        return _RAW_STRUCT.pack(ticks, value)
    except struct.error as e:
        raise MalformedPayload(f"cannot encode raw sample: {e}") from e


def encode_intermediate(value: float, timestamp: datetime) -> bytes:
    if timestamp.tzinfo is None:
        timestamp = timestamp.replace(tzinfo=timezone.utc)
    return orjson.dumps({"value": float(value), "timestamp": timestamp.isoformat()})


def decode_intermediate(payload: bytes) -> Sample:
    """Decodifica el payload JSON intermedio.

    Raises:
        MalformedPayload: JSON inválido, campos ausentes o tipos incorrectos.
    """
    try:
        data = orjson.loads(payload)
    except orjson.JSONDecodeError as e:
        raise MalformedPayload(f"invalid JSON: {e}") from e

    if not isinstance(data, dict):
        raise MalformedPayload(f"expected JSON object, got {type(data).__name__}")

    try:
        parsed = IntermediatePayload.model_validate(data)
    except ValidationError as e:
        raise MalformedPayload(f"invalid intermediate payload: {e.errors()}") from e

    return Sample(value=parsed.value, timestamp=parsed.timestamp)


def widen(sample: RawSample) -> Sample:
    """int32 -> float sin escalado."""
    return Sample(value=float(sample.value), timestamp=sample.timestamp)
