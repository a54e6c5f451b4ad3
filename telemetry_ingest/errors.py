"""Taxonomía de errores del pipeline y del reconciliador."""

from __future__ import annotations


class PipelineError(Exception):
    """Error base. `kind` se usa en logs y en la DLQ."""

    kind = "pipeline_error"


class MalformedPayload(PipelineError):
    """Payload con longitud incorrecta o estructura no parseable."""

    kind = "malformed_payload"


class UnknownSensor(PipelineError):
    """El topic no resuelve a ningún sensor configurado."""

    kind = "unknown_sensor"


class TransportError(PipelineError):
    """Fallo de publish/subscribe contra el broker."""

    kind = "transport_error"


class StorageError(PipelineError):
    """Fallo genérico de persistencia."""

    kind = "storage_error"


class DuplicateKey(StorageError):
    """Violación de unicidad en un insert."""

    kind = "duplicate_key"


class InventoryError(Exception):
    """Documento de inventario inválido."""
