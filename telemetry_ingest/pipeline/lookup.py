"""Resolución topic -> sensor id para el stage de persistencia."""

from __future__ import annotations

from abc import ABC, abstractmethod

from ..errors import UnknownSensor
from ..inventory.reconciler import ReconciliationResult
from ..storage.gateway import StorageGateway
from ..topics import split_path


class SensorLookup(ABC):
    """Estrategia de resolución. Implementaciones sin estado mutable."""

    @abstractmethod
    def resolve(self, remainder: str) -> int:
        """Devuelve el sensor id para `section/module/sensor`.

        Raises:
            UnknownSensor: si el path no resuelve a ningún sensor.
        """


class TopicSensorLookup(SensorLookup):
    """Lookup directo por la columna `topic` de sensors."""

    def __init__(self, gateway: StorageGateway):
        self._gateway = gateway

    def resolve(self, remainder: str) -> int:
        sensor = self._gateway.get_sensor_by_topic(remainder)
        if sensor is None:
            raise UnknownSensor(f"sensor not found for topic {remainder!r}")
        return sensor.id


class InventorySensorLookup(SensorLookup):
    """Lookup contra el resultado de la reconciliación, sin ir a BD."""

    def __init__(self, result: ReconciliationResult):
        self._result = result

    def resolve(self, remainder: str) -> int:
        path = split_path(remainder)
        sensor_id = self._result.sensor_id_for(path.section, path.module, path.sensor)
        if sensor_id is None:
            raise UnknownSensor(f"no reconciled sensor for {remainder!r}")
        return sensor_id
