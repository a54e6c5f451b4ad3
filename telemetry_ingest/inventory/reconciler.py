"""Reconciliación del inventario declarativo contra la BD.

Por cada descriptor, en orden declarado, tres find-or-create anidados:
section -> module -> sensor. Un DuplicateKey en el insert significa que otro
proceso creó la fila primero: se relee y se sigue. Cualquier otro error
aborta la ejecución completa (fail-fast).

El resultado es un mapping inmutable (section, module, name) -> sensor id;
el inventario de entrada no se modifica.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Iterable, Mapping, Optional, Sequence

from ..storage.gateway import StorageGateway
from ..storage.models import Module, Section, Sensor
from ..topics import sensor_topic
from .config import DescriptorKey, SensorDescriptor

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReconciliationResult:
    sensor_ids: Mapping[DescriptorKey, int] = field(default_factory=lambda: MappingProxyType({}))

    def sensor_id_for(self, section: str, module: str, name: str) -> Optional[int]:
        return self.sensor_ids.get((section, module, name))

    def apply(self, descriptors: Iterable[SensorDescriptor]) -> list[SensorDescriptor]:
        """Copias de los descriptores con `id` resuelto."""
        return [
            d.model_copy(update={"id": self.sensor_ids[d.key]}) if d.key in self.sensor_ids else d
            for d in descriptors
        ]

    def __len__(self) -> int:
        return len(self.sensor_ids)


class ConfigReconciler:
    """Crea lo que falte de la jerarquía. No reentrante: correr una vez al arranque."""

    def __init__(self, gateway: StorageGateway):
        self._gateway = gateway

    def reconcile(self, descriptors: Sequence[SensorDescriptor]) -> ReconciliationResult:
        logger.info("[RECONCILE] Starting reconciliation of %d descriptors", len(descriptors))
        sensor_ids: dict[DescriptorKey, int] = {}

        for i, descriptor in enumerate(descriptors, start=1):
            logger.info(
                "[RECONCILE] Processing %d/%d - section=%s module=%s sensor=%s",
                i, len(descriptors), descriptor.section, descriptor.module, descriptor.name,
            )
            try:
                section = self.resolve_section(descriptor.section)
                module = self.resolve_module(section, descriptor.module)
                sensor = self.resolve_sensor(module, section, descriptor.name)
            except Exception:
                logger.error(
                    "[RECONCILE] Aborting at descriptor %d (%s/%s/%s)",
                    i, descriptor.section, descriptor.module, descriptor.name,
                )
                raise
            sensor_ids[descriptor.key] = sensor.id

        logger.info("[RECONCILE] Completed: %d distinct sensors", len(sensor_ids))
        return ReconciliationResult(sensor_ids=MappingProxyType(sensor_ids))

    def resolve_section(self, name: str) -> Section:
        return self._gateway.find_or_create(
            lambda: self._gateway.get_section_by_name(name),
            lambda: self._created(self._gateway.insert_section(name)),
            what=f"section {name!r}",
        )

    def resolve_module(self, section: Section, name: str) -> Module:
        return self._gateway.find_or_create(
            lambda: self._gateway.get_module_by_name_and_section(name, section.name),
            lambda: self._created(self._gateway.insert_module(name, section.id)),
            what=f"module {section.name}/{name}",
        )

    def resolve_sensor(self, module: Module, section: Section, name: str) -> Sensor:
        # El topic se calcula solo al crear; un sensor existente conserva el suyo.
        return self._gateway.find_or_create(
            lambda: self._gateway.get_sensor_by_name_module_section(name, module.name, section.name),
            lambda: self._created(
                self._gateway.insert_sensor(name, module.id, sensor_topic(section.name, module.name, name))
            ),
            what=f"sensor {section.name}/{module.name}/{name}",
        )

    @staticmethod
    def _created(row):
        logger.info("[RECONCILE] Created %s id=%s", type(row).__name__.lower(), row.id)
        return row
