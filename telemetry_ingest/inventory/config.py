"""Inventario declarativo de sensores.

Formato del documento:
{
    "sensors": [
        {"name": "NTC-1", "id": null, "section": "Battery", "module": "Module-1", "type": 1}
    ]
}

`id` es informativo a la entrada; lo rellena la reconciliación.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import IO, Optional, Union

import orjson
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..errors import InventoryError, UnknownSensor

logger = logging.getLogger(__name__)

DescriptorKey = tuple[str, str, str]


class SensorDescriptor(BaseModel):
    """Lugar esperado de un sensor en la jerarquía (inmutable)."""

    model_config = ConfigDict(frozen=True)

    name: str = ""
    id: Optional[int] = None
    section: str = ""
    module: str = ""
    type: int = 0

    @property
    def key(self) -> DescriptorKey:
        return (self.section, self.module, self.name)

    def is_valid(self) -> bool:
        return bool(self.name and self.section and self.module)


class InventoryConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    sensors: list[SensorDescriptor] = Field(default_factory=list)

    def sensor_id_for(self, section: str, module: str, name: str) -> int:
        """Id del descriptor (section, module, name).

        Raises:
            UnknownSensor: si no hay descriptor o aún no tiene id.
        """
        for descriptor in self.sensors:
            if descriptor.key == (section, module, name) and descriptor.id is not None:
                return descriptor.id
        raise UnknownSensor(f"no configured sensor for {section}/{module}/{name}")

    def with_sensors(self, sensors: list[SensorDescriptor]) -> "InventoryConfig":
        return InventoryConfig(sensors=sensors)

    def to_json(self) -> bytes:
        return orjson.dumps(self.model_dump(mode="json"), option=orjson.OPT_INDENT_2)

    def dump(self, target: Union[str, Path, IO[bytes]]) -> None:
        """Escribe el documento (indentado a 2 espacios)."""
        data = self.to_json()
        if isinstance(target, (str, Path)):
            Path(target).write_bytes(data)
        else:
            target.write(data)
        logger.info("[INVENTORY] Written %d sensor descriptors", len(self.sensors))


def parse_inventory(raw: Union[bytes, str]) -> InventoryConfig:
    """Parsea y valida el documento.

    Raises:
        InventoryError: JSON inválido, estructura incorrecta o descriptor sin
            name/section/module (se indica la posición, base 1).
    """
    try:
        data = orjson.loads(raw)
    except orjson.JSONDecodeError as e:
        logger.error("[INVENTORY] Error decoding JSON inventory: %s", e)
        raise InventoryError(f"invalid JSON inventory: {e}") from e

    try:
        config = InventoryConfig.model_validate(data)
    except ValidationError as e:
        raise InventoryError(f"invalid inventory structure: {e}") from e

    for i, descriptor in enumerate(config.sensors, start=1):
        if not descriptor.is_valid():
            logger.warning(
                "[INVENTORY] Sensor descriptor %d not valid - name=%r section=%r module=%r",
                i, descriptor.name, descriptor.section, descriptor.module,
            )
            raise InventoryError(f"sensor descriptor nº{i} not valid")

    logger.info("[INVENTORY] Loaded %d sensor descriptors", len(config.sensors))
    return config


def load_inventory(source: Union[str, Path, IO]) -> InventoryConfig:
    if isinstance(source, (str, Path)):
        path = Path(source)
        try:
            raw = path.read_bytes()
        except OSError as e:
            raise InventoryError(f"cannot read inventory {path}: {e}") from e
        logger.info("[INVENTORY] Loading inventory from %s", path)
    else:
        raw = source.read()
    return parse_inventory(raw)
