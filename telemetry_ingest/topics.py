"""Router de topics del pipeline.

Vocabulario:
- raw/<section>/<module>/<sensor>        binario de 12 bytes
- processed/<...> o clean/<...>          JSON intermedio (nombre elegido por despliegue)
- <section>/<module>/<sensor>            "bare": directo a persistencia, sin decodificar binario

Todos los stages llegan a todos los suscriptores (wildcard compartido), así que
un topic que no matchea es simplemente ignorado, nunca un error.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from .errors import UnknownSensor

RAW_PREFIX = "raw"
PROCESSED_PREFIX = "processed"
CLEAN_PREFIX = "clean"
BARE_PREFIX = ""

STAGE_PREFIXES = (RAW_PREFIX, PROCESSED_PREFIX, CLEAN_PREFIX)
SEPARATOR = "/"


@dataclass(frozen=True)
class HierarchyPath:
    section: str
    module: str
    sensor: str

    @property
    def topic(self) -> str:
        return sensor_topic(self.section, self.module, self.sensor)


def match(topic: str, prefix: str) -> Optional[str]:
    """Devuelve el resto del topic si empieza por `prefix + "/"`, None si no.

    Con prefix vacío se evalúa la forma bare: el topic no debe empezar por un
    prefijo de stage conocido y debe tener exactamente tres segmentos.
    """
    if prefix == BARE_PREFIX:
        head = topic.split(SEPARATOR, 1)[0]
        if head in STAGE_PREFIXES:
            return None
        return topic if _is_hierarchy_path(topic) else None

    head = prefix + SEPARATOR
    if not topic.startswith(head):
        return None
    return topic[len(head):]


def _is_hierarchy_path(path: str) -> bool:
    parts = path.split(SEPARATOR)
    return len(parts) == 3 and all(parts)


def split_path(remainder: str) -> HierarchyPath:
    """section/module/sensor -> HierarchyPath.

    Raises:
        UnknownSensor: si el resto no tiene exactamente tres segmentos no vacíos.
    """
    if not _is_hierarchy_path(remainder):
        raise UnknownSensor(f"topic path is not section/module/sensor: {remainder!r}")
    section, module, sensor = remainder.split(SEPARATOR)
    return HierarchyPath(section=section, module=module, sensor=sensor)


def sensor_topic(section: str, module: str, name: str) -> str:
    return SEPARATOR.join((section, module, name))


def stage_topic(prefix: str, remainder: str) -> str:
    if prefix == BARE_PREFIX:
        return remainder
    return f"{prefix}{SEPARATOR}{remainder}"


def subscription_filters(
    processed_prefix: str = PROCESSED_PREFIX,
    *,
    raw: bool = True,
    processed: bool = True,
    bare: bool = False,
) -> list[str]:
    """Filtros wildcard a suscribir según el rol del proceso."""
    filters = []
    if raw:
        filters.append(f"{RAW_PREFIX}/#")
    if processed:
        filters.append(f"{processed_prefix}/#")
    if bare:
        filters.append("+/+/+")
    return filters
