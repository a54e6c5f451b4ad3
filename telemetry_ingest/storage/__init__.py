"""Persistencia de la jerarquía y de las lecturas."""

from .gateway import StorageGateway, is_unique_violation
from .models import Base, Module, Record, Section, Sensor

__all__ = [
    "StorageGateway",
    "is_unique_violation",
    "Base",
    "Section",
    "Module",
    "Sensor",
    "Record",
]
