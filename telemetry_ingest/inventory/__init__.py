"""Inventario declarativo de sensores y su reconciliación con la BD."""

from .config import InventoryConfig, SensorDescriptor, load_inventory, parse_inventory
from .reconciler import ConfigReconciler, ReconciliationResult

__all__ = [
    "InventoryConfig",
    "SensorDescriptor",
    "load_inventory",
    "parse_inventory",
    "ConfigReconciler",
    "ReconciliationResult",
]
