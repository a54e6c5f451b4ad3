"""Pipeline de telemetría MQTT: raw -> processed -> records, y reconciliación del inventario."""

__version__ = "0.1.0"
