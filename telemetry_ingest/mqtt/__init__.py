"""Transporte MQTT: receptor, publisher con deadline y cola de workers."""

from .async_processor import AsyncMessageProcessor
from .publisher import MQTTPublisher
from .receiver import PipelineReceiver, ReceiveCounters, create_mqtt_client

__all__ = [
    "AsyncMessageProcessor",
    "MQTTPublisher",
    "PipelineReceiver",
    "ReceiveCounters",
    "create_mqtt_client",
]
