"""Pipeline de stages: raw -> processed -> records."""

from .dispatcher import PipelineDispatcher
from .handlers import (
    HandlerResult,
    InboundMessage,
    MessageStatus,
    RawStageHandler,
    StageHandler,
    StoreStageHandler,
)
from .lookup import InventorySensorLookup, SensorLookup, TopicSensorLookup

__all__ = [
    "PipelineDispatcher",
    "HandlerResult",
    "InboundMessage",
    "MessageStatus",
    "RawStageHandler",
    "StageHandler",
    "StoreStageHandler",
    "InventorySensorLookup",
    "SensorLookup",
    "TopicSensorLookup",
]
