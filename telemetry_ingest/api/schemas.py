from __future__ import annotations

from datetime import datetime
from typing import List

from pydantic import BaseModel, ConfigDict, Field


class _FromORM(BaseModel):
    model_config = ConfigDict(from_attributes=True)


class SensorOut(_FromORM):
    id: int
    name: str
    module_id: int
    topic: str
    created_at: datetime


class RecordOut(_FromORM):
    id: int
    value: float
    created_at: datetime


class SensorDetail(SensorOut):
    records: List[RecordOut] = Field(default_factory=list)


class ModuleOut(_FromORM):
    id: int
    name: str
    section_id: int
    sensors: List[SensorOut] = Field(default_factory=list)


class SectionOut(_FromORM):
    id: int
    name: str
    modules: List[ModuleOut] = Field(default_factory=list)


class TopicsOut(BaseModel):
    topics: List[str] = Field(default_factory=list)
