"""Endpoints de lectura: secciones, módulos, sensores con sus lecturas, topics."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request

from ..storage.gateway import StorageGateway
from .schemas import ModuleOut, RecordOut, SectionOut, SensorDetail, SensorOut, TopicsOut

router = APIRouter(tags=["hierarchy"])


def get_gateway(request: Request) -> StorageGateway:
    return request.app.state.gateway


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Query params sin offset se interpretan como UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


@router.get("/sections", response_model=List[SectionOut])
def list_sections(gateway: StorageGateway = Depends(get_gateway)):
    return gateway.list_sections()


@router.get("/sections/{section_id}", response_model=SectionOut)
def get_section(section_id: int, gateway: StorageGateway = Depends(get_gateway)):
    section = gateway.get_section_by_id(section_id)
    if section is None:
        raise HTTPException(status_code=404, detail="section not found")
    return section


@router.get("/modules/{module_id}", response_model=ModuleOut)
def get_module(module_id: int, gateway: StorageGateway = Depends(get_gateway)):
    module = gateway.get_module_by_id(module_id)
    if module is None:
        raise HTTPException(status_code=404, detail="module not found")
    return module


@router.get("/sensors/{sensor_id}", response_model=SensorDetail)
def get_sensor(
    sensor_id: int,
    since: Optional[datetime] = Query(default=None),
    until: Optional[datetime] = Query(default=None),
    gateway: StorageGateway = Depends(get_gateway),
):
    """Sensor con sus lecturas en [since, until] (ambos opcionales)."""
    since, until = _as_utc(since), _as_utc(until)
    if since is not None and until is not None and since > until:
        raise HTTPException(status_code=422, detail="since must be <= until")

    sensor = gateway.get_sensor_by_id(sensor_id)
    if sensor is None:
        raise HTTPException(status_code=404, detail="sensor not found")

    records = gateway.get_records(sensor_id, since=since, until=until)
    return SensorDetail(
        **SensorOut.model_validate(sensor).model_dump(),
        records=[RecordOut.model_validate(r) for r in records],
    )


@router.get("/topics", response_model=TopicsOut)
def list_topics(gateway: StorageGateway = Depends(get_gateway)):
    return TopicsOut(topics=gateway.get_all_topics())
