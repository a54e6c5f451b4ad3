"""API HTTP de lectura (FastAPI)."""

from __future__ import annotations

from typing import Optional

from fastapi import FastAPI

from ..storage.gateway import StorageGateway
from . import health, hierarchy
from .health import ReadinessState


def create_app(gateway: StorageGateway, readiness: Optional[ReadinessState] = None) -> FastAPI:
    app = FastAPI(title="Telemetry Ingest API", version="0.1.0")
    app.state.gateway = gateway
    app.state.readiness = readiness or ReadinessState()
    app.include_router(health.router)
    app.include_router(hierarchy.router)
    return app


__all__ = ["create_app", "ReadinessState"]
