"""Health and readiness endpoints."""

from __future__ import annotations

import threading

from fastapi import APIRouter, HTTPException, Request

router = APIRouter(tags=["health"])


class ReadinessState:
    """Flag de readiness: el proceso se marca listo tras reconciliar y conectar."""

    def __init__(self, ready: bool = False):
        self._ready = threading.Event()
        if ready:
            self._ready.set()

    def set_ready(self) -> None:
        self._ready.set()

    def set_not_ready(self) -> None:
        self._ready.clear()

    @property
    def is_ready(self) -> bool:
        return self._ready.is_set()


@router.get("/health")
def health():
    """Liveness: ok mientras el proceso corre."""
    return {"status": "ok"}


@router.get("/readyz")
def readyz(request: Request):
    """Readiness: 503 hasta que el proceso termina de arrancar."""
    readiness: ReadinessState = request.app.state.readiness
    if not readiness.is_ready:
        raise HTTPException(status_code=503, detail="not ready")
    return {"status": "ready"}
