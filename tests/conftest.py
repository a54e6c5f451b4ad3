"""Fixtures compartidas: SQLite en memoria y un publisher falso."""

from __future__ import annotations

from typing import List, Tuple

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.pool import StaticPool

from common.db import make_session_factory
from telemetry_ingest.errors import TransportError
from telemetry_ingest.inventory import SensorDescriptor
from telemetry_ingest.storage import Base, StorageGateway


class FakePublisher:
    """Publisher en memoria: guarda (topic, payload, timeout)."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.published: List[Tuple[str, bytes, float]] = []

    def publish(self, topic: str, payload: bytes, timeout: float) -> None:
        if self.fail:
            raise TransportError(f"publish to {topic} not acknowledged within {timeout:.1f}s")
        self.published.append((topic, payload, timeout))


@pytest.fixture
def engine():
    """SQLite en memoria compartida entre sesiones (StaticPool) con FKs activas."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    @event.listens_for(engine, "connect")
    def _enable_foreign_keys(dbapi_conn, _record):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def gateway(engine) -> StorageGateway:
    return StorageGateway(make_session_factory(engine))


@pytest.fixture
def publisher() -> FakePublisher:
    return FakePublisher()


@pytest.fixture
def battery_descriptor() -> SensorDescriptor:
    return SensorDescriptor(name="NTC-1", section="Battery", module="Module-1", type=1)


@pytest.fixture
def failing_publisher() -> FakePublisher:
    return FakePublisher(fail=True)
