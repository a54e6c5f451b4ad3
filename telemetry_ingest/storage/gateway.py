"""Storage gateway sobre SQLAlchemy.

Cada operación corre en su propia transacción corta. Los inserts traducen
violaciones de unicidad a DuplicateKey; cualquier otro error de SQLAlchemy
sale como StorageError. Las lecturas devuelven None cuando no hay fila.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Callable, Iterator, Optional, TypeVar

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, selectinload, sessionmaker

from ..errors import DuplicateKey, StorageError
from .models import Module, Record, Section, Sensor

logger = logging.getLogger(__name__)

T = TypeVar("T")

_UNIQUE_SQLSTATE = "23505"
_UNIQUE_MARKERS = ("unique constraint", "duplicate key", "duplicate entry")


def is_unique_violation(exc: IntegrityError) -> bool:
    """Clasifica un IntegrityError como violación de unicidad.

    PostgreSQL expone el SQLSTATE (psycopg2: pgcode, psycopg3: sqlstate);
    SQLite solo deja el mensaje ("UNIQUE constraint failed: ...").
    """
    orig = exc.orig
    code = getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)
    if code:
        return code == _UNIQUE_SQLSTATE
    message = str(orig).lower()
    return any(marker in message for marker in _UNIQUE_MARKERS)


class StorageGateway:
    """Operaciones de persistencia que necesitan el pipeline y el reconciliador."""

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    @contextmanager
    def _transaction(self) -> Iterator[Session]:
        try:
            with self._session_factory() as session, session.begin():
                yield session
        except IntegrityError as e:
            if is_unique_violation(e):
                raise DuplicateKey(str(e.orig)) from e
            raise StorageError(str(e.orig)) from e
        except SQLAlchemyError as e:
            raise StorageError(str(e)) from e

    # ------------------------------------------------------------------
    # Inserts
    # ------------------------------------------------------------------

    def _insert(self, obj: T) -> T:
        with self._transaction() as session:
            session.add(obj)
            session.flush()
        return obj

    def insert_section(self, name: str) -> Section:
        return self._insert(Section(name=name))

    def insert_module(self, name: str, section_id: int) -> Module:
        return self._insert(Module(name=name, section_id=section_id))

    def insert_sensor(self, name: str, module_id: int, topic: str) -> Sensor:
        return self._insert(Sensor(name=name, module_id=module_id, topic=topic))

    def insert_record(self, sensor_id: int, value: float, created_at: datetime) -> Record:
        return self._insert(Record(sensor_id=sensor_id, value=float(value), created_at=created_at))

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def get_section_by_name(self, name: str) -> Optional[Section]:
        with self._transaction() as session:
            return session.scalars(select(Section).where(Section.name == name)).first()

    def get_module_by_name_and_section(self, name: str, section_name: str) -> Optional[Module]:
        with self._transaction() as session:
            return session.scalars(
                select(Module)
                .join(Section, Module.section_id == Section.id)
                .where(Module.name == name, Section.name == section_name)
            ).first()

    def get_sensor_by_topic(self, topic: str) -> Optional[Sensor]:
        with self._transaction() as session:
            return session.scalars(
                select(Sensor).where(Sensor.topic == topic).order_by(Sensor.id)
            ).first()

    def get_sensor_by_name_module_section(
        self,
        name: str,
        module_name: str,
        section_name: str,
    ) -> Optional[Sensor]:
        with self._transaction() as session:
            return session.scalars(
                select(Sensor)
                .join(Module, Sensor.module_id == Module.id)
                .join(Section, Module.section_id == Section.id)
                .where(
                    Sensor.name == name,
                    Module.name == module_name,
                    Section.name == section_name,
                )
            ).first()

    # ------------------------------------------------------------------
    # Read API
    # ------------------------------------------------------------------

    def list_sections(self) -> list[Section]:
        with self._transaction() as session:
            return list(
                session.scalars(
                    select(Section)
                    .options(selectinload(Section.modules).selectinload(Module.sensors))
                    .order_by(Section.name)
                )
            )

    def get_section_by_id(self, section_id: int) -> Optional[Section]:
        with self._transaction() as session:
            return session.scalars(
                select(Section)
                .options(selectinload(Section.modules).selectinload(Module.sensors))
                .where(Section.id == section_id)
            ).first()

    def get_module_by_id(self, module_id: int) -> Optional[Module]:
        with self._transaction() as session:
            return session.scalars(
                select(Module).options(selectinload(Module.sensors)).where(Module.id == module_id)
            ).first()

    def get_sensor_by_id(self, sensor_id: int) -> Optional[Sensor]:
        with self._transaction() as session:
            return session.get(Sensor, sensor_id)

    def get_records(
        self,
        sensor_id: int,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
    ) -> list[Record]:
        stmt = select(Record).where(Record.sensor_id == sensor_id)
        if since is not None:
            stmt = stmt.where(Record.created_at >= since)
        if until is not None:
            stmt = stmt.where(Record.created_at <= until)
        with self._transaction() as session:
            return list(session.scalars(stmt.order_by(Record.created_at, Record.id)))

    def get_all_topics(self) -> list[str]:
        with self._transaction() as session:
            return list(session.scalars(select(Sensor.topic).order_by(Sensor.id)))

    # ------------------------------------------------------------------
    # find-or-create
    # ------------------------------------------------------------------

    def find_or_create(
        self,
        find: Callable[[], Optional[T]],
        create: Callable[[], T],
        *,
        what: str = "row",
    ) -> T:
        """Lee; si no existe inserta; si el insert pierde la carrera, relee.

        Solo DuplicateKey se trata como éxito (otro creador ganó). Cualquier
        otro error propaga.
        """
        found = find()
        if found is not None:
            return found

        try:
            return create()
        except DuplicateKey:
            logger.info("[STORAGE] %s created concurrently, re-reading", what)

        found = find()
        if found is None:
            raise StorageError(f"{what}: duplicate key on insert but not found on re-read")
        return found
