"""Modelos ORM de la jerarquía section -> module -> sensor -> record."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import (
    BigInteger,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    pass


class Section(Base):
    __tablename__ = "sections"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)

    modules: Mapped[list["Module"]] = relationship(back_populates="section", order_by="Module.id")


class Module(Base):
    __tablename__ = "modules"
    __table_args__ = (
        UniqueConstraint("name", "section_id", name="uq_modules_name_section"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    section_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("sections.id", ondelete="RESTRICT"),
        nullable=False,
    )

    section: Mapped[Section] = relationship(back_populates="modules")
    sensors: Mapped[list["Sensor"]] = relationship(back_populates="module", order_by="Sensor.id")


class Sensor(Base):
    __tablename__ = "sensors"
    __table_args__ = (
        UniqueConstraint("name", "module_id", name="uq_sensors_name_module"),
        Index("ix_sensors_topic", "topic"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    module_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("modules.id", ondelete="RESTRICT"),
        nullable=False,
    )
    topic: Mapped[str] = mapped_column(String(767), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    module: Mapped[Module] = relationship(back_populates="sensors")


class Record(Base):
    __tablename__ = "records"
    __table_args__ = (
        Index("ix_records_sensor_created", "sensor_id", "created_at"),
    )

    # BigInteger en PostgreSQL; SQLite solo autoincrementa INTEGER PRIMARY KEY.
    id: Mapped[int] = mapped_column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True)
    # float32: FLOAT(24), que PostgreSQL guarda como real.
    value: Mapped[float] = mapped_column(Float(precision=24), nullable=False)
    sensor_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("sensors.id", ondelete="RESTRICT"),
        nullable=False,
    )
    # Timestamp de captura de la muestra, no de inserción.
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
