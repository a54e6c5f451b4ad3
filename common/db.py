from __future__ import annotations

from typing import Optional
import logging

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import sessionmaker

from .config import Settings, get_settings


logger = logging.getLogger(__name__)


def build_engine(database_url: str, *, deadline_seconds: float = 10.0) -> Engine:
    """Crea el engine con los límites de tiempo del pipeline.

    - pool_timeout: espera máxima por una conexión del pool
    - statement_timeout (solo PostgreSQL): corta queries colgadas
    """
    url = make_url(database_url)
    kwargs: dict = {"pool_pre_ping": True, "future": True}
    connect_args: dict = {}

    if url.get_backend_name() == "postgresql":
        connect_args["options"] = f"-c statement_timeout={int(deadline_seconds * 1000)}"
        kwargs.update(
            pool_size=5,
            max_overflow=10,
            pool_recycle=300,
            pool_timeout=deadline_seconds,
        )
    elif url.get_backend_name() == "sqlite":
        connect_args["check_same_thread"] = False

    if connect_args:
        kwargs["connect_args"] = connect_args

    # Log básico de parámetros de conexión (sin contraseña)
    logger.info(
        "[DB] Crear engine backend=%s host=%s db=%s",
        url.get_backend_name(),
        url.host,
        url.database,
    )
    return create_engine(url, **kwargs)


def check_connection(engine: Engine) -> bool:
    """SELECT 1 contra la BD; False si no responde."""
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        return True
    except Exception:
        logger.exception("[DB] Test de conexión FALLÓ")
        return False


def get_engine(settings: Optional[Settings] = None) -> Engine:
    settings = settings or get_settings()
    engine = build_engine(settings.database_url, deadline_seconds=settings.deadline_seconds)
    if check_connection(engine):
        logger.info("[DB] Test de conexión OK")
    return engine


def make_session_factory(engine: Engine) -> sessionmaker:
    # expire_on_commit=False: los objetos devueltos por el gateway se leen fuera de la sesión.
    return sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False, future=True)

