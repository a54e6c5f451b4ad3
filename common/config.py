from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional
from urllib.parse import urlparse

from dotenv import load_dotenv


def _default_env_file() -> str:
    # .env junto al repo; variables reales del entorno siempre tienen prioridad.
    repo_root = Path(__file__).resolve().parents[1]
    return str(repo_root / ".env")


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("true", "1", "yes", "on")


@dataclass(frozen=True)
class Settings:
    database_url: str

    broker_host: str
    broker_port: int
    broker_username: Optional[str]
    broker_password: Optional[str]
    client_id: str
    keepalive: int

    processed_prefix: str
    deadline_seconds: float
    raw_timestamp_unit: str
    sensor_lookup: str
    accept_bare_topics: bool

    inventory_path: str
    queue_size: int
    num_workers: int

    api_host: str
    api_port: int

    dlq_enabled: bool
    redis_url: str
    dlq_stream_name: str
    dlq_max_len: int

    log_level: str
    simulator_interval_ms: int


def _database_url() -> str:
    db_url = os.getenv("DATABASE_URL") or os.getenv("DB_URL")
    if db_url:
        return db_url

    db_host = os.getenv("DB_HOST", "localhost")
    db_port = os.getenv("DB_PORT", "5432")
    db_name = os.getenv("DB_NAME", "telemetry")
    db_user = os.getenv("DB_USER", "postgres")
    db_pass = os.getenv("DB_PASSWORD", "")
    return f"postgresql+psycopg2://{db_user}:{db_pass}@{db_host}:{db_port}/{db_name}"


def _broker_address() -> tuple[str, int]:
    # BROKER_URL (tcp://host:port) gana sobre MQTT_BROKER_HOST/PORT.
    broker_url = os.getenv("BROKER_URL")
    if broker_url:
        parsed = urlparse(broker_url)
        if parsed.hostname:
            return parsed.hostname, parsed.port or 1883

    host = os.getenv("MQTT_BROKER_HOST", "localhost")
    port = int(os.getenv("MQTT_BROKER_PORT", "1883"))
    return host, port


def get_settings() -> Settings:
    # Load env file (if present) but still allow overriding via real environment variables.
    env_file = os.getenv("IOT_ENV_FILE", _default_env_file())
    if env_file and Path(env_file).exists():
        load_dotenv(env_file, override=False)

    broker_host, broker_port = _broker_address()

    processed_prefix = os.getenv("PIPELINE_PROCESSED_PREFIX", "processed").strip().strip("/")
    if processed_prefix not in ("processed", "clean"):
        raise ValueError(
            f"PIPELINE_PROCESSED_PREFIX must be 'processed' or 'clean', got: {processed_prefix!r}"
        )

    raw_unit = os.getenv("RAW_TIMESTAMP_UNIT", "ms").strip().lower()
    if raw_unit not in ("ms", "ns"):
        raise ValueError(f"RAW_TIMESTAMP_UNIT must be 'ms' or 'ns', got: {raw_unit!r}")

    sensor_lookup = os.getenv("SENSOR_LOOKUP", "topic").strip().lower()
    if sensor_lookup not in ("topic", "inventory"):
        raise ValueError(f"SENSOR_LOOKUP must be 'topic' or 'inventory', got: {sensor_lookup!r}")

    return Settings(
        database_url=_database_url(),
        broker_host=broker_host,
        broker_port=broker_port,
        broker_username=os.getenv("MQTT_USERNAME") or None,
        broker_password=os.getenv("MQTT_PASSWORD") or None,
        client_id=os.getenv("MQTT_CLIENT_ID", "telemetry-ingest"),
        keepalive=int(os.getenv("MQTT_KEEPALIVE", "20")),
        processed_prefix=processed_prefix,
        deadline_seconds=float(os.getenv("PIPELINE_DEADLINE_SECONDS", "10")),
        raw_timestamp_unit=raw_unit,
        sensor_lookup=sensor_lookup,
        accept_bare_topics=_env_bool("PIPELINE_ACCEPT_BARE_TOPICS"),
        inventory_path=os.getenv("INVENTORY_PATH", "configuration.json"),
        queue_size=int(os.getenv("MQTT_QUEUE_SIZE", "1000")),
        num_workers=int(os.getenv("MQTT_NUM_WORKERS", "4")),
        api_host=os.getenv("API_HOST", "0.0.0.0"),
        api_port=int(os.getenv("API_PORT", "8080")),
        dlq_enabled=_env_bool("DLQ_ENABLED"),
        redis_url=os.getenv("REDIS_URL", "redis://localhost:6379/0"),
        dlq_stream_name=os.getenv("DLQ_STREAM_NAME", "dlq:telemetry"),
        dlq_max_len=int(os.getenv("DLQ_MAX_LEN", "10000")),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        simulator_interval_ms=int(os.getenv("SIMULATOR_INTERVAL_MS", "1000")),
    )
