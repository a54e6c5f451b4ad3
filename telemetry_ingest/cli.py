"""CLI entry point.

Roles:
    reconcile   crea la jerarquía del inventario en la BD (y opcionalmente
                escribe los ids resueltos de vuelta al documento)
    processor   raw/# -> <processed>/#
    saver       <processed>/# -> records
    run         todo en un proceso: reconcile + processor + saver + API
    api         solo la API de lectura
    simulate    publica muestras raw aleatorias para los sensores conocidos
"""

from __future__ import annotations

import argparse
import logging
import signal
import threading
from typing import Optional

import uvicorn

from common.config import Settings, get_settings
from common.db import get_engine, make_session_factory

from .api import ReadinessState, create_app
from .errors import InventoryError, PipelineError
from .inventory import ConfigReconciler, ReconciliationResult, load_inventory
from .mqtt import AsyncMessageProcessor, PipelineReceiver, create_mqtt_client
from .pipeline import (
    InventorySensorLookup,
    PipelineDispatcher,
    RawStageHandler,
    SensorLookup,
    StoreStageHandler,
    TopicSensorLookup,
)
from .resilience import create_dead_letter_queue
from .simulator import RawSimulator
from .storage import Base, StorageGateway
from .topics import BARE_PREFIX, subscription_filters

logger = logging.getLogger(__name__)

STATS_INTERVAL_SECONDS = 60.0


def _install_signals(stop_event: threading.Event) -> None:
    def _handler(signum, frame):
        logger.info("[MAIN] Signal %s received, shutting down", signum)
        stop_event.set()

    signal.signal(signal.SIGINT, _handler)
    signal.signal(signal.SIGTERM, _handler)


def _open_storage(settings: Settings) -> StorageGateway:
    engine = get_engine(settings)
    Base.metadata.create_all(engine)
    return StorageGateway(make_session_factory(engine))


def _new_receiver(settings: Settings, topics: list[str]) -> PipelineReceiver:
    return PipelineReceiver(
        create_mqtt_client(settings.client_id),
        topics=topics,
        broker_host=settings.broker_host,
        broker_port=settings.broker_port,
        username=settings.broker_username,
        password=settings.broker_password,
        keepalive=settings.keepalive,
    )


def reconcile_inventory(
    settings: Settings,
    gateway: StorageGateway,
    *,
    write_back: bool = False,
) -> ReconciliationResult:
    inventory = load_inventory(settings.inventory_path)
    result = ConfigReconciler(gateway).reconcile(inventory.sensors)
    if write_back:
        inventory.with_sensors(result.apply(inventory.sensors)).dump(settings.inventory_path)
    return result


def build_lookup(
    settings: Settings,
    gateway: StorageGateway,
    result: Optional[ReconciliationResult],
) -> SensorLookup:
    if settings.sensor_lookup == "inventory":
        if result is None:
            raise ValueError("SENSOR_LOOKUP=inventory requires a reconciliation result")
        return InventorySensorLookup(result)
    return TopicSensorLookup(gateway)


def build_handlers(
    settings: Settings,
    receiver: PipelineReceiver,
    *,
    raw: bool,
    store: bool,
    gateway: Optional[StorageGateway] = None,
    lookup: Optional[SensorLookup] = None,
) -> list:
    handlers = []
    if raw:
        handlers.append(
            RawStageHandler(
                receiver.publisher,
                processed_prefix=settings.processed_prefix,
                timeout=settings.deadline_seconds,
                timestamp_unit=settings.raw_timestamp_unit,
            )
        )
    if store:
        handlers.append(StoreStageHandler(gateway, lookup, prefix=settings.processed_prefix))
        if settings.accept_bare_topics:
            handlers.append(StoreStageHandler(gateway, lookup, prefix=BARE_PREFIX))
    return handlers


def run_pipeline(
    settings: Settings,
    stop_event: threading.Event,
    *,
    raw: bool,
    store: bool,
    gateway: Optional[StorageGateway] = None,
    lookup: Optional[SensorLookup] = None,
    readiness: Optional[ReadinessState] = None,
) -> int:
    topics = subscription_filters(
        settings.processed_prefix,
        raw=raw,
        processed=store,
        bare=store and settings.accept_bare_topics,
    )
    receiver = _new_receiver(settings, topics)
    handlers = build_handlers(settings, receiver, raw=raw, store=store, gateway=gateway, lookup=lookup)

    dlq = create_dead_letter_queue(
        enabled=settings.dlq_enabled,
        redis_url=settings.redis_url,
        stream_name=settings.dlq_stream_name,
        max_len=settings.dlq_max_len,
    )
    dispatcher = PipelineDispatcher(handlers, dead_letter=dlq)
    processor = AsyncMessageProcessor(
        dispatcher,
        max_queue_size=settings.queue_size,
        num_workers=settings.num_workers,
    )

    if not receiver.start(processor):
        receiver.stop(drain_timeout=0)
        return 1

    if readiness is not None:
        readiness.set_ready()

    while not stop_event.wait(STATS_INTERVAL_SECONDS):
        logger.info("[MAIN] receiver=%s dispatch=%s", receiver.stats, dispatcher.stats)

    if readiness is not None:
        readiness.set_not_ready()
    receiver.stop(drain_timeout=settings.deadline_seconds)
    return 0


def _start_api_thread(settings: Settings, gateway: StorageGateway, readiness: ReadinessState) -> uvicorn.Server:
    config = uvicorn.Config(
        create_app(gateway, readiness),
        host=settings.api_host,
        port=settings.api_port,
        log_level=settings.log_level.lower(),
    )
    server = uvicorn.Server(config)
    thread = threading.Thread(target=server.run, daemon=True, name="api-server")
    thread.start()
    return server


# ----------------------------------------------------------------------
# Subcomandos
# ----------------------------------------------------------------------


def cmd_reconcile(settings: Settings, args: argparse.Namespace) -> int:
    gateway = _open_storage(settings)
    result = reconcile_inventory(settings, gateway, write_back=args.write_back)
    logger.info("[MAIN] Reconciled %d sensors", len(result))
    return 0


def cmd_processor(settings: Settings, args: argparse.Namespace) -> int:
    stop_event = threading.Event()
    _install_signals(stop_event)
    return run_pipeline(settings, stop_event, raw=True, store=False)


def cmd_saver(settings: Settings, args: argparse.Namespace) -> int:
    gateway = _open_storage(settings)
    result = None
    if settings.sensor_lookup == "inventory":
        result = reconcile_inventory(settings, gateway)

    stop_event = threading.Event()
    _install_signals(stop_event)
    return run_pipeline(
        settings,
        stop_event,
        raw=False,
        store=True,
        gateway=gateway,
        lookup=build_lookup(settings, gateway, result),
    )


def cmd_run(settings: Settings, args: argparse.Namespace) -> int:
    gateway = _open_storage(settings)
    result = reconcile_inventory(settings, gateway, write_back=args.write_back)

    readiness = ReadinessState()
    server = _start_api_thread(settings, gateway, readiness)

    stop_event = threading.Event()
    _install_signals(stop_event)
    try:
        return run_pipeline(
            settings,
            stop_event,
            raw=True,
            store=True,
            gateway=gateway,
            lookup=build_lookup(settings, gateway, result),
            readiness=readiness,
        )
    finally:
        server.should_exit = True


def cmd_api(settings: Settings, args: argparse.Namespace) -> int:
    gateway = _open_storage(settings)
    app = create_app(gateway, ReadinessState(ready=True))
    uvicorn.run(app, host=settings.api_host, port=settings.api_port, log_level=settings.log_level.lower())
    return 0


def cmd_simulate(settings: Settings, args: argparse.Namespace) -> int:
    gateway = _open_storage(settings)
    receiver = _new_receiver(settings, topics=[])
    if not receiver.start():
        receiver.stop()
        return 1

    stop_event = threading.Event()
    _install_signals(stop_event)
    simulator = RawSimulator(
        receiver.publisher,
        gateway.get_all_topics,
        interval_ms=args.interval_ms or settings.simulator_interval_ms,
        timeout=settings.deadline_seconds,
        timestamp_unit=settings.raw_timestamp_unit,
    )
    try:
        simulator.run(stop_event)
    finally:
        receiver.stop()
    return 0


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="telemetry-ingest", description="MQTT telemetry ingest pipeline")
    sub = p.add_subparsers(dest="command", required=True)

    rec = sub.add_parser("reconcile", help="create the inventory hierarchy in the database")
    rec.add_argument("--write-back", action="store_true", help="write resolved sensor ids to the inventory")
    rec.set_defaults(func=cmd_reconcile)

    sub.add_parser("processor", help="raw -> processed stage").set_defaults(func=cmd_processor)
    sub.add_parser("saver", help="processed -> records stage").set_defaults(func=cmd_saver)

    run = sub.add_parser("run", help="reconcile, both stages and the read API in one process")
    run.add_argument("--write-back", action="store_true", help="write resolved sensor ids to the inventory")
    run.set_defaults(func=cmd_run)

    sub.add_parser("api", help="read API only").set_defaults(func=cmd_api)

    sim = sub.add_parser("simulate", help="publish random raw samples for every known sensor")
    sim.add_argument("--interval-ms", type=int, default=None)
    sim.set_defaults(func=cmd_simulate)
    return p


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler()],
    )


def main(argv: Optional[list[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        settings = get_settings()
    except ValueError as e:
        _configure_logging("INFO")
        logger.error("[MAIN] Invalid configuration: %s", e)
        return 1
    _configure_logging(settings.log_level)

    try:
        return args.func(settings, args)
    except (InventoryError, PipelineError, ValueError) as e:
        logger.error("[MAIN] %s failed: %s", args.command, e)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
