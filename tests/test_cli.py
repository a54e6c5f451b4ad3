"""Tests del CLI: reconcile de punta a punta sobre SQLite y armado de roles."""

import dataclasses
from unittest.mock import MagicMock

import orjson
import pytest

from common.config import get_settings
from telemetry_ingest.cli import build_handlers, build_lookup, build_parser, main
from telemetry_ingest.inventory import ReconciliationResult
from telemetry_ingest.pipeline import InventorySensorLookup, RawStageHandler, StoreStageHandler, TopicSensorLookup

INVENTORY = {
    "sensors": [
        {"name": "NTC-1", "id": None, "section": "Battery", "module": "Module-1", "type": 1},
        {"name": "NTC-1", "id": None, "section": "Battery", "module": "Module-1", "type": 1},
        {"name": "V-1", "id": None, "section": "Inverter", "module": "Module-1", "type": 2},
    ]
}


@pytest.fixture
def env(monkeypatch, tmp_path):
    inventory = tmp_path / "configuration.json"
    inventory.write_bytes(orjson.dumps(INVENTORY))
    monkeypatch.setenv("IOT_ENV_FILE", str(tmp_path / "missing.env"))
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path / 'telemetry.db'}")
    monkeypatch.setenv("INVENTORY_PATH", str(inventory))
    for key in ("PIPELINE_PROCESSED_PREFIX", "RAW_TIMESTAMP_UNIT", "SENSOR_LOOKUP", "PIPELINE_ACCEPT_BARE_TOPICS"):
        monkeypatch.delenv(key, raising=False)
    return inventory


class TestReconcileCommand:

    def test_reconcile_with_write_back(self, env):
        assert main(["reconcile", "--write-back"]) == 0

        sensors = orjson.loads(env.read_bytes())["sensors"]
        ids = [s["id"] for s in sensors]
        assert all(isinstance(i, int) for i in ids)
        assert ids[0] == ids[1]
        assert ids[0] != ids[2]

    def test_reconcile_is_idempotent(self, env):
        assert main(["reconcile", "--write-back"]) == 0
        first = env.read_bytes()
        assert main(["reconcile", "--write-back"]) == 0
        assert env.read_bytes() == first

    def test_invalid_inventory_exits_1(self, env):
        env.write_bytes(b'{"sensors": [{"name": "", "section": "Battery", "module": "Module-1"}]}')
        assert main(["reconcile"]) == 1

    def test_invalid_settings_exit_1(self, env, monkeypatch):
        monkeypatch.setenv("SENSOR_LOOKUP", "cache")
        assert main(["reconcile"]) == 1


class TestRoles:

    @pytest.fixture
    def settings(self, env):
        return get_settings()

    def test_parser(self):
        args = build_parser().parse_args(["run", "--write-back"])
        assert args.command == "run"
        assert args.write_back is True

    def test_processor_handlers(self, settings):
        handlers = build_handlers(settings, MagicMock(), raw=True, store=False)
        assert [type(h) for h in handlers] == [RawStageHandler]

    def test_saver_with_bare_topics(self, settings, gateway):
        settings = dataclasses.replace(settings, accept_bare_topics=True)
        lookup = TopicSensorLookup(gateway)

        handlers = build_handlers(settings, MagicMock(), raw=False, store=True, gateway=gateway, lookup=lookup)
        assert [type(h) for h in handlers] == [StoreStageHandler, StoreStageHandler]
        assert [h.prefix for h in handlers] == ["processed", ""]

    def test_lookup_selection(self, settings, gateway):
        assert isinstance(build_lookup(settings, gateway, None), TopicSensorLookup)

        inventory_settings = dataclasses.replace(settings, sensor_lookup="inventory")
        assert isinstance(build_lookup(inventory_settings, gateway, ReconciliationResult()), InventorySensorLookup)
        with pytest.raises(ValueError):
            build_lookup(inventory_settings, gateway, None)
