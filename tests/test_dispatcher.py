"""Tests del dispatcher: fan-out a handlers y DLQ."""

from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest

from telemetry_ingest.codec import encode_intermediate, encode_raw
from telemetry_ingest.inventory import ConfigReconciler
from telemetry_ingest.pipeline import (
    InboundMessage,
    MessageStatus,
    PipelineDispatcher,
    RawStageHandler,
    StoreStageHandler,
    TopicSensorLookup,
)

T0 = datetime(2024, 1, 1, tzinfo=timezone.utc)
TOPIC = "Battery/Module-1/NTC-1"


@pytest.fixture
def dlq():
    return MagicMock()


@pytest.fixture
def dispatcher(gateway, publisher, battery_descriptor, dlq) -> PipelineDispatcher:
    ConfigReconciler(gateway).reconcile([battery_descriptor])
    return PipelineDispatcher(
        [
            RawStageHandler(publisher),
            StoreStageHandler(gateway, TopicSensorLookup(gateway)),
        ],
        dead_letter=dlq,
    )


class TestDispatch:

    def test_raw_goes_to_raw_stage(self, dispatcher, publisher):
        result = dispatcher.dispatch(InboundMessage(f"raw/{TOPIC}", encode_raw(1, T0)))

        assert result.stage == "raw"
        assert result.acked
        assert len(publisher.published) == 1

    def test_processed_goes_to_store_stage(self, dispatcher):
        result = dispatcher.dispatch(InboundMessage(f"processed/{TOPIC}", encode_intermediate(1.0, T0)))

        assert result.stage == "store"
        assert result.record_id is not None

    def test_unmatched_topic_is_ignored(self, dispatcher, publisher, dlq):
        result = dispatcher.dispatch(InboundMessage("telemetry/other", b"x"))

        assert result.stage == "none"
        assert result.status is MessageStatus.IGNORED
        assert publisher.published == []
        dlq.send.assert_not_called()

    def test_failure_goes_to_dead_letter(self, dispatcher, dlq):
        dispatcher.dispatch(InboundMessage(f"raw/{TOPIC}", b"\x01\x02"))

        dlq.send.assert_called_once()
        kwargs = dlq.send.call_args.kwargs
        assert kwargs["topic"] == f"raw/{TOPIC}"
        assert kwargs["payload"] == b"\x01\x02"
        assert kwargs["error_type"] == "malformed_payload"
        assert kwargs["source"] == "raw"

    def test_stats(self, dispatcher):
        dispatcher.dispatch(InboundMessage(f"raw/{TOPIC}", encode_raw(1, T0)))
        dispatcher.dispatch(InboundMessage(f"raw/{TOPIC}", b""))
        dispatcher.dispatch(InboundMessage("other", b""))

        assert dispatcher.stats == {"acked": 1, "failed": 1, "ignored": 1}

    def test_without_dead_letter(self, publisher):
        dispatcher = PipelineDispatcher([RawStageHandler(publisher)])
        result = dispatcher.dispatch(InboundMessage(f"raw/{TOPIC}", b""))
        assert result.failed
