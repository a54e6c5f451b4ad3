"""Tests del transporte MQTT con el cliente paho mockeado."""

from unittest.mock import MagicMock

import paho.mqtt.client as mqtt
import pytest

from telemetry_ingest.errors import TransportError
from telemetry_ingest.mqtt import MQTTPublisher, PipelineReceiver
from telemetry_ingest.pipeline import InboundMessage


@pytest.fixture
def mock_client():
    client = MagicMock()
    info = MagicMock(rc=mqtt.MQTT_ERR_SUCCESS)
    info.is_published.return_value = True
    client.publish.return_value = info
    return client


def _reason(failure: bool = False):
    return MagicMock(is_failure=failure)


# =============================================================================
# PUBLISHER
# =============================================================================

class TestMQTTPublisher:

    def test_publish_waits_for_ack(self, mock_client):
        MQTTPublisher(mock_client).publish("processed/a/b/c", b"{}", timeout=10.0)

        mock_client.publish.assert_called_once_with("processed/a/b/c", b"{}", qos=1)
        mock_client.publish.return_value.wait_for_publish.assert_called_once_with(timeout=10.0)

    def test_rejected_publish(self, mock_client):
        mock_client.publish.return_value.rc = mqtt.MQTT_ERR_NO_CONN
        with pytest.raises(TransportError, match="rejected"):
            MQTTPublisher(mock_client).publish("processed/a/b/c", b"{}", timeout=1.0)

    def test_not_acknowledged_in_time(self, mock_client):
        mock_client.publish.return_value.is_published.return_value = False
        with pytest.raises(TransportError, match="not acknowledged"):
            MQTTPublisher(mock_client).publish("processed/a/b/c", b"{}", timeout=1.0)

    def test_wait_error(self, mock_client):
        mock_client.publish.return_value.wait_for_publish.side_effect = RuntimeError("connection lost")
        with pytest.raises(TransportError, match="connection lost"):
            MQTTPublisher(mock_client).publish("processed/a/b/c", b"{}", timeout=1.0)

    @pytest.mark.parametrize("topic,payload", [("", b"{}"), ("processed/a/b/c", b"")])
    def test_empty_topic_or_payload(self, mock_client, topic, payload):
        with pytest.raises(TransportError):
            MQTTPublisher(mock_client).publish(topic, payload, timeout=1.0)
        mock_client.publish.assert_not_called()


# =============================================================================
# RECEIVER
# =============================================================================

class TestPipelineReceiver:

    @pytest.fixture
    def processor(self):
        processor = MagicMock()
        processor.enqueue.return_value = True
        processor.metrics = {}
        return processor

    @pytest.fixture
    def receiver(self, mock_client):
        return PipelineReceiver(mock_client, topics=["raw/#", "processed/#"], username="u", password="p")

    def _start(self, receiver, mock_client, processor):
        mock_client.loop_start.side_effect = lambda: receiver._on_connect(mock_client, None, None, _reason())
        return receiver.start(processor, connect_timeout=1.0)

    def test_start_connects_and_subscribes(self, receiver, mock_client, processor):
        assert self._start(receiver, mock_client, processor) is True

        processor.start.assert_called_once()
        mock_client.username_pw_set.assert_called_once_with("u", "p")
        mock_client.connect.assert_called_once_with("localhost", 1883, keepalive=20)
        mock_client.subscribe.assert_called_once_with([("raw/#", 1), ("processed/#", 1)])
        assert receiver.is_connected
        assert receiver.health_check()["healthy"] is True

    def test_connection_refused(self, receiver, mock_client, processor):
        mock_client.connect.side_effect = ConnectionRefusedError("refused")

        assert receiver.start(processor) is False
        processor.stop.assert_called_once_with(drain=False)
        assert receiver.is_running is False

    def test_failed_connack(self, receiver, mock_client):
        receiver._on_connect(mock_client, None, None, _reason(failure=True))
        assert receiver.is_connected is False
        mock_client.subscribe.assert_not_called()

    def test_message_is_enqueued(self, receiver, mock_client, processor):
        self._start(receiver, mock_client, processor)

        msg = MagicMock(topic="raw/Battery/Module-1/NTC-1", payload=b"\x00" * 12)
        receiver._on_message(mock_client, None, msg)

        [call] = processor.enqueue.call_args_list
        message = call.args[0]
        assert isinstance(message, InboundMessage)
        assert message.topic == "raw/Battery/Module-1/NTC-1"
        assert message.payload == b"\x00" * 12
        assert receiver.stats["enqueued"] == 1

    def test_rejected_when_queue_full(self, receiver, mock_client, processor):
        self._start(receiver, mock_client, processor)
        processor.enqueue.return_value = False

        receiver._on_message(mock_client, None, MagicMock(topic="raw/a/b/c", payload=b""))
        assert receiver.stats["rejected"] == 1
        assert receiver.stats["queue_full"] == 1
        assert receiver.stats["not_running"] == 0

    def test_message_before_start_is_not_enqueued(self, receiver, mock_client, processor):
        receiver._on_message(mock_client, None, MagicMock(topic="raw/a/b/c", payload=b"x"))

        processor.enqueue.assert_not_called()
        stats = receiver.stats
        assert stats["received"] == 1
        assert stats["not_running"] == 1
        assert stats["rejected"] == 1
        assert stats["last_message_at"] > 0

    def test_stop_unsubscribes_drains_then_disconnects(self, receiver, mock_client, processor):
        self._start(receiver, mock_client, processor)
        order = MagicMock()
        order.attach_mock(mock_client.unsubscribe, "unsubscribe")
        order.attach_mock(processor.stop, "drain")
        order.attach_mock(mock_client.disconnect, "disconnect")

        receiver.stop(drain_timeout=10.0)

        assert [c[0] for c in order.mock_calls] == ["unsubscribe", "drain", "disconnect"]
        processor.stop.assert_called_once_with(drain=True, timeout=10.0)
        assert receiver.is_running is False

    def test_reconnect_counts(self, receiver, mock_client, processor):
        self._start(receiver, mock_client, processor)
        receiver._on_disconnect(mock_client, None, None, _reason(failure=True))
        assert receiver.is_connected is False

        receiver._on_connect(mock_client, None, None, _reason())
        assert receiver.stats["reconnects"] == 1
        assert mock_client.subscribe.call_count == 2
