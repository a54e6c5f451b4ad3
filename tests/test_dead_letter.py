"""Tests de la DLQ sobre Redis Streams (cliente mockeado)."""

import base64
from unittest.mock import MagicMock, patch

import redis

from telemetry_ingest.resilience import DeadLetterQueue, create_dead_letter_queue


class TestDeadLetterQueue:

    def test_send(self):
        client = MagicMock()
        dlq = DeadLetterQueue(redis_client=client, stream_name="dlq:test", max_len=10)

        assert dlq.send("raw/a/b/c", b"\x01\x02", "bad length", "malformed_payload", "raw") is True

        stream, entry = client.xadd.call_args.args
        assert stream == "dlq:test"
        assert entry["topic"] == "raw/a/b/c"
        assert base64.b64decode(entry["payload_b64"]) == b"\x01\x02"
        assert entry["error_type"] == "malformed_payload"
        assert entry["source"] == "raw"
        assert client.xadd.call_args.kwargs == {"maxlen": 10, "approximate": True}
        assert dlq.stats["total_sent"] == 1

    def test_redis_error(self):
        client = MagicMock()
        client.xadd.side_effect = redis.ConnectionError("down")
        dlq = DeadLetterQueue(redis_client=client)

        assert dlq.send("raw/a/b/c", b"", "e", "malformed_payload", "raw") is False
        assert dlq.stats["send_errors"] == 1

    def test_disabled(self):
        dlq = DeadLetterQueue()
        assert dlq.enabled is False
        assert dlq.send("raw/a/b/c", b"", "e", "malformed_payload", "raw") is False


class TestFactory:

    def test_disabled_by_flag(self):
        assert create_dead_letter_queue(enabled=False, redis_url="redis://localhost:6379/0") is None

    def test_redis_unreachable(self):
        client = MagicMock()
        client.ping.side_effect = redis.ConnectionError("refused")
        with patch("redis.Redis.from_url", return_value=client):
            assert create_dead_letter_queue(enabled=True, redis_url="redis://nowhere:6379/0") is None

    def test_enabled(self):
        with patch("redis.Redis.from_url", return_value=MagicMock()):
            dlq = create_dead_letter_queue(enabled=True, redis_url="redis://localhost:6379/0", stream_name="dlq:x")
        assert dlq is not None
        assert dlq.enabled
        assert dlq.stats["stream_name"] == "dlq:x"
