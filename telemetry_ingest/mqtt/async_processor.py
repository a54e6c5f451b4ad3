"""Async processor: decouples the paho callback from stage handling.

The paho network loop thread only enqueues (~0.01ms); worker threads run
the dispatcher, which may block on publish acks or DB writes.

- Bounded queue provides backpressure (full queue -> message dropped)
- Workers share nothing but the dispatcher (stateless handlers + DB pool)
- stop() stops acceptance, drains in-flight work up to a deadline
"""

from __future__ import annotations

import logging
import queue
import threading
import time
from typing import Optional

from ..pipeline.dispatcher import PipelineDispatcher
from ..pipeline.handlers import InboundMessage, MessageStatus

logger = logging.getLogger(__name__)

DEFAULT_QUEUE_SIZE = 1000
DEFAULT_NUM_WORKERS = 4


class AsyncMessageProcessor:
    """Queue + worker threads around PipelineDispatcher."""

    def __init__(
        self,
        dispatcher: PipelineDispatcher,
        max_queue_size: int = DEFAULT_QUEUE_SIZE,
        num_workers: int = DEFAULT_NUM_WORKERS,
    ):
        self._dispatcher = dispatcher
        self._queue: queue.Queue = queue.Queue(maxsize=max_queue_size)
        self._num_workers = num_workers
        self._stop_event = threading.Event()
        self._accepting = False

        # Metrics
        self._enqueued = 0
        self._dropped = 0
        self._acked = 0
        self._failed = 0
        self._ignored = 0
        self._errors = 0
        self._lock = threading.Lock()

        self._workers: list[threading.Thread] = []

    def start(self) -> None:
        """Start worker threads."""
        self._stop_event.clear()
        for i in range(self._num_workers):
            t = threading.Thread(
                target=self._worker_loop,
                args=(i,),
                daemon=True,
                name=f"pipeline-worker-{i}",
            )
            t.start()
            self._workers.append(t)
        self._accepting = True
        logger.info(
            "[ASYNC_PROC] Started workers=%d queue_max=%d",
            self._num_workers, self._queue.maxsize,
        )

    def stop(self, drain: bool = True, timeout: Optional[float] = None) -> None:
        """Stop accepting; if drain=True wait for queued/in-flight work first."""
        self._accepting = False
        if drain:
            deadline = None if timeout is None else time.monotonic() + timeout
            while not self._drained():
                if deadline is not None and time.monotonic() >= deadline:
                    logger.warning("[ASYNC_PROC] Drain deadline reached, %d queued", self._queue.qsize())
                    break
                time.sleep(0.05)

        self._stop_event.set()
        for t in self._workers:
            t.join(timeout=5.0)
        self._workers.clear()
        logger.info("[ASYNC_PROC] Stopped. %s", self.metrics)

    def enqueue(self, message: InboundMessage) -> bool:
        """Enqueue message for async processing. Returns False if full or stopped."""
        if not self._accepting:
            with self._lock:
                self._dropped += 1
            return False
        try:
            self._queue.put_nowait(message)
            with self._lock:
                self._enqueued += 1
            return True
        except queue.Full:
            with self._lock:
                self._dropped += 1
            logger.warning("[ASYNC_PROC] Queue full, dropped topic=%s", message.topic)
            return False

    def _drained(self) -> bool:
        # unfinished_tasks cubre lo encolado y lo que un worker tiene en mano.
        return self._queue.unfinished_tasks == 0

    def _worker_loop(self, worker_id: int) -> None:
        while not self._stop_event.is_set():
            try:
                message = self._queue.get(timeout=0.5)
            except queue.Empty:
                continue

            try:
                result = self._dispatcher.dispatch(message)
                with self._lock:
                    if result.status is MessageStatus.ACKED:
                        self._acked += 1
                    elif result.status is MessageStatus.FAILED:
                        self._failed += 1
                    else:
                        self._ignored += 1
            except Exception as e:
                with self._lock:
                    self._errors += 1
                logger.error("[ASYNC_PROC] Worker %d error: %s", worker_id, e)
            finally:
                self._queue.task_done()

    @property
    def accepting(self) -> bool:
        return self._accepting

    @property
    def metrics(self) -> dict:
        with self._lock:
            return {
                "queue_depth": self._queue.qsize(),
                "queue_max": self._queue.maxsize,
                "enqueued": self._enqueued,
                "dropped": self._dropped,
                "acked": self._acked,
                "failed": self._failed,
                "ignored": self._ignored,
                "errors": self._errors,
            }
