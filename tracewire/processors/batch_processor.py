"""Reporting sink: bounded span queue with background export."""

from __future__ import annotations

import logging
import threading
import time
from collections import deque
from typing import Deque, Dict, List, Optional

from tracewire.processors.drop_policy import DEFAULT_DROP_POLICY, DropPolicy
from tracewire.tracer.provider import SpanProcessor
from tracewire.tracer.span import Span
from tracewire.utils.helpers import deadline_after, remaining_seconds

logger = logging.getLogger(__name__)


class BatchSpanProcessor(SpanProcessor):
    """
    Queues finished spans and exports them from a daemon thread.

    ``on_end`` never blocks on the exporter: it appends to a bounded deque
    and wakes the worker. Unsampled spans are dropped here. Export failures
    are logged and the batch is lost.
    """

    def __init__(
        self,
        exporter,
        *,
        max_queue_size: int = 5000,
        max_export_batch_size: int = 512,
        schedule_delay_millis: int = 5000,
        drop_policy: Optional[DropPolicy] = None,
    ) -> None:
        self.exporter = exporter
        self.max_queue_size = max_queue_size
        self.max_export_batch_size = max_export_batch_size
        self.schedule_delay = schedule_delay_millis / 1000.0
        self.drop_policy = drop_policy or DEFAULT_DROP_POLICY

        self._queue: Deque[Span] = deque()
        self._lock = threading.Lock()
        self._export_lock = threading.Lock()
        self._event = threading.Event()
        self._shutdown = False
        self._stats = {"queued": 0, "unsampled": 0, "dropped": 0, "exported": 0, "failed": 0}
        self._worker = threading.Thread(target=self._worker_loop, name="tracewire-reporter", daemon=True)
        self._worker.start()

    def on_end(self, span: Span) -> None:
        if self._shutdown:
            return

        if not span.identity.sampled:
            with self._lock:
                self._stats["unsampled"] += 1
            return

        with self._lock:
            self._stats["queued"] += 1
            dropped = self.drop_policy.handle(self._queue, span, self.max_queue_size)
            if dropped is not None:
                self._stats["dropped"] += 1
            size = len(self._queue)

        if dropped is not None:
            logger.debug("Span queue full, dropped span %s", dropped.identity.span_id_hex)
        if size >= self.max_export_batch_size:
            self._event.set()

    def get_stats(self) -> Dict[str, int]:
        with self._lock:
            return dict(self._stats)

    def force_flush(self, timeout: Optional[float] = None) -> None:
        """Export everything queued, starting no new batch after ``timeout`` seconds."""
        deadline = deadline_after(timeout)
        while deadline is None or time.monotonic() < deadline:
            if not self._flush_once():
                return
        if self._queue:
            logger.warning("Span flush timed out with %d spans queued", len(self._queue))

    def shutdown(self, timeout: Optional[float] = None) -> None:
        """
        Stop the worker and flush what is left, bounded by ``timeout``.

        Spans still queued when the time is up are dropped.
        """
        if self._shutdown:
            return
        deadline = deadline_after(timeout)
        self._shutdown = True
        self._event.set()
        self._worker.join(timeout=self.schedule_delay * 2 if deadline is None else remaining_seconds(deadline))
        self.force_flush(timeout=remaining_seconds(deadline))

        with self._lock:
            left = len(self._queue)
            self._queue.clear()
            self._stats["dropped"] += left
        if left:
            logger.warning("Dropping %d spans still queued at shutdown", left)

        shutdown = getattr(self.exporter, "shutdown", None)
        if shutdown is not None:
            shutdown()

    # Internal
    def _worker_loop(self) -> None:
        while not self._shutdown:
            self._event.wait(timeout=self.schedule_delay)
            self._event.clear()
            while self._flush_once():
                if self._shutdown:
                    break

    def _flush_once(self) -> bool:
        """Export one batch; False when the queue was empty."""
        with self._export_lock:
            spans = self._drain_queue(self.max_export_batch_size)
            if not spans:
                return False
            self._export(spans)
            return True

    def _drain_queue(self, limit: int) -> List[Span]:
        items: List[Span] = []
        with self._lock:
            while self._queue and len(items) < limit:
                items.append(self._queue.popleft())
        return items

    def _export(self, spans: List[Span]) -> None:
        try:
            ok = self.exporter.export(spans)
        except Exception as e:
            # Reporting failures never reach the traced request.
            logger.warning("Dropping %d spans, export failed: %s", len(spans), e)
            ok = False

        with self._lock:
            self._stats["exported" if ok is not False else "failed"] += len(spans)
