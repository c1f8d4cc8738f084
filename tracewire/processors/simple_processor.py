"""Span processor exporting each span synchronously."""

from __future__ import annotations

import logging

from tracewire.tracer.provider import SpanProcessor

logger = logging.getLogger(__name__)


class SimpleSpanProcessor(SpanProcessor):
    """
    Exports every sampled span on the finishing thread.

    Meant for tests and in-memory exporters; use BatchSpanProcessor for
    anything that does I/O.
    """

    def __init__(self, exporter) -> None:
        self.exporter = exporter

    def on_end(self, span) -> None:
        if not span.identity.sampled:
            return
        try:
            self.exporter.export([span])
        except Exception as e:
            logger.warning("Dropping span %s, export failed: %s", span.identity.span_id_hex, e)

    def shutdown(self, timeout=None) -> None:
        self.exporter.shutdown()
