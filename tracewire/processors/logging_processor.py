"""Span processor that logs spans when they finish."""

from __future__ import annotations

import logging
from typing import Optional

from tracewire.tracer.provider import SpanProcessor


class LoggingSpanProcessor(SpanProcessor):
    """Logs a one-line summary of every finished span."""

    def __init__(self, logger: Optional[logging.Logger] = None, level: int = logging.INFO) -> None:
        self.logger = logger or logging.getLogger("tracewire.spans")
        self.level = level

    def on_end(self, span) -> None:
        if not self.logger.isEnabledFor(self.level):
            return
        self.logger.log(
            self.level,
            "Reporting span %s:%s:%s:%d op=%s kind=%s duration_ns=%s tags=%s",
            span.identity.trace_id_hex,
            span.identity.span_id_hex,
            format(span.parent_span_id or 0, "016x"),
            int(span.identity.sampled),
            span.operation_name,
            span.kind.name.lower(),
            span.duration_ns,
            dict(span.tags),
        )
