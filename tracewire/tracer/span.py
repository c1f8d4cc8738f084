"""Span implementation - thin wrapper around an OpenTelemetry SDK span."""

from __future__ import annotations

import logging
import threading
import time
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, TYPE_CHECKING, Union

from opentelemetry.trace import Span as OTelSpan, SpanKind

from tracewire.tracer.span_context import TraceIdentity

if TYPE_CHECKING:
    from tracewire.tracer.tracer import Tracer

logger = logging.getLogger(__name__)

TagValue = Union[str, int, float, bool]


class Span:
    """
    Timed record of one request handled or one call made.

    Wraps the OpenTelemetry span so OTel export processors see the same
    attributes, while keeping a local copy of the tags, identity and timing
    for Tracewire processors. A span is finished exactly once; after that
    it is immutable and has been handed to the reporting sink.
    """

    def __init__(
        self,
        otel_span: OTelSpan,
        tracer: "Tracer",
        operation_name: str,
        kind: SpanKind,
        start_time_ns: int,
        parent_span_id: Optional[int] = None,
        baggage: Optional[Mapping[str, str]] = None,
    ) -> None:
        self._otel_span = otel_span
        self.tracer = tracer
        self.operation_name = operation_name
        self.kind = kind
        self.parent_span_id = parent_span_id
        self.start_time_ns = start_time_ns
        self.end_time_ns: Optional[int] = None
        self.finished = False
        self._tags: Dict[str, TagValue] = {}
        self._lock = threading.Lock()

        otel_context = otel_span.get_span_context()
        self.identity = TraceIdentity(
            trace_id=otel_context.trace_id,
            span_id=otel_context.span_id,
            sampled=otel_context.trace_flags.sampled,
            baggage=dict(baggage or {}),
        )

    def __repr__(self) -> str:
        return (
            f"Span(operation_name={self.operation_name!r}, "
            f"trace_id={self.identity.trace_id_hex}, span_id={self.identity.span_id_hex}, "
            f"kind={self.kind.name}, finished={self.finished})"
        )

    @property
    def tags(self) -> Mapping[str, TagValue]:
        """Read-only view of the span tags."""
        return MappingProxyType(self._tags)

    @property
    def duration_ns(self) -> Optional[int]:
        if self.end_time_ns is None:
            return None
        return self.end_time_ns - self.start_time_ns

    def is_recording(self) -> bool:
        return True

    def set_tag(self, key: str, value: Any) -> None:
        """Set a tag on the span. Ignored once the span is finished."""
        if not isinstance(value, (str, bool, int, float)):
            value = str(value)
        limit = self.tracer.max_tag_value_length
        if isinstance(value, str) and limit and len(value) > limit:
            value = value[:limit]

        # Serialized with finish() so no tag lands on a reported span.
        with self._lock:
            if self.finished:
                logger.debug("Ignoring tag %s on finished span %s", key, self.identity.span_id_hex)
                return
            self._tags[key] = value
            try:
                self._otel_span.set_attribute(key, value)
            except Exception:
                logger.debug("Failed to mirror tag %s onto OTel span", key, exc_info=True)

    def set_tags(self, tags: Mapping[str, Any]) -> None:
        for key, value in tags.items():
            self.set_tag(key, value)

    def finish(self, end_time_ns: Optional[int] = None) -> None:
        """
        Finish the span and report it.

        Only the first call has any effect; later calls are logged and ignored.
        """
        with self._lock:
            if self.finished:
                logger.warning(
                    "Span %s (%s) finished more than once",
                    self.identity.span_id_hex,
                    self.operation_name,
                )
                return
            self.end_time_ns = end_time_ns if end_time_ns is not None else time.time_ns()
            self.finished = True

        try:
            self._otel_span.end(end_time=self.end_time_ns)
        except Exception:
            logger.debug("Failed to end OTel span", exc_info=True)

        self.tracer._report(self)

    # Context manager support
    def __enter__(self) -> "Span":
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        if exc is not None:
            self.set_tag("error", True)
            self.set_tag("error.message", f"{exc_type.__name__}: {exc}")
        self.finish()
        return False


class NoopSpan:
    """
    Sentinel span returned when there is nothing to trace.

    Every operation is a no-op and the span is never reported.
    """

    operation_name = ""
    kind = None
    parent_span_id = None
    start_time_ns = 0
    end_time_ns = None
    finished = False
    duration_ns = None
    identity = TraceIdentity(trace_id=0, span_id=0, sampled=False)
    tags: Mapping[str, TagValue] = MappingProxyType({})

    def __repr__(self) -> str:
        return "NoopSpan()"

    def is_recording(self) -> bool:
        return False

    def set_tag(self, key: str, value: Any) -> None:
        return None

    def set_tags(self, tags: Mapping[str, Any]) -> None:
        return None

    def finish(self, end_time_ns: Optional[int] = None) -> None:
        return None

    def __enter__(self) -> "NoopSpan":
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        return False


NOOP_SPAN = NoopSpan()
