"""Tracer using the OpenTelemetry SDK for ids, sampling and export."""

from __future__ import annotations

import logging
import time
from typing import Any, Dict, Optional, TYPE_CHECKING

from opentelemetry.context import Context
from opentelemetry.trace import NonRecordingSpan, SpanKind, TraceFlags
from opentelemetry.trace import SpanContext as OTelSpanContext
from opentelemetry.trace import Tracer as OTelTracer
from opentelemetry.trace import set_span_in_context

from tracewire.tracer.span import Span
from tracewire.tracer.span_context import TraceIdentity

if TYPE_CHECKING:
    from tracewire.tracer.provider import TracerProvider

logger = logging.getLogger(__name__)

DEFAULT_MAX_TAG_VALUE_LENGTH = 65535


class Tracer:
    """
    Tracer wrapper that uses an OpenTelemetry Tracer internally.

    Parents are always passed explicitly; the tracer never looks at the
    ambient OpenTelemetry context, so a span without a parent is a root.
    Safe for concurrent use by any number of in-flight requests.
    """

    def __init__(
        self,
        provider: "TracerProvider",
        instrumentation_scope: str,
        max_tag_value_length: int = DEFAULT_MAX_TAG_VALUE_LENGTH,
    ):
        """
        Initialize tracer with OpenTelemetry Tracer.

        Args:
            provider: Tracewire TracerProvider instance
            instrumentation_scope: Instrumentation scope name
            max_tag_value_length: String tags longer than this are truncated
        """
        self._provider = provider
        self.instrumentation_scope = instrumentation_scope
        self.max_tag_value_length = max_tag_value_length
        self._otel_tracer: OTelTracer = provider._otel_provider.get_tracer(instrumentation_scope)

    @property
    def service_name(self) -> str:
        return self._provider.service_name

    def start_span(
        self,
        name: str,
        kind: SpanKind = SpanKind.INTERNAL,
        parent: Optional[TraceIdentity] = None,
        tags: Optional[Dict[str, Any]] = None,
        start_time_ns: Optional[int] = None,
        remote_parent: bool = False,
    ) -> Span:
        """
        Start a new span.

        Args:
            name: Operation name
            kind: SERVER, CLIENT or INTERNAL
            parent: Identity of the parent span; None starts a new trace
            tags: Initial tags
            start_time_ns: Start timestamp, defaults to now
            remote_parent: True when ``parent`` was decoded from another process

        Returns:
            Tracewire Span (wraps OTel Span). The child inherits the parent's
            trace id, sampling flag and baggage.
        """
        if start_time_ns is None:
            start_time_ns = time.time_ns()

        parent_span_id = None
        baggage: Dict[str, str] = {}
        otel_parent_context = Context()

        if parent is not None and parent.is_valid():
            otel_span_context = OTelSpanContext(
                trace_id=parent.trace_id,
                span_id=parent.span_id,
                is_remote=remote_parent,
                trace_flags=TraceFlags(TraceFlags.SAMPLED if parent.sampled else TraceFlags.DEFAULT),
            )
            otel_parent_context = set_span_in_context(NonRecordingSpan(otel_span_context), otel_parent_context)
            parent_span_id = parent.span_id
            baggage = dict(parent.baggage)

        otel_span = self._otel_tracer.start_span(
            name=name,
            context=otel_parent_context,
            kind=kind,
            start_time=start_time_ns,
        )

        span = Span(
            otel_span,
            self,
            operation_name=name,
            kind=kind,
            start_time_ns=start_time_ns,
            parent_span_id=parent_span_id,
            baggage=baggage,
        )
        if tags:
            span.set_tags(tags)
        return span

    def _report(self, span: Span) -> None:
        """
        Hand a finished span to every Tracewire processor.

        Called by Span.finish(). Processor failures never reach the caller.
        """
        if self._provider.is_shutdown:
            logger.debug("Dropping span %s finished after shutdown", span.identity.span_id_hex)
            return
        for processor in self._provider._processors:
            try:
                processor.on_end(span)
            except Exception:
                logger.warning("Span processor %r failed", processor, exc_info=True)
