"""Request-scoped association between a request and its active span."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Union

from tracewire.tracer.span import NoopSpan, Span
from tracewire.tracer.span_context import TraceIdentity


@dataclass(frozen=True)
class ActiveSpanContext:
    """
    The span a request's call chain should parent its children to.

    Created once per inbound request and passed explicitly to every call
    that may start a child span. Never shared across requests.
    """

    span: Union[Span, NoopSpan]

    @property
    def identity(self) -> TraceIdentity:
        return self.span.identity

    @property
    def trace_id(self) -> str:
        """Hex trace id, for logs and response headers."""
        return self.span.identity.trace_id_hex

    def is_active(self) -> bool:
        return self.span.is_recording() and not self.span.finished


def get_active_span(context: Optional[ActiveSpanContext]) -> Optional[Span]:
    """
    Return the span held by ``context`` if there is one to parent to.

    ``None`` for a missing context, a sentinel span, or a finished span.
    """
    if context is None or not context.is_active():
        return None
    return context.span
