"""Tracer components."""

from tracewire.tracer.provider import SpanProcessor, TracerProvider
from tracewire.tracer.span import NOOP_SPAN, NoopSpan, Span
from tracewire.tracer.span_context import TraceIdentity
from tracewire.tracer.tracer import Tracer

__all__ = [
    "Span",
    "NoopSpan",
    "NOOP_SPAN",
    "TraceIdentity",
    "Tracer",
    "TracerProvider",
    "SpanProcessor",
]
