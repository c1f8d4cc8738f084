"""Tracewire: distributed tracing for HTTP services over Jaeger headers."""

from tracewire.config import ReporterConfig, SamplerConfig, TracingConfig, load_config
from tracewire.context import ActiveSpanContext, decode, encode
from tracewire.errors import (
    AlreadyInitializedError,
    ConfigError,
    DecodeError,
    NotInitializedError,
    SinkUnavailableError,
    TraceContextAbsent,
    TraceContextMalformed,
    TracewireError,
)
from tracewire.instrumentation import InboundRequest, PropagationEngine, TracedSession, install_http_middleware
from tracewire.lifecycle import Closer, TracerState, current_tracer, get_state, initialize, shutdown
from tracewire.tracer import NOOP_SPAN, Span, TraceIdentity, Tracer

__version__ = "0.1.0"

__all__ = [
    "__version__",
    "initialize",
    "shutdown",
    "current_tracer",
    "get_state",
    "Closer",
    "TracerState",
    "Tracer",
    "Span",
    "NOOP_SPAN",
    "TraceIdentity",
    "ActiveSpanContext",
    "decode",
    "encode",
    "PropagationEngine",
    "InboundRequest",
    "install_http_middleware",
    "TracedSession",
    "TracingConfig",
    "SamplerConfig",
    "ReporterConfig",
    "load_config",
    "TracewireError",
    "ConfigError",
    "DecodeError",
    "TraceContextAbsent",
    "TraceContextMalformed",
    "AlreadyInitializedError",
    "NotInitializedError",
    "SinkUnavailableError",
]
