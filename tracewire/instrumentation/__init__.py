"""HTTP instrumentation: propagation engine and framework adapters."""

from tracewire.instrumentation.engine import (
    InboundRequest,
    PropagationEngine,
    RequestScope,
    summarize_error,
)
from tracewire.instrumentation.fastapi import install_http_middleware
from tracewire.instrumentation.http_client import begin_client_span, finish_client_span
from tracewire.instrumentation.http_server import begin_server_span, finish_server_span
from tracewire.instrumentation.requests import TracedSession

__all__ = [
    "PropagationEngine",
    "InboundRequest",
    "RequestScope",
    "summarize_error",
    "begin_server_span",
    "finish_server_span",
    "begin_client_span",
    "finish_client_span",
    "install_http_middleware",
    "TracedSession",
]
