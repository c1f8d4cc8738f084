"""Context utilities: the header codec and the active-span context."""

from tracewire.context.context import ActiveSpanContext, get_active_span
from tracewire.context.propagators import (
    BAGGAGE_PREFIX,
    TRACE_HEADER,
    CaseInsensitiveGetter,
    decode,
    encode,
    extract_identity,
    trace_headers,
)

__all__ = [
    "ActiveSpanContext",
    "get_active_span",
    "TRACE_HEADER",
    "BAGGAGE_PREFIX",
    "CaseInsensitiveGetter",
    "decode",
    "encode",
    "extract_identity",
    "trace_headers",
]
