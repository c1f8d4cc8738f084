"""HTTP server helpers: join or start a trace and finish the server span."""

from __future__ import annotations

from typing import Mapping, Optional, Tuple

from opentelemetry.trace import SpanKind

from tracewire.context import ActiveSpanContext, extract_identity
from tracewire.instrumentation import tags
from tracewire.tracer.span import Span
from tracewire.tracer.tracer import Tracer


def begin_server_span(
    tracer: Tracer,
    headers: Mapping[str, str],
    url_path: str,
    method: str,
    remote_ip: Optional[str] = None,
    now: Optional[int] = None,
) -> Tuple[Span, ActiveSpanContext]:
    """
    Start the server span for an inbound request.

    When ``headers`` carry a valid trace the span is a child of the remote
    caller; otherwise (header absent or malformed) it roots a new trace.
    ``headers`` are only read.

    Returns:
        The span and the context to pass to everything handling the request.
    """
    parent = extract_identity(headers)
    span = tracer.start_span(
        url_path or "/",
        kind=SpanKind.SERVER,
        parent=parent,
        start_time_ns=now,
        remote_parent=True,
    )
    span.set_tag(tags.HTTP_URL, url_path)
    span.set_tag(tags.HTTP_METHOD, method)
    if remote_ip:
        span.set_tag(tags.PEER_HOST_IPV4, remote_ip)
    span.set_tag(tags.COMPONENT, tags.SERVER_COMPONENT)
    span.set_tag(tags.SPAN_KIND, tags.SPAN_KIND_SERVER)
    return span, ActiveSpanContext(span)


def finish_server_span(
    span: Span,
    status_code: int,
    error_summary: str = "",
    now: Optional[int] = None,
    *,
    cancelled: bool = False,
) -> None:
    """
    Record the request outcome and finish the span.

    The span is flagged as an error for 5xx statuses, a non-empty error
    summary, or a cancelled request.
    """
    span.set_tag(tags.HTTP_STATUS_CODE, int(status_code))
    span.set_tag(tags.REQUEST_ERRORS, error_summary or "")
    if cancelled:
        span.set_tag(tags.REQUEST_CANCELLED, True)
    if cancelled or error_summary or int(status_code) >= 500:
        span.set_tag(tags.ERROR, True)
    span.finish(now)
