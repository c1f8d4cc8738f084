"""HTTP client helpers: client child spans and header injection."""

from __future__ import annotations

from typing import MutableMapping, Optional, Union
from urllib.parse import urlsplit

from opentelemetry.trace import SpanKind

from tracewire.context import ActiveSpanContext, encode, get_active_span
from tracewire.instrumentation import tags
from tracewire.tracer.span import NOOP_SPAN, NoopSpan, Span
from tracewire.utils.helpers import parse_peer


def _operation_name(url: str) -> str:
    try:
        return urlsplit(url).path or "/"
    except ValueError:
        return url


def begin_client_span(
    parent_context: Optional[ActiveSpanContext],
    outbound_headers: MutableMapping[str, str],
    url: str,
    method: str,
    now: Optional[int] = None,
) -> Union[Span, NoopSpan]:
    """
    Start a client span for an outbound call and inject it into the headers.

    Without an active span in ``parent_context`` nothing is traced: the
    sentinel NOOP_SPAN is returned and ``outbound_headers`` stay untouched.
    An unparsable port only omits the ``peer.port`` tag.
    """
    parent = get_active_span(parent_context)
    if parent is None:
        return NOOP_SPAN

    span = parent.tracer.start_span(
        _operation_name(url),
        kind=SpanKind.CLIENT,
        parent=parent.identity,
        start_time_ns=now,
    )
    span.set_tag(tags.COMPONENT, tags.CLIENT_COMPONENT)
    span.set_tag(tags.SPAN_KIND, tags.SPAN_KIND_CLIENT)
    span.set_tag(tags.HTTP_METHOD, method)
    span.set_tag(tags.HTTP_URL, url)

    hostname, port = parse_peer(url)
    if hostname:
        span.set_tag(tags.PEER_HOSTNAME, hostname)
    if port is not None:
        span.set_tag(tags.PEER_PORT, port)

    try:
        encode(span.identity, outbound_headers)
    except Exception:
        span.set_tag(tags.ERROR, True)
        span.finish()
        raise
    return span


def finish_client_span(
    span: Union[Span, NoopSpan],
    now: Optional[int] = None,
    *,
    status_code: Optional[int] = None,
    error: Optional[str] = None,
) -> None:
    """
    Finish a client span, whether or not the call succeeded.

    Safe to call with NOOP_SPAN.
    """
    if status_code is not None:
        span.set_tag(tags.HTTP_STATUS_CODE, int(status_code))
        if int(status_code) >= 500:
            span.set_tag(tags.ERROR, True)
    if error:
        span.set_tag(tags.ERROR, True)
        span.set_tag(tags.ERROR_MESSAGE, error)
    span.finish(now)
