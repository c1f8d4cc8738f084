"""Framework-agnostic request lifecycle tracing.

A framework adapter calls ``on_request_start`` before the handler and
``on_request_end`` after it, on every exit path. Handlers pass the
returned ``ActiveSpanContext`` explicitly to outbound calls, which go
through ``begin_client_span`` / ``finish_client_span`` (or the
``client_span`` context manager).

No failure inside tracing ever reaches the traced request: errors are
logged and the request continues with the sentinel span.
"""

from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Iterator, Mapping, MutableMapping, Optional, Tuple, Union

from tracewire.config import TracingConfig
from tracewire.context import ActiveSpanContext
from tracewire.instrumentation import http_client, http_server, tags
from tracewire.tracer.span import NOOP_SPAN, NoopSpan, Span
from tracewire.tracer.tracer import Tracer
from tracewire.utils.helpers import split_host_port

logger = logging.getLogger(__name__)

AnySpan = Union[Span, NoopSpan]


def summarize_error(exc: BaseException) -> str:
    """One-line description of an exception for the ``request.errors`` tag."""
    message = str(exc)
    return f"{type(exc).__name__}: {message}" if message else type(exc).__name__


@dataclass
class InboundRequest:
    """What the tracer needs to know about an inbound HTTP request."""

    method: str
    path: str
    headers: Mapping[str, str] = field(default_factory=dict)
    remote_addr: str = ""
    body: Optional[Union[bytes, str]] = None


@dataclass
class RequestScope:
    """Per-request tracing state held by the framework adapter."""

    span: AnySpan
    context: ActiveSpanContext
    status_code: int = 200

    @property
    def trace_id(self) -> str:
        return self.context.trace_id

    @property
    def finished(self) -> bool:
        return self.span.finished


class PropagationEngine:
    """
    Creates, propagates and finishes HTTP spans for one tracer.

    Args:
        tracer: Tracer handle from ``tracewire.initialize``
        config: Tag capture settings; defaults to ``TracingConfig()``
        clock: Returns the current time in nanoseconds
    """

    def __init__(
        self,
        tracer: Tracer,
        config: Optional[TracingConfig] = None,
        clock: Callable[[], int] = time.time_ns,
    ) -> None:
        self.tracer = tracer
        self.config = config or TracingConfig()
        self.clock = clock

    def _now(self, now: Optional[int]) -> int:
        return self.clock() if now is None else now

    # Server side
    def begin_server_span(
        self,
        headers: Mapping[str, str],
        url_path: str,
        method: str,
        remote_ip: Optional[str] = None,
        now: Optional[int] = None,
    ) -> Tuple[AnySpan, ActiveSpanContext]:
        try:
            return http_server.begin_server_span(
                self.tracer, headers, url_path, method, remote_ip, self._now(now)
            )
        except Exception:
            logger.warning("Failed to start server span for %s %s", method, url_path, exc_info=True)
            return NOOP_SPAN, ActiveSpanContext(NOOP_SPAN)

    def finish_server_span(
        self,
        span: AnySpan,
        status_code: int,
        error_summary: str = "",
        now: Optional[int] = None,
        *,
        cancelled: bool = False,
    ) -> None:
        try:
            http_server.finish_server_span(
                span, status_code, error_summary, self._now(now), cancelled=cancelled
            )
        except Exception:
            logger.warning("Failed to finish server span", exc_info=True)

    # Client side
    def begin_client_span(
        self,
        parent_context: Optional[ActiveSpanContext],
        outbound_headers: MutableMapping[str, str],
        url: str,
        method: str,
        now: Optional[int] = None,
    ) -> AnySpan:
        try:
            return http_client.begin_client_span(
                parent_context, outbound_headers, url, method, self._now(now)
            )
        except Exception:
            logger.warning("Failed to start client span for %s %s", method, url, exc_info=True)
            return NOOP_SPAN

    def finish_client_span(
        self,
        span: AnySpan,
        now: Optional[int] = None,
        *,
        status_code: Optional[int] = None,
        error: Optional[str] = None,
    ) -> None:
        try:
            http_client.finish_client_span(
                span, self._now(now), status_code=status_code, error=error
            )
        except Exception:
            logger.warning("Failed to finish client span", exc_info=True)

    # Framework hooks
    def on_request_start(self, request: InboundRequest) -> RequestScope:
        """Start tracing ``request``; call before the handler runs."""
        now = self.clock()
        remote_ip, _ = split_host_port(request.remote_addr)
        span, context = self.begin_server_span(
            request.headers, request.path, request.method, remote_ip, now
        )
        if span.is_recording():
            try:
                self._tag_request(span, request, now)
            except Exception:
                logger.warning("Failed to tag server span", exc_info=True)
        return RequestScope(span=span, context=context)

    def on_request_end(
        self,
        scope: RequestScope,
        status_code: Optional[int] = None,
        error_summary: str = "",
        *,
        cancelled: bool = False,
    ) -> None:
        """Finish the request's span; call on every exit path, exactly once."""
        if scope.finished:
            logger.debug("Request scope %s already finished", scope.trace_id)
            return
        if status_code is None:
            status_code = scope.status_code
        self.finish_server_span(scope.span, status_code, error_summary, cancelled=cancelled)

    def _tag_request(self, span: Span, request: InboundRequest, now: int) -> None:
        headers = {name.lower(): value for name, value in request.headers.items()}
        span.set_tag(tags.HTTP_X_FORWARDED_FOR, headers.get("x-forwarded-for", ""))
        span.set_tag(tags.HTTP_USER_AGENT, headers.get("user-agent", ""))
        started = datetime.fromtimestamp(now / 1e9, tz=timezone.utc)
        span.set_tag(tags.REQUEST_TIME, started.isoformat(timespec="seconds"))

        if self.config.capture_request_body and request.body:
            body = request.body
            if isinstance(body, bytes):
                body = body.decode("utf-8", errors="replace")
            span.set_tag(tags.HTTP_REQUEST_BODY, body[: self.config.max_body_tag_length])

    # Scoped acquisition
    @contextmanager
    def server_span(self, request: InboundRequest) -> Iterator[RequestScope]:
        """
        Trace one request for the duration of the block.

        Set ``scope.status_code`` before leaving. An exception finishes the
        span as a 500 with the error summary and is re-raised.
        """
        scope = self.on_request_start(request)
        try:
            yield scope
        except BaseException as e:
            self.on_request_end(
                scope,
                500,
                summarize_error(e),
                cancelled=not isinstance(e, Exception),
            )
            raise
        else:
            self.on_request_end(scope)

    @contextmanager
    def client_span(
        self,
        parent_context: Optional[ActiveSpanContext],
        outbound_headers: MutableMapping[str, str],
        url: str,
        method: str,
    ) -> Iterator[AnySpan]:
        """Bracket one outbound call; the span is finished even if it raises."""
        span = self.begin_client_span(parent_context, outbound_headers, url, method)
        try:
            yield span
        except BaseException as e:
            self.finish_client_span(span, error=summarize_error(e))
            raise
        else:
            self.finish_client_span(span)
