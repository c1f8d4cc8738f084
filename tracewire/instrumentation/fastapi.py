"""
FastAPI / Starlette middleware tracing every HTTP request.
"""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Optional

from tracewire.context import ActiveSpanContext
from tracewire.errors import NotInitializedError
from tracewire.instrumentation.engine import InboundRequest, PropagationEngine, summarize_error
from tracewire.tracer.span import NOOP_SPAN

logger = logging.getLogger(__name__)

TRACE_ID_RESPONSE_HEADER = "X-Trace-Id"


def _remote_addr(request: Any) -> str:
    client = getattr(request, "client", None)
    if not client:
        return ""
    host, port = str(client[0]), client[1]
    if not port:
        return host
    if ":" in host:
        return f"[{host}]:{port}"
    return f"{host}:{port}"


def install_http_middleware(
    app: Any,
    engine: Optional[PropagationEngine] = None,
    *,
    response_header: Optional[str] = TRACE_ID_RESPONSE_HEADER,
) -> None:
    """
    Attach an HTTP middleware that wraps each request in a server span.

    - Joins the caller's trace from ``uber-trace-id`` or starts a new one
    - Stores the ActiveSpanContext on ``request.state.trace_context`` for
      handlers to pass to outbound calls
    - Records the response status, or 500 and the error for unhandled
      exceptions, which are re-raised
    - Echoes the trace id in ``response_header`` (None disables it)

    Without an explicit engine, one is built on ``current_tracer()`` at the
    first request after initialize(); until then requests pass through
    untraced.
    """
    state = {"engine": engine}

    def _engine() -> PropagationEngine:
        if state["engine"] is None:
            # Lazy import: the middleware may be installed before initialize().
            from tracewire.lifecycle import current_tracer

            state["engine"] = PropagationEngine(current_tracer())
        return state["engine"]

    @app.middleware("http")
    async def tracing_middleware(request, call_next: Callable[[Any], Awaitable[Any]]):  # type: ignore
        try:
            eng = _engine()
        except NotInitializedError:
            logger.debug("Tracer not initialized, serving %s untraced", request.url.path)
            untraced = ActiveSpanContext(NOOP_SPAN)
            request.state.trace_context = untraced
            request.state.trace_id = untraced.trace_id
            return await call_next(request)

        body = await request.body() if eng.config.capture_request_body else None
        scope = eng.on_request_start(
            InboundRequest(
                method=request.method,
                path=request.url.path,
                headers=dict(request.headers),
                remote_addr=_remote_addr(request),
                body=body,
            )
        )
        request.state.trace_context = scope.context
        request.state.trace_id = scope.trace_id

        error_summary = ""
        cancelled = False
        try:
            response = await call_next(request)
            scope.status_code = response.status_code
        except Exception as e:
            scope.status_code = 500
            error_summary = summarize_error(e)
            raise
        except BaseException:
            cancelled = True
            raise
        finally:
            eng.on_request_end(scope, error_summary=error_summary, cancelled=cancelled)

        if response_header and scope.span.is_recording():
            response.headers[response_header] = scope.trace_id
        return response

    return None
