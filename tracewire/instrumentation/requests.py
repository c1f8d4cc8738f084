"""Outbound tracing for the ``requests`` library."""

from __future__ import annotations

import logging
from typing import Any, Optional

import requests

from tracewire.context import ActiveSpanContext
from tracewire.errors import NotInitializedError
from tracewire.instrumentation.engine import PropagationEngine, summarize_error

logger = logging.getLogger(__name__)


class TracedSession(requests.Session):
    """
    A requests Session that brackets every call with a client span.

    Pass the handler's context as ``trace_context=``; without it the call
    is made untraced and the headers are left alone. The same holds while
    no engine was given and the tracer is not initialized::

        session.get("http://svc/hello", trace_context=request.state.trace_context)
    """

    def __init__(self, engine: Optional[PropagationEngine] = None) -> None:
        super().__init__()
        self._engine = engine

    @property
    def engine(self) -> Optional[PropagationEngine]:
        """The explicit engine, else one on ``current_tracer()``; None before initialize()."""
        if self._engine is None:
            from tracewire.lifecycle import current_tracer

            try:
                self._engine = PropagationEngine(current_tracer())
            except NotInitializedError:
                logger.debug("Tracer not initialized, outbound call goes untraced")
                return None
        return self._engine

    def request(
        self,
        method: str,
        url: str,
        *args: Any,
        trace_context: Optional[ActiveSpanContext] = None,
        **kwargs: Any,
    ) -> requests.Response:
        engine = self.engine if trace_context is not None else None
        if engine is None:
            return super().request(method, url, *args, **kwargs)

        headers = dict(kwargs.pop("headers", None) or {})
        span = engine.begin_client_span(trace_context, headers, url, method.upper())
        kwargs["headers"] = headers

        try:
            response = super().request(method, url, *args, **kwargs)
        except Exception as e:
            engine.finish_client_span(span, error=summarize_error(e))
            raise
        engine.finish_client_span(span, status_code=response.status_code)
        return response
