"""Process-wide tracer lifecycle: Uninitialized -> Ready -> Shutdown.

``initialize`` builds the tracer once and returns it together with a
``Closer``. Request handling code should receive the tracer (or a
PropagationEngine built on it) explicitly; ``current_tracer`` exists for
wiring code that cannot.

A repeated ``initialize`` while Ready is governed by
``TracingConfig.reinit_policy``: ``"reject"`` raises AlreadyInitializedError,
``"reuse"`` returns the existing pair untouched. After shutdown the process
may initialize again.
"""

from __future__ import annotations

import logging
import threading
from enum import Enum
from typing import Iterable, Optional, Tuple

from opentelemetry.sdk.trace.sampling import Sampler

from tracewire.config import ReporterConfig, TracingConfig
from tracewire.errors import AlreadyInitializedError, NotInitializedError
from tracewire.exporter import ConsoleExporter, build_otlp_processor
from tracewire.processors import (
    BatchSpanProcessor,
    LoggingSpanProcessor,
    build_sampler,
    get_drop_policy,
)
from tracewire.tracer.provider import TracerProvider
from tracewire.tracer.tracer import Tracer
from tracewire.utils.helpers import deadline_after, remaining_seconds

logger = logging.getLogger(__name__)

INSTRUMENTATION_SCOPE = "tracewire"


class TracerState(Enum):
    UNINITIALIZED = "uninitialized"
    READY = "ready"
    SHUTDOWN = "shutdown"


class Closer:
    """Flushes and releases one tracer lifecycle."""

    def __init__(self, provider: TracerProvider, flush_timeout: float) -> None:
        self._provider = provider
        self.flush_timeout = flush_timeout

    @property
    def closed(self) -> bool:
        return self._provider.is_shutdown

    def close(self, timeout: Optional[float] = None) -> None:
        shutdown(self, timeout=timeout)

    def __enter__(self) -> "Closer":
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        self.close()
        return False


_lock = threading.Lock()
_state = TracerState.UNINITIALIZED
_tracer: Optional[Tracer] = None
_closer: Optional[Closer] = None


def _build_provider(
    config: TracingConfig,
    sampler: Optional[Sampler],
    processors: Iterable,
) -> TracerProvider:
    if sampler is None:
        sampler = build_sampler(config.sampler.type, config.sampler.param)

    provider = TracerProvider(
        service_name=config.service_name,
        sampler=sampler,
        max_tag_value_length=config.max_tag_value_length,
    )

    reporter = config.reporter
    if reporter.log_spans:
        provider.add_span_processor(LoggingSpanProcessor())
    if reporter.enable_console:
        provider.add_span_processor(
            BatchSpanProcessor(
                ConsoleExporter(),
                max_queue_size=reporter.max_queue_size,
                max_export_batch_size=reporter.max_export_batch_size,
                schedule_delay_millis=reporter.schedule_delay_millis,
                drop_policy=get_drop_policy(reporter.drop_policy),
            )
        )
    if reporter.otlp_endpoint:
        provider.add_span_processor(
            build_otlp_processor(
                endpoint=reporter.otlp_endpoint,
                headers=reporter.otlp_headers,
                max_queue_size=reporter.max_queue_size,
                max_export_batch_size=reporter.max_export_batch_size,
                schedule_delay_millis=reporter.schedule_delay_millis,
            )
        )
    for processor in processors:
        provider.add_span_processor(processor)
    return provider


def initialize(
    service_name: Optional[str] = None,
    sampler: Optional[Sampler] = None,
    reporter_config: Optional[ReporterConfig] = None,
    *,
    config: Optional[TracingConfig] = None,
    processors: Optional[Iterable] = None,
) -> Tuple[Tracer, Closer]:
    """
    Construct the process-wide tracer.

    Args:
        service_name: Overrides ``config.service_name``
        sampler: OTel sampler; built from ``config.sampler`` when omitted
        reporter_config: Overrides ``config.reporter``
        config: Full configuration, defaults to ``TracingConfig()``
        processors: Extra span processors (e.g. an in-memory exporter)

    Returns:
        (tracer, closer)

    Raises:
        AlreadyInitializedError: already Ready and ``reinit_policy`` is reject
    """
    global _state, _tracer, _closer

    config = config or TracingConfig()
    updates = {}
    if service_name:
        updates["service_name"] = service_name
    if reporter_config is not None:
        updates["reporter"] = reporter_config
    if updates:
        config = config.model_copy(update=updates)

    with _lock:
        if _state is TracerState.READY:
            if config.reinit_policy == "reuse":
                logger.info("Tracer already initialized, reusing the existing instance")
                return _tracer, _closer
            raise AlreadyInitializedError(
                "Tracer already initialized",
                {"service_name": _tracer.service_name},
            )

        provider = _build_provider(config, sampler, processors or ())
        _tracer = provider.get_tracer(INSTRUMENTATION_SCOPE)
        _closer = Closer(provider, config.reporter.flush_timeout_seconds)
        _state = TracerState.READY

    logger.info("Tracer initialized for service %s", config.service_name)
    return _tracer, _closer


def shutdown(closer: Optional[Closer] = None, timeout: Optional[float] = None) -> None:
    """
    Flush buffered spans and release the tracer.

    The flush waits at most ``timeout`` seconds (default: the closer's
    configured flush timeout). Spans still in flight are dropped when they
    finish. Calling this twice, or with a closer from an earlier lifecycle,
    is harmless.
    """
    global _state, _tracer, _closer

    with _lock:
        if closer is None:
            closer = _closer
        if closer is None:
            return
        if closer is _closer:
            _state = TracerState.SHUTDOWN
            _tracer = None
            _closer = None

    provider = closer._provider
    if provider.is_shutdown:
        return

    if timeout is None:
        timeout = closer.flush_timeout
    deadline = deadline_after(timeout)
    try:
        provider.force_flush(timeout=timeout)
    except Exception:
        logger.warning("Flushing spans on shutdown failed", exc_info=True)
    provider.shutdown(timeout=remaining_seconds(deadline))
    logger.info("Tracer for service %s shut down", provider.service_name)


def current_tracer() -> Tracer:
    """
    Return the Ready tracer.

    Raises:
        NotInitializedError: before initialize() or after shutdown()
    """
    tracer = _tracer
    if tracer is None:
        raise NotInitializedError("Tracer is not initialized", {"state": _state.value})
    return tracer


def get_state() -> TracerState:
    return _state
