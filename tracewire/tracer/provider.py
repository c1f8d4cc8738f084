"""TracerProvider using the OpenTelemetry SDK."""

from __future__ import annotations

import logging
import threading
from typing import Any, Dict, List, Optional

from opentelemetry.sdk.resources import SERVICE_NAME, Resource as OTelResource
from opentelemetry.sdk.trace import SpanProcessor as OTelSpanProcessor
from opentelemetry.sdk.trace import TracerProvider as OTelTracerProvider
from opentelemetry.sdk.trace.sampling import Sampler as OTelSampler

from tracewire.utils.helpers import deadline_after, remaining_seconds

logger = logging.getLogger(__name__)


class SpanProcessor:
    """
    Base interface for Tracewire span processors.

    ``on_end`` receives the Tracewire Span after it has finished; the span
    is immutable at that point. OTel span processors registered on the same
    provider run on the underlying OTel span instead.
    """

    def on_end(self, span) -> None:
        """
        Called once when a span finishes.

        Must not block on I/O.
        """
        pass

    def shutdown(self, timeout: Optional[float] = None) -> None:
        """Shutdown the processor, spending at most ``timeout`` seconds."""
        pass

    def force_flush(self, timeout: Optional[float] = None) -> None:
        """Force flush any pending spans."""
        pass


class TracerProvider:
    """
    TracerProvider using OpenTelemetry SDK.

    Owns the sampler (applied by the OTel SDK at root-span creation) and the
    reporting sink: Tracewire processors and OTel export processors.
    """

    def __init__(
        self,
        service_name: str,
        sampler: Optional[OTelSampler] = None,
        resource: Optional[Dict[str, str]] = None,
        max_tag_value_length: Optional[int] = None,
    ) -> None:
        """
        Initialize TracerProvider with OpenTelemetry.

        Args:
            service_name: Value of the ``service.name`` resource attribute
            sampler: OTel sampler deciding root sampling; the SDK default
                (parent-based always-on) is used when omitted
            resource: Extra resource attributes
            max_tag_value_length: Passed to every tracer created here
        """
        attributes = dict(resource or {})
        attributes[SERVICE_NAME] = service_name
        otel_kwargs: Dict[str, Any] = {
            "resource": OTelResource.create(attributes),
            "shutdown_on_exit": False,
        }
        if sampler is not None:
            otel_kwargs["sampler"] = sampler
        self._otel_provider = OTelTracerProvider(**otel_kwargs)

        self.service_name = service_name
        self.resource = attributes
        self.sampler = sampler
        self.max_tag_value_length = max_tag_value_length
        self.is_shutdown = False

        self._processors: List[SpanProcessor] = []
        self._export_processors: List[OTelSpanProcessor] = []

        self._tracers: Dict[str, Any] = {}
        self._lock = threading.Lock()

    def get_tracer(self, name: str) -> "Tracer":
        """
        Get a tracer by instrumentation scope name.

        Returns:
            Tracewire Tracer instance (wraps OTel Tracer)
        """
        with self._lock:
            tracer = self._tracers.get(name)
            if tracer is None:
                from tracewire.tracer.tracer import DEFAULT_MAX_TAG_VALUE_LENGTH, Tracer

                tracer = Tracer(
                    self,
                    name,
                    max_tag_value_length=self.max_tag_value_length or DEFAULT_MAX_TAG_VALUE_LENGTH,
                )
                self._tracers[name] = tracer
            return tracer

    def add_span_processor(self, processor: Any) -> None:
        """
        Add a span processor.

        OTel-compatible processors are registered on the OTel provider and
        see the raw OTel spans; everything else is a Tracewire processor.
        """
        if isinstance(processor, OTelSpanProcessor):
            self._otel_provider.add_span_processor(processor)
            self._export_processors.append(processor)
        else:
            self._processors.append(processor)

    def force_flush(self, timeout: Optional[float] = None) -> None:
        """Force flush all processors, waiting at most ``timeout`` seconds in total."""
        deadline = deadline_after(timeout)
        self._otel_provider.force_flush(
            timeout_millis=int(timeout * 1000) if timeout is not None else 30000
        )

        for processor in self._processors:
            try:
                processor.force_flush(timeout=remaining_seconds(deadline))
            except Exception:
                logger.warning("Flushing %r failed", processor, exc_info=True)

    def shutdown(self, timeout: Optional[float] = None) -> None:
        """
        Shutdown the provider and all processors.

        Tracewire processors share the ``timeout`` budget and drop what they
        cannot deliver in time.
        """
        if self.is_shutdown:
            return
        self.is_shutdown = True
        deadline = deadline_after(timeout)

        for processor in self._processors:
            try:
                processor.shutdown(timeout=remaining_seconds(deadline))
            except Exception:
                logger.warning("Shutting down %r failed", processor, exc_info=True)

        self._otel_provider.shutdown()
