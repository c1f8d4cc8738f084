"""Jaeger ``uber-trace-id`` propagation using OpenTelemetry's Jaeger propagator."""

from __future__ import annotations

import logging
from typing import List, Mapping, MutableMapping, Optional

from opentelemetry import baggage as baggage_api
from opentelemetry.context import Context
from opentelemetry.propagators.jaeger import JaegerPropagator
from opentelemetry.propagators.textmap import Getter
from opentelemetry.trace import NonRecordingSpan, TraceFlags
from opentelemetry.trace import SpanContext as OTelSpanContext
from opentelemetry.trace import get_current_span, set_span_in_context

from tracewire.errors import TraceContextAbsent, TraceContextMalformed
from tracewire.tracer.span_context import TraceIdentity

logger = logging.getLogger(__name__)

_propagator = JaegerPropagator()

TRACE_HEADER = JaegerPropagator.TRACE_ID_KEY
BAGGAGE_PREFIX = JaegerPropagator.BAGGAGE_PREFIX


class CaseInsensitiveGetter(Getter[Mapping[str, str]]):
    """
    Getter for plain header dicts, matching keys regardless of case.

    Keys are reported lowercased so baggage headers like ``Uberctx-User``
    are recognized by the propagator.
    """

    def get(self, carrier: Mapping[str, str], key: str) -> Optional[List[str]]:
        wanted = key.lower()
        for name, value in carrier.items():
            if name.lower() == wanted:
                return [value]
        return None

    def keys(self, carrier: Mapping[str, str]) -> List[str]:
        return [name.lower() for name in carrier]


_getter = CaseInsensitiveGetter()


def _find_header(headers: Mapping[str, str], key: str) -> Optional[str]:
    values = _getter.get(headers, key)
    return values[0] if values else None


def decode(headers: Mapping[str, str]) -> TraceIdentity:
    """
    Read the trace identity carried by ``headers``.

    ``headers`` is never modified.

    Raises:
        TraceContextAbsent: the ``uber-trace-id`` header is missing or empty
        TraceContextMalformed: the header is present but unparsable
    """
    raw = _find_header(headers, TRACE_HEADER)
    if raw is None or not raw.strip():
        raise TraceContextAbsent("No trace header", {"header": TRACE_HEADER})

    ctx = _propagator.extract(carrier=headers, context=Context(), getter=_getter)
    otel_context = get_current_span(context=ctx).get_span_context()
    if not otel_context.is_valid:
        raise TraceContextMalformed("Unparsable trace header", {"header": TRACE_HEADER, "value": raw})

    return TraceIdentity(
        trace_id=otel_context.trace_id,
        span_id=otel_context.span_id,
        sampled=otel_context.trace_flags.sampled,
        baggage={key: str(value) for key, value in baggage_api.get_all(context=ctx).items()},
    )


def encode(identity: TraceIdentity, headers: MutableMapping[str, str]) -> None:
    """
    Write ``identity`` into ``headers`` in place.

    Any trace or baggage header already present (in any letter case) is
    removed first so the outbound request carries nothing from a prior hop.
    Invalid identities are not written.
    """
    if not identity.is_valid():
        logger.debug("Not encoding invalid trace identity %r", identity)
        return

    _remove_trace_headers(headers)

    otel_context = OTelSpanContext(
        trace_id=identity.trace_id,
        span_id=identity.span_id,
        is_remote=False,
        trace_flags=TraceFlags(TraceFlags.SAMPLED if identity.sampled else TraceFlags.DEFAULT),
    )
    ctx = set_span_in_context(NonRecordingSpan(otel_context), Context())
    for key, value in identity.baggage.items():
        ctx = baggage_api.set_baggage(key, value, context=ctx)

    _propagator.inject(carrier=headers, context=ctx)


def extract_identity(headers: Mapping[str, str]) -> Optional[TraceIdentity]:
    """
    Decode ``headers``, folding both decode errors into ``None``.

    Malformed headers are logged; absent ones are not.
    """
    try:
        return decode(headers)
    except TraceContextAbsent:
        return None
    except TraceContextMalformed as e:
        logger.warning("Ignoring malformed trace context: %s", e)
        return None


def trace_headers(headers: Mapping[str, str]) -> List[str]:
    """Names of the trace and baggage headers present in ``headers``."""
    return [
        name
        for name in headers
        if name.lower() == TRACE_HEADER or name.lower().startswith(BAGGAGE_PREFIX)
    ]


def _remove_trace_headers(headers: MutableMapping[str, str]) -> None:
    for name in trace_headers(headers):
        del headers[name]
