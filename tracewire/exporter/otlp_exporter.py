"""OTLP export through OpenTelemetry's own span pipeline."""

from __future__ import annotations

from typing import Dict, Optional

from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.trace.export import BatchSpanProcessor as OTelBatchSpanProcessor


def build_otlp_processor(
    endpoint: Optional[str] = None,
    headers: Optional[Dict[str, str]] = None,
    timeout: float = 10.0,
    max_queue_size: int = 5000,
    max_export_batch_size: int = 512,
    schedule_delay_millis: int = 5000,
) -> OTelBatchSpanProcessor:
    """
    Build an OTel batch processor shipping spans over OTLP/HTTP.

    Registered on the TracerProvider it sees the underlying OTel spans, which
    carry every Tracewire tag as an attribute. Unsampled spans never reach it.

    Args:
        endpoint: OTLP traces endpoint (defaults to the OTel default)
        headers: Extra request headers, e.g. authorization
        timeout: Request timeout in seconds
    """
    exporter = OTLPSpanExporter(
        endpoint=endpoint,
        timeout=timeout,
        headers=dict(headers) if headers else None,
    )
    return OTelBatchSpanProcessor(
        exporter,
        max_queue_size=max_queue_size,
        max_export_batch_size=max_export_batch_size,
        schedule_delay_millis=schedule_delay_millis,
    )
