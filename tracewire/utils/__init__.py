"""Utility functions for Tracewire."""

from tracewire.utils.helpers import (
    format_trace_id,
    format_span_id,
    deadline_after,
    parse_peer,
    remaining_seconds,
    split_host_port,
)

__all__ = [
    "format_trace_id",
    "format_span_id",
    "deadline_after",
    "parse_peer",
    "remaining_seconds",
    "split_host_port",
]
