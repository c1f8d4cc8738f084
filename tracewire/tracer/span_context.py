"""Immutable trace identity."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Mapping

from tracewire.utils.helpers import format_span_id, format_trace_id


@dataclass(frozen=True)
class TraceIdentity:
    """
    Trace id, span id, sampling flag and baggage of one span.

    Baggage is stored the way it travels in ``uberctx-`` headers: keys
    lowercased, values stripped of surrounding whitespace. It is read-only.
    """

    trace_id: int
    span_id: int
    sampled: bool = True
    baggage: Mapping[str, str] = field(default_factory=dict, hash=False)

    def __post_init__(self) -> None:
        normalized = {str(key).lower(): str(value).strip() for key, value in dict(self.baggage).items()}
        object.__setattr__(self, "baggage", MappingProxyType(normalized))

    def is_valid(self) -> bool:
        return bool(self.trace_id and self.span_id)

    @property
    def trace_id_hex(self) -> str:
        return format_trace_id(self.trace_id)

    @property
    def span_id_hex(self) -> str:
        return format_span_id(self.span_id)

    def with_baggage(self, **items: str) -> "TraceIdentity":
        """Return a copy with ``items`` merged into the baggage."""
        merged = dict(self.baggage)
        merged.update(items)
        return replace(self, baggage=merged)
