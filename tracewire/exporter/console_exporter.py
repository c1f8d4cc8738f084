"""Console exporter for developer visibility."""

from __future__ import annotations

import sys
from typing import Iterable

from tracewire.errors import SinkUnavailableError
from tracewire.tracer.span import Span


class ConsoleExporter:
    """Prints one line per span to stdout (or the provided stream)."""

    def __init__(self, stream=None) -> None:
        self.stream = stream or sys.stdout

    def export(self, spans: Iterable[Span]) -> bool:
        for span in spans:
            line = (
                f"[span] op={span.operation_name} kind={span.kind.name.lower()} "
                f"trace_id={span.identity.trace_id_hex} span_id={span.identity.span_id_hex} "
                f"duration_ns={span.duration_ns}"
            )
            if span.parent_span_id:
                line += f" parent_id={span.parent_span_id:016x}"
            if span.tags:
                line += f" tags={dict(span.tags)}"
            try:
                print(line, file=self.stream)
            except (OSError, ValueError) as e:
                raise SinkUnavailableError("Console stream unavailable", {"error": e}) from e
        return True

    def shutdown(self) -> None:
        return None
