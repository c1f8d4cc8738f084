"""Exporters for delivering spans to backends."""

from tracewire.exporter.console_exporter import ConsoleExporter
from tracewire.exporter.memory_exporter import InMemoryExporter
from tracewire.exporter.otlp_exporter import build_otlp_processor

__all__ = ["ConsoleExporter", "InMemoryExporter", "build_otlp_processor"]
