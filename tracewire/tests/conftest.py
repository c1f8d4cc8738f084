"""Shared fixtures: a tracer wired to an in-memory exporter."""

import pytest

from tracewire.exporter import InMemoryExporter
from tracewire.instrumentation import PropagationEngine
from tracewire.processors import SimpleSpanProcessor
from tracewire.tracer import TracerProvider


@pytest.fixture
def exporter():
    return InMemoryExporter()


@pytest.fixture
def provider(exporter):
    provider = TracerProvider(service_name="test-service")
    provider.add_span_processor(SimpleSpanProcessor(exporter))
    yield provider
    provider.shutdown()


@pytest.fixture
def tracer(provider):
    return provider.get_tracer("tests")


@pytest.fixture
def engine(tracer):
    return PropagationEngine(tracer)
