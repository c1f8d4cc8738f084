"""Span processors and supporting utilities."""

from tracewire.processors.batch_processor import BatchSpanProcessor
from tracewire.processors.drop_policy import (
    DEFAULT_DROP_POLICY,
    DropNewestPolicy,
    DropOldestPolicy,
    DropPolicy,
    get_drop_policy,
)
from tracewire.processors.logging_processor import LoggingSpanProcessor
from tracewire.processors.sampler import build_sampler
from tracewire.processors.simple_processor import SimpleSpanProcessor

__all__ = [
    "BatchSpanProcessor",
    "SimpleSpanProcessor",
    "LoggingSpanProcessor",
    "DropPolicy",
    "DropOldestPolicy",
    "DropNewestPolicy",
    "DEFAULT_DROP_POLICY",
    "get_drop_policy",
    "build_sampler",
]
