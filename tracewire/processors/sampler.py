"""Sampling policies for new traces."""

from __future__ import annotations

from opentelemetry.sdk.trace.sampling import (
    ALWAYS_OFF,
    ALWAYS_ON,
    ParentBased,
    Sampler,
    TraceIdRatioBased,
)

SAMPLER_TYPE_CONST = "const"
SAMPLER_TYPE_PROBABILISTIC = "probabilistic"


def build_sampler(sampler_type: str = SAMPLER_TYPE_CONST, param: float = 1.0) -> Sampler:
    """
    Build a head-based sampler.

    The decision is made once, when a root span is created; every
    descendant (local or remote) follows the parent's sampled flag.

    Args:
        sampler_type: ``const`` samples everything when ``param`` is truthy
            and nothing otherwise; ``probabilistic`` samples ``param`` of traces
        param: Constant flag or sampling probability in [0.0, 1.0]
    """
    if not 0.0 <= param <= 1.0:
        raise ValueError("sampler param must be between 0.0 and 1.0")

    if sampler_type == SAMPLER_TYPE_CONST:
        root = ALWAYS_ON if param else ALWAYS_OFF
    elif sampler_type == SAMPLER_TYPE_PROBABILISTIC:
        root = TraceIdRatioBased(param)
    else:
        raise ValueError(f"unknown sampler type: {sampler_type!r}")
    return ParentBased(root=root)
