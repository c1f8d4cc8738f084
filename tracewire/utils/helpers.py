"""Helper functions for id formatting and address parsing."""

from __future__ import annotations

import time
from typing import Optional, Tuple
from urllib.parse import urlsplit


def format_trace_id(trace_id: int) -> str:
    """
    Format a 128-bit trace id as a hex string.

    Args:
        trace_id: trace id as int

    Returns:
        32-character hex string
    """
    return format(trace_id, '032x')


def format_span_id(span_id: int) -> str:
    """
    Format a 64-bit span id as a hex string.

    Args:
        span_id: span id as int

    Returns:
        16-character hex string
    """
    return format(span_id, '016x')


def split_host_port(address: str) -> Tuple[str, Optional[str]]:
    """
    Split ``host:port`` into its parts.

    A bare host, a bracketed IPv6 literal or an unbracketed IPv6 address
    comes back with ``None`` for the port.
    """
    if not address:
        return "", None
    if address.startswith("["):
        host, _, rest = address[1:].partition("]")
        port = rest[1:] if rest.startswith(":") else None
        return host, port or None
    if address.count(":") == 1:
        host, port = address.split(":", 1)
        return host, port or None
    return address, None


def parse_peer(url: str) -> Tuple[str, Optional[int]]:
    """
    Return ``(hostname, port)`` for an outbound URL.

    Port parse failures are tolerated: the port comes back as ``None``.
    When no hostname can be parsed the raw network location is returned.
    """
    try:
        parts = urlsplit(url)
    except ValueError:
        return url, None

    hostname = parts.hostname or parts.netloc
    try:
        port = parts.port
    except ValueError:
        port = None
    return hostname, port


def deadline_after(timeout: Optional[float]) -> Optional[float]:
    """Monotonic deadline ``timeout`` seconds from now; None means no limit."""
    if timeout is None:
        return None
    return time.monotonic() + max(0.0, timeout)


def remaining_seconds(deadline: Optional[float]) -> Optional[float]:
    """Seconds left until ``deadline`` (never negative); None for no deadline."""
    if deadline is None:
        return None
    return max(0.0, deadline - time.monotonic())
