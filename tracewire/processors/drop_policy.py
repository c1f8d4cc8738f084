"""What to discard when the span buffer is full."""

from typing import Deque, Optional

from tracewire.tracer.span import Span


class DropPolicy:
    """Decides which span is lost when the reporter queue overflows."""

    def handle(self, queue: Deque[Span], span: Span, max_size: int) -> Optional[Span]:
        """
        Offer ``span`` to ``queue``.

        Returns the span that was discarded to honor ``max_size`` (which may
        be ``span`` itself), or None when nothing was lost.
        """
        raise NotImplementedError


class DropOldestPolicy(DropPolicy):
    """Evict the oldest buffered span; recent traffic wins."""

    def handle(self, queue: Deque[Span], span: Span, max_size: int) -> Optional[Span]:
        if max_size <= 0:
            return span
        evicted = queue.popleft() if len(queue) >= max_size else None
        queue.append(span)
        return evicted


class DropNewestPolicy(DropPolicy):
    """Refuse the incoming span; buffered spans win."""

    def handle(self, queue: Deque[Span], span: Span, max_size: int) -> Optional[Span]:
        if len(queue) >= max_size:
            return span
        queue.append(span)
        return None


DROP_POLICIES = {
    "oldest": DropOldestPolicy,
    "newest": DropNewestPolicy,
}

DEFAULT_DROP_POLICY = DropOldestPolicy()


def get_drop_policy(name: str) -> DropPolicy:
    try:
        return DROP_POLICIES[name]()
    except KeyError:
        raise ValueError(f"unknown drop policy: {name!r}") from None
