"""A deduplicating, delaying, rate-limited work queue."""

from __future__ import annotations

import heapq
import itertools
import threading
import time
from collections import deque
from typing import Hashable


class _ExponentialFailureLimiter:
    def __init__(self, base_delay: float, max_delay: float) -> None:
        self._base = base_delay
        self._max = max_delay
        self._failures: dict[Hashable, int] = {}

    def when(self, item: Hashable) -> float:
        exp = self._failures.get(item, 0)
        self._failures[item] = exp + 1
        if exp >= 64:
            return self._max
        return min(self._base * 2.0**exp, self._max)

    def forget(self, item: Hashable) -> None:
        self._failures.pop(item, None)

    def num_requeues(self, item: Hashable) -> int:
        return self._failures.get(item, 0)


class _BucketLimiter:
    def __init__(self, qps: float, burst: int) -> None:
        self._qps = qps
        self._burst = float(burst)
        self._tokens = float(burst)
        self._last = time.monotonic()

    def when(self) -> float:
        now = time.monotonic()
        self._tokens = min(self._burst, self._tokens + (now - self._last) * self._qps)
        self._last = now
        self._tokens -= 1.0
        return max(0.0, -self._tokens / self._qps)


class RateLimitingQueue:
    """Work queue that never hands out the same item to two workers at once.

    An item added while it is queued is merged; an item added while it is being
    processed is queued again once :meth:`done` is called for it.
    """

    def __init__(
        self,
        name: str = "",
        *,
        base_delay: float = 0.005,
        max_delay: float = 1000.0,
        qps: float = 10.0,
        burst: int = 100,
    ) -> None:
        self.name = name
        self._cond = threading.Condition()
        self._queue: deque[Hashable] = deque()
        self._dirty: set[Hashable] = set()
        self._processing: set[Hashable] = set()
        self._waiting: list[tuple[float, int, Hashable]] = []
        self._waiting_ready: dict[Hashable, float] = {}
        self._seq = itertools.count()
        self._shutting_down = False
        self._failures = _ExponentialFailureLimiter(base_delay, max_delay)
        self._bucket = _BucketLimiter(qps, burst)

    def _add_locked(self, item: Hashable) -> None:
        if self._shutting_down or item in self._dirty:
            return
        self._dirty.add(item)
        if item in self._processing:
            return
        self._queue.append(item)
        self._cond.notify()

    def _promote_ready_locked(self, now: float) -> None:
        while self._waiting and self._waiting[0][0] <= now:
            ready_at, _, item = heapq.heappop(self._waiting)
            if self._waiting_ready.get(item) != ready_at:
                continue
            del self._waiting_ready[item]
            self._add_locked(item)

    def add(self, item: Hashable) -> None:
        """Queue ``item`` for processing."""
        with self._cond:
            self._add_locked(item)

    def add_after(self, item: Hashable, delay: float) -> None:
        """Queue ``item`` once ``delay`` seconds have passed."""
        with self._cond:
            if self._shutting_down:
                return
            if delay <= 0:
                self._add_locked(item)
                return
            ready_at = time.monotonic() + delay
            existing = self._waiting_ready.get(item)
            if existing is not None and existing <= ready_at:
                return
            self._waiting_ready[item] = ready_at
            heapq.heappush(self._waiting, (ready_at, next(self._seq), item))
            self._cond.notify_all()

    def add_rate_limited(self, item: Hashable) -> None:
        """Queue ``item`` after the back-off delay it has earned so far."""
        with self._cond:
            delay = max(self._failures.when(item), self._bucket.when())
            self.add_after(item, delay)

    def forget(self, item: Hashable) -> None:
        """Reset the back-off of ``item``."""
        with self._cond:
            self._failures.forget(item)

    def num_requeues(self, item: Hashable) -> int:
        """Return how often ``item`` was rate-limited since it was last forgotten."""
        with self._cond:
            return self._failures.num_requeues(item)

    def get(self, timeout: float | None = None) -> tuple[Hashable | None, bool]:
        """Block until an item is ready and return ``(item, shutdown)``.

        Returns ``(None, True)`` once the queue is shut down and drained.
        Raises TimeoutError if ``timeout`` seconds pass without an item.
        """
        deadline = None if timeout is None else time.monotonic() + timeout
        with self._cond:
            while True:
                now = time.monotonic()
                self._promote_ready_locked(now)
                if self._queue:
                    item = self._queue.popleft()
                    self._processing.add(item)
                    self._dirty.discard(item)
                    return item, False
                if self._shutting_down:
                    return None, True
                waits = []
                if self._waiting:
                    waits.append(self._waiting[0][0] - now)
                if deadline is not None:
                    remaining = deadline - now
                    if remaining <= 0:
                        raise TimeoutError("no item became ready in time")
                    waits.append(remaining)
                self._cond.wait(max(0.0, min(waits)) if waits else None)

    def done(self, item: Hashable) -> None:
        """Mark ``item`` as processed, queueing it again if it was re-added meanwhile."""
        with self._cond:
            self._processing.discard(item)
            if item in self._dirty and not self._shutting_down:
                self._queue.append(item)
                self._cond.notify()

    def shut_down(self) -> None:
        """Stop accepting items and drop delayed ones; waiting getters are released."""
        with self._cond:
            self._shutting_down = True
            self._waiting.clear()
            self._waiting_ready.clear()
            self._cond.notify_all()

    def __len__(self) -> int:
        with self._cond:
            return len(self._queue)