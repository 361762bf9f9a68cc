"""
Frame-driven one-shot timers.

The host calls advance(now_ms) once per frame; every callback whose due time
has been reached fires in due order on the same thread. Handles can be
cancelled synchronously at any time, including from inside another callback.
"""
from __future__ import annotations

import heapq
import itertools
from dataclasses import dataclass, field
from typing import Callable, List, Optional


@dataclass(order=True)
class TimerHandle:
    due_ms: float
    seq: int
    callback: Callable[[], None] = field(compare=False)
    cancelled: bool = field(default=False, compare=False)

    def cancel(self) -> None:
        self.cancelled = True


class FrameScheduler:
    def __init__(self, start_ms: float = 0.0) -> None:
        self._now = float(start_ms)
        self._heap: List[TimerHandle] = []
        self._seq = itertools.count()

    @property
    def now_ms(self) -> float:
        return self._now

    def call_later(self, delay_ms: float, callback: Callable[[], None]) -> TimerHandle:
        handle = TimerHandle(self._now + max(0.0, float(delay_ms)), next(self._seq), callback)
        heapq.heappush(self._heap, handle)
        return handle

    def cancel(self, handle: Optional[TimerHandle]) -> None:
        if handle is not None:
            handle.cancel()

    def pending(self) -> int:
        return sum(1 for h in self._heap if not h.cancelled)

    def advance(self, now_ms: float) -> int:
        """Move the clock forward and fire due callbacks. Returns how many fired."""
        now_ms = float(now_ms)
        if now_ms > self._now:
            self._now = now_ms
        fired = 0
        while self._heap and self._heap[0].due_ms <= self._now:
            handle = heapq.heappop(self._heap)
            if handle.cancelled:
                continue
            handle.callback()
            fired += 1
        return fired

    def clear(self) -> None:
        for h in self._heap:
            h.cancelled = True
        self._heap.clear()
