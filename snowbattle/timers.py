"""Delayed game events ordered by the time they become due."""

from __future__ import annotations

import heapq
import itertools
import threading
import time
from dataclasses import dataclass, field
from typing import Callable

from .protocol import EventType

GM_ID = 1000
TORNADO_SESSION_ID = 100


@dataclass(order=True, frozen=True)
class TimerEvent:
    """An event for ``this_id`` about ``target_id`` that fires at ``start_time``."""

    start_time: float
    this_id: int = field(compare=False)
    target_id: int = field(compare=False)
    event: EventType = field(compare=False)


class TimerQueue:
    """Thread-safe priority queue that yields the earliest event first.

    Events that fall due at the same time come out in the order they were
    pushed.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._heap: list[tuple[float, int, TimerEvent]] = []
        self._seq = itertools.count()
        self._lock = threading.Lock()

    def schedule(
        self, this_id: int, target_id: int, event: EventType, delay: float
    ) -> TimerEvent:
        """Queue ``event`` to fall due ``delay`` seconds from now and return it."""
        order = TimerEvent(self._clock() + delay, this_id, target_id, EventType(event))
        self.push(order)
        return order

    def push(self, event: TimerEvent) -> None:
        """Queue an already built event."""
        with self._lock:
            heapq.heappush(self._heap, (event.start_time, next(self._seq), event))

    def try_pop(self) -> TimerEvent | None:
        """Remove and return the earliest event, or None when empty."""
        with self._lock:
            if not self._heap:
                return None
            return heapq.heappop(self._heap)[2]

    def pop_due(self, now: float | None = None) -> list[TimerEvent]:
        """Remove and return, earliest first, every event due at ``now``."""
        if now is None:
            now = self._clock()
        due: list[TimerEvent] = []
        with self._lock:
            while self._heap and self._heap[0][0] <= now:
                due.append(heapq.heappop(self._heap)[2])
        return due

    def clear(self) -> None:
        """Drop every queued event."""
        with self._lock:
            self._heap.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._heap)