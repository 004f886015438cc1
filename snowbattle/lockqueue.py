"""Thread-safe FIFO queue and LIFO stack with blocking pops."""

from __future__ import annotations

import threading
from collections import deque
from typing import Generic, TypeVar

T = TypeVar("T")


class LockQueue(Generic[T]):
    """First-in, first-out queue guarded by a lock."""

    def __init__(self) -> None:
        self._items: deque[T] = deque()
        self._cond = threading.Condition()

    def push(self, value: T) -> None:
        """Add a value and wake one waiting consumer."""
        with self._cond:
            self._items.append(value)
            self._cond.notify()

    def try_pop(self) -> T | None:
        """Remove and return the oldest value, or None when empty."""
        with self._cond:
            if not self._items:
                return None
            return self._items.popleft()

    def wait_pop(self, timeout: float | None = None) -> T:
        """Block until a value is available and return the oldest one.

        Raises TimeoutError if ``timeout`` seconds pass with nothing to take.
        """
        with self._cond:
            if not self._cond.wait_for(lambda: bool(self._items), timeout):
                raise TimeoutError("nothing to pop")
            return self._items.popleft()

    def clear(self) -> None:
        """Drop every queued value."""
        with self._cond:
            self._items.clear()

    def __len__(self) -> int:
        with self._cond:
            return len(self._items)


class LockStack(Generic[T]):
    """Last-in, first-out stack guarded by a lock."""

    def __init__(self) -> None:
        self._items: list[T] = []
        self._cond = threading.Condition()

    def push(self, value: T) -> None:
        """Add a value and wake one waiting consumer."""
        with self._cond:
            self._items.append(value)
            self._cond.notify()

    def try_pop(self) -> T | None:
        """Remove and return the newest value, or None when empty."""
        with self._cond:
            if not self._items:
                return None
            return self._items.pop()

    def wait_pop(self, timeout: float | None = None) -> T:
        """Block until a value is available and return the newest one.

        Raises TimeoutError if ``timeout`` seconds pass with nothing to take.
        """
        with self._cond:
            if not self._cond.wait_for(lambda: bool(self._items), timeout):
                raise TimeoutError("nothing to pop")
            return self._items.pop()

    def __len__(self) -> int:
        with self._cond:
            return len(self._items)