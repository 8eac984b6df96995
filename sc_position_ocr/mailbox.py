from __future__ import annotations

import threading
from typing import Generic, Optional, TypeVar

T = TypeVar("T")


class LatestMailbox(Generic[T]):
    """Single-slot hand-off from the worker to the UI; a newer put overwrites a pending one."""

    def __init__(self) -> None:
        self._cond = threading.Condition()
        self._value: Optional[T] = None
        self._pending = False

    def put(self, value: T) -> None:
        with self._cond:
            self._value = value
            self._pending = True
            self._cond.notify_all()

    def take(self) -> Optional[T]:
        with self._cond:
            if not self._pending:
                return None
            value = self._value
            self._value = None
            self._pending = False
            return value

    def wait(self, timeout: Optional[float] = None) -> Optional[T]:
        with self._cond:
            if not self._pending:
                self._cond.wait(timeout)
        return self.take()
