"""Single-slot boolean flag shared between a transport callback and a waiting thread."""
from __future__ import annotations

import threading


class ReceiptSignal:
    """Thread-safe receipt verdict.

    The transport's callback thread writes the verdict with set(); the scenario
    thread reads it with get() or blocks in wait(). Every access goes through one
    Condition, so readers always observe a complete write and writers wake any
    waiter immediately. Repeated writes overwrite the value (last write wins).
    """

    def __init__(self) -> None:
        self._condition = threading.Condition()
        self._value = False
        self._written = False

    def set(self, value: bool) -> None:
        with self._condition:
            self._value = bool(value)
            self._written = True
            self._condition.notify_all()

    def get(self) -> bool:
        with self._condition:
            return self._value

    @property
    def written(self) -> bool:
        with self._condition:
            return self._written

    def wait(self, timeout: float | None = None) -> bool:
        """Block until the first write or until timeout elapses; return get()."""
        with self._condition:
            self._condition.wait_for(lambda: self._written, timeout=timeout)
            return self._value
