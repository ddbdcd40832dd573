"""Bounded wait for a ReceiptSignal.

Each iteration blocks on the signal for at most one poll interval (a write wakes
it early), then checks the signal before the deadline, so a verdict stored on the
tick that crosses the deadline is still DELIVERED. TIMED_OUT only once elapsed
time exceeds the timeout. DELIVERED means the callback
stored a verdict; whether that verdict is True is the caller's concern.
"""
from __future__ import annotations

import time
from typing import Callable

from harness.app.constants import WaitOutcome
from harness.app.domain.receipt_signal import ReceiptSignal

DEFAULT_POLL_INTERVAL_SECONDS = 0.1


class ReceiveWaiter:
    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock

    def wait(
        self,
        signal: ReceiptSignal,
        timeout: float,
        poll_interval: float = DEFAULT_POLL_INTERVAL_SECONDS,
    ) -> WaitOutcome:
        if poll_interval <= 0:
            raise ValueError("poll_interval must be positive")

        deadline = self._clock() + max(timeout, 0.0)
        while True:
            signal.wait(poll_interval)
            if signal.written:
                return WaitOutcome.DELIVERED
            if self._clock() > deadline:
                return WaitOutcome.TIMED_OUT
