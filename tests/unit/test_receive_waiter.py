import threading
import time

import pytest

from harness.app.constants import WaitOutcome
from harness.app.domain.receipt_signal import ReceiptSignal
from harness.app.domain.receive_waiter import ReceiveWaiter

# Scheduler jitter allowance on top of the documented upper bound.
SLACK_SECONDS = 0.25


def test_already_true_signal_returns_delivered_immediately():
    signal = ReceiptSignal()
    signal.set(True)
    started = time.monotonic()
    assert ReceiveWaiter().wait(signal, timeout=5.0, poll_interval=0.1) == WaitOutcome.DELIVERED
    assert time.monotonic() - started < 0.1 + SLACK_SECONDS


def test_never_set_signal_times_out_within_bounds():
    timeout, poll = 0.3, 0.05
    started = time.monotonic()
    outcome = ReceiveWaiter().wait(ReceiptSignal(), timeout=timeout, poll_interval=poll)
    elapsed = time.monotonic() - started
    assert outcome == WaitOutcome.TIMED_OUT
    assert elapsed >= timeout
    assert elapsed <= timeout + poll + SLACK_SECONDS


def test_delivery_from_another_thread_unblocks_before_timeout():
    signal = ReceiptSignal()
    threading.Timer(0.05, signal.set, args=(True,)).start()
    started = time.monotonic()
    assert ReceiveWaiter().wait(signal, timeout=10.0, poll_interval=0.1) == WaitOutcome.DELIVERED
    assert time.monotonic() - started < 1.0


def test_false_verdict_counts_as_delivered():
    """A stored False verdict means a message arrived; the caller maps it to a content failure."""
    signal = ReceiptSignal()
    threading.Timer(0.02, signal.set, args=(False,)).start()
    assert ReceiveWaiter().wait(signal, timeout=5.0, poll_interval=0.05) == WaitOutcome.DELIVERED
    assert signal.get() is False


def test_signal_checked_before_deadline_on_boundary_tick():
    """A write that lands on the tick crossing the deadline is still DELIVERED."""

    class SetDuringWait(ReceiptSignal):
        def wait(self, timeout=None):
            self.set(True)
            return super().wait(0)

    ticks = iter([0.0, 100.0, 100.0])
    waiter = ReceiveWaiter(clock=lambda: next(ticks))
    assert waiter.wait(SetDuringWait(), timeout=1.0, poll_interval=0.01) == WaitOutcome.DELIVERED


def test_zero_timeout_still_checks_signal_once():
    assert ReceiveWaiter().wait(ReceiptSignal(), timeout=0.0, poll_interval=0.01) == WaitOutcome.TIMED_OUT


def test_rejects_non_positive_poll_interval():
    with pytest.raises(ValueError, match="poll_interval"):
        ReceiveWaiter().wait(ReceiptSignal(), timeout=1.0, poll_interval=0)


def test_elapsed_equal_to_timeout_polls_once_more():
    """TIMED_OUT needs elapsed time strictly past the timeout."""

    class NeverSet(ReceiptSignal):
        def wait(self, timeout=None):
            return super().wait(0)

    ticks = [0.0, 1.0, 1.05]
    reads = []

    def clock():
        reads.append(ticks[len(reads)])
        return reads[-1]

    outcome = ReceiveWaiter(clock=clock).wait(NeverSet(), timeout=1.0, poll_interval=0.01)

    assert outcome == WaitOutcome.TIMED_OUT
    assert reads == [0.0, 1.0, 1.05]


def test_write_after_exact_deadline_tick_is_delivered():
    class SetOnSecondWait(ReceiptSignal):
        calls = 0

        def wait(self, timeout=None):
            self.calls += 1
            if self.calls == 2:
                self.set(True)
            return super().wait(0)

    ticks = iter([0.0, 1.0, 1.05])
    waiter = ReceiveWaiter(clock=lambda: next(ticks))
    assert waiter.wait(SetOnSecondWait(), timeout=1.0, poll_interval=0.01) == WaitOutcome.DELIVERED
