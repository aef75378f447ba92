"""
Tests for the fixed-interval poll loop.
"""

from unittest.mock import Mock

import pytest

from pbi_provisioner.cancellation import CancellationToken, OperationCancelledException
from pbi_provisioner.lro import Poller

pytestmark = [pytest.mark.unit, pytest.mark.resilience]


class FakeClock:
    """Monotonic clock advanced by the sleep it hands out."""

    def __init__(self):
        self.now = 0.0
        self.sleeps = []

    def __call__(self):
        return self.now

    def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += seconds


class TestPoller:

    def test_waits_before_first_fetch(self):
        events = []
        poller = Poller(sleep=lambda seconds: events.append(("sleep", seconds)))

        outcome = poller.poll(
            fetch=lambda: events.append(("fetch", None)) or "Succeeded",
            is_done=lambda status: status == "Succeeded",
            interval=2,
        )

        assert outcome.completed
        assert outcome.attempts == 1
        assert outcome.last == "Succeeded"
        assert events == [("sleep", 2), ("fetch", None)]

    def test_polls_until_done(self, recording_sleep):
        fetch = Mock(side_effect=["Publishing", "Publishing", "Succeeded"])
        outcome = Poller(sleep=recording_sleep).poll(
            fetch=fetch,
            is_done=lambda status: status != "Publishing",
            interval=2,
        )

        assert outcome.completed
        assert outcome.attempts == 3
        assert recording_sleep.calls == [2, 2, 2]

    def test_attempt_cap_returns_not_completed(self, recording_sleep):
        """After max_attempts non-terminal snapshots the loop gives up without raising."""
        fetch = Mock(return_value=["Unknown"])
        outcome = Poller(sleep=recording_sleep).poll(
            fetch=fetch,
            is_done=lambda refreshes: False,
            interval=10,
            max_attempts=72,
        )

        assert not outcome.completed
        assert outcome.attempts == 72
        assert fetch.call_count == 72
        assert recording_sleep.total == 720

    def test_fetch_errors_propagate(self, recording_sleep):
        fetch = Mock(side_effect=RuntimeError("boom"))
        with pytest.raises(RuntimeError):
            Poller(sleep=recording_sleep).poll(fetch=fetch, is_done=lambda _: True, interval=1)

    def test_status_of_used_for_progress(self, recording_sleep):
        status_of = Mock(return_value="Completed")
        Poller(sleep=recording_sleep, show_progress=False).poll(
            fetch=lambda: {"status": "Completed"},
            is_done=lambda _: True,
            interval=1,
            status_of=status_of,
        )
        status_of.assert_called_once_with({"status": "Completed"})


class TestPollerCancellation:

    def test_cancelled_token_stops_before_fetch(self, recording_sleep):
        token = CancellationToken()
        token.cancel("test")
        fetch = Mock()

        with pytest.raises(OperationCancelledException):
            Poller(sleep=recording_sleep).poll(fetch=fetch, is_done=lambda _: True, interval=2,
                                               cancellation_token=token)
        fetch.assert_not_called()

    def test_wait_sliced_for_cancellation_checks(self):
        clock = FakeClock()
        token = CancellationToken(clock=clock)
        poller = Poller(sleep=clock.sleep)

        poller.poll(fetch=lambda: "done", is_done=lambda _: True, interval=3, cancellation_token=token)

        assert clock.sleeps == [1.0, 1.0, 1.0]

    def test_cancel_during_wait_interrupts(self):
        clock = FakeClock()
        token = CancellationToken(clock=clock)

        def sleep(seconds):
            clock.sleep(seconds)
            if clock.now >= 4:
                token.cancel("user interrupted")

        fetch = Mock(return_value="Publishing")
        with pytest.raises(OperationCancelledException):
            Poller(sleep=sleep).poll(fetch=fetch, is_done=lambda _: False, interval=10,
                                     cancellation_token=token)

        fetch.assert_not_called()
        assert clock.now == 4

    def test_deadline_bounds_unlimited_poll(self):
        """An unbounded poll still ends once the token's deadline passes."""
        clock = FakeClock()
        token = CancellationToken.with_timeout(25, clock=clock)
        fetch = Mock(return_value="Publishing")

        with pytest.raises(OperationCancelledException) as exc_info:
            Poller(sleep=clock.sleep).poll(fetch=fetch, is_done=lambda _: False, interval=10,
                                           cancellation_token=token)

        assert "deadline exceeded" in str(exc_info.value)
        assert fetch.call_count == 2
        assert clock.now == 25
