"""
Tests for typing-indicator state tracking.
"""
from chat_relay.core.typing_state import TypingStateTracker


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


class TestTypingStateTracker:

    def test_set_and_clear(self):
        tracker = TypingStateTracker(ttl=8, clock=FakeClock())

        assert tracker.set_typing(2, 1, True) is True
        assert tracker.is_typing(2, 1)
        assert tracker.set_typing(2, 1, True) is False
        assert tracker.set_typing(2, 1, False) is True
        assert not tracker.is_typing(2, 1)
        assert tracker.set_typing(2, 1, False) is False

    def test_flag_expires(self):
        clock = FakeClock()
        tracker = TypingStateTracker(ttl=8, clock=clock)
        tracker.set_typing(2, 1, True)

        clock.now = 7.9
        assert tracker.typing_senders(2) == [1]
        clock.now = 8.0
        assert tracker.typing_senders(2) == []

    def test_refresh_extends_expiry(self):
        clock = FakeClock()
        tracker = TypingStateTracker(ttl=8, clock=clock)
        tracker.set_typing(2, 1, True)

        clock.now = 6
        tracker.set_typing(2, 1, True)
        clock.now = 12

        assert tracker.is_typing(2, 1)

    def test_clear_sender_reports_affected_receivers(self):
        clock = FakeClock()
        tracker = TypingStateTracker(ttl=8, clock=clock)
        tracker.set_typing(2, 1, True)
        tracker.set_typing(3, 1, True)
        tracker.set_typing(3, 4, True)

        assert sorted(tracker.clear_sender(1)) == [2, 3]
        assert tracker.typing_senders(3) == [4]
        assert tracker.typing_senders(2) == []

    def test_clear_sender_skips_expired_flags(self):
        clock = FakeClock()
        tracker = TypingStateTracker(ttl=8, clock=clock)
        tracker.set_typing(2, 1, True)
        clock.now = 10

        assert tracker.clear_sender(1) == []

    def test_prune(self):
        clock = FakeClock()
        tracker = TypingStateTracker(ttl=8, clock=clock)
        tracker.set_typing(2, 1, True)
        tracker.set_typing(2, 3, True)
        clock.now = 9

        assert tracker.prune() == 2
