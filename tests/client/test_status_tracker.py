"""
Tests for client-side status bookkeeping.
"""
import asyncio

import pytest

from chat_relay.client.status_tracker import MessageStatusTracker, StatusBoard
from chat_relay.models.message import MessageStatusType


class FakeClock:
    def __init__(self):
        self.now = 100.0

    def __call__(self):
        return self.now


class TestStatusBoard:
    """Forward-only status per message."""

    def test_status_advances(self):
        board = StatusBoard()

        assert board.update(1, "sent")
        assert board.update(1, "delivered")
        assert board.update(1, MessageStatusType.READ)
        assert board.get(1) is MessageStatusType.READ

    def test_regression_is_ignored(self):
        board = StatusBoard()
        board.update(1, "read")

        assert board.update(1, "delivered") is False
        assert board.update(1, "sent") is False
        assert board.get(1) is MessageStatusType.READ

    def test_repeat_is_ignored(self):
        board = StatusBoard()
        board.update(1, "delivered")

        assert board.update(1, "delivered") is False

    def test_first_report_may_skip_states(self):
        board = StatusBoard()

        assert board.update(9, "read")
        assert 9 in board
        assert 10 not in board

    def test_unknown_status_raises(self):
        with pytest.raises(ValueError):
            StatusBoard().update(1, "seen")


class TestMessageStatusTracker:
    """Animation window bookkeeping."""

    def test_fresh_change_animates(self):
        clock = FakeClock()
        tracker = MessageStatusTracker(animation_window=2.0, clock=clock)

        assert tracker.record(1, "delivered")
        assert tracker.should_animate(1)

        clock.now += 2.0
        assert not tracker.should_animate(1)

    def test_repeat_does_not_restart_animation(self):
        clock = FakeClock()
        tracker = MessageStatusTracker(animation_window=2.0, clock=clock)
        tracker.record(1, "delivered")

        clock.now += 1.5
        assert tracker.record(1, "delivered") is False
        clock.now += 1.0

        assert not tracker.should_animate(1)

    def test_sweep_forgets_old_entries(self):
        clock = FakeClock()
        tracker = MessageStatusTracker(animation_window=2.0, clock=clock)
        tracker.record(1, "sent")
        clock.now += 1.0
        tracker.record(2, "sent")
        clock.now += 1.5

        assert tracker.sweep() == 1
        assert tracker.get_status(1) is None
        assert tracker.get_status(2) is MessageStatusType.SENT
        assert len(tracker) == 1

    def test_unknown_message(self):
        tracker = MessageStatusTracker()

        assert not tracker.should_animate(42)
        assert tracker.get_status(42) is None

    def test_board_feeds_tracker(self):
        tracker = MessageStatusTracker(clock=FakeClock())
        board = StatusBoard(tracker)

        board.update(1, "delivered")
        board.update(1, "sent")

        assert tracker.get_status(1) is MessageStatusType.DELIVERED


@pytest.mark.asyncio
class TestTrackerSweepLoop:

    async def test_run_sweeps_until_cancelled(self):
        clock = FakeClock()
        tracker = MessageStatusTracker(animation_window=2.0, clock=clock)
        tracker.record(1, "sent")
        clock.now += 5

        task = asyncio.create_task(tracker.run(interval=0.01))
        await asyncio.sleep(0.05)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert len(tracker) == 0
