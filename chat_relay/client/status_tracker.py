"""
Client-side message status bookkeeping.

``StatusBoard`` keeps the latest known status per message and never lets
it move backwards. ``MessageStatusTracker`` remembers when a status last
changed so the UI can animate fresh transitions for a short window.
"""
import asyncio
import logging
import time
from typing import Callable, Dict, Optional, Tuple, Union

from chat_relay.models.message import MessageStatusType

logger = logging.getLogger(__name__)

Clock = Callable[[], float]
StatusLike = Union[MessageStatusType, str]


class MessageStatusTracker:
    """Message id -> (status, time of the last change)."""

    def __init__(self, animation_window: float = 2.0, clock: Clock = time.monotonic):
        self.animation_window = animation_window
        self._clock = clock
        self._entries: Dict[int, Tuple[MessageStatusType, float]] = {}

    def record(self, message_id: int, status: StatusLike) -> bool:
        """
        Note a status for a message.

        Returns:
            True if this is a change from the last recorded status
        """
        status = MessageStatusType(status)
        current = self._entries.get(message_id)
        if current is not None and current[0] is status:
            return False
        self._entries[message_id] = (status, self._clock())
        return True

    def should_animate(self, message_id: int) -> bool:
        """True while the last change is within the animation window."""
        entry = self._entries.get(message_id)
        if entry is None:
            return False
        return self._clock() - entry[1] < self.animation_window

    def get_status(self, message_id: int) -> Optional[MessageStatusType]:
        entry = self._entries.get(message_id)
        return entry[0] if entry else None

    def sweep(self) -> int:
        """Forget entries older than the animation window."""
        cutoff = self._clock() - self.animation_window
        stale = [message_id for message_id, (_, changed_at) in self._entries.items() if changed_at <= cutoff]
        for message_id in stale:
            del self._entries[message_id]
        return len(stale)

    async def run(self, interval: Optional[float] = None) -> None:
        """Sweep periodically until cancelled."""
        interval = interval or self.animation_window
        while True:
            await asyncio.sleep(interval)
            self.sweep()

    def __len__(self) -> int:
        return len(self._entries)


class StatusBoard:
    """
    Latest status per message id, forward-only.

    Args:
        tracker: Optional tracker informed of every accepted change
    """

    def __init__(self, tracker: Optional[MessageStatusTracker] = None):
        self.tracker = tracker
        self._statuses: Dict[int, MessageStatusType] = {}

    def update(self, message_id: int, status: StatusLike) -> bool:
        """
        Apply a status report.

        Returns:
            True if the status advanced; repeats and regressions are ignored
        """
        status = MessageStatusType(status)
        current = self._statuses.get(message_id)
        if current is not None and not current.can_advance_to(status):
            if current is not status:
                logger.debug(f"[status] Ignoring {status.value} for message {message_id}, already {current.value}")
            return False

        self._statuses[message_id] = status
        if self.tracker is not None:
            self.tracker.record(message_id, status)
        return True

    def get(self, message_id: int) -> Optional[MessageStatusType]:
        return self._statuses.get(message_id)

    def __contains__(self, message_id: object) -> bool:
        return message_id in self._statuses
