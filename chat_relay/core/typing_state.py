"""
Typing-indicator state.

Records, per receiver, which senders are currently flagged as typing.
A flag is cleared by an explicit "not typing" signal, by the sender
disconnecting, or when it has not been refreshed for ``ttl`` seconds.
"""
import time
from typing import Callable, Dict, List

Clock = Callable[[], float]


class TypingStateTracker:
    """Receiver id -> {sender id -> expiry time}."""

    def __init__(self, ttl: float, clock: Clock = time.monotonic):
        self.ttl = ttl
        self._clock = clock
        self._state: Dict[int, Dict[int, float]] = {}

    def set_typing(self, receiver_id: int, sender_id: int, is_typing: bool) -> bool:
        """
        Update a sender's flag towards a receiver.

        Returns:
            True if the visible state changed
        """
        if is_typing:
            senders = self._state.setdefault(receiver_id, {})
            was_typing = self._live(senders, sender_id)
            senders[sender_id] = self._clock() + self.ttl
            return not was_typing

        senders = self._state.get(receiver_id)
        if not senders or sender_id not in senders:
            return False
        was_typing = self._live(senders, sender_id)
        del senders[sender_id]
        if not senders:
            del self._state[receiver_id]
        return was_typing

    def _live(self, senders: Dict[int, float], sender_id: int) -> bool:
        expires_at = senders.get(sender_id)
        return expires_at is not None and expires_at > self._clock()

    def is_typing(self, receiver_id: int, sender_id: int) -> bool:
        return self._live(self._state.get(receiver_id, {}), sender_id)

    def typing_senders(self, receiver_id: int) -> List[int]:
        """Senders currently typing to ``receiver_id``; expired flags are dropped."""
        self.prune()
        return sorted(self._state.get(receiver_id, {}))

    def clear_sender(self, sender_id: int) -> List[int]:
        """
        Remove every flag set by ``sender_id``.

        Returns:
            Receivers that were seeing the sender as typing
        """
        affected = []
        for receiver_id in list(self._state):
            senders = self._state[receiver_id]
            if sender_id in senders:
                if self._live(senders, sender_id):
                    affected.append(receiver_id)
                del senders[sender_id]
                if not senders:
                    del self._state[receiver_id]
        return affected

    def prune(self) -> int:
        """Drop expired flags; returns how many were removed."""
        now = self._clock()
        removed = 0
        for receiver_id in list(self._state):
            senders = self._state[receiver_id]
            for sender_id in [s for s, exp in senders.items() if exp <= now]:
                del senders[sender_id]
                removed += 1
            if not senders:
                del self._state[receiver_id]
        return removed
