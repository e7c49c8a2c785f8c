"""
Per-user socket registry.

Tracks which Socket.IO sessions belong to which user, and keeps the
per-connection context (user id, remote address, connect time) in an
explicit object keyed by sid instead of on the transport.
"""
import logging
import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set

logger = logging.getLogger(__name__)


@dataclass
class ConnectionContext:
    """State attached to one authenticated socket."""
    sid: str
    user_id: int
    namespace: str
    remote_addr: Optional[str] = None
    connected_at: float = field(default_factory=time.time)
    last_active: float = field(default_factory=time.time)

    def touch(self) -> None:
        self.last_active = time.time()


class SocketRegistry:
    """
    Mapping of user id to the set of that user's sids.

    A user may have any number of concurrent sockets. Removing the last
    one removes the user entry, so no empty sets are kept.
    """

    def __init__(self, namespace: str):
        self.namespace = namespace
        self._users: Dict[int, Set[str]] = {}
        self._contexts: Dict[str, ConnectionContext] = {}

    def register(self, sid: str, user_id: int, remote_addr: Optional[str] = None) -> ConnectionContext:
        """Add an authenticated socket for a user."""
        context = ConnectionContext(sid=sid, user_id=user_id, namespace=self.namespace, remote_addr=remote_addr)
        self._contexts[sid] = context
        self._users.setdefault(user_id, set()).add(sid)
        return context

    def unregister(self, sid: str) -> Optional[ConnectionContext]:
        """
        Remove a socket.

        Returns:
            The removed context, or None if the sid was unknown
        """
        context = self._contexts.pop(sid, None)
        if context is None:
            return None

        sids = self._users.get(context.user_id)
        if sids is not None:
            sids.discard(sid)
            if not sids:
                del self._users[context.user_id]
        return context

    def get(self, sid: str) -> Optional[ConnectionContext]:
        return self._contexts.get(sid)

    def user_id_for(self, sid: str) -> Optional[int]:
        context = self._contexts.get(sid)
        return context.user_id if context else None

    def sids_for(self, user_id: int) -> Set[str]:
        """Copy of the user's sids (empty if offline)."""
        return set(self._users.get(user_id, ()))

    def is_online(self, user_id: int) -> bool:
        return user_id in self._users

    def all_sids(self) -> List[str]:
        return list(self._contexts)

    def clear(self) -> None:
        self._users.clear()
        self._contexts.clear()

    @property
    def user_count(self) -> int:
        return len(self._users)

    @property
    def socket_count(self) -> int:
        return len(self._contexts)

    def __contains__(self, user_id: object) -> bool:
        return user_id in self._users
