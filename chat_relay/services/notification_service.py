"""
Notification fan-out over the ``/notifications`` Socket.IO namespace.

Notifications addressed to a user are deduplicated, queued per user and
flushed by a background task as one ``notifications_batch`` event per
user. Priority types are also emitted immediately as ``new_notification``.
"""
import asyncio
import enum
import hashlib
import json
import logging
import time
from typing import Any, AsyncContextManager, Callable, Dict, List, Optional, Union

import socketio
from pydantic import BaseModel
from socketio import exceptions as sio_exceptions
from sqlalchemy.ext.asyncio import AsyncSession

from chat_relay.config import Settings
from chat_relay.core.cache import RedisCache
from chat_relay.core.registry import SocketRegistry
from chat_relay.core.throttling import ConnectionRateLimiter, DedupCache
from chat_relay.core.websocket import authenticate_socket, register_event_handlers, remote_address
from chat_relay.repositories.notification_repo import NotificationRepository
from chat_relay.schemas.notification import PresenceEvent

logger = logging.getLogger(__name__)

NAMESPACE = "/notifications"
REFRESH_LIMIT = 20

SessionFactory = Callable[[], AsyncContextManager[AsyncSession]]
NotificationData = Union[Dict[str, Any], BaseModel]


class NotificationEvent(str, enum.Enum):
    """Events handled on the notification namespace."""
    CONNECT = "connect"
    DISCONNECT = "disconnect"
    PING = "ping"
    PRESENCE = "presence"
    REQUEST_NOTIFICATIONS = "request_notifications"


def user_room(user_id: int) -> str:
    """Broadcast group holding every socket of one user."""
    return f"user:{user_id}"


def notification_fingerprint(user_id: int, notification: Dict[str, Any]) -> str:
    """
    Dedup key for a notification sent to a user.

    Uses the notification id when present, otherwise a digest of the
    notification's content.
    """
    identity = notification.get("id")
    if identity is None:
        body = json.dumps(
            {k: notification.get(k) for k in ("type", "title", "message", "data")},
            sort_keys=True,
            default=str,
        )
        identity = "sha1:" + hashlib.sha1(body.encode("utf-8")).hexdigest()
    return f"{user_id}:{identity}"


class NotificationSocketService:
    """
    Per-user notification delivery with batching and deduplication.

    Args:
        sio: Socket.IO server the namespace is registered on
        settings: Application settings
        session_factory: Opens a database session (used for refreshes)
        cache: Cache used to record presence
    """

    def __init__(
        self,
        sio: socketio.AsyncServer,
        settings: Settings,
        session_factory: SessionFactory,
        cache: Optional[RedisCache] = None,
    ):
        self.sio = sio
        self.settings = settings
        self.session_factory = session_factory
        self.cache = cache

        self.registry = SocketRegistry(NAMESPACE)
        self.priority_types = settings.get_priority_types()
        self._dedup = DedupCache(
            ttl=settings.notification_dedup_ttl,
            max_size=settings.notification_dedup_max_size,
        )
        self._rate_limiter = ConnectionRateLimiter(
            min_interval=settings.connection_rate_limit_interval,
            prune_after=settings.connection_rate_limit_prune_after,
        )
        self._queues: Dict[int, List[Dict[str, Any]]] = {}
        self._flush_task: Optional[asyncio.Task] = None
        self._metrics: Dict[str, int] = {
            "sent": 0,
            "delivered": 0,
            "broadcast": 0,
            "connect": 0,
            "disconnect": 0,
            "batches_processed": 0,
            "deduplicated": 0,
            "rejected": 0,
        }

        register_event_handlers(sio, NAMESPACE, NotificationEvent, {
            NotificationEvent.CONNECT: self._on_connect,
            NotificationEvent.DISCONNECT: self._on_disconnect,
            NotificationEvent.PING: self._on_ping,
            NotificationEvent.PRESENCE: self._on_presence,
            NotificationEvent.REQUEST_NOTIFICATIONS: self._on_request_notifications,
        })

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def running(self) -> bool:
        return self._flush_task is not None and not self._flush_task.done()

    async def start(self) -> None:
        """Start the batch flush task."""
        if self.running:
            return
        self._flush_task = asyncio.create_task(self._flush_loop(), name="notification-batch-flush")
        logger.info(
            f"[NotificationSocket] Started (batch every {self.settings.notification_batch_interval}s, "
            f"priority types: {sorted(self.priority_types)})"
        )

    async def stop(self) -> None:
        """
        Shut the namespace down.

        Cancels the flush task, flushes what is still queued, disconnects
        every socket and clears all state.
        """
        if self._flush_task is not None:
            self._flush_task.cancel()
            try:
                await self._flush_task
            except asyncio.CancelledError:
                pass
            self._flush_task = None

        await self.flush()

        sids = self.registry.all_sids()
        for sid in sids:
            await self.sio.disconnect(sid, namespace=NAMESPACE)

        self.registry.clear()
        self._queues.clear()
        logger.info(f"[NotificationSocket] Stopped, disconnected {len(sids)} sockets")

    async def _flush_loop(self) -> None:
        interval = self.settings.notification_batch_interval
        while True:
            await asyncio.sleep(interval)
            try:
                await self.flush()
            except Exception as e:
                logger.error(f"[NotificationSocket] Batch flush failed: {e}", exc_info=True)

    # ------------------------------------------------------------------
    # Delivery
    # ------------------------------------------------------------------

    async def send_notification_to_user(self, user_id: int, notification: NotificationData) -> bool:
        """
        Queue a notification for every socket of a user.

        Args:
            user_id: Recipient
            notification: Notification payload

        Returns:
            True if queued or already delivered recently, False if the
            user has no connected socket
        """
        payload = self._as_dict(notification)
        fingerprint = notification_fingerprint(user_id, payload)

        if self._dedup.seen(fingerprint):
            self._metrics["deduplicated"] += 1
            logger.debug(f"[NotificationSocket] Duplicate notification {fingerprint} suppressed")
            return True

        if not self.registry.is_online(user_id):
            logger.debug(f"[NotificationSocket] User {user_id} not connected, notification will be seen on next login")
            return False

        self._dedup.add(fingerprint)
        self._queues.setdefault(user_id, []).append(payload)
        self._metrics["sent"] += 1

        if str(payload.get("type", "")).lower() in self.priority_types:
            await self.sio.emit("new_notification", payload, room=user_room(user_id), namespace=NAMESPACE)
            logger.info(f"[NotificationSocket] Priority notification sent to user {user_id}")

        return True

    async def flush(self) -> int:
        """
        Emit every pending queue as one batch per user and clear them.
        Expired dedup fingerprints are dropped on every call.

        Returns:
            Number of batches emitted
        """
        self._dedup.purge_expired()
        if not self._queues:
            return 0

        queues, self._queues = self._queues, {}
        batches = 0
        for user_id, items in queues.items():
            if not self.registry.is_online(user_id):
                # Disconnected since queueing; nothing to deliver to
                continue
            await self.sio.emit("notifications_batch", items, room=user_room(user_id), namespace=NAMESPACE)
            self._metrics["delivered"] += len(items)
            batches += 1

        self._metrics["batches_processed"] += batches
        return batches

    async def broadcast_notification(self, notification: NotificationData) -> int:
        """
        Send a notification to every connected socket.

        Above the configured chunk size the sockets are addressed in
        chunks, yielding to the event loop between chunks.

        Returns:
            Number of sockets addressed
        """
        payload = self._as_dict(notification)
        sids = self.registry.all_sids()
        chunk_size = self.settings.notification_broadcast_chunk_size

        if len(sids) <= chunk_size:
            await self.sio.emit("broadcast_notification", payload, namespace=NAMESPACE)
        else:
            for start in range(0, len(sids), chunk_size):
                for sid in sids[start:start + chunk_size]:
                    await self.sio.emit("broadcast_notification", payload, room=sid, namespace=NAMESPACE)
                await asyncio.sleep(0)

        self._metrics["broadcast"] += 1
        logger.info(f"[NotificationSocket] Broadcast notification sent to {len(sids)} sockets")
        return len(sids)

    def get_metrics(self) -> Dict[str, Any]:
        """Counters and current gauges; read only."""
        return {
            **self._metrics,
            "connected_users": self.registry.user_count,
            "connected_sockets": self.registry.socket_count,
            "pending_users": len(self._queues),
            "pending_notifications": sum(len(items) for items in self._queues.values()),
            "dedup_entries": len(self._dedup),
            "rate_limited_addresses": len(self._rate_limiter),
            "flush_running": self.running,
        }

    def is_user_connected(self, user_id: int) -> bool:
        return self.registry.is_online(user_id)

    @staticmethod
    def _as_dict(notification: NotificationData) -> Dict[str, Any]:
        if isinstance(notification, BaseModel):
            return notification.model_dump()
        return dict(notification)

    # ------------------------------------------------------------------
    # Socket event handlers
    # ------------------------------------------------------------------

    async def _on_connect(self, sid: str, environ: dict, auth: Optional[dict] = None) -> None:
        address = remote_address(environ)

        if not self._rate_limiter.allow(address):
            self._metrics["rejected"] += 1
            logger.warning(f"[NotificationSocket] Connection from {address} rejected - too frequent")
            raise sio_exceptions.ConnectionRefusedError("Too many connection attempts")

        try:
            user_id = await asyncio.wait_for(
                authenticate_socket(environ, auth, self.settings),
                timeout=self.settings.ws_handshake_timeout,
            )
        except asyncio.TimeoutError:
            logger.warning(f"[NotificationSocket] Handshake from {address} timed out")
            user_id = None

        if user_id is None:
            self._metrics["rejected"] += 1
            logger.info("[NotificationSocket] Connection rejected - no user ID")
            raise sio_exceptions.ConnectionRefusedError("Authentication required")

        self.registry.register(sid, user_id, address)
        await self.sio.enter_room(sid, user_room(user_id), namespace=NAMESPACE)
        self._metrics["connect"] += 1
        logger.info(f"[NotificationSocket] User {user_id} connected (sid={sid})")

    async def _on_disconnect(self, sid: str, reason: Optional[str] = None) -> None:
        context = self.registry.unregister(sid)
        if context is None:
            return
        self._metrics["disconnect"] += 1
        logger.info(f"[NotificationSocket] User {context.user_id} disconnected (sid={sid}, reason={reason})")

    async def _on_ping(self, sid: str, data: Any = None) -> Dict[str, Any]:
        context = self.registry.get(sid)
        if context is not None:
            context.touch()
        return {"status": "ok", "timestamp": time.time()}

    async def _on_presence(self, sid: str, data: Any = None) -> None:
        context = self.registry.get(sid)
        if context is None:
            return

        event = PresenceEvent.model_validate(data or {})
        context.touch()
        if self.cache is not None:
            await self.cache.set_user_presence(context.user_id, "online" if event.online else "offline")
        logger.debug(f"[NotificationSocket] User {context.user_id} presence: online={event.online}")

    async def _on_request_notifications(self, sid: str, data: Any = None) -> None:
        context = self.registry.get(sid)
        if context is None:
            return

        logger.info(f"[NotificationSocket] User {context.user_id} requested notifications refresh")
        try:
            async with self.session_factory() as db:
                rows = await NotificationRepository(db).get_recent(context.user_id, limit=REFRESH_LIMIT)
                notifications = [row.to_dict() for row in rows]
        except Exception as e:
            logger.error(f"[NotificationSocket] Error getting notifications for user {context.user_id}: {e}")
            notifications = []

        await self.sio.emit("notification_refresh", notifications, room=sid, namespace=NAMESPACE)
        logger.info(f"[NotificationSocket] Sent {len(notifications)} notifications to user {context.user_id}")
