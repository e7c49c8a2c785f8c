"""
Direct message transport over the default Socket.IO namespace.

Stores user-to-user messages, pushes them to both participants, tracks
their delivery status and relays typing indicators. The REST fallbacks
go through the same ``deliver_message`` and ``relay_typing`` paths.
"""
import asyncio
import enum
import logging
from typing import Any, AsyncContextManager, Callable, Dict, List, Optional

import socketio
from socketio import exceptions as sio_exceptions
from sqlalchemy.ext.asyncio import AsyncSession

from chat_relay.config import Settings
from chat_relay.core.cache import RedisCache
from chat_relay.core.registry import SocketRegistry
from chat_relay.core.typing_state import TypingStateTracker
from chat_relay.core.websocket import authenticate_socket, register_event_handlers, remote_address
from chat_relay.models.message import MessageStatusType
from chat_relay.repositories.message_repo import UserMessageRepository
from chat_relay.repositories.notification_repo import NotificationRepository
from chat_relay.schemas.message import MessageStatusUpdate, TypingIndicatorEvent, UserMessageCreate
from chat_relay.services.notification_service import NotificationSocketService, user_room

logger = logging.getLogger(__name__)

NAMESPACE = "/"

SessionFactory = Callable[[], AsyncContextManager[AsyncSession]]


class TransportEvent(str, enum.Enum):
    """Events handled on the message namespace."""
    CONNECT = "connect"
    DISCONNECT = "disconnect"
    USER_MESSAGE = "user_message"
    MESSAGE_STATUS_UPDATE = "message_status_update"
    TYPING_INDICATOR = "typing_indicator"


class StatusUpdateRejected(Exception):
    """Raised when a user may not change a message's status."""


class MessageTransportService:
    """
    Message delivery, status tracking and typing relay.

    Args:
        sio: Socket.IO server the namespace is registered on
        settings: Application settings
        session_factory: Opens a database session
        notifications: Notification fan-out for new-message alerts
        cache: Cache used to record presence
    """

    def __init__(
        self,
        sio: socketio.AsyncServer,
        settings: Settings,
        session_factory: SessionFactory,
        notifications: Optional[NotificationSocketService] = None,
        cache: Optional[RedisCache] = None,
    ):
        self.sio = sio
        self.settings = settings
        self.session_factory = session_factory
        self.notifications = notifications
        self.cache = cache

        self.registry = SocketRegistry(NAMESPACE)
        self.typing = TypingStateTracker(ttl=settings.typing_indicator_ttl)
        self._metrics: Dict[str, int] = {
            "messages": 0,
            "status_updates": 0,
            "typing_events": 0,
            "connect": 0,
            "disconnect": 0,
        }

        register_event_handlers(sio, NAMESPACE, TransportEvent, {
            TransportEvent.CONNECT: self._on_connect,
            TransportEvent.DISCONNECT: self._on_disconnect,
            TransportEvent.USER_MESSAGE: self._on_user_message,
            TransportEvent.MESSAGE_STATUS_UPDATE: self._on_message_status_update,
            TransportEvent.TYPING_INDICATOR: self._on_typing_indicator,
        })

    # ------------------------------------------------------------------
    # Operations shared with the REST endpoints
    # ------------------------------------------------------------------

    async def deliver_message(self, sender_id: int, receiver_id: int, content: str) -> Dict[str, Any]:
        """
        Store a message and push it to both participants.

        The message is stored as ``sent``. If the receiver has a live
        socket it is advanced to ``delivered`` and the sender is told.

        Args:
            sender_id: Authenticated sender
            receiver_id: Recipient
            content: Plaintext or prefixed ciphertext, never inspected

        Returns:
            The stored message in its final state

        Raises:
            ValueError: If the content exceeds the configured maximum
        """
        if len(content) > self.settings.message_max_length:
            raise ValueError(f"Message exceeds {self.settings.message_max_length} characters")

        receiver_online = self.registry.is_online(receiver_id)
        notification = None

        async with self.session_factory() as db:
            repo = UserMessageRepository(db)
            message = await repo.create_message(sender_id, receiver_id, content)
            sent_payload = message.to_dict()

            if receiver_online:
                await repo.advance_status(message, MessageStatusType.DELIVERED)
            final_payload = message.to_dict()

            if self.notifications is not None and receiver_id != sender_id:
                stored = await NotificationRepository(db).create_notification(
                    user_id=receiver_id,
                    type="message",
                    title="New message",
                    message=f"You have a new message from user {sender_id}",
                )
                notification = stored.to_dict()
                notification["data"] = {"messageId": message.id, "senderId": sender_id}

        for room in {user_room(sender_id), user_room(receiver_id)}:
            await self.sio.emit("new_message", {"message": sent_payload}, room=room, namespace=NAMESPACE)

        if receiver_online:
            await self._emit_status(sender_id, final_payload["id"], MessageStatusType.DELIVERED)

        self._metrics["messages"] += 1
        logger.info(
            f"[transport] Message {final_payload['id']} {sender_id} -> {receiver_id} "
            f"stored as {final_payload['status']}"
        )

        if notification is not None:
            await self.notifications.send_notification_to_user(receiver_id, notification)

        return final_payload

    async def update_status(self, user_id: int, message_id: int, status: MessageStatusType) -> bool:
        """
        Advance a message's status on behalf of its receiver.

        Repeats and regressions are ignored.

        Returns:
            True if the status changed

        Raises:
            StatusUpdateRejected: If the message is unknown or ``user_id``
                is not its receiver
        """
        async with self.session_factory() as db:
            repo = UserMessageRepository(db)
            message = await repo.get(message_id)
            if message is None:
                raise StatusUpdateRejected(f"Message {message_id} not found")
            if message.receiver_id != user_id:
                raise StatusUpdateRejected(f"User {user_id} is not the receiver of message {message_id}")

            current = message.status
            changed = await repo.advance_status(message, status)
            sender_id = message.sender_id

        if not changed:
            logger.info(f"[transport] Ignored status {status.value} for message {message_id} (currently {current.value})")
            return False

        await self._emit_status(sender_id, message_id, status)
        self._metrics["status_updates"] += 1
        return True

    async def relay_typing(self, sender_id: int, receiver_id: int, is_typing: bool) -> int:
        """
        Record a typing flag and relay it to the receiver only.

        Returns:
            Number of receiver sockets notified
        """
        self.typing.set_typing(receiver_id, sender_id, is_typing)
        self._metrics["typing_events"] += 1

        sids = self.registry.sids_for(receiver_id)
        if not sids:
            return 0

        await self.sio.emit(
            "typing_indicator",
            {"senderId": sender_id, "isTyping": is_typing},
            room=user_room(receiver_id),
            namespace=NAMESPACE,
        )
        return len(sids)

    async def get_history(self, user_id: int, partner_id: int, limit: int = 50, before_id: Optional[int] = None) -> List[Dict[str, Any]]:
        """Messages between two users, oldest first."""
        async with self.session_factory() as db:
            messages = await UserMessageRepository(db).get_conversation(user_id, partner_id, limit, before_id)
            return [m.to_dict() for m in messages]

    def get_metrics(self) -> Dict[str, int]:
        return {
            **self._metrics,
            "connected_users": self.registry.user_count,
            "connected_sockets": self.registry.socket_count,
        }

    async def stop(self) -> None:
        """Disconnect every socket of the namespace."""
        sids = self.registry.all_sids()
        for sid in sids:
            await self.sio.disconnect(sid, namespace=NAMESPACE)
        self.registry.clear()
        logger.info(f"[transport] Stopped, disconnected {len(sids)} sockets")

    async def _emit_status(self, sender_id: int, message_id: int, status: MessageStatusType) -> None:
        await self.sio.emit(
            "message_status",
            {"messageId": message_id, "status": status.value},
            room=user_room(sender_id),
            namespace=NAMESPACE,
        )

    # ------------------------------------------------------------------
    # Socket event handlers
    # ------------------------------------------------------------------

    async def _on_connect(self, sid: str, environ: dict, auth: Optional[dict] = None) -> None:
        address = remote_address(environ)
        try:
            user_id = await asyncio.wait_for(
                authenticate_socket(environ, auth, self.settings),
                timeout=self.settings.ws_handshake_timeout,
            )
        except asyncio.TimeoutError:
            logger.warning(f"[transport] Handshake from {address} timed out")
            user_id = None

        if user_id is None:
            logger.info(f"[transport] Connection from {address} rejected - no user ID")
            raise sio_exceptions.ConnectionRefusedError("Authentication required")

        self.registry.register(sid, user_id, address)
        await self.sio.enter_room(sid, user_room(user_id), namespace=NAMESPACE)
        self._metrics["connect"] += 1
        logger.info(f"[transport] User {user_id} connected (sid={sid})")

        if self.cache is not None:
            await self.cache.set_user_presence(user_id, "online")

        await self._deliver_pending(sid, user_id)
        await self._replay_typing(sid, user_id)

    async def _deliver_pending(self, sid: str, user_id: int) -> None:
        try:
            async with self.session_factory() as db:
                repo = UserMessageRepository(db)
                pending = await repo.get_pending_for_receiver(user_id)
                payloads = [
                    message.to_dict() for message in pending
                    if await repo.advance_status(message, MessageStatusType.DELIVERED)
                ]
        except Exception as e:
            logger.error(f"[transport] Failed to deliver pending messages to user {user_id}: {e}", exc_info=True)
            return

        for payload in payloads:
            await self.sio.emit("new_message", {"message": payload}, room=sid, namespace=NAMESPACE)
            await self._emit_status(payload["senderId"], payload["id"], MessageStatusType.DELIVERED)

        if payloads:
            logger.info(f"[transport] Delivered {len(payloads)} pending messages to user {user_id}")

    async def _replay_typing(self, sid: str, user_id: int) -> None:
        for sender_id in self.typing.typing_senders(user_id):
            await self.sio.emit(
                "typing_indicator",
                {"senderId": sender_id, "isTyping": True},
                room=sid,
                namespace=NAMESPACE,
            )

    async def _on_disconnect(self, sid: str, reason: Optional[str] = None) -> None:
        context = self.registry.unregister(sid)
        if context is None:
            return

        self._metrics["disconnect"] += 1
        logger.info(f"[transport] User {context.user_id} disconnected (sid={sid}, reason={reason})")

        if self.registry.is_online(context.user_id):
            return

        for receiver_id in self.typing.clear_sender(context.user_id):
            await self.sio.emit(
                "typing_indicator",
                {"senderId": context.user_id, "isTyping": False},
                room=user_room(receiver_id),
                namespace=NAMESPACE,
            )

        if self.cache is not None:
            await self.cache.set_user_presence(context.user_id, "offline")

    async def _on_user_message(self, sid: str, data: Any = None) -> Optional[Dict[str, Any]]:
        context = self.registry.get(sid)
        if context is None:
            return None

        payload = UserMessageCreate.model_validate(data or {})
        context.touch()

        try:
            message = await self.deliver_message(context.user_id, payload.receiver_id, payload.content)
        except ValueError as e:
            await self.sio.emit("error", {"event": TransportEvent.USER_MESSAGE.value, "message": str(e)}, room=sid, namespace=NAMESPACE)
            return None

        ack = {"messageId": message["id"], "status": message["status"]}
        await self.sio.emit("message_sent", ack, room=sid, namespace=NAMESPACE)
        return ack

    async def _on_message_status_update(self, sid: str, data: Any = None) -> None:
        context = self.registry.get(sid)
        if context is None:
            return

        update = MessageStatusUpdate.model_validate(data or {})
        context.touch()

        try:
            await self.update_status(context.user_id, update.message_id, update.status)
        except StatusUpdateRejected as e:
            logger.warning(f"[transport] Status update rejected: {e}")
            await self.sio.emit(
                "error",
                {"event": TransportEvent.MESSAGE_STATUS_UPDATE.value, "message": "Status update not allowed"},
                room=sid,
                namespace=NAMESPACE,
            )

    async def _on_typing_indicator(self, sid: str, data: Any = None) -> None:
        context = self.registry.get(sid)
        if context is None:
            return

        event = TypingIndicatorEvent.model_validate(data or {})
        context.touch()
        await self.relay_typing(context.user_id, event.receiver_id, event.is_typing)
