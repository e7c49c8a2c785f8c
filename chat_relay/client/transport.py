"""
Real-time chat client.

Keeps one Socket.IO connection to the relay and falls back to the REST
endpoints while it is down. A send that fails on both paths raises
``MessageSendError``; it is never reported as delivered.
"""
import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable, Dict, Optional, Union

import httpx
import socketio
from socketio import exceptions as sio_exceptions

from chat_relay.client.conversation import ConversationEncryption
from chat_relay.client.status_tracker import MessageStatusTracker, StatusBoard
from chat_relay.models.message import MessageStatusType

logger = logging.getLogger(__name__)

Callback = Callable[..., Union[None, Awaitable[None]]]


class MessageSendError(Exception):
    """A message could not be sent over the socket or REST."""


async def _invoke(callback: Optional[Callback], *args) -> None:
    if callback is None:
        return
    result = callback(*args)
    if inspect.isawaitable(result):
        await result


class RealtimeClient:
    """
    Socket.IO client with REST fallback.

    Args:
        base_url: Relay base URL
        token: Bearer token of the local user
        user_id: Local user id
        reconnect_delay: Fixed delay before reconnecting after a drop
        typing_debounce: Quiet period before a typing change is sent
        ack_timeout: Seconds to wait for the server to acknowledge a send
        animation_window: Seconds a status change counts as fresh
        on_message: Called with each incoming message dict
        on_typing: Called with (sender_id, is_typing)
        on_status: Called with (message_id, status)
        sio: Socket.IO client to use instead of a new one
        http_transport: Optional httpx transport for the REST client
    """

    def __init__(
        self,
        base_url: str,
        token: str,
        user_id: int,
        reconnect_delay: float = 5.0,
        typing_debounce: float = 0.3,
        ack_timeout: float = 10.0,
        animation_window: float = 2.0,
        on_message: Optional[Callback] = None,
        on_typing: Optional[Callback] = None,
        on_status: Optional[Callback] = None,
        sio: Optional[socketio.AsyncClient] = None,
        http_transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.user_id = user_id
        self.reconnect_delay = reconnect_delay
        self.typing_debounce = typing_debounce
        self.ack_timeout = ack_timeout
        self.on_message = on_message
        self.on_typing = on_typing
        self.on_status = on_status

        # Fixed delay, no backoff or jitter, unlimited attempts
        self.sio = sio or socketio.AsyncClient(
            reconnection=True,
            reconnection_attempts=0,
            reconnection_delay=reconnect_delay,
            reconnection_delay_max=reconnect_delay,
            randomization_factor=0,
            logger=False,
            engineio_logger=False,
        )
        self.http = httpx.AsyncClient(
            base_url=self.base_url,
            headers={"Authorization": f"Bearer {token}"},
            transport=http_transport,
            timeout=10.0,
        )
        self.status_tracker = MessageStatusTracker(animation_window=animation_window)
        self.status_board = StatusBoard(self.status_tracker)
        self._typing_tasks: Dict[int, asyncio.Task] = {}
        self._sweep_task: Optional[asyncio.Task] = None

        self.sio.on("connect", self._on_connect)
        self.sio.on("disconnect", self._on_disconnect)
        self.sio.on("new_message", self._on_new_message)
        self.sio.on("message_status", self._on_message_status)
        self.sio.on("message_sent", self._on_message_sent)
        self.sio.on("typing_indicator", self._on_typing_indicator)
        self.sio.on("error", self._on_error)

    @property
    def connected(self) -> bool:
        return bool(self.sio.connected)

    async def connect(self) -> None:
        """Open the socket connection and start sweeping stale status entries."""
        await self.sio.connect(
            self.base_url,
            auth={"token": self.token},
            transports=["websocket"],
        )
        if self._sweep_task is None or self._sweep_task.done():
            self._sweep_task = asyncio.create_task(self.status_tracker.run(), name="status-sweep")

    async def close(self) -> None:
        """Cancel background tasks, disconnect and close the REST client."""
        for task in self._typing_tasks.values():
            task.cancel()
        self._typing_tasks.clear()
        if self._sweep_task is not None:
            self._sweep_task.cancel()
            try:
                await self._sweep_task
            except asyncio.CancelledError:
                pass
            self._sweep_task = None
        if self.connected:
            await self.sio.disconnect()
        await self.http.aclose()

    # ------------------------------------------------------------------
    # Sending
    # ------------------------------------------------------------------

    async def send_message(self, receiver_id: int, content: str) -> Dict[str, Any]:
        """
        Send a message, over the socket when connected, else over REST.

        Returns:
            ``{"messageId", "status"}`` as acknowledged by the server

        Raises:
            MessageSendError: If the message could not be sent
        """
        payload = {"receiverId": receiver_id, "content": content}

        if self.connected:
            try:
                ack = await self.sio.call("user_message", payload, timeout=self.ack_timeout)
            except sio_exceptions.TimeoutError as e:
                raise MessageSendError("No acknowledgement from server") from e
            except (sio_exceptions.BadNamespaceError, sio_exceptions.DisconnectedError) as e:
                logger.warning(f"[client] Socket unavailable ({e}), falling back to REST")
            else:
                if not ack:
                    raise MessageSendError("Message rejected by server")
                self.status_board.update(ack["messageId"], ack["status"])
                return ack

        try:
            response = await self.http.post("/api/user-messages", json=payload)
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error(f"[client] Failed to send message to {receiver_id}: {e}")
            raise MessageSendError(f"Failed to send message: {e}") from e

        message = response.json()
        self.status_board.update(message["id"], message["status"])
        return {"messageId": message["id"], "status": message["status"]}

    async def send_encrypted(self, conversation: ConversationEncryption, text: str) -> Dict[str, Any]:
        """
        Send through a conversation's encryption state.

        The returned acknowledgement carries ``encrypted`` so plaintext
        sends can be told apart.
        """
        outgoing = conversation.prepare_outgoing(text)
        ack = await self.send_message(conversation.partner_id, outgoing.content)
        return {**ack, "encrypted": outgoing.encrypted}

    def set_typing(self, receiver_id: int, is_typing: bool) -> None:
        """
        Report typing state, debounced per receiver.

        Only the last state within the debounce window is sent.
        """
        pending = self._typing_tasks.pop(receiver_id, None)
        if pending is not None:
            pending.cancel()
        self._typing_tasks[receiver_id] = asyncio.create_task(self._send_typing_later(receiver_id, is_typing))

    async def _send_typing_later(self, receiver_id: int, is_typing: bool) -> None:
        await asyncio.sleep(self.typing_debounce)
        if self._typing_tasks.get(receiver_id) is asyncio.current_task():
            del self._typing_tasks[receiver_id]
        await self.send_typing(receiver_id, is_typing)

    async def send_typing(self, receiver_id: int, is_typing: bool) -> None:
        """Send a typing indicator now."""
        if self.connected:
            try:
                await self.sio.emit("typing_indicator", {"receiverId": receiver_id, "isTyping": is_typing})
            except sio_exceptions.SocketIOError as e:
                logger.warning(f"[client] Typing indicator to {receiver_id} failed: {e}")
            return

        try:
            response = await self.http.post("/api/typing-indicator", json={
                "senderId": self.user_id,
                "receiverId": receiver_id,
                "isTyping": is_typing,
            })
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.warning(f"[client] Typing indicator to {receiver_id} failed: {e}")

    async def mark_read(self, message_id: int) -> None:
        """Tell the server a received message was displayed."""
        if not self.connected:
            return
        try:
            await self.sio.emit("message_status_update", {"messageId": message_id, "status": MessageStatusType.READ.value})
        except sio_exceptions.SocketIOError as e:
            logger.warning(f"[client] Read receipt for message {message_id} failed: {e}")

    # ------------------------------------------------------------------
    # Incoming events
    # ------------------------------------------------------------------

    def _apply_status(self, message_id: int, status: Any) -> bool:
        try:
            status = MessageStatusType(status)
        except ValueError:
            logger.warning(f"[client] Ignoring unknown status {status!r} for message {message_id}")
            return False
        return self.status_board.update(message_id, status)

    async def _on_connect(self) -> None:
        logger.info(f"[client] Connected as user {self.user_id}")

    async def _on_disconnect(self, reason: Optional[str] = None) -> None:
        logger.info(f"[client] Disconnected ({reason}); reconnecting in {self.reconnect_delay}s")

    async def _on_new_message(self, data: Dict[str, Any]) -> None:
        message = (data or {}).get("message") or {}
        message_id = message.get("id")
        if message_id is None:
            return

        self._apply_status(message_id, message.get("status", MessageStatusType.SENT.value))
        await _invoke(self.on_message, message)

        if message.get("receiverId") == self.user_id and message.get("senderId") != self.user_id:
            await self.mark_read(message_id)

    async def _on_message_status(self, data: Dict[str, Any]) -> None:
        message_id, status = data.get("messageId"), data.get("status")
        if message_id is None or status is None:
            return
        if self._apply_status(message_id, status):
            await _invoke(self.on_status, message_id, self.status_board.get(message_id))

    async def _on_message_sent(self, data: Dict[str, Any]) -> None:
        if data and data.get("messageId") is not None:
            self._apply_status(data["messageId"], data.get("status"))

    async def _on_typing_indicator(self, data: Dict[str, Any]) -> None:
        await _invoke(self.on_typing, data.get("senderId"), bool(data.get("isTyping")))

    async def _on_error(self, data: Any) -> None:
        logger.warning(f"[client] Server reported error: {data}")
