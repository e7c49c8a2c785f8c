"""
Socket.IO server construction and helpers shared by the namespaces.

Handles server configuration, socket authentication, client address
resolution and the per-namespace event dispatch tables.
"""
import enum
import logging
from http.cookies import SimpleCookie
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional, Type

import socketio
from pydantic import ValidationError

from chat_relay.config import Settings
from chat_relay.core.security import SecurityException, decode_token, user_id_from_payload

logger = logging.getLogger(__name__)

Handler = Callable[..., Awaitable[Any]]

# Events driven by the Socket.IO lifecycle rather than by client payloads
LIFECYCLE_EVENTS = {"connect", "disconnect"}


def create_socket_server(settings: Settings) -> socketio.AsyncServer:
    """
    Create the async Socket.IO server.

    Socket.IO's own loggers are disabled; the namespaces log the events
    that matter at the appropriate level.
    """
    cors_origins = settings.get_allowed_origins_list() or "*"
    logger.info(
        f"Creating Socket.IO server (ping_interval={settings.ws_ping_interval}s, "
        f"ping_timeout={settings.ws_ping_timeout}s, max_payload={settings.ws_max_payload_bytes}B)"
    )
    return socketio.AsyncServer(
        async_mode="asgi",
        cors_allowed_origins=cors_origins,
        logger=False,
        engineio_logger=False,
        ping_interval=settings.ws_ping_interval,
        ping_timeout=settings.ws_ping_timeout,
        max_http_buffer_size=settings.ws_max_payload_bytes,
    )


def get_asgi_app(sio: socketio.AsyncServer, fastapi_app) -> socketio.ASGIApp:
    """
    Wrap the FastAPI app with Socket.IO.

    Socket.IO handles /socket.io/* and forwards everything else to FastAPI.
    """
    return socketio.ASGIApp(sio, fastapi_app)


def extract_socket_token(environ: Mapping[str, Any], auth: Optional[Mapping[str, Any]]) -> Optional[str]:
    """
    Find the credential presented by a connecting socket.

    Checked in order: ``auth.token``, ``auth.sessionId``, the
    Authorization header, and the ``session`` cookie.
    """
    if auth:
        for key in ("token", "sessionId"):
            value = auth.get(key)
            if isinstance(value, str) and value:
                return value

    header = environ.get("HTTP_AUTHORIZATION", "")
    parts = header.split()
    if len(parts) == 2 and parts[0].lower() == "bearer":
        return parts[1]

    cookie_header = environ.get("HTTP_COOKIE")
    if cookie_header:
        cookie = SimpleCookie()
        cookie.load(cookie_header)
        if "session" in cookie and cookie["session"].value:
            return cookie["session"].value

    return None


async def authenticate_socket(
    environ: Mapping[str, Any],
    auth: Optional[Mapping[str, Any]],
    settings: Settings,
) -> Optional[int]:
    """
    Derive the user id for a connecting socket.

    Returns:
        The user id, or None when no valid credential is present
    """
    token = extract_socket_token(environ, auth)
    if not token:
        return None

    try:
        payload = decode_token(token, settings)
    except SecurityException as e:
        logger.warning(f"Socket token rejected: {e.detail}")
        return None

    return user_id_from_payload(payload)


def remote_address(environ: Mapping[str, Any]) -> str:
    """Client address, honouring X-Forwarded-For from a proxy."""
    forwarded = environ.get("HTTP_X_FORWARDED_FOR")
    if forwarded:
        return forwarded.split(",")[0].strip()

    addr = environ.get("REMOTE_ADDR")
    if addr:
        return addr

    scope = environ.get("asgi.scope") or {}
    client = scope.get("client")
    if client:
        return str(client[0])
    return "unknown"


def register_event_handlers(
    sio: socketio.AsyncServer,
    namespace: str,
    events: Type[enum.Enum],
    handlers: Dict[enum.Enum, Handler],
) -> None:
    """
    Register one handler per event kind on ``namespace``.

    Every member of ``events`` must have a handler. Handlers for client
    events are wrapped so that a bad payload is logged and answered with
    an ``error`` event instead of propagating.

    Raises:
        ValueError: If a handler is missing or unknown
    """
    missing = set(events) - set(handlers)
    unknown = set(handlers) - set(events)
    if missing or unknown:
        raise ValueError(
            f"Handlers for {namespace} must cover {events.__name__} exactly "
            f"(missing={sorted(e.value for e in missing)}, unknown={sorted(str(e) for e in unknown)})"
        )

    for event, handler in handlers.items():
        if event.value in LIFECYCLE_EVENTS:
            sio.on(event.value, handler=handler, namespace=namespace)
        else:
            sio.on(event.value, handler=_guard(sio, namespace, event.value, handler), namespace=namespace)


def _guard(sio: socketio.AsyncServer, namespace: str, event: str, handler: Handler) -> Handler:
    async def guarded(sid, *args):
        try:
            return await handler(sid, *args)
        except ValidationError as e:
            logger.warning(f"[{namespace}] Malformed '{event}' payload from {sid}: {e.errors()}")
            await sio.emit("error", {"event": event, "message": "Invalid payload"}, room=sid, namespace=namespace)
        except Exception as e:
            logger.error(f"[{namespace}] Error handling '{event}' from {sid}: {type(e).__name__}: {e}", exc_info=True)
            await sio.emit("error", {"event": event, "message": "Failed to process event"}, room=sid, namespace=namespace)
        return None

    guarded.__name__ = getattr(handler, "__name__", event)
    return guarded
