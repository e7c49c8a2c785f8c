"""
Pytest configuration and fixtures for tests.
Provides settings, a file-backed test database, auth tokens, a recording
Socket.IO server and an app client.
"""
from collections import defaultdict
from dataclasses import dataclass
from typing import Any, AsyncGenerator, Callable, Dict, FrozenSet, List, Optional

import pytest
from httpx import ASGITransport, AsyncClient
from socketio import exceptions as sio_exceptions

from chat_relay.config import Settings
from chat_relay.core.database import Database
from chat_relay.core.rate_limit import limiter
from chat_relay.core.security import create_access_token
from chat_relay.main import create_app
from chat_relay.services.message_transport import MessageTransportService
from chat_relay.services.notification_service import NotificationSocketService

TEST_JWT_SECRET = "test-secret-key-for-chat-relay-0123456789"


@dataclass
class Emission:
    """One recorded ``emit`` call."""
    event: str
    data: Any
    target: Optional[str]
    namespace: str
    recipients: FrozenSet[str]


class FakeSocketServer:
    """
    Stand-in for ``socketio.AsyncServer`` that records emissions.

    Rooms are tracked per namespace so an emission to a room resolves to
    the sids that were in it at emit time.
    """

    def __init__(self):
        self.handlers: Dict[tuple, Callable] = {}
        self.emitted: List[Emission] = []
        self.connected: Dict[str, set] = defaultdict(set)
        self.rooms: Dict[tuple, set] = defaultdict(set)
        self.server_disconnects: List[tuple] = []

    # --- AsyncServer surface used by the services -------------------------

    def on(self, event, handler=None, namespace=None):
        self.handlers[(namespace or "/", event)] = handler

    async def emit(self, event, data=None, to=None, room=None, namespace=None, **kwargs):
        namespace = namespace or "/"
        target = room if room is not None else to
        if target is None:
            recipients = set(self.connected[namespace])
        elif target in self.connected[namespace]:
            recipients = {target}
        else:
            recipients = set(self.rooms.get((namespace, target), ()))
        self.emitted.append(Emission(event, data, target, namespace, frozenset(recipients)))

    async def enter_room(self, sid, room, namespace=None):
        self.rooms[(namespace or "/", room)].add(sid)

    async def leave_room(self, sid, room, namespace=None):
        self.rooms[(namespace or "/", room)].discard(sid)

    async def disconnect(self, sid, namespace=None):
        namespace = namespace or "/"
        self.server_disconnects.append((namespace, sid))
        if self._drop(namespace, sid):
            await self.handlers[(namespace, "disconnect")](sid, "server disconnect")

    # --- Test helpers ------------------------------------------------------

    def _drop(self, namespace, sid) -> bool:
        if sid not in self.connected[namespace]:
            return False
        self.connected[namespace].discard(sid)
        for (ns, _), members in self.rooms.items():
            if ns == namespace:
                members.discard(sid)
        return True

    async def connect_client(self, namespace, sid, token=None, address="127.0.0.1", auth=None, environ=None):
        """Run the namespace's connect handler like a client handshake would."""
        environ = dict(environ or {})
        environ.setdefault("REMOTE_ADDR", address)
        if auth is None and token is not None:
            auth = {"token": token}
        self.connected[namespace].add(sid)
        try:
            await self.handlers[(namespace, "connect")](sid, environ, auth)
        except sio_exceptions.ConnectionRefusedError:
            self._drop(namespace, sid)
            raise

    async def disconnect_client(self, namespace, sid, reason="client disconnect"):
        self._drop(namespace, sid)
        await self.handlers[(namespace, "disconnect")](sid, reason)

    async def trigger(self, namespace, event, sid, data=None):
        return await self.handlers[(namespace, event)](sid, data)

    def received(self, sid, event=None, namespace=None) -> List[Any]:
        """Payloads delivered to ``sid``, optionally filtered by event."""
        return [
            e.data for e in self.emitted
            if sid in e.recipients
            and (event is None or e.event == event)
            and (namespace is None or e.namespace == namespace)
        ]

    def events(self, event, namespace=None) -> List[Emission]:
        return [e for e in self.emitted if e.event == event and (namespace is None or e.namespace == namespace)]


@pytest.fixture
def settings(tmp_path) -> Settings:
    """Settings pointing at a throwaway SQLite file."""
    return Settings(
        _env_file=None,
        environment="test",
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        redis_url="",
        jwt_secret=TEST_JWT_SECRET,
        allowed_origins="http://localhost:3000",
        notification_batch_interval=0.05,
        connection_rate_limit_interval=0.5,
        notification_broadcast_chunk_size=10,
        pool_default_size=4,
        pool_min_idle=1,
        pool_max_size=8,
        pool_acquire_timeout=2.0,
    )


@pytest.fixture
async def database(settings) -> AsyncGenerator[Database, None]:
    """Connected database with all tables created."""
    db = Database(settings)
    await db.connect()
    yield db
    await db.dispose()


@pytest.fixture
def token_for(settings) -> Callable[[int], str]:
    """Create a valid access token for a user id."""
    def _token(user_id: int) -> str:
        return create_access_token({"id": user_id}, settings=settings)
    return _token


@pytest.fixture
def auth_headers(token_for) -> Callable[[int], dict]:
    """Authorization headers for a user id."""
    def _headers(user_id: int) -> dict:
        return {"Authorization": f"Bearer {token_for(user_id)}"}
    return _headers


@pytest.fixture
def fake_sio() -> FakeSocketServer:
    return FakeSocketServer()


@pytest.fixture
def notification_service(fake_sio, settings, database) -> NotificationSocketService:
    """Notification service on the fake server (flush task not started)."""
    return NotificationSocketService(fake_sio, settings, database.session)


@pytest.fixture
def transport_service(fake_sio, settings, database, notification_service) -> MessageTransportService:
    return MessageTransportService(fake_sio, settings, database.session, notification_service)


@pytest.fixture(autouse=True)
def reset_rate_limits():
    """Start every test with empty slowapi counters."""
    limiter.reset()
    yield


@pytest.fixture
async def app(settings):
    """Application built from the test settings, with its lifespan running."""
    application = create_app(settings)
    async with application.router.lifespan_context(application):
        yield application


@pytest.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client for the app."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
