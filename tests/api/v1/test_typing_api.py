"""
Integration tests for the typing indicator REST fallback.
"""
import pytest


@pytest.mark.asyncio
class TestTypingIndicatorAPI:
    """POST /api/typing-indicator."""

    async def test_receiver_offline_notifies_nobody(self, client, auth_headers):
        """A receiver without sockets is a success with zero clients."""
        response = await client.post(
            "/api/typing-indicator",
            headers=auth_headers(1),
            json={"senderId": 1, "receiverId": 2, "isTyping": True},
        )

        assert response.status_code == 200
        assert response.json() == {"success": True, "notifiedClients": 0}

    async def test_relays_to_connected_receiver(self, app, client, auth_headers, mocker):
        """Every socket of the receiver counts as notified."""
        transport = app.state.transport
        transport.registry.register("sid-a", 2)
        transport.registry.register("sid-b", 2)
        emit = mocker.patch.object(app.state.sio, "emit", new_callable=mocker.AsyncMock)

        response = await client.post(
            "/api/typing-indicator",
            headers=auth_headers(1),
            json={"senderId": 1, "receiverId": 2, "isTyping": True},
        )

        assert response.status_code == 200
        assert response.json()["notifiedClients"] == 2
        emit.assert_awaited_once_with(
            "typing_indicator",
            {"senderId": 1, "isTyping": True},
            room="user:2",
            namespace="/",
        )
        assert transport.typing.is_typing(2, 1)

    async def test_sender_must_match_token(self, client, auth_headers):
        """Typing on behalf of another user is forbidden."""
        response = await client.post(
            "/api/typing-indicator",
            headers=auth_headers(1),
            json={"senderId": 5, "receiverId": 2, "isTyping": True},
        )

        assert response.status_code == 403

    async def test_requires_authentication(self, client):
        response = await client.post(
            "/api/typing-indicator",
            json={"senderId": 1, "receiverId": 2, "isTyping": True},
        )

        assert response.status_code == 401

    async def test_invalid_token_is_rejected(self, client):
        response = await client.post(
            "/api/typing-indicator",
            headers={"Authorization": "Bearer not-a-token"},
            json={"senderId": 1, "receiverId": 2, "isTyping": True},
        )

        assert response.status_code == 401

    async def test_rate_limited_per_sender(self, client, auth_headers):
        """The 101st request within a minute is refused."""
        headers = auth_headers(1)
        body = {"senderId": 1, "receiverId": 2, "isTyping": True}

        for _ in range(100):
            response = await client.post("/api/typing-indicator", headers=headers, json=body)
            assert response.status_code == 200

        response = await client.post("/api/typing-indicator", headers=headers, json=body)
        assert response.status_code == 429

        # Another sender has its own budget
        other = await client.post(
            "/api/typing-indicator",
            headers=auth_headers(3),
            json={"senderId": 3, "receiverId": 2, "isTyping": True},
        )
        assert other.status_code == 200
