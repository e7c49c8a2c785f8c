"""
Tests for the application factory and health endpoints.
"""
import pytest


@pytest.mark.asyncio
class TestHealthEndpoints:
    """Health and root routes."""

    async def test_health(self, client):
        response = await client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "healthy", "environment": "test"}

    async def test_readiness_without_redis(self, client):
        response = await client.get("/health/ready")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ready"
        assert data["checks"] == {"database": True, "redis": "not_configured"}

    async def test_websocket_health_reports_services(self, client):
        response = await client.get("/health/websocket")

        assert response.status_code == 200
        data = response.json()
        assert data["transport"]["connected_users"] == 0
        assert data["notifications"]["flush_running"] is True
        assert data["pool"]["max_size"] == 4
        assert data["config"]["ping_timeout"] < data["config"]["ping_interval"]

    async def test_root(self, client):
        response = await client.get("/")

        assert response.status_code == 200
        assert response.json()["message"] == "Chat Relay API"
        assert response.json()["docs"] == "Documentation disabled in production"

    async def test_docs_disabled_without_debug(self, client):
        response = await client.get("/docs")

        assert response.status_code == 404


@pytest.mark.asyncio
class TestAppState:
    """Services wired by create_app."""

    async def test_services_share_the_socket_server(self, app):
        state = app.state
        assert state.transport.sio is state.sio
        assert state.notifications.sio is state.sio
        assert state.transport.notifications is state.notifications

    async def test_lifespan_stops_notification_flush(self, settings):
        from chat_relay.main import create_app

        application = create_app(settings)
        async with application.router.lifespan_context(application):
            assert application.state.notifications.running

        assert not application.state.notifications.running
        assert application.state.database.pool.closed
