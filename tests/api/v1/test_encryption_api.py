"""
Integration tests for the encryption key endpoints.
The server stores keys as opaque strings, so plain placeholders are used.
"""
import pytest


def initiate_body(partner_id, public_key=None):
    return {
        "partnerId": partner_id,
        "publicKey": public_key,
        "encryptedKeyForSelf": "wrapped-for-initiator",
        "encryptedKeyForPartner": "wrapped-for-partner",
    }


@pytest.mark.asyncio
class TestPublicKeys:
    """POST /api/encryption/keys and GET /api/encryption/keys/{user_id}."""

    async def test_publish_and_fetch_public_key(self, client, auth_headers):
        response = await client.post(
            "/api/encryption/keys", headers=auth_headers(1), json={"publicKey": "pk-user-1"}
        )
        assert response.status_code == 200

        response = await client.get("/api/encryption/keys/1", headers=auth_headers(2))

        assert response.status_code == 200
        assert response.json() == {"userId": 1, "publicKey": "pk-user-1"}

    async def test_publish_replaces_existing_key(self, client, auth_headers):
        await client.post("/api/encryption/keys", headers=auth_headers(1), json={"publicKey": "old"})
        await client.post("/api/encryption/keys", headers=auth_headers(1), json={"publicKey": "new"})

        response = await client.get("/api/encryption/keys/1", headers=auth_headers(1))

        assert response.json()["publicKey"] == "new"

    async def test_missing_public_key_is_404(self, client, auth_headers):
        response = await client.get("/api/encryption/keys/99", headers=auth_headers(1))

        assert response.status_code == 404

    async def test_publish_requires_authentication(self, client):
        response = await client.post("/api/encryption/keys", json={"publicKey": "pk"})

        assert response.status_code == 401

    async def test_publish_is_rate_limited(self, client, auth_headers):
        for i in range(10):
            response = await client.post(
                "/api/encryption/keys", headers=auth_headers(1), json={"publicKey": f"pk-{i}"}
            )
            assert response.status_code == 200

        response = await client.post("/api/encryption/keys", headers=auth_headers(1), json={"publicKey": "pk"})
        assert response.status_code == 429


@pytest.mark.asyncio
class TestConversationEncryption:
    """Conversation key exchange."""

    async def test_status_before_any_keys(self, client, auth_headers):
        response = await client.get("/api/encryption/check-encryption?partnerId=2", headers=auth_headers(1))

        assert response.status_code == 200
        assert response.json() == {"isEncrypted": False, "canEnable": False}

    async def test_can_enable_once_partner_published(self, client, auth_headers):
        await client.post("/api/encryption/keys", headers=auth_headers(2), json={"publicKey": "pk-2"})

        response = await client.get("/api/encryption/check-encryption?partnerId=2", headers=auth_headers(1))

        assert response.json() == {"isEncrypted": False, "canEnable": True}

    async def test_initiate_stores_a_copy_for_each_participant(self, client, auth_headers):
        response = await client.post(
            "/api/encryption/initiate-encryption", headers=auth_headers(1), json=initiate_body(2, "pk-1")
        )
        assert response.status_code == 200
        assert response.json() == {"success": True, "isEncrypted": True}

        mine = await client.get("/api/encryption/key?partnerId=2", headers=auth_headers(1))
        theirs = await client.get("/api/encryption/key?partnerId=1", headers=auth_headers(2))
        assert mine.json() == {"encryptedKey": "wrapped-for-initiator"}
        assert theirs.json() == {"encryptedKey": "wrapped-for-partner"}

        for user_id, partner_id in ((1, 2), (2, 1)):
            status_response = await client.get(
                f"/api/encryption/check-encryption?partnerId={partner_id}", headers=auth_headers(user_id)
            )
            assert status_response.json()["isEncrypted"] is True

    async def test_initiate_publishes_missing_public_key(self, client, auth_headers):
        await client.post(
            "/api/encryption/initiate-encryption", headers=auth_headers(1), json=initiate_body(2, "pk-1")
        )

        response = await client.get("/api/encryption/keys/1", headers=auth_headers(2))

        assert response.json()["publicKey"] == "pk-1"

    async def test_initiate_keeps_published_public_key(self, client, auth_headers):
        await client.post("/api/encryption/keys", headers=auth_headers(1), json={"publicKey": "published"})
        await client.post(
            "/api/encryption/initiate-encryption", headers=auth_headers(1), json=initiate_body(2, "other")
        )

        response = await client.get("/api/encryption/keys/1", headers=auth_headers(1))

        assert response.json()["publicKey"] == "published"

    async def test_second_initiation_conflicts(self, client, auth_headers):
        """Conversation keys are never replaced, from either side."""
        first = await client.post(
            "/api/encryption/initiate-encryption", headers=auth_headers(1), json=initiate_body(2)
        )
        again = await client.post(
            "/api/encryption/initiate-encryption", headers=auth_headers(2), json=initiate_body(1)
        )

        assert first.status_code == 200
        assert again.status_code == 409
        mine = await client.get("/api/encryption/key?partnerId=2", headers=auth_headers(1))
        assert mine.json()["encryptedKey"] == "wrapped-for-initiator"

    async def test_cannot_encrypt_with_self(self, client, auth_headers):
        response = await client.post(
            "/api/encryption/initiate-encryption", headers=auth_headers(1), json=initiate_body(1)
        )

        assert response.status_code == 400

    async def test_missing_conversation_key_is_404(self, client, auth_headers):
        response = await client.get("/api/encryption/key?partnerId=2", headers=auth_headers(1))

        assert response.status_code == 404
