"""
Tests for the per-conversation encryption state machine, run against
the application's encryption endpoints.
"""
import os
import stat

import httpx
import pytest

from chat_relay.client.conversation import (
    ConversationEncryption,
    EncryptionAPI,
    EncryptionState,
    KeyStore,
    RecipientKeyMissingError,
)
from chat_relay.client.encryption import DECRYPTION_PLACEHOLDER, is_message_encrypted


@pytest.fixture
async def make_conversation(app, token_for, tmp_path):
    apis = []

    def _make(user_id: int, partner_id: int) -> ConversationEncryption:
        api = EncryptionAPI("http://test", token_for(user_id), transport=httpx.ASGITransport(app=app))
        apis.append(api)
        return ConversationEncryption(user_id, partner_id, api, KeyStore(tmp_path / f"keys-{user_id}"))

    yield _make

    for api in apis:
        await api.aclose()


@pytest.mark.asyncio
class TestConversationEncryption:
    """Key setup, enabling and message exchange between two users."""

    async def test_initial_state_sends_plaintext(self, make_conversation):
        alice = make_conversation(1, 2)

        outgoing = alice.prepare_outgoing("hello")

        assert alice.state is EncryptionState.NO_KEYS
        assert outgoing.content == "hello"
        assert outgoing.encrypted is False

    async def test_ensure_keys_publishes_public_key(self, make_conversation):
        alice = make_conversation(1, 2)

        key_pair = await alice.ensure_keys()

        assert alice.state is EncryptionState.KEYS_GENERATED
        assert await alice.api.get_public_key(1) == key_pair.export_public_key()

    async def test_enable_requires_partner_key(self, make_conversation):
        alice = make_conversation(1, 2)

        with pytest.raises(RecipientKeyMissingError) as exc_info:
            await alice.enable()

        assert exc_info.value.partner_id == 2
        assert alice.state is EncryptionState.KEYS_GENERATED
        assert not alice.is_enabled

    async def test_encrypted_exchange(self, make_conversation):
        alice = make_conversation(1, 2)
        bob = make_conversation(2, 1)
        await bob.ensure_keys()

        await alice.enable()
        assert alice.is_enabled
        assert await bob.load() is True

        outgoing = alice.prepare_outgoing("meet at noon")
        assert outgoing.encrypted is True
        assert is_message_encrypted(outgoing.content)
        assert bob.read_incoming(outgoing.content) == "meet at noon"

        reply = bob.prepare_outgoing("ok")
        assert alice.read_incoming(reply.content) == "ok"

    async def test_second_enable_uses_existing_key(self, make_conversation):
        """When both sides enable, the later one adopts the stored key."""
        alice = make_conversation(1, 2)
        bob = make_conversation(2, 1)
        await alice.ensure_keys()
        await bob.ensure_keys()

        await alice.enable()
        await bob.enable()

        assert bob.state is EncryptionState.ENCRYPTION_ENABLED
        assert bob.read_incoming(alice.prepare_outgoing("hi").content) == "hi"

    async def test_load_without_conversation_key(self, make_conversation):
        alice = make_conversation(1, 2)

        assert await alice.load() is False
        assert alice.state is EncryptionState.KEYS_GENERATED

    async def test_outsider_cannot_read(self, make_conversation):
        alice = make_conversation(1, 2)
        bob = make_conversation(2, 1)
        eve = make_conversation(3, 2)
        await bob.ensure_keys()
        await alice.enable()

        payload = alice.prepare_outgoing("private").content

        assert await eve.load() is False
        assert eve.read_incoming(payload) == DECRYPTION_PLACEHOLDER

    async def test_plaintext_history_still_readable(self, make_conversation):
        alice = make_conversation(1, 2)
        bob = make_conversation(2, 1)
        await bob.ensure_keys()
        await alice.enable()

        assert alice.read_incoming("sent before encryption") == "sent before encryption"


class TestKeyStore:

    def test_save_and_load(self, tmp_path):
        from chat_relay.client.encryption import generate_key_pair

        store = KeyStore(tmp_path / "keys")
        key_pair = generate_key_pair()

        store.save(5, key_pair)
        loaded = store.load(5)

        assert loaded.export_public_key() == key_pair.export_public_key()
        mode = stat.S_IMODE(os.stat(tmp_path / "keys" / "user_5.json").st_mode)
        assert mode == 0o600

    def test_missing_user(self, tmp_path):
        assert KeyStore(tmp_path).load(1) is None
