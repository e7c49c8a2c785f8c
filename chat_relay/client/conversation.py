"""
Per-conversation encryption state for a chat client.

A conversation moves through ``NO_KEYS -> KEYS_GENERATED ->
ENCRYPTION_OFFERED -> ENCRYPTION_ENABLED`` and never moves back. Keys are
exchanged through the server's ``/api/encryption`` endpoints; the
private key and the unwrapped conversation key stay on the client.
"""
import enum
import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Union

import httpx

from chat_relay.client.encryption import (
    EncryptionError,
    KeyPair,
    decrypt_for_display,
    decrypt_symmetric_key,
    encrypt_message,
    encrypt_symmetric_key,
    generate_key_pair,
    generate_symmetric_key,
    import_private_key,
    import_public_key,
)

logger = logging.getLogger(__name__)


class RecipientKeyMissingError(EncryptionError):
    """The conversation partner has not published a public key."""

    def __init__(self, partner_id: int):
        super().__init__(f"Recipient {partner_id} has not set up encryption")
        self.partner_id = partner_id


class EncryptionState(str, enum.Enum):
    """Conversation encryption states, declared in order."""
    NO_KEYS = "no_keys"
    KEYS_GENERATED = "keys_generated"
    ENCRYPTION_OFFERED = "encryption_offered"
    ENCRYPTION_ENABLED = "encryption_enabled"

    @property
    def rank(self) -> int:
        return list(EncryptionState).index(self)


@dataclass
class OutgoingContent:
    """Content ready to send and whether it was encrypted."""
    content: str
    encrypted: bool


class KeyStore:
    """
    Key pairs persisted as one JSON file per user.

    Files are created readable by the owner only.
    """

    def __init__(self, directory: Union[str, Path]):
        self.directory = Path(directory)

    def _path(self, user_id: int) -> Path:
        return self.directory / f"user_{user_id}.json"

    def load(self, user_id: int) -> Optional[KeyPair]:
        path = self._path(user_id)
        if not path.exists():
            return None
        data = json.loads(path.read_text(encoding="utf-8"))
        private_key = import_private_key(data["privateKey"])
        return KeyPair(private_key=private_key, public_key=private_key.public_key())

    def save(self, user_id: int, key_pair: KeyPair) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        path = self._path(user_id)
        payload = {
            "publicKey": key_pair.export_public_key(),
            "privateKey": key_pair.export_private_key(),
        }
        fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(payload, f)


class EncryptionAPI:
    """
    Client for the server's encryption key endpoints.

    Args:
        base_url: Server base URL
        token: Bearer token of the local user
        transport: Optional httpx transport (tests use ``httpx.MockTransport``)
    """

    def __init__(self, base_url: str, token: str, transport: Optional[httpx.AsyncBaseTransport] = None):
        self._client = httpx.AsyncClient(
            base_url=f"{base_url.rstrip('/')}/api/encryption",
            headers={"Authorization": f"Bearer {token}"},
            transport=transport,
            timeout=10.0,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def publish_public_key(self, public_key: str) -> None:
        response = await self._client.post("/keys", json={"publicKey": public_key})
        response.raise_for_status()

    async def get_public_key(self, user_id: int) -> Optional[str]:
        response = await self._client.get(f"/keys/{user_id}")
        if response.status_code == 404:
            return None
        response.raise_for_status()
        return response.json()["publicKey"]

    async def check_encryption(self, partner_id: int) -> Dict[str, Any]:
        response = await self._client.get("/check-encryption", params={"partnerId": partner_id})
        response.raise_for_status()
        return response.json()

    async def get_conversation_key(self, partner_id: int) -> Optional[str]:
        response = await self._client.get("/key", params={"partnerId": partner_id})
        if response.status_code == 404:
            return None
        response.raise_for_status()
        return response.json()["encryptedKey"]

    async def initiate_encryption(
        self,
        partner_id: int,
        key_for_self: str,
        key_for_partner: str,
        public_key: Optional[str] = None,
    ) -> bool:
        """
        Store a new conversation key.

        Returns:
            False if the conversation already had a key
        """
        response = await self._client.post("/initiate-encryption", json={
            "partnerId": partner_id,
            "publicKey": public_key,
            "encryptedKeyForSelf": key_for_self,
            "encryptedKeyForPartner": key_for_partner,
        })
        if response.status_code == 409:
            return False
        response.raise_for_status()
        return True


class ConversationEncryption:
    """
    Encryption state machine for the conversation with one partner.

    Args:
        user_id: Local user
        partner_id: Conversation partner
        api: Encryption endpoint client
        key_store: Where the local key pair is kept
    """

    def __init__(self, user_id: int, partner_id: int, api: EncryptionAPI, key_store: KeyStore):
        self.user_id = user_id
        self.partner_id = partner_id
        self.api = api
        self.key_store = key_store
        self._state = EncryptionState.NO_KEYS
        self._key_pair: Optional[KeyPair] = None
        self._conversation_key: Optional[bytes] = None

    @property
    def state(self) -> EncryptionState:
        return self._state

    @property
    def is_enabled(self) -> bool:
        return self._state is EncryptionState.ENCRYPTION_ENABLED

    def _advance(self, state: EncryptionState) -> None:
        if state.rank <= self._state.rank:
            return
        logger.debug(f"[e2ee] {self.user_id}<->{self.partner_id}: {self._state.value} -> {state.value}")
        self._state = state

    async def ensure_keys(self) -> KeyPair:
        """
        Load the local key pair, or generate and publish a new one.

        Returns:
            The local key pair
        """
        if self._key_pair is not None:
            return self._key_pair

        key_pair = self.key_store.load(self.user_id)
        if key_pair is None:
            key_pair = generate_key_pair()
            self.key_store.save(self.user_id, key_pair)
            await self.api.publish_public_key(key_pair.export_public_key())
            logger.info(f"[e2ee] Generated and published key pair for user {self.user_id}")
        elif await self.api.get_public_key(self.user_id) is None:
            await self.api.publish_public_key(key_pair.export_public_key())

        self._key_pair = key_pair
        self._advance(EncryptionState.KEYS_GENERATED)
        return key_pair

    async def load(self) -> bool:
        """
        Restore an existing conversation key from the server.

        Returns:
            True if the conversation is now encrypted
        """
        if self.is_enabled:
            return True

        key_pair = await self.ensure_keys()
        wrapped = await self.api.get_conversation_key(self.partner_id)
        if wrapped is None:
            return False

        self._conversation_key = decrypt_symmetric_key(wrapped, key_pair.private_key)
        self._advance(EncryptionState.ENCRYPTION_ENABLED)
        return True

    async def enable(self) -> None:
        """
        Turn on encryption for the conversation.

        Raises:
            RecipientKeyMissingError: If the partner has no public key;
                the state is left unchanged
        """
        if self.is_enabled:
            return

        key_pair = await self.ensure_keys()
        partner_key = await self.api.get_public_key(self.partner_id)
        if partner_key is None:
            raise RecipientKeyMissingError(self.partner_id)

        conversation_key = generate_symmetric_key()
        self._advance(EncryptionState.ENCRYPTION_OFFERED)

        created = await self.api.initiate_encryption(
            self.partner_id,
            key_for_self=encrypt_symmetric_key(conversation_key, key_pair.public_key),
            key_for_partner=encrypt_symmetric_key(conversation_key, import_public_key(partner_key)),
            public_key=key_pair.export_public_key(),
        )
        if not created:
            # The partner enabled it first; use their key
            if not await self.load():
                raise EncryptionError("Conversation key exists but could not be fetched")
            return

        self._conversation_key = conversation_key
        self._advance(EncryptionState.ENCRYPTION_ENABLED)
        logger.info(f"[e2ee] Encryption enabled for {self.user_id}<->{self.partner_id}")

    def prepare_outgoing(self, text: str) -> OutgoingContent:
        """Encrypt ``text`` when encryption is on, else mark it as plaintext."""
        if not self.is_enabled or self._conversation_key is None:
            return OutgoingContent(content=text, encrypted=False)
        return OutgoingContent(content=encrypt_message(text, self._conversation_key), encrypted=True)

    def read_incoming(self, content: str) -> str:
        """Display text for received content."""
        return decrypt_for_display(content, self._conversation_key)
