"""
Client library for the chat relay: end-to-end encryption, the
real-time transport and status tracking.
"""
from chat_relay.client.encryption import (
    DECRYPTION_PLACEHOLDER,
    ENCRYPTED_PREFIX,
    DecryptionError,
    EncryptionError,
    KeyPair,
    decrypt_for_display,
    decrypt_message,
    decrypt_symmetric_key,
    encrypt_message,
    encrypt_symmetric_key,
    generate_key_pair,
    generate_symmetric_key,
    import_private_key,
    import_public_key,
    is_message_encrypted,
)
from chat_relay.client.conversation import (
    ConversationEncryption,
    EncryptionAPI,
    EncryptionState,
    KeyStore,
    OutgoingContent,
    RecipientKeyMissingError,
)
from chat_relay.client.status_tracker import MessageStatusTracker, StatusBoard
from chat_relay.client.transport import MessageSendError, RealtimeClient

__all__ = [
    "DECRYPTION_PLACEHOLDER",
    "ENCRYPTED_PREFIX",
    "DecryptionError",
    "EncryptionError",
    "KeyPair",
    "decrypt_for_display",
    "decrypt_message",
    "decrypt_symmetric_key",
    "encrypt_message",
    "encrypt_symmetric_key",
    "generate_key_pair",
    "generate_symmetric_key",
    "import_private_key",
    "import_public_key",
    "is_message_encrypted",
    "ConversationEncryption",
    "EncryptionAPI",
    "EncryptionState",
    "KeyStore",
    "OutgoingContent",
    "RecipientKeyMissingError",
    "MessageStatusTracker",
    "StatusBoard",
    "MessageSendError",
    "RealtimeClient",
]
