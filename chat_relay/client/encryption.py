"""
End-to-end encryption primitives for chat clients.

Each user holds an RSA-2048 key pair; each conversation has one AES-256
key, wrapped with RSA-OAEP for both participants. Messages are sealed
with AES-GCM under a fresh 12-byte nonce and travel as::

    e2ee:v1:<base64(nonce || ciphertext || tag)>

Text without the prefix is legacy plaintext.
"""
import base64
import binascii
import logging
import os
from dataclasses import dataclass
from typing import Optional, Union

from cryptography.exceptions import InvalidTag, UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

logger = logging.getLogger(__name__)

ENCRYPTED_PREFIX = "e2ee:v1:"
NONCE_SIZE = 12
TAG_SIZE = 16
SYMMETRIC_KEY_SIZE = 32
RSA_KEY_SIZE = 2048
RSA_PUBLIC_EXPONENT = 65537

DECRYPTION_PLACEHOLDER = "[Encrypted message - Unable to decrypt]"


class EncryptionError(Exception):
    """Key generation, import or encryption failed."""


class DecryptionError(EncryptionError):
    """A payload could not be decrypted or unwrapped."""


def _oaep() -> padding.OAEP:
    return padding.OAEP(
        mgf=padding.MGF1(algorithm=hashes.SHA256()),
        algorithm=hashes.SHA256(),
        label=None,
    )


def _b64decode(data: str) -> bytes:
    return base64.b64decode(data, validate=True)


@dataclass
class KeyPair:
    """A user's RSA-OAEP key pair."""
    private_key: rsa.RSAPrivateKey
    public_key: rsa.RSAPublicKey

    def export_public_key(self) -> str:
        """Base64 SPKI (DER) encoding of the public key."""
        return export_public_key(self.public_key)

    def export_private_key(self) -> str:
        """Base64 PKCS#8 (DER) encoding of the private key."""
        der = self.private_key.private_bytes(
            encoding=serialization.Encoding.DER,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption(),
        )
        return base64.b64encode(der).decode("ascii")


def generate_key_pair() -> KeyPair:
    """
    Generate an RSA-2048 key pair.

    Raises:
        EncryptionError: If RSA is unavailable in the crypto backend
    """
    try:
        private_key = rsa.generate_private_key(public_exponent=RSA_PUBLIC_EXPONENT, key_size=RSA_KEY_SIZE)
    except UnsupportedAlgorithm as e:
        raise EncryptionError(f"RSA key generation unavailable: {e}") from e
    return KeyPair(private_key=private_key, public_key=private_key.public_key())


def export_public_key(public_key: rsa.RSAPublicKey) -> str:
    der = public_key.public_bytes(
        encoding=serialization.Encoding.DER,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    )
    return base64.b64encode(der).decode("ascii")


def import_public_key(data: str) -> rsa.RSAPublicKey:
    """
    Load a base64 SPKI public key.

    Raises:
        EncryptionError: If the data is not an RSA public key
    """
    try:
        key = serialization.load_der_public_key(_b64decode(data))
    except (binascii.Error, ValueError, UnsupportedAlgorithm) as e:
        raise EncryptionError(f"Invalid public key: {e}") from e
    if not isinstance(key, rsa.RSAPublicKey):
        raise EncryptionError("Public key is not an RSA key")
    return key


def import_private_key(data: str) -> rsa.RSAPrivateKey:
    """
    Load a base64 PKCS#8 private key.

    Raises:
        EncryptionError: If the data is not an RSA private key
    """
    try:
        key = serialization.load_der_private_key(_b64decode(data), password=None)
    except (binascii.Error, ValueError, TypeError, UnsupportedAlgorithm) as e:
        raise EncryptionError(f"Invalid private key: {e}") from e
    if not isinstance(key, rsa.RSAPrivateKey):
        raise EncryptionError("Private key is not an RSA key")
    return key


def generate_symmetric_key() -> bytes:
    """Fresh random AES-256 key."""
    return AESGCM.generate_key(bit_length=SYMMETRIC_KEY_SIZE * 8)


def export_symmetric_key(key: bytes) -> str:
    return base64.b64encode(key).decode("ascii")


def import_symmetric_key(data: str) -> bytes:
    try:
        key = _b64decode(data)
    except binascii.Error as e:
        raise EncryptionError(f"Invalid symmetric key encoding: {e}") from e
    if len(key) != SYMMETRIC_KEY_SIZE:
        raise EncryptionError(f"Symmetric key must be {SYMMETRIC_KEY_SIZE} bytes, got {len(key)}")
    return key


def encrypt_symmetric_key(key: bytes, recipient_public_key: Union[rsa.RSAPublicKey, str]) -> str:
    """
    Wrap a conversation key for one recipient.

    Args:
        key: Raw AES key
        recipient_public_key: Recipient's key, loaded or base64 SPKI

    Returns:
        Base64 RSA-OAEP ciphertext
    """
    if isinstance(recipient_public_key, str):
        recipient_public_key = import_public_key(recipient_public_key)
    try:
        wrapped = recipient_public_key.encrypt(key, _oaep())
    except ValueError as e:
        raise EncryptionError(f"Failed to wrap symmetric key: {e}") from e
    return base64.b64encode(wrapped).decode("ascii")


def decrypt_symmetric_key(wrapped: str, private_key: rsa.RSAPrivateKey) -> bytes:
    """
    Unwrap a conversation key with the owner's private key.

    Raises:
        DecryptionError: If the key was wrapped for someone else or is corrupt
    """
    try:
        return private_key.decrypt(_b64decode(wrapped), _oaep())
    except (binascii.Error, ValueError) as e:
        raise DecryptionError("Failed to unwrap symmetric key") from e


def encrypt_message(plaintext: str, key: bytes) -> str:
    """
    Seal a message with the conversation key.

    A new random nonce is drawn for every call, so encrypting the same
    text twice gives different payloads.
    """
    nonce = os.urandom(NONCE_SIZE)
    try:
        sealed = AESGCM(key).encrypt(nonce, plaintext.encode("utf-8"), None)
    except ValueError as e:
        raise EncryptionError(f"Failed to encrypt message: {e}") from e
    return ENCRYPTED_PREFIX + base64.b64encode(nonce + sealed).decode("ascii")


def decrypt_message(payload: str, key: bytes) -> str:
    """
    Open a prefixed payload.

    Raises:
        DecryptionError: On a wrong key, tampering or a malformed payload
    """
    if not payload.startswith(ENCRYPTED_PREFIX):
        raise DecryptionError("Payload is not encrypted")

    try:
        raw = _b64decode(payload[len(ENCRYPTED_PREFIX):])
    except binascii.Error as e:
        raise DecryptionError("Invalid encrypted message format") from e

    if len(raw) < NONCE_SIZE + TAG_SIZE:
        raise DecryptionError("Invalid encrypted message format")

    nonce, sealed = raw[:NONCE_SIZE], raw[NONCE_SIZE:]
    try:
        plaintext = AESGCM(key).decrypt(nonce, sealed, None)
        return plaintext.decode("utf-8")
    except (InvalidTag, ValueError, UnicodeDecodeError) as e:
        raise DecryptionError("Failed to decrypt message") from e


def is_message_encrypted(text: str) -> bool:
    """
    True only for text that is plausibly an encrypted payload.

    Requires the prefix, strict base64 after it, and room for a nonce,
    a tag and at least one byte of ciphertext.
    """
    if not isinstance(text, str) or not text.startswith(ENCRYPTED_PREFIX):
        return False
    try:
        raw = _b64decode(text[len(ENCRYPTED_PREFIX):])
    except binascii.Error:
        return False
    return len(raw) >= NONCE_SIZE + TAG_SIZE + 1


def decrypt_for_display(payload: str, key: Optional[bytes]) -> str:
    """
    Text to show for a stored message.

    Plaintext is returned unchanged; ciphertext that cannot be opened is
    shown as a fixed placeholder instead of raising.
    """
    if not payload.startswith(ENCRYPTED_PREFIX):
        return payload
    if key is None:
        return DECRYPTION_PLACEHOLDER
    try:
        return decrypt_message(payload, key)
    except DecryptionError as e:
        logger.debug(f"[e2ee] Unable to decrypt message for display: {e}")
        return DECRYPTION_PLACEHOLDER
