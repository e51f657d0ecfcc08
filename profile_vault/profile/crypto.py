"""AES-256-GCM encryption for profile text at rest."""
import base64
import binascii
import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from ..errors import DecryptionFailed, InvalidKey
from .schema import EncryptedPayload

ALGORITHM = "aes-256-gcm"
KEY_LENGTH = 32  # 256 bits
IV_LENGTH = 16   # 128 bits
TAG_LENGTH = 16  # 128 bits
ASSOCIATED_DATA = b"user-profile"
KEY_VERSION = 1


def _b64encode(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def _b64decode(value: str) -> bytes:
    return base64.b64decode(value.encode("ascii"), validate=True)


class ProfileEncryptionService:
    """Encrypts and decrypts a single profile blob with one fixed key.

    The key is resolved once at construction. Rotation builds new instances
    instead of mutating this one.
    """

    algorithm = ALGORITHM

    def __init__(self, key: str | bytes):
        self._aesgcm = AESGCM(self._resolve_key(key))

    @staticmethod
    def _resolve_key(key: str | bytes) -> bytes:
        """Turn configured key material into exactly KEY_LENGTH bytes.

        Prefers a base64-encoded 32-byte key; a raw string (or bytes) of at
        least 32 characters falls back to its first 32 bytes.
        """
        if not key:
            raise InvalidKey("Encryption key is required")

        if isinstance(key, bytes):
            if len(key) < KEY_LENGTH:
                raise InvalidKey(f"Encryption key must be at least {KEY_LENGTH} bytes")
            return key[:KEY_LENGTH]

        try:
            decoded = _b64decode(key)
        except (binascii.Error, ValueError):
            decoded = b""
        if len(decoded) == KEY_LENGTH:
            return decoded

        if len(key) >= KEY_LENGTH:
            return key.encode("utf-8")[:KEY_LENGTH]

        raise InvalidKey(f"Encryption key must be at least {KEY_LENGTH} bytes")

    def encrypt(self, plaintext: str) -> EncryptedPayload:
        """Encrypt plaintext under a fresh random nonce."""
        iv = os.urandom(IV_LENGTH)
        sealed = self._aesgcm.encrypt(iv, plaintext.encode("utf-8"), ASSOCIATED_DATA)
        ciphertext, tag = sealed[:-TAG_LENGTH], sealed[-TAG_LENGTH:]
        return EncryptedPayload(
            encrypted_data=_b64encode(ciphertext),
            iv=_b64encode(iv),
            tag=_b64encode(tag),
            key_version=KEY_VERSION,
        )

    def decrypt(self, encrypted_data: str, iv: str, tag: str) -> str:
        """Decrypt and authenticate. Any failure raises DecryptionFailed."""
        try:
            nonce = _b64decode(iv)
            tag_bytes = _b64decode(tag)
            ciphertext = _b64decode(encrypted_data)
            if len(nonce) != IV_LENGTH or len(tag_bytes) != TAG_LENGTH:
                raise ValueError("malformed nonce or tag")
            plaintext = self._aesgcm.decrypt(nonce, ciphertext + tag_bytes, ASSOCIATED_DATA)
            return plaintext.decode("utf-8")
        except (InvalidTag, ValueError, UnicodeError):
            # ValueError covers binascii.Error and bad nonce lengths
            raise DecryptionFailed() from None

    def decrypt_payload(self, payload: EncryptedPayload) -> str:
        return self.decrypt(payload.encrypted_data, payload.iv, payload.tag)

    @classmethod
    def rotate_key(
        cls,
        old_key: str | bytes,
        new_key: str | bytes,
        encrypted_data: str,
        iv: str,
        tag: str,
    ) -> EncryptedPayload:
        """Re-encrypt a blob from old_key to new_key without exposing plaintext."""
        plaintext = cls(old_key).decrypt(encrypted_data, iv, tag)
        return cls(new_key).encrypt(plaintext)

    @staticmethod
    def generate_key() -> str:
        """Generate a new base64-encoded 256-bit key."""
        return _b64encode(os.urandom(KEY_LENGTH))

    @staticmethod
    def validate_key(key: str | bytes | None) -> bool:
        """Check whether key material would be accepted by the constructor."""
        try:
            ProfileEncryptionService._resolve_key(key or "")
        except InvalidKey:
            return False
        return True
