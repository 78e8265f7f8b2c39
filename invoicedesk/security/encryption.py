"""AES-256-GCM encryption for secrets stored in the settings table.

The provider credential is encrypted before it is written as a Setting row
and decrypted when a settings snapshot is loaded. Uses 12-byte random
nonces (96-bit, NIST recommended for GCM).
Stored format: "enc:" + base64(nonce || ciphertext || tag).

Usage:
    from invoicedesk.security.encryption import secret_encryptor

    stored = secret_encryptor.encrypt("sk-...")
    plaintext = secret_encryptor.decrypt(stored)
"""

from __future__ import annotations

import base64
import binascii
import logging
import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from invoicedesk.config import settings
from invoicedesk.errors import CredentialError
from invoicedesk.models.enums import SettingKey

logger = logging.getLogger(__name__)

# Setting keys whose values MUST be encrypted at rest
ENCRYPTED_SETTINGS: frozenset[str] = frozenset({SettingKey.OPENAI_API_KEY.value})

ENCRYPTED_PREFIX = "enc:"
_NONCE_SIZE = 12  # 96-bit nonce for AES-GCM


class SecretEncryptor:
    """AES-256-GCM encryptor for individual setting values.

    Stateless; each encrypt call generates a fresh nonce.
    """

    def __init__(self, key: bytes) -> None:
        if len(key) != 32:
            msg = f"AES-256 requires a 32-byte key, got {len(key)} bytes"
            raise ValueError(msg)
        self._aesgcm = AESGCM(key)

    def encrypt(self, plaintext: str) -> str:
        """Encrypt a value. Returns "enc:" + base64(nonce + ciphertext + tag)."""
        nonce = os.urandom(_NONCE_SIZE)
        ct = self._aesgcm.encrypt(nonce, plaintext.encode("utf-8"), None)
        return ENCRYPTED_PREFIX + base64.b64encode(nonce + ct).decode("ascii")

    def decrypt(self, token: str) -> str:
        """Decrypt a stored value.

        Values without the "enc:" prefix predate encryption and are returned
        unchanged. A token that cannot be decrypted (for example after the
        key changed) raises CredentialError.
        """
        if not self.is_encrypted(token):
            return token
        try:
            raw = base64.b64decode(token[len(ENCRYPTED_PREFIX):], validate=True)
        except (binascii.Error, ValueError) as exc:
            raise CredentialError(
                "Stored credential is not valid base64",
                user_message="Stored credential is unreadable; please enter it again",
            ) from exc
        if len(raw) < _NONCE_SIZE + 16:  # nonce + minimum GCM tag
            raise CredentialError(
                "Invalid encrypted token: too short",
                user_message="Stored credential is unreadable; please enter it again",
            )
        nonce = raw[:_NONCE_SIZE]
        ct = raw[_NONCE_SIZE:]
        try:
            return self._aesgcm.decrypt(nonce, ct, None).decode("utf-8")
        except InvalidTag as exc:
            raise CredentialError(
                "Stored credential failed authentication (encryption key changed?)",
                user_message="Stored credential is unreadable; please enter it again",
            ) from exc

    @staticmethod
    def is_encrypted(value: str | None) -> bool:
        return bool(value) and value.startswith(ENCRYPTED_PREFIX)

    def should_encrypt(self, key: str) -> bool:
        """Check if a setting key requires encryption."""
        return key in ENCRYPTED_SETTINGS


def mask_secret(value: str | None) -> str | None:
    """Return a display hint such as "sk-…a1b2" for a secret, or None."""
    if not value:
        return None
    if len(value) <= 8:
        return "…" + value[-2:]
    return f"{value[:3]}…{value[-4:]}"


def _load_key() -> bytes:
    """Load the encryption key from settings (base64-encoded)."""
    raw = settings.security.encryption_key
    if not raw:
        logger.warning("ENCRYPTION_KEY not set, using a random ephemeral key (saved credential won't survive restarts)")
        return os.urandom(32)
    try:
        key = base64.b64decode(raw)
    except (binascii.Error, ValueError):
        logger.warning("ENCRYPTION_KEY is not valid base64, using a random ephemeral key")
        return os.urandom(32)
    if len(key) != 32:
        logger.warning("ENCRYPTION_KEY decoded to %d bytes (expected 32), using a random ephemeral key", len(key))
        return os.urandom(32)
    return key


# Module-level singleton: import this wherever encryption is needed.
secret_encryptor = SecretEncryptor(_load_key())
