"""AES-256-GCM sealing of integration credentials at rest.

Payload layout is ``base64(iv || tag || ciphertext)`` with a 12-byte IV and a
16-byte tag, so values written by earlier deployments still open.
"""

from __future__ import annotations

import base64
import binascii
import logging
import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from templaito.errors import ConfigurationError, IntegrationDecryptionFailure

logger = logging.getLogger(__name__)

IV_LENGTH = 12
TAG_LENGTH = 16
KEY_LENGTH = 32


def _key_bytes(secret: str | None) -> bytes:
    if not secret:
        raise ConfigurationError("ENCRYPTION_KEY environment variable is not set")
    key = secret.encode("utf-8")
    if len(key) != KEY_LENGTH:
        raise ConfigurationError(f"ENCRYPTION_KEY must be {KEY_LENGTH} characters for AES-256-GCM")
    return key


class SecretBox:
    """Encrypts and decrypts short secrets with a process-wide key."""

    def __init__(self, secret: str | None):
        self._secret = secret

    @classmethod
    def from_config(cls, config=None) -> SecretBox:
        if config is None:
            from templaito.config import load_config
            config = load_config()
        return cls(config.security.encryption_key)

    def encrypt(self, plain_text: str) -> str:
        if not plain_text:
            raise ValueError("Cannot encrypt empty value")

        aead = AESGCM(_key_bytes(self._secret))
        iv = os.urandom(IV_LENGTH)
        sealed = aead.encrypt(iv, plain_text.encode("utf-8"), None)
        # AESGCM appends the tag; store it in front of the ciphertext
        ciphertext, tag = sealed[:-TAG_LENGTH], sealed[-TAG_LENGTH:]
        return base64.b64encode(iv + tag + ciphertext).decode("ascii")

    def decrypt(self, payload: str | None) -> str | None:
        """Open a sealed payload. Empty payloads yield None; anything else that
        does not authenticate raises IntegrationDecryptionFailure."""
        if not payload:
            return None

        try:
            key = _key_bytes(self._secret)
        except ConfigurationError as e:
            raise IntegrationDecryptionFailure(str(e)) from e

        try:
            buffer = base64.b64decode(payload, validate=True)
        except (binascii.Error, ValueError) as e:
            raise IntegrationDecryptionFailure("Invalid encrypted payload") from e

        if len(buffer) < IV_LENGTH + TAG_LENGTH:
            raise IntegrationDecryptionFailure("Invalid encrypted payload")

        iv = buffer[:IV_LENGTH]
        tag = buffer[IV_LENGTH:IV_LENGTH + TAG_LENGTH]
        ciphertext = buffer[IV_LENGTH + TAG_LENGTH:]

        try:
            plain = AESGCM(key).decrypt(iv, ciphertext + tag, None)
            return plain.decode("utf-8")
        except (InvalidTag, UnicodeDecodeError) as e:
            logger.error("Credential payload failed authentication")
            raise IntegrationDecryptionFailure("Encrypted credentials failed authentication") from e
