from __future__ import annotations

import base64
import hashlib
import json
import logging
import os
import re
from typing import Any

from cryptography.fernet import Fernet, InvalidToken

from darktrack.core.config import is_development
from darktrack.core.errors import CryptoError

logger = logging.getLogger(__name__)

DEV_FALLBACK_KEY = "darktrack-dev-key-change-in-production"

# Fernet tokens are urlsafe base64 of a 0x80 version byte followed by a
# zero-padded timestamp, so every token starts with "gAAAAA".
_TOKEN_PATTERN = re.compile(r"^gAAAAA[A-Za-z0-9_\-]+={0,2}$")
_MIN_TOKEN_LENGTH = 100


def derive_fernet_key(secret: str) -> bytes:
    digest = hashlib.sha256(secret.encode("utf-8")).digest()
    return base64.urlsafe_b64encode(digest)


def looks_like_ciphertext(value: str) -> bool:
    return (
        len(value) >= _MIN_TOKEN_LENGTH
        and len(value) % 4 == 0
        and bool(_TOKEN_PATTERN.match(value))
    )


class CryptoService:
    """
    Symmetric encryption for sensitive columns.

    decrypt() is tolerant of values written before encryption was
    introduced: anything that is not one of our tokens, fails to
    decrypt, or decrypts to an empty string is returned as-is.
    """

    def __init__(self, secret: str):
        if not secret or not secret.strip():
            raise CryptoError("Encryption key must not be blank")
        self._fernet = Fernet(derive_fernet_key(secret))

    @classmethod
    def from_env(cls) -> "CryptoService":
        secret = os.getenv("ENCRYPTION_KEY")

        if not secret:
            if not is_development():
                raise CryptoError(
                    "ENCRYPTION_KEY environment variable must be set outside development"
                )
            logger.warning(
                "Using default encryption key for development. Set ENCRYPTION_KEY in production!"
            )
            secret = DEV_FALLBACK_KEY

        return cls(secret)

    def encrypt(self, data: str) -> str:
        if not data:
            return ""
        try:
            return self._fernet.encrypt(data.encode("utf-8")).decode("ascii")
        except (TypeError, ValueError) as exc:
            logger.error("Encryption failed: %s", type(exc).__name__)
            raise CryptoError("Failed to encrypt data") from exc

    def decrypt(self, cipher_text: str) -> str:
        if not cipher_text:
            return cipher_text

        if not looks_like_ciphertext(cipher_text):
            return cipher_text

        try:
            decrypted = self._fernet.decrypt(cipher_text.encode("ascii")).decode("utf-8")
        except (InvalidToken, ValueError):
            logger.debug("Decrypt failed, treating value as legacy plaintext")
            return cipher_text

        if not decrypted:
            return cipher_text

        return decrypted

    def encrypt_object(self, obj: Any) -> str:
        return self.encrypt(json.dumps(obj))

    def decrypt_object(self, cipher_text: str) -> Any:
        return json.loads(self.decrypt(cipher_text))
