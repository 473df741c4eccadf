"""Encrypted option storage for secrets (OAuth tokens).

Encryption uses Fernet from `cryptography`. The key comes from
SITEKIT_ENCRYPTION_KEY: either a ready Fernet key (44 url-safe base64
characters) or any passphrase, which is stretched with PBKDF2-HMAC-SHA256.
Without a key, values are stored as plain text and a warning is logged once.
"""

from __future__ import annotations

import base64
import json
import logging
from functools import lru_cache
from typing import Any, Optional

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from sitekit.storage.options import Options

logger = logging.getLogger(__name__)

# Salt for passphrase-derived keys; changing it invalidates stored secrets.
_KDF_SALT = b"googlesitekit-data-encryption"
_KDF_ITERATIONS = 390000

_warned_plaintext = False


def _is_fernet_key(key: str) -> bool:
    try:
        Fernet(key.encode())
        return True
    except (ValueError, TypeError):
        return False


@lru_cache(maxsize=4)
def derive_key(passphrase: str) -> bytes:
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=32,
        salt=_KDF_SALT,
        iterations=_KDF_ITERATIONS,
    )
    return base64.urlsafe_b64encode(kdf.derive(passphrase.encode("utf-8")))


class DataEncryption:
    def __init__(self, key: Optional[str] = None):
        self._cipher: Optional[Fernet] = None
        if key:
            if len(key) == 44 and _is_fernet_key(key):
                self._cipher = Fernet(key.encode())
            else:
                self._cipher = Fernet(derive_key(key))
        else:
            global _warned_plaintext
            if not _warned_plaintext:
                logger.warning("SITEKIT_ENCRYPTION_KEY not set; secrets are stored unencrypted")
                _warned_plaintext = True

    @property
    def enabled(self) -> bool:
        return self._cipher is not None

    def encrypt(self, value: str) -> str:
        if self._cipher is None:
            return value
        return self._cipher.encrypt(value.encode("utf-8")).decode("ascii")

    def decrypt(self, value: str) -> Optional[str]:
        """Return the plain text, or None when the value cannot be decrypted."""
        if self._cipher is None:
            return value
        try:
            return self._cipher.decrypt(value.encode("ascii")).decode("utf-8")
        except (InvalidToken, UnicodeError, ValueError):
            logger.warning("Could not decrypt stored value; treating it as absent")
            return None


class EncryptedOptions:
    """Options wrapper serializing values to JSON and encrypting them."""

    def __init__(self, options: Options, encryption: DataEncryption):
        self.options = options
        self.encryption = encryption

    def has(self, name: str) -> bool:
        return self.options.has(name)

    def get(self, name: str, default: Any = None) -> Any:
        raw = self.options.get(name)
        if not isinstance(raw, str):
            return default
        decrypted = self.encryption.decrypt(raw)
        if decrypted is None:
            return default
        try:
            return json.loads(decrypted)
        except ValueError:
            return default

    def set(self, name: str, value: Any) -> bool:
        return self.options.set(name, self.encryption.encrypt(json.dumps(value)))

    def delete(self, name: str) -> bool:
        return self.options.delete(name)
