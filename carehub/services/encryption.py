"""
Application-layer encryption for PHI/PII fields.

Patient DOB/SSN and audit-log context are encrypted with Fernet before
they reach the database. The key comes from PHI_ENCRYPTION_KEY; a
process-local key is generated in development when none is configured,
so every caller must share the module-level ``phi_cipher`` instance.
"""

import json
import logging
from typing import Any

from cryptography.fernet import Fernet, InvalidToken

from carehub.config import settings

logger = logging.getLogger(__name__)


class EncryptionService:
    """Wraps Fernet symmetric encryption for PHI fields."""

    def __init__(self, key: str | None = None):
        raw_key = key or settings.PHI_ENCRYPTION_KEY
        if raw_key:
            self._fernet = Fernet(raw_key.encode() if isinstance(raw_key, str) else raw_key)
        else:
            logger.warning("PHI_ENCRYPTION_KEY not set; using an ephemeral development key")
            self._fernet = Fernet(Fernet.generate_key())

    def encrypt(self, plaintext: str) -> str:
        """Encrypt a string and return base64-encoded ciphertext."""
        if not plaintext:
            return ""
        return self._fernet.encrypt(plaintext.encode()).decode()

    def decrypt(self, ciphertext: str) -> str:
        """Decrypt base64-encoded ciphertext back to plaintext."""
        if not ciphertext:
            return ""
        return self._fernet.decrypt(ciphertext.encode()).decode()

    def encrypt_json(self, data: dict[str, Any] | None) -> str:
        if not data:
            return ""
        return self.encrypt(json.dumps(data, default=str, sort_keys=True))

    def decrypt_json(self, ciphertext: str) -> dict[str, Any]:
        if not ciphertext:
            return {}
        return json.loads(self.decrypt(ciphertext))

    def try_decrypt(self, ciphertext: str | None) -> str | None:
        """Decrypt, returning None for values written under a rotated key."""
        if not ciphertext:
            return None
        try:
            return self.decrypt(ciphertext)
        except InvalidToken:
            logger.error("Unable to decrypt PHI field; key mismatch or corrupted value")
            return None


phi_cipher = EncryptionService()
