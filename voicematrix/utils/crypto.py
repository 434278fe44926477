"""Fernet encryption for provider credentials stored at rest."""

import logging
from typing import Optional

from cryptography.fernet import Fernet, InvalidToken

from voicematrix.config import SecuritySettings

logger = logging.getLogger(__name__)


class CredentialEncryptor:
    """Encrypt/decrypt single secret strings (Twilio auth tokens)."""

    def __init__(self, encryption_key: str) -> None:
        self._fernet = Fernet(encryption_key.encode())

    @classmethod
    def from_settings(cls, settings: SecuritySettings) -> "CredentialEncryptor":
        if settings.encryption_key:
            return cls(settings.encryption_key.get_secret_value())
        # Tokens encrypted with an ephemeral key are unreadable after a restart
        logger.warning("ENCRYPTION_KEY not set, using an ephemeral key")
        return cls(Fernet.generate_key().decode())

    def encrypt(self, secret: str) -> str:
        return self._fernet.encrypt(secret.encode()).decode()

    def decrypt(self, encrypted: str) -> Optional[str]:
        """Return the plaintext, or None if the token was not produced with this key."""
        try:
            return self._fernet.decrypt(encrypted.encode()).decode()
        except InvalidToken:
            logger.error("Stored credential could not be decrypted")
            return None
