"""Token encryption utilities for durable stores."""

import base64
from typing import Optional

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from .errors import StorageError

_SALT = b"oauth2-relay-token-salt"
_ITERATIONS = 100000


class TokenCipher:
    """Fernet encryption for tokens at rest."""

    def __init__(self, key: str):
        # Derive a proper key from the configured secret
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=32,
            salt=_SALT,
            iterations=_ITERATIONS,
        )
        self._fernet = Fernet(base64.urlsafe_b64encode(kdf.derive(key.encode())))

    def encrypt(self, token: Optional[str]) -> Optional[str]:
        if token is None:
            return None
        return self._fernet.encrypt(token.encode()).decode()

    def decrypt(self, encrypted_token: Optional[str]) -> Optional[str]:
        if encrypted_token is None:
            return None
        try:
            return self._fernet.decrypt(encrypted_token.encode()).decode()
        except InvalidToken as e:
            raise StorageError("Stored token could not be decrypted") from e
