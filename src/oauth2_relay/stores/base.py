"""Token store interface."""

from abc import ABC, abstractmethod
from typing import Optional

from ..encryption import TokenCipher
from ..schemas import TokenRecord


def document_id(device_id: str, provider: str) -> str:
    """Deterministic primary key for a (device_id, provider) pair."""
    return f"{device_id}:{provider}"


class TokenStore(ABC):
    """Persists at most one TokenRecord per (device_id, provider)."""

    @abstractmethod
    async def load(self, device_id: str, provider: str) -> Optional[TokenRecord]:
        """Return the stored record, or None."""

    @abstractmethod
    async def save(self, device_id: str, provider: str, record: TokenRecord) -> None:
        """Insert or overwrite the record for this key (last write wins)."""

    @abstractmethod
    async def delete(self, device_id: str, provider: str) -> None:
        """Remove the record. Deleting a missing record is not an error."""

    async def init(self) -> None:
        """Prepare the backend (create tables, open pools)."""

    async def close(self) -> None:
        """Release backend resources."""


class EncryptedFieldsMixin:
    """Optional at-rest encryption of the token fields of a record."""

    cipher: Optional[TokenCipher] = None

    def _seal(self, record: TokenRecord) -> TokenRecord:
        if self.cipher is None:
            return record
        return TokenRecord(
            access_token=self.cipher.encrypt(record.access_token),
            expires_at=record.expires_at,
            refresh_token=self.cipher.encrypt(record.refresh_token),
        )

    def _unseal(self, record: TokenRecord) -> TokenRecord:
        if self.cipher is None:
            return record
        return TokenRecord(
            access_token=self.cipher.decrypt(record.access_token),
            expires_at=record.expires_at,
            refresh_token=self.cipher.decrypt(record.refresh_token),
        )
