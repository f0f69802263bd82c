"""Redis-backed document store for tokens."""

import json
import logging
from typing import Optional

import redis.asyncio as redis
from pydantic import ValidationError

from ..encryption import TokenCipher
from ..errors import StorageError
from ..schemas import TokenRecord
from .base import EncryptedFieldsMixin, TokenStore, document_id

logger = logging.getLogger(__name__)


class RedisTokenStore(EncryptedFieldsMixin, TokenStore):
    """One JSON document per (device_id, provider).

    Documents live at ``{collection}:{device_id}:{provider}``. A single SET
    replaces the whole document, so concurrent saves for one key never
    produce duplicates; the last write wins.
    """

    def __init__(
        self,
        client: redis.Redis,
        collection: str = "oauth2_tokens",
        cipher: Optional[TokenCipher] = None,
    ):
        self._redis = client
        self.collection = collection
        self.cipher = cipher

    @classmethod
    def from_url(
        cls, redis_url: str, collection: str = "oauth2_tokens", cipher: Optional[TokenCipher] = None
    ) -> "RedisTokenStore":
        return cls(redis.from_url(redis_url, decode_responses=True), collection, cipher)

    async def init(self) -> None:
        try:
            await self._redis.ping()
        except redis.RedisError as e:
            logger.error(f"Redis not available: {e}")
            raise StorageError("Token storage unavailable") from e
        logger.info("Connected to Redis token store")

    def _key(self, device_id: str, provider: str) -> str:
        return f"{self.collection}:{document_id(device_id, provider)}"

    async def load(self, device_id: str, provider: str) -> Optional[TokenRecord]:
        key = self._key(device_id, provider)
        try:
            raw = await self._redis.get(key)
        except redis.RedisError as e:
            logger.error(f"Failed to load tokens for {key}: {e}")
            raise StorageError("Token storage unavailable") from e

        if raw is None:
            return None

        try:
            document = json.loads(raw)
            record = TokenRecord(
                access_token=document["access_token"],
                expires_at=document.get("expires_at"),
                refresh_token=document.get("refresh_token"),
            )
        except (ValueError, KeyError, TypeError, ValidationError) as e:
            logger.error(f"Corrupt token document at {key}: {e}")
            raise StorageError("Stored token document is corrupt") from e

        return self._unseal(record)

    async def save(self, device_id: str, provider: str, record: TokenRecord) -> None:
        key = self._key(device_id, provider)
        sealed = self._seal(record)
        document = {
            "device_id": device_id,
            "provider": provider,
            "access_token": sealed.access_token,
            "expires_at": sealed.expires_at,
            "refresh_token": sealed.refresh_token,
        }
        try:
            await self._redis.set(key, json.dumps(document))
        except redis.RedisError as e:
            logger.error(f"Failed to save tokens for {key}: {e}")
            raise StorageError("Token storage unavailable") from e

    async def delete(self, device_id: str, provider: str) -> None:
        key = self._key(device_id, provider)
        try:
            await self._redis.delete(key)
        except redis.RedisError as e:
            logger.error(f"Failed to delete tokens for {key}: {e}")
            raise StorageError("Token storage unavailable") from e

    async def close(self) -> None:
        await self._redis.aclose()
