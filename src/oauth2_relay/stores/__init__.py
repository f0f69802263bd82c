"""Token stores."""

import logging

from ..config import Settings
from ..encryption import TokenCipher
from .base import TokenStore, document_id
from .memory import MemoryTokenStore
from .redis_store import RedisTokenStore
from .sql_store import SQLTokenStore

logger = logging.getLogger(__name__)


def create_store(settings: Settings) -> TokenStore:
    """Build the token store selected by ``settings.storage_backend``."""
    cipher = TokenCipher(settings.encryption_key) if settings.encryption_key else None

    if settings.storage_backend == "redis":
        logger.info("Using Redis token store")
        return RedisTokenStore.from_url(settings.redis_url, settings.token_collection, cipher)

    if settings.storage_backend == "database":
        logger.info("Using database token store")
        return SQLTokenStore.from_url(settings.database_url, cipher=cipher, echo=settings.debug)

    logger.warning("Using in-memory token store; tokens are lost on restart")
    return MemoryTokenStore()


__all__ = [
    "MemoryTokenStore",
    "RedisTokenStore",
    "SQLTokenStore",
    "TokenStore",
    "create_store",
    "document_id",
]
