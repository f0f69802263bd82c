"""SQLAlchemy-backed token store."""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import delete
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine

from ..database import create_engine, create_session_factory, init_db
from ..encryption import TokenCipher
from ..errors import StorageError
from ..models import TokenRow
from ..schemas import TokenRecord
from .base import EncryptedFieldsMixin, TokenStore, document_id

logger = logging.getLogger(__name__)


def _dialect_insert(dialect_name: str):
    """Return the dialect's INSERT construct if it supports ON CONFLICT."""
    if dialect_name == "postgresql":
        from sqlalchemy.dialects.postgresql import insert
        return insert
    if dialect_name == "sqlite":
        from sqlalchemy.dialects.sqlite import insert
        return insert
    return None


class SQLTokenStore(EncryptedFieldsMixin, TokenStore):
    """Token rows keyed by ``"{device_id}:{provider}"``.

    ``save`` is a single INSERT ... ON CONFLICT DO UPDATE on PostgreSQL and
    SQLite. Other dialects fall back to ``Session.merge``.
    """

    def __init__(self, engine: AsyncEngine, cipher: Optional[TokenCipher] = None, owns_engine: bool = False):
        self._engine = engine
        self._sessions = create_session_factory(engine)
        self._owns_engine = owns_engine
        self.cipher = cipher

    @classmethod
    def from_url(
        cls, database_url: str, cipher: Optional[TokenCipher] = None, echo: bool = False
    ) -> "SQLTokenStore":
        return cls(create_engine(database_url, echo=echo), cipher=cipher, owns_engine=True)

    async def init(self) -> None:
        """Create the tokens table if it does not exist."""
        try:
            await init_db(self._engine)
        except (SQLAlchemyError, OSError) as e:
            logger.error(f"Database not available: {e}")
            raise StorageError("Token storage unavailable") from e
        logger.info("Connected to database token store")

    async def load(self, device_id: str, provider: str) -> Optional[TokenRecord]:
        key = document_id(device_id, provider)
        try:
            async with self._sessions() as session:
                row = await session.get(TokenRow, key)
        except (SQLAlchemyError, OSError) as e:
            logger.error(f"Failed to load tokens for {key}: {e}")
            raise StorageError("Token storage unavailable") from e

        if row is None:
            return None

        return self._unseal(
            TokenRecord(
                access_token=row.access_token,
                expires_at=row.expires_at,
                refresh_token=row.refresh_token,
            )
        )

    async def save(self, device_id: str, provider: str, record: TokenRecord) -> None:
        key = document_id(device_id, provider)
        sealed = self._seal(record)
        now = datetime.utcnow()
        values = {
            "id": key,
            "device_id": device_id,
            "provider": provider,
            "access_token": sealed.access_token,
            "refresh_token": sealed.refresh_token,
            "expires_at": sealed.expires_at,
            "created_at": now,
            "updated_at": now,
        }

        try:
            async with self._sessions() as session:
                insert = _dialect_insert(self._engine.dialect.name)
                if insert is not None:
                    stmt = insert(TokenRow).values(**values)
                    stmt = stmt.on_conflict_do_update(
                        index_elements=[TokenRow.id],
                        set_={
                            "access_token": stmt.excluded.access_token,
                            "refresh_token": stmt.excluded.refresh_token,
                            "expires_at": stmt.excluded.expires_at,
                            "updated_at": now,
                        },
                    )
                    await session.execute(stmt)
                else:
                    await session.merge(TokenRow(**values))
                await session.commit()
        except (SQLAlchemyError, OSError) as e:
            logger.error(f"Failed to save tokens for {key}: {e}")
            raise StorageError("Token storage unavailable") from e

    async def delete(self, device_id: str, provider: str) -> None:
        key = document_id(device_id, provider)
        try:
            async with self._sessions() as session:
                await session.execute(delete(TokenRow).where(TokenRow.id == key))
                await session.commit()
        except (SQLAlchemyError, OSError) as e:
            logger.error(f"Failed to delete tokens for {key}: {e}")
            raise StorageError("Token storage unavailable") from e

    async def close(self) -> None:
        if self._owns_engine:
            await self._engine.dispose()
