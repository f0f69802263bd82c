"""In-memory token store."""

import logging
from typing import Optional

from ..schemas import TokenRecord
from .base import TokenStore

logger = logging.getLogger(__name__)


class MemoryTokenStore(TokenStore):
    """
    Ephemeral token storage keyed by device id, then provider.

    Lives as long as the process. Not durable and not shared between workers;
    meant for tests and local use.
    """

    def __init__(self):
        self._tokens: dict[str, dict[str, TokenRecord]] = {}
        logger.debug("MemoryTokenStore initialized (non-durable)")

    async def load(self, device_id: str, provider: str) -> Optional[TokenRecord]:
        record = self._tokens.get(device_id, {}).get(provider)
        return record.model_copy() if record else None

    async def save(self, device_id: str, provider: str, record: TokenRecord) -> None:
        self._tokens.setdefault(device_id, {})[provider] = record.model_copy()

    async def delete(self, device_id: str, provider: str) -> None:
        device_tokens = self._tokens.get(device_id)
        if device_tokens and provider in device_tokens:
            del device_tokens[provider]
            if not device_tokens:
                del self._tokens[device_id]

    def __len__(self) -> int:
        return sum(len(tokens) for tokens in self._tokens.values())
