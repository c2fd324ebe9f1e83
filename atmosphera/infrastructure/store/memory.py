"""In-process key/value store."""

import logging
from typing import Optional

from atmosphera.domain.repositories import IKeyValueStore

logger = logging.getLogger(__name__)


class MemoryKeyValueStore(IKeyValueStore):
    """Dict-backed store. State lives as long as the process does."""

    def __init__(self) -> None:
        self._data: dict[str, str] = {}

    async def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    async def set(self, key: str, value: str) -> None:
        self._data[key] = value
        logger.debug("Stored %s (%d bytes)", key, len(value))

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)
