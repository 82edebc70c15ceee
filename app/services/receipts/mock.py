"""
Mock Receipt Archive Implementation

Keeps receipts in a dict. Used in tests and when
RECEIPT_ARCHIVE_BACKEND=memory.
"""

import asyncio
import logging
from typing import Optional

from app.core.exceptions import ReceiptArchiveError, ReceiptConflictError
from app.services.receipts.base import BaseReceiptArchive

logger = logging.getLogger(__name__)


class MockReceiptArchive(BaseReceiptArchive):
    """In-memory receipt archive."""

    def __init__(self, latency: float = 0.0):
        self.latency = latency
        self.fail_with: Optional[str] = None
        self.objects: dict[str, bytes] = {}

    @property
    def provider_name(self) -> str:
        return "memory"

    async def _io(self) -> None:
        await asyncio.sleep(self.latency)
        if self.fail_with:
            raise ReceiptArchiveError(self.fail_with)

    async def exists(self, key: str) -> bool:
        await self._io()
        return key in self.objects

    async def write(self, key: str, data: bytes) -> None:
        await self._io()

        if key in self.objects:
            raise ReceiptConflictError(key)
        self.objects[key] = data
        logger.debug(f"Mock: Stored receipt {key} ({len(data)} bytes)")

    async def health_check(self) -> bool:
        return True
