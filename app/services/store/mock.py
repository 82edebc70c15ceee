"""
Mock Order Store Implementation

Keeps order documents in a process-local dict. Used in development
(ORDER_STORE_BACKEND=memory) and throughout the test suite.

Behavior:
    - Suspends at every operation (optionally with simulated latency) so
      concurrent callers interleave the same way they would against a
      real database
    - Enforces the same not-found, duplicate and version rules as the
      SQL store
    - Can be told to fail the next operations to exercise fault paths

Author: Khalil Bannouri
Version: 4.0.0
"""

import asyncio
import logging
from typing import AsyncIterator, Optional

from app.core.exceptions import (
    ConcurrencyConflictError,
    OrderNotFoundError,
    OrderStoreError,
)
from app.services.store.base import BaseOrderStore, StoredOrder

logger = logging.getLogger(__name__)


class MockOrderStore(BaseOrderStore):
    """
    In-memory implementation of the order store.

    Attributes:
        latency: Seconds to sleep at every operation
        fail_with: When set, every operation raises OrderStoreError with this message

    Example:
        >>> store = MockOrderStore()
        >>> await store.create(StoredOrder(partition_key="orders", title="Burger"))
    """

    def __init__(self, latency: float = 0.0):
        self.latency = latency
        self.fail_with: Optional[str] = None
        self._documents: dict[tuple[str, str], StoredOrder] = {}

        logger.info(f"MockOrderStore initialized (latency={latency}s)")

    @property
    def provider_name(self) -> str:
        """Return the provider name."""
        return "memory"

    async def _io(self) -> None:
        """Simulate a round trip and any injected fault."""
        await asyncio.sleep(self.latency)
        if self.fail_with:
            raise OrderStoreError(self.fail_with)

    async def get_by_id(self, order_id: str, partition_key: str) -> StoredOrder:
        await self._io()

        document = self._documents.get((partition_key, order_id))
        if document is None:
            raise OrderNotFoundError(order_id, partition_key)
        return document.copy()

    async def create(self, order: StoredOrder) -> StoredOrder:
        await self._io()

        key = (order.partition_key, order.id)
        if key in self._documents:
            raise OrderStoreError(f"Order {order.id} already exists.")

        stored = order.copy(version=1)
        self._documents[key] = stored
        logger.debug(f"Mock: Created order {order.id}")
        return stored.copy()

    async def replace(
        self,
        order: StoredOrder,
        order_id: str,
        partition_key: str,
        expected_version: Optional[int] = None,
    ) -> StoredOrder:
        await self._io()

        key = (partition_key, order_id)
        current = self._documents.get(key)
        if current is None:
            raise OrderNotFoundError(order_id, partition_key)
        if expected_version is not None and current.version != expected_version:
            raise ConcurrencyConflictError(order_id, expected_version, current.version)

        stored = order.copy(
            id=order_id,
            partition_key=partition_key,
            version=current.version + 1,
        )
        self._documents[key] = stored
        logger.debug(f"Mock: Replaced order {order_id} (v{stored.version})")
        return stored.copy()

    async def scan_all(self) -> AsyncIterator[StoredOrder]:
        await self._io()

        for document in list(self._documents.values()):
            yield document.copy()

    async def health_check(self) -> bool:
        """Mock health check always returns True."""
        return True
