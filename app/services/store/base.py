"""
Order Store Abstract Base Class

Defines the storage contract the order reconciler and the broadcast
gateway depend on. Both MockOrderStore and SqlOrderStore implement it.

Contract:
    - get_by_id raises OrderNotFoundError when nothing is stored under
      (id, partition_key); every other failure is an OrderStoreError.
    - create inserts a brand new document and refuses duplicates.
    - replace overwrites the whole document. When ``expected_version`` is
      given the write only happens if the stored version still matches,
      otherwise ConcurrencyConflictError is raised.
    - scan_all yields every stored order once. The iterator is lazy and
      cannot be restarted; callers collect it before use.

Author: Khalil Bannouri
Version: 4.0.0
"""

import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace as dataclass_replace
from typing import AsyncIterator, Optional

from app.models import OrderStatus


def generate_order_id() -> str:
    """Generate a globally unique order id."""
    return str(uuid.uuid4())


@dataclass
class StoredOrder:
    """
    A single order document as the store sees it.

    Attributes:
        id: Document key, immutable once created
        partition_key: Routing value for the document
        title: Free text, may be None
        description: Free text, may be None
        quantity: Item count, never validated
        status: CREATED or COMPLETED
        version: Concurrency token, bumped on every replace
    """
    partition_key: str
    id: str = field(default_factory=generate_order_id)
    title: Optional[str] = None
    description: Optional[str] = None
    quantity: int = 0
    status: OrderStatus = OrderStatus.CREATED
    version: int = 1

    def copy(self, **changes) -> "StoredOrder":
        """Return a copy with the given fields changed."""
        return dataclass_replace(self, **changes)


class BaseOrderStore(ABC):
    """
    Abstract base class for order stores.

    Example:
        >>> store = get_order_store()
        >>> order = await store.create(StoredOrder(partition_key="orders", title="Burger"))
        >>> found = await store.get_by_id(order.id, "orders")
    """

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Return the name of the storage backend."""
        pass

    async def init(self) -> None:
        """Prepare the backend (create tables, open pools)."""

    async def close(self) -> None:
        """Release backend resources."""

    @abstractmethod
    async def get_by_id(self, order_id: str, partition_key: str) -> StoredOrder:
        """
        Read one order.

        Raises:
            OrderNotFoundError: Nothing stored under (order_id, partition_key)
            OrderStoreError: Any other failure
        """
        pass

    @abstractmethod
    async def create(self, order: StoredOrder) -> StoredOrder:
        """
        Insert a new order.

        Raises:
            OrderStoreError: Duplicate id or any other failure
        """
        pass

    @abstractmethod
    async def replace(
        self,
        order: StoredOrder,
        order_id: str,
        partition_key: str,
        expected_version: Optional[int] = None,
    ) -> StoredOrder:
        """
        Overwrite every field of an existing order.

        Returns:
            The stored order with its new version

        Raises:
            OrderNotFoundError: The order disappeared
            ConcurrencyConflictError: Stored version differs from expected_version
            OrderStoreError: Any other failure
        """
        pass

    @abstractmethod
    def scan_all(self) -> AsyncIterator[StoredOrder]:
        """Yield every stored order."""
        pass

    @abstractmethod
    async def health_check(self) -> bool:
        """Check backend connectivity."""
        pass
