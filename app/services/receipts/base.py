"""
Receipt Archive Abstract Base Class

Write-once blob storage for order receipts. The core only needs to know
whether a key exists and to write it once; nothing is ever read back or
deleted through this interface.

Author: Khalil Bannouri
Version: 4.0.0
"""

from abc import ABC, abstractmethod

from app.services.store.base import StoredOrder


def receipt_key(order_id: str) -> str:
    """Deterministic archive key for an order's receipt."""
    return f"{order_id}.txt"


def render_receipt(order: StoredOrder) -> bytes:
    """Render the flat text receipt for an order as UTF-8 bytes."""
    lines = [
        "Order Receipt:",
        "==============",
        f"ID: {order.id}",
        f"Title: {order.title or ''}",
        f"Description: {order.description or ''}",
        f"Quantity: {order.quantity}",
        f"Status: {order.status.value}",
    ]
    return "".join(f"{line}\n" for line in lines).encode("utf-8")


class BaseReceiptArchive(ABC):
    """Abstract base class for receipt archives."""

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Return the provider name."""
        pass

    @abstractmethod
    async def exists(self, key: str) -> bool:
        """Check whether an object is stored at key."""
        pass

    @abstractmethod
    async def write(self, key: str, data: bytes) -> None:
        """
        Store data at key, never overwriting.

        Raises:
            ReceiptConflictError: Something is already stored at key
            ReceiptArchiveError: Any other failure
        """
        pass

    @abstractmethod
    async def health_check(self) -> bool:
        """Check archive availability."""
        pass
