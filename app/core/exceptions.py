"""
Order Service Error Taxonomy

Every failure the order hub can report derives from OrderServiceError.
The message of each exception is what clients see in the Error signal,
so messages are written for humans.
"""

from typing import Optional


class OrderServiceError(Exception):
    """Base class for all order service failures."""


class OrderNotFoundError(OrderServiceError):
    """No order exists for the given id and partition key."""

    def __init__(self, order_id: str, partition_key: Optional[str] = None):
        self.order_id = order_id
        self.partition_key = partition_key
        super().__init__(f"Order {order_id} was not found.")


class ConcurrencyConflictError(OrderServiceError):
    """The stored order changed between read and replace."""

    def __init__(self, order_id: str, expected_version: int, actual_version: Optional[int] = None):
        self.order_id = order_id
        self.expected_version = expected_version
        self.actual_version = actual_version
        super().__init__(
            f"Order {order_id} was modified concurrently "
            f"(expected version {expected_version}, found {actual_version})."
        )


class ReceiptConflictError(OrderServiceError):
    """A receipt already exists at the target key."""

    def __init__(self, key: str):
        self.key = key
        super().__init__(f"The file {key} exists already.")


class OrderStoreError(OrderServiceError):
    """Any other order store failure (connectivity, malformed row, duplicate key)."""


class ReceiptArchiveError(OrderServiceError):
    """Any other receipt archive failure."""


class InvalidInvocationError(OrderServiceError):
    """A hub frame could not be parsed into a known operation."""
