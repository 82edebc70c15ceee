"""
SQLAlchemy Database Models

Persisted shape of an order document. Column names are snake_case in the
database; the camelCase wire names live in app.schemas.

Author: Khalil Bannouri
Version: 4.0.0
"""

from sqlalchemy import Column, Integer, String, DateTime, Text, Enum
from sqlalchemy.sql import func
from app.database import Base
import enum


class OrderStatus(str, enum.Enum):
    """Order status workflow. Transitions only go forward."""
    CREATED = "CREATED"
    COMPLETED = "COMPLETED"


class OrderRecord(Base):
    """
    Orders table - one row per order document.

    ``version`` is the optimistic concurrency token: every replace must
    name the version it read and bumps it by one.
    """
    __tablename__ = "orders"

    # Document key
    id = Column(String(64), primary_key=True)

    # Routing value, single logical partition
    partition_key = Column(String(64), nullable=False, index=True)

    # =========================================================================
    # ORDER DETAILS
    # =========================================================================
    title = Column(Text, nullable=True)
    description = Column(Text, nullable=True)
    quantity = Column(Integer, nullable=False, default=0)
    status = Column(
        Enum(OrderStatus, native_enum=False, length=16),
        default=OrderStatus.CREATED,
        nullable=False,
        index=True
    )

    # =========================================================================
    # CONCURRENCY
    # =========================================================================
    version = Column(Integer, nullable=False, default=1)

    # =========================================================================
    # TIMESTAMPS
    # =========================================================================
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    def __repr__(self):
        return f"<OrderRecord {self.id} - {self.status.value} - v{self.version}>"
