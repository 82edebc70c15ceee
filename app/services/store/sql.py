"""
SQL Order Store Implementation

Persists order documents through SQLAlchemy's async engine. PostgreSQL
(psycopg) is the production target; SQLite (aiosqlite) is used for local
runs and tests.

Replaces are conditional UPDATEs on (id, partition_key[, version]) so two
concurrent completions of the same order produce one winner and one
ConcurrencyConflictError.

Author: Khalil Bannouri
Version: 4.0.0
"""

import logging
from typing import AsyncIterator, Optional

from sqlalchemy import select, text, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine

from app.core.exceptions import (
    ConcurrencyConflictError,
    OrderNotFoundError,
    OrderStoreError,
)
from app.database import build_engine, build_session_maker, init_db
from app.models import OrderRecord, OrderStatus
from app.services.store.base import BaseOrderStore, StoredOrder

logger = logging.getLogger(__name__)


def _to_stored(record: OrderRecord) -> StoredOrder:
    """Map a database row to the store's dataclass."""
    return StoredOrder(
        id=record.id,
        partition_key=record.partition_key,
        title=record.title,
        description=record.description,
        quantity=record.quantity,
        status=OrderStatus(record.status),
        version=record.version,
    )


class SqlOrderStore(BaseOrderStore):
    """
    SQLAlchemy implementation of the order store.

    Args:
        database_url: Async SQLAlchemy URL
        echo: Log every SQL statement
        engine: Use an existing engine instead of building one
    """

    def __init__(
        self,
        database_url: Optional[str] = None,
        echo: bool = False,
        engine: Optional[AsyncEngine] = None,
    ):
        if engine is None:
            if not database_url:
                raise ValueError("SqlOrderStore needs a database_url or an engine")
            engine = build_engine(database_url, echo=echo)

        self.engine = engine
        self.session_maker = build_session_maker(engine)

        logger.info(f"SqlOrderStore initialized ({engine.url.get_backend_name()})")

    @property
    def provider_name(self) -> str:
        """Return the provider name."""
        return f"sql:{self.engine.url.get_backend_name()}"

    async def init(self) -> None:
        try:
            await init_db(self.engine)
        except SQLAlchemyError as e:
            raise OrderStoreError(f"Could not initialize order store: {e}") from e

    async def close(self) -> None:
        await self.engine.dispose()

    async def get_by_id(self, order_id: str, partition_key: str) -> StoredOrder:
        try:
            async with self.session_maker() as session:
                result = await session.execute(
                    select(OrderRecord).where(
                        OrderRecord.id == order_id,
                        OrderRecord.partition_key == partition_key,
                    )
                )
                record = result.scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.error(f"Order lookup failed for {order_id}: {e}")
            raise OrderStoreError(str(e)) from e

        if record is None:
            raise OrderNotFoundError(order_id, partition_key)
        return _to_stored(record)

    async def create(self, order: StoredOrder) -> StoredOrder:
        record = OrderRecord(
            id=order.id,
            partition_key=order.partition_key,
            title=order.title,
            description=order.description,
            quantity=order.quantity,
            status=order.status,
            version=1,
        )

        try:
            async with self.session_maker() as session:
                session.add(record)
                await session.commit()
        except IntegrityError as e:
            raise OrderStoreError(f"Order {order.id} already exists.") from e
        except SQLAlchemyError as e:
            logger.error(f"Order insert failed for {order.id}: {e}")
            raise OrderStoreError(str(e)) from e

        logger.debug(f"Created order {order.id}")
        return order.copy(version=1)

    async def replace(
        self,
        order: StoredOrder,
        order_id: str,
        partition_key: str,
        expected_version: Optional[int] = None,
    ) -> StoredOrder:
        conditions = [
            OrderRecord.id == order_id,
            OrderRecord.partition_key == partition_key,
        ]
        if expected_version is not None:
            conditions.append(OrderRecord.version == expected_version)

        statement = (
            update(OrderRecord)
            .where(*conditions)
            .values(
                title=order.title,
                description=order.description,
                quantity=order.quantity,
                status=order.status,
                version=OrderRecord.version + 1,
            )
            .execution_options(synchronize_session=False)
        )

        try:
            async with self.session_maker() as session:
                result = await session.execute(statement)

                if result.rowcount == 0:
                    await session.rollback()
                    current = await session.scalar(
                        select(OrderRecord.version).where(
                            OrderRecord.id == order_id,
                            OrderRecord.partition_key == partition_key,
                        )
                    )
                    if current is None:
                        raise OrderNotFoundError(order_id, partition_key)
                    raise ConcurrencyConflictError(order_id, expected_version, current)

                new_version = await session.scalar(
                    select(OrderRecord.version).where(
                        OrderRecord.id == order_id,
                        OrderRecord.partition_key == partition_key,
                    )
                )
                await session.commit()
        except SQLAlchemyError as e:
            logger.error(f"Order replace failed for {order_id}: {e}")
            raise OrderStoreError(str(e)) from e

        logger.debug(f"Replaced order {order_id} (v{new_version})")
        return order.copy(id=order_id, partition_key=partition_key, version=new_version)

    async def scan_all(self) -> AsyncIterator[StoredOrder]:
        try:
            async with self.session_maker() as session:
                result = await session.scalars(
                    select(OrderRecord).order_by(OrderRecord.created_at, OrderRecord.id)
                )
                records = result.all()
        except SQLAlchemyError as e:
            logger.error(f"Order scan failed: {e}")
            raise OrderStoreError(str(e)) from e

        for record in records:
            yield _to_stored(record)

    async def health_check(self) -> bool:
        try:
            async with self.engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            return True
        except SQLAlchemyError as e:
            logger.error(f"Order store health check failed: {e}")
            return False
