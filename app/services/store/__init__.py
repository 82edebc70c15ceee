"""
Order Store Factory

Provides a single process-wide order store instance.

Usage:
    from app.services.store import get_order_store

    store = get_order_store()
    order = await store.get_by_id(order_id, settings.partition_key)

Backend Switching:
    - ORDER_STORE_BACKEND=sql → SqlOrderStore (DATABASE_URL)
    - ORDER_STORE_BACKEND=memory → MockOrderStore (no persistence)

Author: Khalil Bannouri
Version: 4.0.0
"""

import logging
from functools import lru_cache

from app.core.config import StoreBackend, get_settings
from app.services.store.base import BaseOrderStore, StoredOrder, generate_order_id
from app.services.store.mock import MockOrderStore
from app.services.store.sql import SqlOrderStore

logger = logging.getLogger(__name__)


@lru_cache()
def get_order_store() -> BaseOrderStore:
    """
    Get the configured order store instance.

    The instance is cached so every connection and request shares the
    same engine and connection pool.
    """
    settings = get_settings()

    if settings.order_store_backend == StoreBackend.MEMORY:
        logger.info("Order Store: Using MockOrderStore")
        return MockOrderStore()

    logger.info("Order Store: Using SqlOrderStore")
    return SqlOrderStore(settings.database_url, echo=settings.database_echo)


def reset_order_store() -> None:
    """
    Clear the cached order store instance.

    The next call to get_order_store() will create a new instance.
    """
    get_order_store.cache_clear()
    logger.debug("Order store cache cleared")


__all__ = [
    "get_order_store",
    "reset_order_store",
    "generate_order_id",
    "BaseOrderStore",
    "StoredOrder",
    "MockOrderStore",
    "SqlOrderStore",
]
