"""
Receipt Archive Factory

Returns the local filesystem or in-memory archive based on
RECEIPT_ARCHIVE_BACKEND.

Author: Khalil Bannouri
Version: 4.0.0
"""

import logging
from functools import lru_cache

from app.core.config import ArchiveBackend, get_settings
from app.services.receipts.base import BaseReceiptArchive, receipt_key, render_receipt
from app.services.receipts.local import LocalReceiptArchive
from app.services.receipts.mock import MockReceiptArchive

logger = logging.getLogger(__name__)


@lru_cache()
def get_receipt_archive() -> BaseReceiptArchive:
    """Get the configured receipt archive."""
    settings = get_settings()

    if settings.receipt_archive_backend == ArchiveBackend.MEMORY:
        logger.info("Receipt Archive: Using MockReceiptArchive")
        return MockReceiptArchive()

    logger.info(f"Receipt Archive: Using LocalReceiptArchive ({settings.receipts_directory})")
    return LocalReceiptArchive(
        settings.receipts_directory,
        lock_timeout=settings.receipt_lock_timeout,
    )


def reset_receipt_archive() -> None:
    """Clear the cached archive instance."""
    get_receipt_archive.cache_clear()


__all__ = [
    "get_receipt_archive",
    "reset_receipt_archive",
    "receipt_key",
    "render_receipt",
    "BaseReceiptArchive",
    "LocalReceiptArchive",
    "MockReceiptArchive",
]
