"""
Local Receipt Archive with Concurrency Control

Stores each receipt as a plain text file under the receipts directory.
Writers from every worker process are serialized with a file lock and
files are opened in exclusive-create mode, so a receipt is written once
and never overwritten.

Author: Khalil Bannouri
Version: 4.0.0
"""

import asyncio
import logging
from pathlib import Path

from filelock import FileLock, Timeout

from app.core.exceptions import ReceiptArchiveError, ReceiptConflictError
from app.services.receipts.base import BaseReceiptArchive

logger = logging.getLogger(__name__)


class LocalReceiptArchive(BaseReceiptArchive):
    """
    Filesystem receipt archive.

    Args:
        directory: Folder that holds the receipt files
        lock_timeout: Seconds to wait for the directory lock
    """

    LOCK_NAME = ".receipts.lock"

    def __init__(self, directory: str, lock_timeout: int = 30):
        self.directory = Path(directory)
        self.lock_timeout = lock_timeout
        self.lock_path = self.directory / self.LOCK_NAME

        logger.info(f"LocalReceiptArchive initialized ({self.directory})")

    @property
    def provider_name(self) -> str:
        return "local"

    def _ensure_directory(self) -> None:
        """Create the receipts directory if needed."""
        if not self.directory.exists():
            self.directory.mkdir(parents=True, exist_ok=True)
            logger.info(f"Created receipts directory: {self.directory}")

    def _path_for(self, key: str) -> Path:
        """Resolve key to a file directly inside the receipts directory."""
        if not key or "/" in key or "\\" in key or key in (".", "..") or key == self.LOCK_NAME:
            raise ReceiptArchiveError(f"Invalid receipt key: {key!r}")
        return self.directory / key

    def _exists_sync(self, key: str) -> bool:
        return self._path_for(key).exists()

    def _write_sync(self, key: str, data: bytes) -> None:
        path = self._path_for(key)
        self._ensure_directory()

        try:
            with FileLock(str(self.lock_path), timeout=self.lock_timeout):
                logger.debug(f"Lock acquired for receipt {key}")

                if path.exists():
                    raise ReceiptConflictError(key)

                with open(path, "xb") as handle:
                    handle.write(data)

            logger.debug(f"Lock released for receipt {key}")

        except Timeout as e:
            logger.error(f"Lock timeout for receipt {key}")
            raise ReceiptArchiveError(f"Lock timeout ({self.lock_timeout}s)") from e
        except FileExistsError as e:
            raise ReceiptConflictError(key) from e
        except OSError as e:
            logger.error(f"Error writing receipt {key}: {e}")
            raise ReceiptArchiveError(str(e)) from e

        logger.info(f"Receipt {key} archived")

    async def exists(self, key: str) -> bool:
        return await asyncio.to_thread(self._exists_sync, key)

    async def write(self, key: str, data: bytes) -> None:
        await asyncio.to_thread(self._write_sync, key, data)

    async def health_check(self) -> bool:
        try:
            self._ensure_directory()
            return self.directory.is_dir()
        except OSError as e:
            logger.error(f"Receipt archive health check failed: {e}")
            return False
