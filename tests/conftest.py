"""
Pytest configuration file.

Ensures the repo root is on sys.path so that 'import app...' works, and
provides in-memory collaborators for the reconciler and hub tests.
"""
import sys
from pathlib import Path

import pytest

# Add the repo root to sys.path
repo_root = Path(__file__).parent.parent
if str(repo_root) not in sys.path:
    sys.path.insert(0, str(repo_root))

from app.core.config import get_settings  # noqa: E402
from app.services.backplane import MemoryBackplane  # noqa: E402
from app.services.hub import ConnectionManager, OrderFeed, OrderHub, reset_order_hub  # noqa: E402
from app.services.receipts import MockReceiptArchive, reset_receipt_archive  # noqa: E402
from app.services.reconciler import OrderReconciler  # noqa: E402
from app.services.store import MockOrderStore, reset_order_store  # noqa: E402

PARTITION = "orders"


class FakeSocket:
    """Records frames the hub pushes to one client."""

    def __init__(self, fail: bool = False):
        self.sent = []
        self.fail = fail

    async def send_json(self, message):
        if self.fail:
            raise RuntimeError("socket closed")
        self.sent.append(message)

    def targets(self):
        return [m["target"] for m in self.sent]


def build_hub(store, archive, strict_complete=True):
    """Wire a hub around the given store and archive."""
    connections = ConnectionManager()
    return OrderHub(
        reconciler=OrderReconciler(store, archive, PARTITION),
        feed=OrderFeed(store, PARTITION),
        connections=connections,
        backplane=MemoryBackplane(connections.broadcast),
        strict_complete=strict_complete,
    )


def reset_shared_handles():
    get_settings.cache_clear()
    reset_order_store()
    reset_receipt_archive()
    reset_order_hub()


@pytest.fixture
def store():
    return MockOrderStore()


@pytest.fixture
def archive():
    return MockReceiptArchive()


@pytest.fixture
def reconciler(store, archive):
    return OrderReconciler(store, archive, PARTITION)


@pytest.fixture
def memory_backends(monkeypatch):
    """Point the process-wide factories at in-memory backends."""
    monkeypatch.setenv("ORDER_STORE_BACKEND", "memory")
    monkeypatch.setenv("RECEIPT_ARCHIVE_BACKEND", "memory")
    monkeypatch.setenv("BROADCAST_BACKPLANE", "memory")
    monkeypatch.setenv("STRICT_COMPLETE", "true")
    reset_shared_handles()
    yield
    reset_shared_handles()
