"""
Tests for settings parsing and the process-wide service factories.
"""

import pytest
from pydantic import ValidationError

from app.core.config import (
    ArchiveBackend,
    BackplaneBackend,
    EnvironmentMode,
    Settings,
    StoreBackend,
    get_settings,
)
from app.services.backplane import MemoryBackplane, get_backplane
from app.services.hub import get_connection_manager, get_order_hub
from app.services.receipts import LocalReceiptArchive, MockReceiptArchive, get_receipt_archive
from app.services.store import MockOrderStore, SqlOrderStore, get_order_store

from tests.conftest import reset_shared_handles


def test_defaults():
    settings = Settings(_env_file=None)

    assert settings.env_mode == EnvironmentMode.DEVELOPMENT
    assert settings.order_store_backend == StoreBackend.SQL
    assert settings.receipt_archive_backend == ArchiveBackend.LOCAL
    assert settings.broadcast_backplane == BackplaneBackend.MEMORY
    assert settings.partition_key == "orders"
    assert settings.strict_complete is True
    assert settings.validate_production_config() == []


def test_env_values_are_case_insensitive(monkeypatch):
    monkeypatch.setenv("ENV_MODE", "PRODUCTION")
    monkeypatch.setenv("ORDER_STORE_BACKEND", "Memory")
    monkeypatch.setenv("BROADCAST_BACKPLANE", "REDIS")

    settings = Settings(_env_file=None)

    assert settings.is_production
    assert settings.order_store_backend == StoreBackend.MEMORY
    assert settings.broadcast_backplane == BackplaneBackend.REDIS


def test_invalid_env_mode_is_rejected(monkeypatch):
    monkeypatch.setenv("ENV_MODE", "qa")

    with pytest.raises(ValidationError):
        Settings(_env_file=None)


def test_production_flags_local_defaults(monkeypatch):
    monkeypatch.setenv("ENV_MODE", "production")
    monkeypatch.setenv("RECEIPT_ARCHIVE_BACKEND", "memory")

    missing = Settings(_env_file=None).validate_production_config()

    assert missing == ["DATABASE_URL", "RECEIPT_ARCHIVE_BACKEND"]


def test_factories_follow_settings(memory_backends):
    assert isinstance(get_order_store(), MockOrderStore)
    assert isinstance(get_receipt_archive(), MockReceiptArchive)
    assert isinstance(get_backplane(), MemoryBackplane)

    hub = get_order_hub()
    assert hub is get_order_hub()
    assert hub.connections is get_connection_manager()
    assert hub.reconciler.store is get_order_store()
    assert hub.strict_complete is True


def test_sql_and_local_factories(monkeypatch, tmp_path):
    monkeypatch.setenv("ORDER_STORE_BACKEND", "sql")
    monkeypatch.setenv("DATABASE_URL", f"sqlite+aiosqlite:///{tmp_path / 'orders.db'}")
    monkeypatch.setenv("RECEIPT_ARCHIVE_BACKEND", "local")
    monkeypatch.setenv("RECEIPTS_DIRECTORY", str(tmp_path / "receipts"))
    reset_shared_handles()

    try:
        assert get_settings().order_store_backend == StoreBackend.SQL
        assert isinstance(get_order_store(), SqlOrderStore)
        archive = get_receipt_archive()
        assert isinstance(archive, LocalReceiptArchive)
        assert archive.directory == tmp_path / "receipts"
    finally:
        reset_shared_handles()
