"""
Application Configuration Module

Centralizes all configuration using environment variables with Pydantic Settings.
Supports three modes:
    - DEVELOPMENT: In-memory or SQLite storage, local receipts, single process
    - STAGING / PRODUCTION: PostgreSQL storage and an optional Redis backplane

Storage and broadcast backends are selected independently of the mode so a
development box can still run against PostgreSQL or Redis when needed.

Usage:
    from app.core.config import get_settings

    settings = get_settings()
    if settings.order_store_backend == StoreBackend.MEMORY:
        ...

Author: Khalil Bannouri
Version: 4.0.0
"""

import logging
import sys
from enum import Enum
from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class EnvironmentMode(str, Enum):
    """
    Application environment modes.

    Attributes:
        DEVELOPMENT: Local testing, debug endpoints enabled
        PRODUCTION: Live environment
        STAGING: Pre-production environment
    """
    DEVELOPMENT = "development"
    PRODUCTION = "production"
    STAGING = "staging"


class StoreBackend(str, Enum):
    """Order store implementations."""
    SQL = "sql"
    MEMORY = "memory"


class ArchiveBackend(str, Enum):
    """Receipt archive implementations."""
    LOCAL = "local"
    MEMORY = "memory"


class BackplaneBackend(str, Enum):
    """Broadcast fan-out implementations."""
    MEMORY = "memory"
    REDIS = "redis"


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    All settings can be overridden via environment variables or .env file.

    Attributes:
        env_mode: Current environment (development/production/staging)
        debug: Enable verbose logging and error details

        # Order Store
        order_store_backend: "sql" (SQLAlchemy) or "memory"
        database_url: SQLAlchemy async connection string
        partition_key: Single logical partition used for every order

        # Receipt Archive
        receipt_archive_backend: "local" (filesystem) or "memory"
        receipts_directory: Directory that holds <orderId>.txt receipts

        # Broadcast
        broadcast_backplane: "memory" (single process) or "redis"
        redis_url: Redis connection string for the pub/sub backplane
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ==========================================================================
    # ENVIRONMENT
    # ==========================================================================

    env_mode: EnvironmentMode = Field(
        default=EnvironmentMode.DEVELOPMENT,
        description="Application environment mode"
    )
    debug: bool = Field(
        default=False,
        description="Enable debug mode with verbose logging"
    )

    # ==========================================================================
    # APPLICATION
    # ==========================================================================

    app_name: str = Field(
        default="Restaurant Order Broadcast Service",
        description="Application display name"
    )
    app_version: str = Field(
        default="4.0.0",
        description="Application version"
    )
    api_host: str = Field(
        default="0.0.0.0",
        description="API server host"
    )
    api_port: int = Field(
        default=8001,
        description="API server port"
    )

    # ==========================================================================
    # ORDER STORE
    # ==========================================================================

    order_store_backend: StoreBackend = Field(
        default=StoreBackend.SQL,
        description="Order store implementation (sql or memory)"
    )
    database_url: str = Field(
        default="sqlite+aiosqlite:///./data/orders.db",
        description="SQLAlchemy async connection URL"
    )
    database_echo: bool = Field(
        default=False,
        description="Log every SQL statement"
    )
    partition_key: str = Field(
        default="orders",
        description="Partition key shared by all orders"
    )

    # ==========================================================================
    # RECEIPT ARCHIVE
    # ==========================================================================

    receipt_archive_backend: ArchiveBackend = Field(
        default=ArchiveBackend.LOCAL,
        description="Receipt archive implementation (local or memory)"
    )
    receipts_directory: str = Field(
        default="data/receipts",
        description="Directory for receipt files"
    )
    receipt_lock_timeout: int = Field(
        default=30,
        description="Seconds to wait for the receipt file lock"
    )

    # ==========================================================================
    # BROADCAST / REDIS
    # ==========================================================================

    broadcast_backplane: BackplaneBackend = Field(
        default=BackplaneBackend.MEMORY,
        description="Broadcast fan-out (memory or redis)"
    )
    redis_url: str = Field(
        default="redis://localhost:6379/0",
        description="Redis connection URL"
    )
    redis_channel: str = Field(
        default="orders:broadcast",
        description="Pub/sub channel used to relay broadcasts between processes"
    )
    redis_reconnect_delay: float = Field(
        default=1.0,
        description="Seconds between backplane resubscribe attempts after a dropped connection"
    )

    # ==========================================================================
    # ORDER HUB
    # ==========================================================================

    strict_complete: bool = Field(
        default=True,
        description=(
            "Report unknown ids on CompleteOrder. When False, CompleteOrder "
            "falls back to the legacy upsert and creates the missing order."
        )
    )
    hub_path: str = Field(
        default="/orderHub",
        description="WebSocket path of the order hub"
    )

    # ==========================================================================
    # VALIDATORS
    # ==========================================================================

    @field_validator("env_mode", mode="before")
    @classmethod
    def validate_env_mode(cls, v: str) -> EnvironmentMode:
        """Convert string to EnvironmentMode enum."""
        if isinstance(v, EnvironmentMode):
            return v
        try:
            return EnvironmentMode(v.lower())
        except ValueError:
            valid = [e.value for e in EnvironmentMode]
            raise ValueError(f"Invalid env_mode. Must be one of: {valid}")

    @field_validator(
        "order_store_backend",
        "receipt_archive_backend",
        "broadcast_backplane",
        mode="before",
    )
    @classmethod
    def lowercase_backend(cls, v):
        """Accept backend names in any case."""
        if isinstance(v, str):
            return v.lower()
        return v

    # ==========================================================================
    # COMPUTED PROPERTIES
    # ==========================================================================

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.env_mode == EnvironmentMode.DEVELOPMENT

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.env_mode == EnvironmentMode.PRODUCTION

    @property
    def is_staging(self) -> bool:
        """Check if running in staging mode."""
        return self.env_mode == EnvironmentMode.STAGING

    # ==========================================================================
    # VALIDATION METHODS
    # ==========================================================================

    def validate_production_config(self) -> list[str]:
        """
        Validate settings that should not be left at their local defaults.

        Returns:
            List of problematic configuration keys (empty if all fine)
        """
        missing = []

        if not self.is_development:
            if self.order_store_backend == StoreBackend.MEMORY:
                missing.append("ORDER_STORE_BACKEND")
            if self.database_url.startswith("sqlite"):
                missing.append("DATABASE_URL")
            if self.receipt_archive_backend == ArchiveBackend.MEMORY:
                missing.append("RECEIPT_ARCHIVE_BACKEND")

        return missing


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached application settings.

    Settings are loaded once per process; call ``get_settings.cache_clear()``
    to pick up environment changes (tests do this).

    Returns:
        Settings: Configured application settings
    """
    return Settings()


# =============================================================================
# LOGGING CONFIGURATION
# =============================================================================

def setup_logging(level: int = logging.INFO) -> logging.Logger:
    """
    Configure application-wide logging.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR)

    Returns:
        Configured root logger
    """
    settings = get_settings()

    if settings.debug:
        level = logging.DEBUG

    log_format = "%(asctime)s │ %(levelname)-8s │ %(name)-25s │ %(message)s"
    date_format = "%Y-%m-%d %H:%M:%S"

    logging.basicConfig(
        level=level,
        format=log_format,
        datefmt=date_format,
        handlers=[logging.StreamHandler(sys.stdout)],
    )

    # Reduce noise from third-party libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("redis").setLevel(logging.WARNING)

    return logging.getLogger("app")

