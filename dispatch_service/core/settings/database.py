"""Database connection settings.

Environment variables use DB_ prefix.
Example: DB_URL=postgresql+psycopg://dispatch:secret@db:5432/dispatch

PostgreSQL (psycopg3 async driver) in production; SQLite through aiosqlite
for local development and tests.
"""

from __future__ import annotations

from typing import Any

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseSettings(BaseSettings):
    """SQLAlchemy async engine settings."""

    url: str = Field(
        default="sqlite+aiosqlite:///./dispatch.db",
        min_length=1,
        description="SQLAlchemy async database URL",
    )
    echo: bool = Field(
        default=False,
        description="Log every SQL statement (debugging only)",
    )

    # ─────────────────────────────────────────────────────
    # Pool (ignored for SQLite)
    # ─────────────────────────────────────────────────────
    pool_size: int = Field(
        default=10,
        ge=1,
        le=100,
        description="Number of persistent connections in the pool",
    )
    max_overflow: int = Field(
        default=10,
        ge=0,
        le=100,
        description="Connections allowed beyond pool_size under load",
    )
    pool_timeout: float = Field(
        default=30.0,
        ge=1.0,
        le=300.0,
        description="Seconds to wait for a pooled connection",
    )
    pool_pre_ping: bool = Field(
        default=True,
        description="Test connections before use to drop stale ones",
    )

    # ─────────────────────────────────────────────────────
    # Startup connection retry
    # ─────────────────────────────────────────────────────
    connect_retry_attempts: int = Field(
        default=5,
        ge=1,
        le=20,
        description="Connection attempts made by Database.open()",
    )
    connect_retry_delay: float = Field(
        default=1.0,
        ge=0.0,
        le=30.0,
        description="Initial delay between connection attempts in seconds",
    )

    model_config = SettingsConfigDict(
        env_prefix="DB_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        frozen=True,
        extra="ignore",
        env_ignore_empty=True,
    )

    @field_validator("url")
    @classmethod
    def normalize_postgres_driver(cls, v: str) -> str:
        """Force the psycopg3 async driver for plain PostgreSQL URLs."""
        if v.startswith("postgres://"):
            v = "postgresql://" + v.removeprefix("postgres://")
        if v.startswith("postgresql://"):
            return "postgresql+psycopg://" + v.removeprefix("postgresql://")
        return v

    @property
    def is_sqlite(self) -> bool:
        return self.url.startswith("sqlite")

    def engine_options(self) -> dict[str, Any]:
        """Keyword arguments for ``create_async_engine``."""
        options: dict[str, Any] = {
            "echo": self.echo,
            "pool_pre_ping": self.pool_pre_ping,
        }
        if not self.is_sqlite:
            options.update(
                pool_size=self.pool_size,
                max_overflow=self.max_overflow,
                pool_timeout=self.pool_timeout,
            )
        return options
