"""Logging settings (``LOG_`` prefix)."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


class LoggingSettings(BaseSettings):
    """Where and how the service writes its logs.

    Console output is on by default; the rotating JSONL file is opt-in with
    ``LOG_FILE_ENABLED=true``.
    """

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        frozen=True,
        extra="ignore",
        populate_by_name=True,
        env_ignore_empty=True,
    )

    service_name: str = Field(default="dispatch-service", description="Static `service` field on JSON records")
    level: LogLevel = Field(default="INFO", description="Root logger level")
    json_logs: bool = Field(default=True, alias="json", description="JSON Lines output instead of plain text")
    console_enabled: bool = Field(default=True, description="Log to stderr")
    include_context: bool = Field(default=True, description="Inject contextvars (user_id, ...) into records")

    file_enabled: bool = Field(default=False, description="Also log to a rotating file")
    file_path: Path = Field(default=Path("logs/dispatch-service.log.jsonl"), description="Log file location")
    file_max_bytes: int = Field(default=10 * 1024 * 1024, ge=1024, description="Rotate after this many bytes")
    file_backup_count: int = Field(default=5, ge=0, le=100, description="Rotated files to keep")

    @field_validator("level", mode="before")
    @classmethod
    def upper_level(cls, v: Any) -> Any:
        return v.upper() if isinstance(v, str) else v

    def to_logging_kwargs(self) -> dict[str, Any]:
        """Keyword arguments for ``configure_logging``."""
        return {
            "service_name": self.service_name,
            "log_level": self.level,
            "json_logs": self.json_logs,
            "console_enabled": self.console_enabled,
            "include_context": self.include_context,
            "file_path": self.file_path if self.file_enabled else None,
            "file_max_bytes": self.file_max_bytes,
            "file_backup_count": self.file_backup_count,
        }
