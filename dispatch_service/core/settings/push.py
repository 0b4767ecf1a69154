"""Mobile/web push (Firebase Cloud Messaging) settings.

Environment variables use PUSH_ prefix.
Example: PUSH_PROJECT_ID=my-app, PUSH_CLIENT_EMAIL=svc@my-app.iam.gserviceaccount.com

The service-account private key is usually pasted into the environment with
surrounding quotes and literal ``\\n`` sequences; both are normalized here.
"""

from __future__ import annotations

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class PushSettings(BaseSettings):
    """Firebase service-account credentials and push toggles."""

    enabled: bool = Field(
        default=True,
        description="Enable push delivery. When False every push send is a successful no-op.",
    )
    project_id: str | None = Field(
        default=None,
        description="Firebase project id",
    )
    client_email: str | None = Field(
        default=None,
        description="Service-account client email",
    )
    private_key: SecretStr | None = Field(
        default=None,
        description="Service-account private key (PEM)",
    )
    dry_run: bool = Field(
        default=False,
        description="Validate messages with FCM without delivering them",
    )

    @field_validator("private_key", mode="before")
    @classmethod
    def normalize_private_key(cls, v: object) -> object:
        """Strip wrapping quotes and turn literal ``\\n`` into newlines."""
        if isinstance(v, SecretStr):
            v = v.get_secret_value()
        if isinstance(v, str):
            key = v.strip()
            if len(key) >= 2 and key[0] == key[-1] and key[0] in "\"'":
                key = key[1:-1]
            return key.replace("\\n", "\n")
        return v

    model_config = SettingsConfigDict(
        env_prefix="PUSH_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        frozen=True,
        extra="ignore",
        env_ignore_empty=True,
    )

    @property
    def is_configured(self) -> bool:
        """Push is usable only when enabled and all credentials are present."""
        return bool(
            self.enabled and self.project_id and self.client_email and self.private_key
        )

    def credentials_info(self) -> dict[str, str]:
        """Service-account dict accepted by ``firebase_admin.credentials.Certificate``."""
        if not self.is_configured:
            msg = "Push credentials are not configured"
            raise ValueError(msg)
        assert self.private_key is not None
        return {
            "type": "service_account",
            "project_id": self.project_id or "",
            "client_email": self.client_email or "",
            "private_key": self.private_key.get_secret_value(),
            "token_uri": "https://oauth2.googleapis.com/token",
        }
