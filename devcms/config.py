"""Application configuration loaded from environment variables."""

from __future__ import annotations

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """devcms application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Core
    secret_key: str = "change-me-in-production"
    debug: bool = False
    expose_docs: bool = False

    # Database
    database_url: str = "sqlite+aiosqlite:///data/db/devcms.db"

    # Paths
    media_dir: Path = Path("./data/media")

    # Server
    host: str = "0.0.0.0"
    port: int = Field(default=8000, ge=1, le=65535)

    # Admin API
    admin_token: str = "change-me-admin-token"

    # Realpad web service
    realpad_endpoint: str = "https://cms.realpad.eu/ws/v10/get-project"
    realpad_resource_base_url: str = "https://cms.realpad.eu"
    realpad_timeout_seconds: float = Field(default=30.0, gt=0)
    realpad_retry_attempts: int = Field(default=3, ge=1, le=10)
    realpad_retry_initial_seconds: float = Field(default=1.0, ge=0)
    realpad_retry_max_seconds: float = Field(default=30.0, ge=0)
    # Attribute key suffix -> resource type, used to detect resource UIDs.
    realpad_resource_suffixes: dict[str, str] = Field(
        default_factory=lambda: {"Pdf": "pdf", "Plan": "plan", "Image": "image"}
    )

    # Sync scheduler
    sync_enabled: bool = True
    sync_interval_seconds: int = Field(default=3600, ge=1)
    sync_concurrency: int = Field(default=4, ge=1, le=32)
    sync_project_timeout_seconds: float = Field(default=600.0, gt=0)
    sync_shutdown_grace_seconds: float = Field(default=30.0, ge=0)

    def validate_runtime_security(self) -> None:
        """Validate security-critical production settings."""
        if self.debug:
            return

        violations: list[str] = []
        if self.secret_key == "change-me-in-production" or len(self.secret_key) < 32:
            violations.append(
                "SECRET_KEY must be overridden with a high-entropy value (>=32 chars)"
            )
        if self.admin_token == "change-me-admin-token" or len(self.admin_token) < 24:
            violations.append("ADMIN_TOKEN must be overridden with a strong value (>=24 chars)")
        invalid_types = set(self.realpad_resource_suffixes.values()) - {
            "pdf",
            "plan",
            "image",
            "other",
        }
        if invalid_types:
            violations.append(
                f"REALPAD_RESOURCE_SUFFIXES maps to unknown resource types: {sorted(invalid_types)}"
            )

        if violations:
            joined = "; ".join(violations)
            raise ValueError(f"Insecure production configuration: {joined}")
