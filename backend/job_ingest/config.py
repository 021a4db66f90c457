"""Application configuration with Pydantic Settings validation."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

from pydantic import SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ConfigurationError(RuntimeError):
    """A required setting is missing or invalid; fatal to a sync run."""


class AppConfig(BaseSettings):
    """All application settings, loaded from environment / .env file."""

    model_config = SettingsConfigDict(
        env_file=("../.env", ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Credentials ───────────────────────────────────────
    imap_secret_key: SecretStr = SecretStr("")

    # ── Database ──────────────────────────────────────────
    database_url: str = "sqlite:///job_ingest.db"

    # ── IMAP ──────────────────────────────────────────────
    imap_folder: str = "INBOX"
    imap_search_criteria: str = "ALL"
    imap_timeout_sec: int = 60

    # ── Sync ──────────────────────────────────────────────
    default_max_emails_per_sync: int = 10
    max_links_per_email: int = 20
    max_email_text_chars: int = 24000
    max_description_chars: int = 8000
    poll_timeout_sec: int = 180

    # ── LLM ───────────────────────────────────────────────
    llm_enabled: bool = True
    llm_timeout_sec: int = 45
    openrouter_api_key: SecretStr = SecretStr("")
    openrouter_base_url: str = "https://openrouter.ai/api/v1"
    gemini_api_key: SecretStr = SecretStr("")
    gemini_base_url: str = "https://generativelanguage.googleapis.com/v1beta/openai/"
    openai_api_key: SecretStr = SecretStr("")

    # ── Artifacts ─────────────────────────────────────────
    artifact_dir: str = "artifacts"
    public_base_url: str = "http://localhost:54350"

    # ── Server ────────────────────────────────────────────
    host: str = "0.0.0.0"
    port: int = 54350
    cors_origins: str = "http://localhost:5173,http://localhost:3000"

    # ── Logging ───────────────────────────────────────────
    log_level: str = "INFO"
    log_file: Optional[str] = None

    # ── Validators ────────────────────────────────────────
    @field_validator("llm_enabled", mode="before")
    @classmethod
    def parse_bool(cls, v: object) -> bool:
        if isinstance(v, str):
            return v.strip().lower() in {"1", "true", "yes", "on"}
        return bool(v)

    @field_validator("cors_origins", mode="before")
    @classmethod
    def ensure_string(cls, v: object) -> str:
        return str(v).strip()

    @property
    def cors_origins_list(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    @property
    def artifact_path(self) -> Path:
        return Path(self.artifact_dir)

    def require_secret_key(self) -> str:
        """Return the credential secret or raise if it is not configured."""
        secret = self.imap_secret_key.get_secret_value()
        if not secret:
            raise ConfigurationError("IMAP_SECRET_KEY is not set")
        return secret


def get_config() -> AppConfig:
    """Load and return validated application config."""
    return AppConfig()
