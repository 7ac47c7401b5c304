from __future__ import annotations

import logging
import os
from pathlib import Path

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

PACKAGE_STATIC_DIR = Path(__file__).resolve().parent / "static"
ENV_FILE_VARIABLE = "SITE_ENV_FILE"
DEFAULT_ENV_FILE = ".env"


class SiteSettings(BaseSettings):
    """Deployment settings for the site.

    Values come from the process environment first, then from a local `.env`
    file. Empty environment values are treated as unset, so the file can still
    fill them in.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_ignore_empty=True,
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    port: int = Field(default=3000, ge=1, le=65535, alias="PORT")
    host: str = Field(default="0.0.0.0", alias="HOST")
    document_root: Path = Field(
        default=PACKAGE_STATIC_DIR,
        alias="SITE_DOCUMENT_ROOT",
        description="Directory served for every non-API GET request.",
    )

    panel_base_url: str = Field(default="", alias="PTERODACTYL_BASE_URL")
    panel_app_key: SecretStr | None = Field(default=None, alias="PTERODACTYL_APP_KEY")
    panel_allocation_id: int | None = Field(default=None, alias="PTERODACTYL_ALLOCATION_ID")
    panel_nest_id: int = Field(default=1, alias="PTERODACTYL_NEST_ID")
    panel_egg_id: int = Field(default=20, alias="PTERODACTYL_EGG_ID")
    panel_memory_mb: int = Field(default=3072, ge=0, alias="PTERODACTYL_MEMORY_MB")
    panel_disk_mb: int = Field(default=10240, ge=0, alias="PTERODACTYL_DISK_MB")
    panel_swap_mb: int = Field(default=1024, ge=-1, alias="PTERODACTYL_SWAP_MB")
    panel_cpu_limit: int = Field(default=200, ge=0, alias="PTERODACTYL_CPU_LIMIT")
    panel_timeout_seconds: float | None = Field(
        default=None,
        gt=0,
        alias="PTERODACTYL_TIMEOUT_SECONDS",
        description="Outbound panel request timeout. Unset means wait indefinitely.",
    )

    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_file: Path | None = Field(default=None, alias="LOG_FILE")
    log_max_size_mb: int = Field(
        default=10,
        ge=1,
        alias="LOG_MAX_SIZE_MB",
        description="Max size of a log file in MB before rolling.",
    )
    log_backup_count: int = Field(
        default=5,
        ge=1,
        alias="LOG_BACKUP_COUNT",
        description="Number of log archives to keep.",
    )

    @field_validator("panel_base_url", mode="before")
    @classmethod
    def strip_trailing_slash(cls, value: str | None) -> str:
        return (value or "").strip().rstrip("/")

    @field_validator("panel_app_key", mode="before")
    @classmethod
    def blank_key_is_missing(cls, value: str | SecretStr | None) -> str | SecretStr | None:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @property
    def panel_app_key_value(self) -> str:
        return self.panel_app_key.get_secret_value() if self.panel_app_key else ""

    @property
    def registration_configured(self) -> bool:
        return not missing_required_settings(self)


def missing_required_settings(settings: SiteSettings) -> list[str]:
    missing: list[str] = []
    if not settings.panel_base_url:
        missing.append("PTERODACTYL_BASE_URL")
    if not settings.panel_app_key_value:
        missing.append("PTERODACTYL_APP_KEY")
    if settings.panel_allocation_id is None:
        missing.append("PTERODACTYL_ALLOCATION_ID")
    return missing


def warn_if_incomplete(settings: SiteSettings) -> list[str]:
    """Log a startup warning for missing panel settings and return their names."""

    missing = missing_required_settings(settings)
    if missing:
        logger.warning(
            "Missing required environment variables: %s. "
            "API registration requests will fail until these are configured.",
            ", ".join(missing),
        )
    return missing


def resolve_env_file(environ: dict[str, str] | None = None) -> Path:
    """Locate the `.env` file: `SITE_ENV_FILE` when set, else `.env` in the working directory."""

    env = os.environ if environ is None else environ
    raw = (env.get(ENV_FILE_VARIABLE) or "").strip()
    return Path(raw).expanduser() if raw else Path(DEFAULT_ENV_FILE)


def load_site_settings(env_file: Path | str | None = DEFAULT_ENV_FILE) -> SiteSettings:
    """Load settings; pass `None` to read the process environment only."""

    if env_file == DEFAULT_ENV_FILE:
        env_file = resolve_env_file()
    return SiteSettings(_env_file=env_file)
