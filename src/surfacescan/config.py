"""
SURFACESCAN - Configuration

Settings are read from the environment and an optional .env file.
All settings are optional with sensible defaults.
"""

import json
from functools import lru_cache
from pathlib import Path
from typing import Annotated, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


def _find_env_file() -> str:
    """Find .env file."""
    project_root = Path(__file__).parent.parent.parent
    env_path = project_root / ".env"
    if env_path.exists():
        return str(env_path)
    if Path(".env").exists():
        return ".env"
    return str(env_path)


class Settings(BaseSettings):
    """Engine settings - all optional with defaults."""

    model_config = SettingsConfigDict(
        env_file=_find_env_file(),
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ===========================================
    # Scanning Settings
    # ===========================================
    scan_threads: int = Field(
        default=20,
        ge=1,
        le=200,
        description="Concurrency bound; also sets the per-origin rate (threads req/s)",
    )
    scan_timeout: float = Field(
        default=10.0,
        gt=0,
        le=300,
        description="Per-request timeout in seconds",
    )
    scan_retries: int = Field(
        default=2,
        ge=0,
        le=10,
        description="Retries after the first attempt on transport failure",
    )
    scan_retry_delay: float = Field(
        default=1.0,
        ge=0,
        le=60,
        description="Base retry delay in seconds (linear backoff)",
    )
    scan_payload_limit: int = Field(
        default=20,
        ge=1,
        le=500,
        description="Max payloads per vulnerability probe",
    )
    scan_relays: Annotated[list[str], NoDecode] = Field(
        default_factory=list,
        description="Ordered relay endpoints; '{url}' is replaced by the encoded target",
    )
    scan_verify_ssl: bool = Field(default=True, description="Verify TLS certificates")

    # ===========================================
    # Third-party APIs (Optional)
    # ===========================================
    virustotal_api_key: Optional[str] = Field(
        default=None,
        description="VirusTotal API key for subdomain enumeration",
    )

    # ===========================================
    # Persistence
    # ===========================================
    database_url: str = Field(
        default="sqlite+aiosqlite:///./surfacescan.db",
        description="SQLAlchemy async database URL for scan records",
    )

    # ===========================================
    # Logging / Debug
    # ===========================================
    log_level: str = Field(default="INFO", description="Log level")
    log_json: bool = Field(default=False, description="Emit JSON log lines")
    debug: bool = Field(default=False, description="Enable debug mode")

    @field_validator("scan_relays", mode="before")
    @classmethod
    def split_relays(cls, value):
        """Accept a comma-separated string as well as a JSON list."""
        if isinstance(value, str):
            if value.strip().startswith("["):
                return json.loads(value)
            return [item.strip() for item in value.split(",") if item.strip()]
        return value

    @field_validator("database_url")
    @classmethod
    def use_async_sqlite(cls, value: str) -> str:
        if value.startswith("sqlite://"):
            return value.replace("sqlite://", "sqlite+aiosqlite://", 1)
        return value

    @property
    def api_keys(self) -> dict[str, str]:
        keys = {"virustotal": self.virustotal_api_key}
        return {name: key for name, key in keys.items() if key}


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
