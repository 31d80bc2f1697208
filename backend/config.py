"""
QuantumAccess Core Configuration

Manages all configuration settings with environment variable support.
Provider and mirror credentials are read from the environment and never logged.
"""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings with environment variable support."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "QuantumAccess Core"
    app_version: str = "1.0.0"
    debug: bool = False

    # Server
    host: str = "127.0.0.1"
    port: int = 8000

    # Quantum key provider
    qkd_provider: Literal["SIMULATION", "QRYPT", "QBITSHIELD"] = "SIMULATION"
    qkd_api_key: str = ""
    qrypt_url: str = "https://api-eus.qrypt.com"
    qbitshield_url: str = "https://api.qbitshield.com"
    qkd_timeout: float = 30.0
    qkd_fallback_to_simulation: bool = False
    key_size_bits: int = Field(default=256, gt=0)

    # Demo hooks
    eve_simulation_enabled: bool = False
    step_delay_seconds: float = Field(default=0.0, ge=0.0)

    # Remote mirror
    remote_sync_enabled: bool = False
    remote_url: str = ""
    remote_api_key: str = ""
    remote_timeout: float = 10.0

    # Storage
    data_dir: Path = Field(default_factory=lambda: Path("./data"))

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    @field_validator("data_dir", mode="after")
    @classmethod
    def ensure_data_dir_exists(cls, v: Path) -> Path:
        """Create data directory if it doesn't exist."""
        v.mkdir(parents=True, exist_ok=True)
        return v

    @field_validator("remote_url", "qrypt_url", "qbitshield_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    @property
    def db_path(self) -> Path:
        """Path to the SQLite database."""
        return self.data_dir / "quantumaccess.db"

    @property
    def remote_configured(self) -> bool:
        return self.remote_sync_enabled and bool(self.remote_url)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
