"""
Passkey Configuration Management

Centralized configuration for the ceremony engine with:
- Environment-based configuration
- Type-safe settings with Pydantic
- JSON file loading
"""

from __future__ import annotations

import json
from enum import Enum
from pathlib import Path
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings

from passkey.types import (
    AttestationConveyancePreference,
    COSEAlgorithm,
    ResidentKeyRequirement,
    UserVerificationRequirement,
)


class LogLevel(str, Enum):
    """Logging levels."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class RelyingPartyConfig(BaseModel):
    """Relying party identity presented to authenticators."""
    id: str = "localhost"
    name: str = "LocalPasskeyServer"
    origins: list[str] = Field(default_factory=lambda: ["https://localhost:5001"])


class CeremonyConfig(BaseModel):
    """Registration and authentication ceremony policy."""
    challenge_bytes: int = Field(default=32, ge=16)
    timeout_ms: int = 60000
    challenge_ttl_seconds: Optional[float] = 300.0  # None or 0 disables expiry
    cleanup_interval_seconds: float = 60.0
    user_verification: UserVerificationRequirement = UserVerificationRequirement.PREFERRED
    resident_key: ResidentKeyRequirement = ResidentKeyRequirement.PREFERRED
    attestation: AttestationConveyancePreference = AttestationConveyancePreference.NONE
    supported_algorithms: list[COSEAlgorithm] = Field(default_factory=lambda: [
        COSEAlgorithm.ES256,
        COSEAlgorithm.EDDSA,
        COSEAlgorithm.RS256,
        COSEAlgorithm.PS256,
    ])
    anonymous_key: str = "anonymous"
    default_username: str = "user"


class StorageConfig(BaseModel):
    """Credential store backend selection."""
    backend: Literal["memory", "sqlite"] = "memory"
    sqlite_path: Path = Path("./data/passkey.db")
    busy_timeout_ms: int = 5000


class MonitoringConfig(BaseModel):
    """Logging configuration."""
    log_level: LogLevel = LogLevel.INFO
    log_format: Literal["json", "text"] = "json"


class PasskeyConfig(BaseSettings):
    """
    Main Passkey Configuration

    Loads configuration from environment variables and/or config files.
    Environment variables are prefixed with PASSKEY_ (e.g., PASSKEY_PORT=5001,
    PASSKEY_RELYING_PARTY__ID=example.com).
    """

    environment: Literal["development", "staging", "production"] = "development"

    # Server configuration
    host: str = "127.0.0.1"
    port: int = 5001

    relying_party: RelyingPartyConfig = Field(default_factory=RelyingPartyConfig)
    ceremony: CeremonyConfig = Field(default_factory=CeremonyConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    monitoring: MonitoringConfig = Field(default_factory=MonitoringConfig)

    model_config = {
        "env_prefix": "PASSKEY_",
        "env_nested_delimiter": "__",
        "case_sensitive": False,
    }

    @classmethod
    def from_file(cls, config_path: Path) -> "PasskeyConfig":
        """Load configuration from a JSON file."""
        if not config_path.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")

        with open(config_path) as f:
            config_data: dict[str, Any] = json.load(f)

        return cls(**config_data)

    def to_file(self, config_path: Path) -> None:
        """Save configuration to a JSON file."""
        config_path.parent.mkdir(parents=True, exist_ok=True)
        with open(config_path, "w") as f:
            json.dump(self.model_dump(mode="json"), f, indent=2)


# Global configuration instance (lazy loaded)
_config: Optional[PasskeyConfig] = None


def get_config() -> PasskeyConfig:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = PasskeyConfig()
    return _config


def set_config(config: PasskeyConfig) -> None:
    """Set the global configuration instance."""
    global _config
    _config = config
