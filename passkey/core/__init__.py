"""Passkey Core Module - configuration shared by all components."""

from passkey.core.config import (
    CeremonyConfig,
    LogLevel,
    MonitoringConfig,
    PasskeyConfig,
    RelyingPartyConfig,
    StorageConfig,
    get_config,
    set_config,
)

__all__ = [
    "CeremonyConfig",
    "LogLevel",
    "MonitoringConfig",
    "PasskeyConfig",
    "RelyingPartyConfig",
    "StorageConfig",
    "get_config",
    "set_config",
]
