"""Configuration management for stagecore."""

from stagecore.config.base import LoggingConfig, StorageConfig, configure_logging
from stagecore.config.security import SecretCipher
from stagecore.config.system import SystemConfig

__all__ = [
    # Base configuration
    "LoggingConfig",
    "StorageConfig",
    "configure_logging",
    # Secrets
    "SecretCipher",
    # System configuration
    "SystemConfig",
]
