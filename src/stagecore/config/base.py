"""Base configuration models for the application."""

import logging
import sys
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

DEFAULT_LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class StorageConfig(BaseModel):
    """Configuration for persisted provider configuration."""

    backend: Literal["memory", "file", "database"] = Field(default="file")
    path: str = Field(default="~/.stagecore", description="Root directory of the file backend")
    namespace: str = Field(default="providers", pattern=r"^[A-Za-z0-9_\-]+$")
    url: Optional[str] = Field(default=None, description="SQLAlchemy connection string of the database backend")
    encrypt_secrets: bool = Field(default=True)
    key_file: Optional[str] = Field(default=None, description="Encryption key file, defaults to ~/.stagecore/credentials.key")

    model_config = ConfigDict(validate_assignment=True)


class LoggingConfig(BaseModel):
    """Configuration for logging."""

    level: str = Field(default="INFO")
    file: Optional[str] = Field(default=None)
    format: str = Field(default=DEFAULT_LOG_FORMAT)

    model_config = ConfigDict(validate_assignment=True)


def configure_logging(config: LoggingConfig) -> None:
    """Install handlers on the package logger according to the logging configuration."""
    logger = logging.getLogger("stagecore")
    logger.setLevel(config.level.upper())

    for existing in list(logger.handlers):
        logger.removeHandler(existing)
        existing.close()

    formatter = logging.Formatter(config.format)
    handler: logging.Handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)
    logger.addHandler(handler)

    if config.file:
        file_handler = logging.FileHandler(config.file)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)
