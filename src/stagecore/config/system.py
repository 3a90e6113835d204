"""System-wide configuration models."""

import os
from pathlib import Path
from typing import List, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field

from stagecore.config.base import LoggingConfig, StorageConfig

ENV_PREFIX = "STAGECORE_"


class SystemConfig(BaseModel):
    """Root configuration: logging, storage of provider configuration, descriptor sources."""

    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    catalog_paths: List[str] = Field(
        default_factory=list, description="Extra descriptor files or directories loaded after the bundled ones"
    )
    default_locale: str = Field(default="en")

    model_config = ConfigDict(validate_assignment=True)

    @classmethod
    def from_yaml(cls, path: Union[str, Path]) -> "SystemConfig":
        """Create configuration from a YAML file."""
        with open(path) as f:
            data = yaml.safe_load(f) or {}
        return cls(**data)

    def to_yaml(self, path: Union[str, Path]) -> None:
        """Save configuration to a YAML file."""
        with open(path, "w") as f:
            yaml.dump(self.model_dump(), f, sort_keys=False)

    @classmethod
    def from_env(cls) -> "SystemConfig":
        """Create configuration from STAGECORE_* environment variables."""
        storage = StorageConfig(
            backend=os.getenv(f"{ENV_PREFIX}STORAGE_BACKEND", "file"),
            path=os.getenv(f"{ENV_PREFIX}STORAGE_PATH", "~/.stagecore"),
            url=os.getenv(f"{ENV_PREFIX}STORAGE_URL"),
            encrypt_secrets=os.getenv(f"{ENV_PREFIX}ENCRYPT_SECRETS", "true").lower() == "true",
            key_file=os.getenv(f"{ENV_PREFIX}KEY_FILE"),
        )
        logging_config = LoggingConfig(
            level=os.getenv(f"{ENV_PREFIX}LOG_LEVEL", "INFO"),
            file=os.getenv(f"{ENV_PREFIX}LOG_FILE"),
        )
        catalog_paths = [p for p in os.getenv(f"{ENV_PREFIX}CATALOG_PATHS", "").split(os.pathsep) if p]
        return cls(
            logging=logging_config,
            storage=storage,
            catalog_paths=catalog_paths,
            default_locale=os.getenv(f"{ENV_PREFIX}LOCALE", "en"),
        )
