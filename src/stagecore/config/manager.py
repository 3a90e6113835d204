"""Configuration manager wiring the catalog, store, instance cache and invoker together."""

import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncIterator, List, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr

from stagecore.clients.base import BaseProviderClient
from stagecore.config.security import SecretCipher
from stagecore.config.system import SystemConfig
from stagecore.providers.cache import InstanceCache
from stagecore.providers.catalog import ProviderCatalog
from stagecore.providers.descriptors import ProviderDescriptor
from stagecore.providers.enums import CapabilityTag
from stagecore.providers.invoker import CapabilityInvoker, InvocationResult
from stagecore.providers.models import EffectiveConfig, PersistedProviderConfig
from stagecore.providers.store import (
    ConfigStore,
    DatabaseConfigStore,
    FileSystemConfigStore,
    InMemoryConfigStore,
)

logger = logging.getLogger(__name__)


class ConfigurationManager(BaseModel):
    """Single entry point for presentation layers and callers.

    Reads go through `list_descriptors`, `get_descriptor` and `get_config`; every write
    goes through the configuration store, which invalidates the affected cached client.
    """

    system_config: SystemConfig = Field(default_factory=SystemConfig)
    catalog: Optional[ProviderCatalog] = Field(default=None, description="Provider descriptors")
    store: Optional[ConfigStore] = Field(default=None, description="Persisted provider configuration")

    model_config = ConfigDict(arbitrary_types_allowed=True)

    _cache: InstanceCache = PrivateAttr()
    _invoker: CapabilityInvoker = PrivateAttr()

    def model_post_init(self, __context: Any) -> None:
        """Build the catalog and store from the system configuration unless they were given."""
        logger.debug("Starting ConfigurationManager post-initialization")

        if self.catalog is None:
            self.catalog = ProviderCatalog.create_default(self.system_config.catalog_paths)
        if self.store is None:
            self.store = self._create_store()

        self._cache = InstanceCache(self.catalog, self.store)
        self._invoker = CapabilityInvoker(self.catalog, self._cache)
        logger.debug(f"ConfigurationManager ready with {len(self.catalog)} providers")

    def _create_cipher(self) -> Optional[SecretCipher]:
        storage = self.system_config.storage
        return SecretCipher.from_key_file(storage.key_file) if storage.encrypt_secrets else None

    def _create_store(self) -> ConfigStore:
        storage = self.system_config.storage

        match storage.backend:
            case "memory":
                return InMemoryConfigStore()
            case "file":
                return FileSystemConfigStore(storage.path, namespace=storage.namespace, cipher=self._create_cipher())
            case "database":
                if not storage.url:
                    raise ValueError("storage.url is required for the database backend")
                return DatabaseConfigStore(storage.url, cipher=self._create_cipher())
            case _:
                raise ValueError(f"Unsupported storage backend: {storage.backend}")

    @classmethod
    def from_yaml_files(cls, system_config_path: Union[str, Path]) -> "ConfigurationManager":
        """Create configuration manager from a YAML file."""
        return cls(system_config=SystemConfig.from_yaml(system_config_path))

    @classmethod
    def from_env(cls) -> "ConfigurationManager":
        """Create configuration manager from environment variables."""
        return cls(system_config=SystemConfig.from_env())

    @classmethod
    def from_configs(
        cls,
        system_config: SystemConfig,
        catalog: Optional[ProviderCatalog] = None,
        store: Optional[ConfigStore] = None,
    ) -> "ConfigurationManager":
        """Create configuration manager from config objects."""
        return cls(system_config=system_config, catalog=catalog, store=store)

    @property
    def cache(self) -> InstanceCache:
        return self._cache

    @property
    def invoker(self) -> CapabilityInvoker:
        return self._invoker

    # Read surface

    def list_descriptors(self, capability: Union[CapabilityTag, str, None] = None) -> List[ProviderDescriptor]:
        return self.catalog.list_descriptors(capability)

    def get_descriptor(self, provider_id: str) -> ProviderDescriptor:
        return self.catalog.get_descriptor(provider_id)

    def get_config(self, provider_id: str) -> Optional[PersistedProviderConfig]:
        """Persisted record of a provider, None if it was never configured."""
        descriptor = self.catalog.get_descriptor(provider_id)
        return self.store.get(descriptor.id)

    def get_effective_config(self, provider_id: str) -> EffectiveConfig:
        return self._cache.get_effective_config(provider_id)

    def is_configured(self, provider_id: str) -> bool:
        return self.get_effective_config(provider_id).is_configured

    # Mutations

    def update_config(self, provider_id: str, partial: Mapping[str, Any]) -> PersistedProviderConfig:
        """Merge a partial configuration into the stored record of a known provider."""
        descriptor = self.catalog.get_descriptor(provider_id)
        return self.store.update(descriptor.id, partial)

    def reset_config(self, provider_id: str, include_credentials: bool = False) -> None:
        descriptor = self.catalog.get_descriptor(provider_id)
        self.store.reset(descriptor.id, include_credentials=include_credentials)

    def delete_config(self, provider_id: str) -> bool:
        descriptor = self.catalog.get_descriptor(provider_id)
        return self.store.delete(descriptor.id)

    # Instances and invocation

    async def get_instance(self, provider_id: str) -> BaseProviderClient:
        return await self._cache.get_instance(provider_id)

    async def invoke(
        self,
        provider_id: str,
        capability: Union[CapabilityTag, str],
        args: Optional[Mapping[str, Any]] = None,
    ) -> InvocationResult:
        return await self._invoker.invoke(provider_id, capability, args)

    async def stream(self, provider_id: str, args: Optional[Mapping[str, Any]] = None) -> AsyncIterator[str]:
        async for delta in self._invoker.stream(provider_id, args):
            yield delta

    @asynccontextmanager
    async def speech_file(self, provider_id: str, args: Optional[Mapping[str, Any]] = None) -> AsyncIterator[Path]:
        async with self._invoker.speech_file(provider_id, args) as path:
            yield path

    async def aclose(self) -> None:
        """Close every live provider client."""
        await self._cache.aclose()
