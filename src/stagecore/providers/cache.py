"""Lazily built, fingerprint-keyed provider client instances."""
import asyncio
import logging
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from stagecore.clients.base import BaseProviderClient
from stagecore.clients.factory import create_client
from stagecore.providers.catalog import ProviderCatalog
from stagecore.providers.descriptors import ProviderDescriptor
from stagecore.providers.errors import ProviderNotConfiguredError
from stagecore.providers.models import EffectiveConfig
from stagecore.providers.resolver import fingerprint, resolve
from stagecore.providers.store import ConfigStore

logger = logging.getLogger(__name__)

ClientFactory = Callable[[ProviderDescriptor, EffectiveConfig], BaseProviderClient]


@dataclass
class CachedInstance:
    """A live client together with the configuration it was built from."""

    instance: BaseProviderClient
    config: EffectiveConfig
    fingerprint: str
    stale: bool = False


class InstanceCache:
    """Holds at most one live client per provider id.

    A cached client is reused while the fingerprint of the provider's effective
    configuration is unchanged and no invalidation was received for it. Otherwise the old
    client is closed and a new one is built. Construction is single-flight per provider
    id: concurrent callers on a cold cache share one construction.
    """

    def __init__(self, catalog: ProviderCatalog, store: ConfigStore, client_factory: ClientFactory = create_client):
        self._catalog = catalog
        self._store = store
        self._client_factory = client_factory
        self._entries: Dict[str, CachedInstance] = {}
        self._locks: Dict[str, asyncio.Lock] = {}
        store.subscribe(self.invalidate)

    def _lock_for(self, provider_id: str) -> asyncio.Lock:
        lock = self._locks.get(provider_id)
        if lock is None:
            lock = self._locks[provider_id] = asyncio.Lock()
        return lock

    def get_effective_config(self, provider_id: str) -> EffectiveConfig:
        """Resolve the current effective configuration of a provider."""
        descriptor = self._catalog.get_descriptor(provider_id)
        return resolve(descriptor, self._store.get(descriptor.id))

    def invalidate(self, provider_id: str) -> None:
        """Mark the cached client of a provider as stale so the next lookup rebuilds it."""
        entry = self._entries.get(str(provider_id).strip().lower())
        if entry is not None:
            entry.stale = True
            logger.debug(f"Invalidated cached client for provider {provider_id}")

    def peek(self, provider_id: str) -> Optional[BaseProviderClient]:
        """Currently cached client of a provider, without building one."""
        entry = self._entries.get(str(provider_id).strip().lower())
        return entry.instance if entry is not None else None

    async def checkout(self, provider_id: str) -> CachedInstance:
        """Get the live client of a provider with the configuration it was built from.

        Raises:
            ProviderNotFoundError: If the provider is not in the catalog
            ProviderNotConfiguredError: If required credentials are missing
        """
        descriptor = self._catalog.get_descriptor(provider_id)
        key = descriptor.id

        async with self._lock_for(key):
            effective = resolve(descriptor, self._store.get(key))
            if not effective.is_configured:
                entry = self._entries.pop(key, None)
                if entry is not None:
                    logger.debug(f"Dropping client for provider {key}: no longer configured")
                    await self._release(key, entry.instance)
                raise ProviderNotConfiguredError(key, effective.missing_fields)

            digest = fingerprint(effective)
            entry = self._entries.get(key)
            if entry is not None and not entry.stale and entry.fingerprint == digest:
                return entry

            if entry is not None:
                del self._entries[key]
                await self._release(key, entry.instance)

            logger.debug(f"Building client for provider {key}")
            instance = self._client_factory(descriptor, effective)
            try:
                await instance.initialize()
            except asyncio.CancelledError:
                await self._release(key, instance)
                raise
            except Exception as e:
                logger.error(f"Failed to initialize client for provider {key}: {str(e)}", exc_info=True)
                await self._release(key, instance)
                raise

            entry = CachedInstance(instance=instance, config=effective, fingerprint=digest)
            self._entries[key] = entry
            return entry

    async def get_instance(self, provider_id: str) -> BaseProviderClient:
        """Get the live client of a provider, building it if needed."""
        entry = await self.checkout(provider_id)
        return entry.instance

    async def _release(self, provider_id: str, instance: BaseProviderClient) -> None:
        try:
            await instance.aclose()
        except Exception as e:
            logger.warning(f"Error closing client for provider {provider_id}: {str(e)}", exc_info=True)

    async def aclose(self) -> None:
        """Close every cached client."""
        entries, self._entries = self._entries, {}
        for provider_id, entry in entries.items():
            await self._release(provider_id, entry.instance)
