"""stagecore - configure, persist and invoke AI service providers through one interface."""

# providers must be loaded before the manager pulls in the clients
from stagecore.providers import (
    CapabilityInvoker,
    CapabilityTag,
    ConfigStore,
    EffectiveConfig,
    InstanceCache,
    InvalidRequestError,
    PersistedProviderConfig,
    ProviderCallError,
    ProviderCatalog,
    ProviderDescriptor,
    ProviderNotConfiguredError,
    ProviderNotFoundError,
    ProviderRegistryError,
    UnsupportedCapabilityError,
)
from stagecore.config.manager import ConfigurationManager
from stagecore.config.system import SystemConfig

__version__ = "0.1.0"

__all__ = [
    "ConfigurationManager",
    "SystemConfig",
    "CapabilityInvoker",
    "CapabilityTag",
    "ConfigStore",
    "EffectiveConfig",
    "InstanceCache",
    "PersistedProviderConfig",
    "ProviderCatalog",
    "ProviderDescriptor",
    "ProviderRegistryError",
    "ProviderNotFoundError",
    "ProviderNotConfiguredError",
    "UnsupportedCapabilityError",
    "ProviderCallError",
    "InvalidRequestError",
]
