"""Provider registry and configuration resolution."""
from .cache import CachedInstance, InstanceCache
from .catalog import ProviderCatalog
from .descriptors import FieldConstraints, FieldSpec, ProviderDescriptor
from .enums import CapabilityTag, FieldKind
from .errors import (
    InvalidRequestError,
    ProviderCallError,
    ProviderNotConfiguredError,
    ProviderNotFoundError,
    ProviderRegistryError,
    UnsupportedCapabilityError,
)
from .invoker import CapabilityInvoker
from .models import UNSET, EffectiveConfig, PersistedProviderConfig
from .resolver import fingerprint, resolve
from .responses import ModelInfo, SpeechResult, TextResult
from .store import ConfigStore, DatabaseConfigStore, FileSystemConfigStore, InMemoryConfigStore

__all__ = [
    # Catalog
    "CapabilityTag",
    "FieldKind",
    "FieldConstraints",
    "FieldSpec",
    "ProviderDescriptor",
    "ProviderCatalog",
    # Configuration
    "UNSET",
    "PersistedProviderConfig",
    "EffectiveConfig",
    "ConfigStore",
    "InMemoryConfigStore",
    "FileSystemConfigStore",
    "DatabaseConfigStore",
    "resolve",
    "fingerprint",
    # Instances and invocation
    "CachedInstance",
    "InstanceCache",
    "CapabilityInvoker",
    "ModelInfo",
    "SpeechResult",
    "TextResult",
    # Errors
    "ProviderRegistryError",
    "ProviderNotFoundError",
    "ProviderNotConfiguredError",
    "UnsupportedCapabilityError",
    "ProviderCallError",
    "InvalidRequestError",
]
