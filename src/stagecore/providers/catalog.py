"""Catalog of provider descriptors."""
import logging
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Union

import yaml
from pydantic import ValidationError

from stagecore.providers.descriptors import ProviderDescriptor
from stagecore.providers.enums import CapabilityTag
from stagecore.providers.errors import ProviderNotFoundError

logger = logging.getLogger(__name__)

DEFAULT_LIBRARY_PATH = Path(__file__).parent.parent / "default_library"


class ProviderCatalog:
    """Registry of provider descriptors, in registration order."""

    def __init__(self, descriptors: Optional[Iterable[ProviderDescriptor]] = None):
        self._descriptors: Dict[str, ProviderDescriptor] = {}
        for descriptor in descriptors or []:
            self.register_descriptor(descriptor)

    def register_descriptor(self, descriptor: ProviderDescriptor) -> None:
        """Register a provider descriptor.

        Raises:
            ValueError: If a descriptor with the same id is already registered
        """
        if descriptor.id in self._descriptors:
            raise ValueError(f"Provider {descriptor.id} is already registered")
        self._descriptors[descriptor.id] = descriptor
        logger.debug(f"Registered provider {descriptor.id} with capabilities {sorted(map(str, descriptor.capabilities))}")

    def get_descriptor(self, provider_id: str) -> ProviderDescriptor:
        """Get a descriptor by provider id.

        Raises:
            ProviderNotFoundError: If no provider with that id is registered
        """
        descriptor = self._descriptors.get(str(provider_id).strip().lower())
        if descriptor is None:
            raise ProviderNotFoundError(provider_id)
        return descriptor

    def list_descriptors(self, capability: Union[CapabilityTag, str, None] = None) -> List[ProviderDescriptor]:
        """List registered descriptors, optionally only those supporting a capability."""
        if capability is None:
            return list(self._descriptors.values())
        tag = CapabilityTag.from_name(capability)
        return [descriptor for descriptor in self._descriptors.values() if descriptor.supports(tag)]

    def __contains__(self, provider_id: object) -> bool:
        return isinstance(provider_id, str) and provider_id.strip().lower() in self._descriptors

    def __len__(self) -> int:
        return len(self._descriptors)

    @staticmethod
    def load_descriptor(path: Union[str, Path]) -> ProviderDescriptor:
        """Load a single descriptor from a YAML file."""
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
        return ProviderDescriptor.model_validate(data)

    @classmethod
    def from_yaml(cls, paths: Iterable[Union[str, Path]]) -> "ProviderCatalog":
        """Create a catalog from descriptor files and directories of descriptor files.

        Files that cannot be parsed are logged and skipped.
        """
        catalog = cls()
        for entry in paths:
            entry = Path(entry).expanduser()
            files = sorted(entry.glob("*.yaml")) if entry.is_dir() else [entry]
            for config_file in files:
                try:
                    descriptor = cls.load_descriptor(config_file)
                    catalog.register_descriptor(descriptor)
                except (OSError, yaml.YAMLError, ValidationError, ValueError) as e:
                    logger.warning(f"Failed to load provider descriptor from {config_file}: {str(e)}")
        return catalog

    @classmethod
    def create_default(cls, extra_paths: Iterable[Union[str, Path]] = ()) -> "ProviderCatalog":
        """Create a catalog with the bundled descriptors plus any extra descriptor files.

        Raises:
            RuntimeError: If no descriptor could be loaded
        """
        catalog = cls.from_yaml([DEFAULT_LIBRARY_PATH, *extra_paths])
        if not len(catalog):
            raise RuntimeError(f"No provider descriptors found in {DEFAULT_LIBRARY_PATH}")
        return catalog
