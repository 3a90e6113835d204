"""Factory for creating provider clients."""
import logging
from typing import Dict, Type

from stagecore.clients.anthropic import AnthropicClient
from stagecore.clients.base import BaseProviderClient
from stagecore.clients.elevenlabs import ElevenLabsClient
from stagecore.clients.openai import OpenAIClient
from stagecore.providers.descriptors import ProviderDescriptor
from stagecore.providers.models import EffectiveConfig

logger = logging.getLogger(__name__)

CLIENT_CLASSES: Dict[str, Type[BaseProviderClient]] = {
    "openai": OpenAIClient,
    "anthropic": AnthropicClient,
    "elevenlabs": ElevenLabsClient,
}


def register_client(name: str, client_class: Type[BaseProviderClient]) -> None:
    """Make a client class available to descriptors under `name`.

    Raises:
        ValueError: If the class is not a BaseProviderClient subclass
    """
    if not (isinstance(client_class, type) and issubclass(client_class, BaseProviderClient)):
        raise ValueError(f"Client class for '{name}' must be a subclass of BaseProviderClient")
    CLIENT_CLASSES[name.lower()] = client_class


def create_client(descriptor: ProviderDescriptor, config: EffectiveConfig) -> BaseProviderClient:
    """Create a client for a provider based on the client named by its descriptor.

    Args:
        descriptor: Provider descriptor
        config: Effective configuration the client is bound to

    Returns:
        BaseProviderClient: An uninitialized client

    Raises:
        ValueError: If the descriptor names an unknown client
    """
    client_class = CLIENT_CLASSES.get(descriptor.client.lower())
    if client_class is None:
        raise ValueError(f"Unsupported client '{descriptor.client}' for provider {descriptor.id}")

    logger.debug(f"Creating {client_class.__name__} for provider {descriptor.id}")
    return client_class(descriptor, config)
