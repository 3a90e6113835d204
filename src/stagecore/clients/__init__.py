"""Provider clients."""
from .base import BaseProviderClient
from .factory import create_client, register_client

__all__ = ["BaseProviderClient", "create_client", "register_client"]
