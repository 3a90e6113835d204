"""Exceptions raised by the provider registry."""
from typing import Iterable, Optional, Tuple


class ProviderRegistryError(Exception):
    """Base class for all provider registry errors."""

    def __init__(self, provider_id: str, message: str):
        self.provider_id = provider_id
        super().__init__(message)


class ProviderNotFoundError(ProviderRegistryError):
    """Raised when an unregistered provider id is requested."""

    def __init__(self, provider_id: str):
        super().__init__(provider_id, f"Unknown provider: {provider_id}")


class ProviderNotConfiguredError(ProviderRegistryError):
    """Raised when required credential fields of a provider have no value."""

    def __init__(self, provider_id: str, missing_fields: Iterable[str]):
        self.missing_fields: Tuple[str, ...] = tuple(missing_fields)
        fields = ", ".join(self.missing_fields)
        super().__init__(provider_id, f"Provider '{provider_id}' is not configured: missing {fields}")


class UnsupportedCapabilityError(ProviderRegistryError):
    """Raised when a provider is asked for a capability it does not declare."""

    def __init__(self, provider_id: str, capability: str):
        self.capability = capability
        super().__init__(provider_id, f"Provider '{provider_id}' does not support capability '{capability}'")


class InvalidRequestError(ProviderRegistryError, ValueError):
    """Raised when the request arguments lack the input a capability needs."""

    def __init__(self, provider_id: str, capability: str, message: str):
        self.capability = capability
        super().__init__(provider_id, f"Invalid '{capability}' request for provider '{provider_id}': {message}")


class ProviderCallError(ProviderRegistryError):
    """Raised when the downstream provider call fails. The original exception is kept as `cause`."""

    def __init__(self, provider_id: str, capability: str, cause: BaseException, detail: Optional[str] = None):
        self.capability = capability
        self.cause = cause
        message = f"Provider '{provider_id}' failed during '{capability}': {detail or cause}"
        super().__init__(provider_id, message)
