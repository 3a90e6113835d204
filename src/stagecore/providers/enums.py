"""Common enums for provider functionality."""
from enum import Enum
from typing import Union


class CapabilityTag(str, Enum):
    """Named functions a provider may support."""

    CHAT = "chat"
    MODELS = "models"
    SPEECH = "speech"

    @classmethod
    def from_name(cls, name: Union[str, "CapabilityTag"]) -> "CapabilityTag":
        """Convert a capability name to a CapabilityTag.

        Raises:
            ValueError: If the name is not a known capability
        """
        if isinstance(name, cls):
            return name
        try:
            return cls(str(name).strip().lower())
        except ValueError:
            valid = ", ".join(tag.value for tag in cls)
            raise ValueError(f"Unknown capability '{name}'. Valid capabilities are: {valid}") from None

    def __str__(self) -> str:
        return self.value


class FieldKind(str, Enum):
    """Kinds of configurable provider fields."""

    SECRET = "secret"
    URL = "url"
    NUMBER = "number"
    BOOLEAN = "boolean"
    ENUM = "enum"
    TEXT = "text"

    def __str__(self) -> str:
        return self.value
