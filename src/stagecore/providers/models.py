"""Configuration records: what is persisted and what is resolved from it."""
from typing import Any, Dict, Mapping, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from stagecore.providers.enums import CapabilityTag


class _Unset:
    """Marker for a field with neither a valid persisted value nor a default."""

    _instance = None

    def __new__(cls) -> "_Unset":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNSET"

    def __bool__(self) -> bool:
        return False

    def __copy__(self) -> "_Unset":
        return self

    def __deepcopy__(self, memo: Dict[int, Any]) -> "_Unset":
        return self

    def __reduce__(self) -> str:
        return "UNSET"


UNSET = _Unset()

# Stable stand-in for UNSET in serialized form
UNSET_MARKER = "<unset>"


class PersistedProviderConfig(BaseModel):
    """Partially filled configuration record for one provider as stored.

    Every field is optional; anything missing is filled in by the resolver. Keys the
    current schema does not know are ignored so that older and newer records both load.
    """

    provider_id: str
    api_key: Optional[str] = None
    base_url: Optional[str] = None
    capability_settings: Dict[str, Dict[str, Any]] = Field(default_factory=dict)
    extra: Dict[str, Any] = Field(default_factory=dict, description="Credential fields other than api_key")

    model_config = ConfigDict(extra="ignore")

    @classmethod
    def from_record(cls, provider_id: str, record: Mapping[str, Any]) -> "PersistedProviderConfig":
        """Build from a stored record, dropping sections with an unexpected shape."""
        data = dict(record)
        data["provider_id"] = provider_id
        for section in ("capability_settings", "extra"):
            if not isinstance(data.get(section), dict):
                data.pop(section, None)
        if isinstance(data.get("capability_settings"), dict):
            data["capability_settings"] = {
                str(cap): fields for cap, fields in data["capability_settings"].items() if isinstance(fields, dict)
            }
        for scalar in ("api_key", "base_url"):
            if data.get(scalar) is not None and not isinstance(data[scalar], str):
                data.pop(scalar)
        return cls.model_validate(data)

    def to_record(self) -> Dict[str, Any]:
        """Serialize to the stored layout, omitting empty values."""
        record: Dict[str, Any] = {}
        if self.api_key is not None:
            record["api_key"] = self.api_key
        if self.base_url is not None:
            record["base_url"] = self.base_url
        if self.capability_settings:
            record["capability_settings"] = {cap: dict(fields) for cap, fields in self.capability_settings.items()}
        if self.extra:
            record["extra"] = dict(self.extra)
        return record


class EffectiveConfig(BaseModel):
    """Fully resolved configuration of a provider.

    Derived from a descriptor and its persisted record; never stored. Values that could
    not be resolved hold UNSET.
    """

    provider_id: str
    api_key: Any = UNSET
    base_url: str = ""
    credentials: Dict[str, Any] = Field(default_factory=dict)
    capability_settings: Dict[CapabilityTag, Dict[str, Any]] = Field(default_factory=dict)
    missing_fields: Tuple[str, ...] = ()

    model_config = ConfigDict(frozen=True)

    @property
    def is_configured(self) -> bool:
        """Whether every required credential field resolved to a value."""
        return not self.missing_fields

    def settings_for(self, capability: CapabilityTag) -> Dict[str, Any]:
        """Copy of the resolved settings of a capability."""
        return dict(self.capability_settings.get(capability, {}))

    def credential(self, key: str, default: Any = None) -> Any:
        value = self.credentials.get(key, UNSET)
        return default if value is UNSET else value

    def canonical(self) -> Dict[str, Any]:
        """Plain JSON-compatible form with UNSET replaced by a fixed marker."""

        def encode(value: Any) -> Any:
            return UNSET_MARKER if value is UNSET else value

        return {
            "provider_id": self.provider_id,
            "api_key": encode(self.api_key),
            "base_url": self.base_url,
            "credentials": {key: encode(value) for key, value in self.credentials.items()},
            "capability_settings": {
                tag.value: {key: encode(value) for key, value in fields.items()}
                for tag, fields in self.capability_settings.items()
            },
            "missing_fields": list(self.missing_fields),
        }
