"""Static provider metadata: descriptors and their configurable field schema."""
from typing import Any, Dict, FrozenSet, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from stagecore.providers.enums import CapabilityTag, FieldKind


class FieldConstraints(BaseModel):
    """Constraints applied to a field value during resolution."""

    min: Optional[float] = None
    max: Optional[float] = None
    step: Optional[float] = Field(default=None, gt=0)
    allowed_values: Optional[List[Any]] = None

    model_config = ConfigDict(frozen=True)

    @model_validator(mode="after")
    def min_must_not_exceed_max(self) -> "FieldConstraints":
        if self.min is not None and self.max is not None and self.min > self.max:
            raise ValueError("min must be less than or equal to max")
        return self

    def clamp(self, value: float) -> float:
        """Clamp a value to the [min, max] range."""
        if self.min is not None and value < self.min:
            return self.min
        if self.max is not None and value > self.max:
            return self.max
        return value


class FieldSpec(BaseModel):
    """A single configurable field of a provider."""

    key: str = Field(description="Key used in persisted configuration records")
    kind: FieldKind
    default: Any = Field(default=None, description="Default value, None if the field has no default")
    required: bool = Field(default=False, description="Whether an unresolved value makes the provider unusable")
    label: Optional[str] = None
    constraints: FieldConstraints = Field(default_factory=FieldConstraints)

    model_config = ConfigDict(frozen=True)

    @model_validator(mode="after")
    def enum_fields_need_allowed_values(self) -> "FieldSpec":
        if self.kind == FieldKind.ENUM and not self.constraints.allowed_values:
            raise ValueError(f"Enum field '{self.key}' must declare allowed_values")
        return self


class ProviderDescriptor(BaseModel):
    """Immutable description of a provider's identity, defaults and configurable fields."""

    id: str = Field(pattern=r"^[a-z0-9][a-z0-9_\-]*$")
    localized_name: Dict[str, str] = Field(min_length=1)
    description: Optional[str] = None
    capabilities: FrozenSet[CapabilityTag]
    default_options: Dict[str, Any] = Field(default_factory=dict)
    credential_fields: List[FieldSpec] = Field(default_factory=list)
    capability_fields: Dict[CapabilityTag, List[FieldSpec]] = Field(default_factory=dict)
    client: str = Field(description="Name of the client class used to build instances")

    model_config = ConfigDict(frozen=True)

    @field_validator("capabilities")
    @classmethod
    def at_least_one_capability(cls, v: FrozenSet[CapabilityTag]) -> FrozenSet[CapabilityTag]:
        if not v:
            raise ValueError("A provider must declare at least one capability")
        return v

    @model_validator(mode="after")
    def fields_match_capabilities(self) -> "ProviderDescriptor":
        undeclared = set(self.capability_fields) - set(self.capabilities)
        if undeclared:
            names = ", ".join(sorted(str(tag) for tag in undeclared))
            raise ValueError(f"Provider '{self.id}' has fields for undeclared capabilities: {names}")

        for specs in [self.credential_fields, *self.capability_fields.values()]:
            keys = [spec.key for spec in specs]
            duplicates = {key for key in keys if keys.count(key) > 1}
            if duplicates:
                raise ValueError(f"Provider '{self.id}' declares duplicate fields: {sorted(duplicates)}")
        return self

    def __str__(self) -> str:
        return f"Provider ({self.id})"

    @property
    def base_url(self) -> str:
        """Default endpoint of the provider, empty if none."""
        return self.default_options.get("base_url") or ""

    @property
    def field_schema(self) -> List[FieldSpec]:
        """All configurable fields in display order: credentials first, then per capability."""
        fields = list(self.credential_fields)
        for tag in sorted(self.capability_fields, key=lambda t: t.value):
            fields.extend(self.capability_fields[tag])
        return fields

    def display_name(self, locale: str = "en") -> str:
        """Localized provider name, falling back to English and then to the id."""
        return self.localized_name.get(locale) or self.localized_name.get("en") or self.id

    def supports(self, capability: CapabilityTag) -> bool:
        return capability in self.capabilities

    def fields_for(self, capability: CapabilityTag) -> List[FieldSpec]:
        """Fields configurable for a capability, empty if it declares none."""
        return list(self.capability_fields.get(capability, []))

    def required_credentials(self) -> List[str]:
        return [spec.key for spec in self.credential_fields if spec.required]
