"""Resolution of effective provider configuration.

An effective configuration is computed from two inputs only: the provider's
descriptor and its persisted record. For every field the first applicable source wins:

1. the persisted value, if present and acceptable for the field's kind;
2. the descriptor default;
3. UNSET.

Numbers outside their [min, max] range are clamped rather than rejected, the same way a
slider would pin them. Numbers whose step is a whole number resolve to ints.
"""
import hashlib
import json
import logging
import math
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

from stagecore.providers.descriptors import FieldSpec, ProviderDescriptor
from stagecore.providers.enums import CapabilityTag, FieldKind
from stagecore.providers.models import UNSET, EffectiveConfig, PersistedProviderConfig

logger = logging.getLogger(__name__)

_TRUE_STRINGS = {"true", "yes", "on", "1"}
_FALSE_STRINGS = {"false", "no", "off", "0"}


def is_valid_url(value: Any) -> bool:
    """Check for an absolute http(s) URL with a host."""
    if not isinstance(value, str) or not value.strip():
        return False
    result = urlparse(value.strip())
    return result.scheme in ("http", "https") and bool(result.netloc)


def coerce_value(spec: FieldSpec, raw: Any) -> Any:
    """Convert a raw value to the field's kind, or UNSET if it is not acceptable."""
    if raw is None or raw is UNSET:
        return UNSET

    match spec.kind:
        case FieldKind.NUMBER:
            if isinstance(raw, bool):
                return UNSET
            try:
                value = float(raw)
            except (TypeError, ValueError):
                return UNSET
            if math.isnan(value) or math.isinf(value):
                return UNSET
            value = spec.constraints.clamp(value)
            step = spec.constraints.step
            if step is not None and float(step).is_integer():
                return int(round(value))
            return value
        case FieldKind.BOOLEAN:
            if isinstance(raw, bool):
                return raw
            if isinstance(raw, str):
                lowered = raw.strip().lower()
                if lowered in _TRUE_STRINGS:
                    return True
                if lowered in _FALSE_STRINGS:
                    return False
            return UNSET
        case FieldKind.ENUM:
            allowed = spec.constraints.allowed_values or []
            return raw if raw in allowed else UNSET
        case FieldKind.URL:
            return raw.strip() if is_valid_url(raw) else UNSET
        case FieldKind.SECRET | FieldKind.TEXT:
            if isinstance(raw, str) and raw.strip():
                return raw.strip()
            return UNSET
        case _:
            return UNSET


def resolve_field(spec: FieldSpec, raw: Any) -> Any:
    """Resolve one field from its persisted value and the descriptor default."""
    value = coerce_value(spec, raw)
    if value is not UNSET:
        return value
    if raw is not None:
        logger.debug(f"Ignoring persisted value {raw!r} for field '{spec.key}' ({spec.kind})")
    return coerce_value(spec, spec.default)


def resolve_base_url(descriptor: ProviderDescriptor, persisted: PersistedProviderConfig) -> str:
    if is_valid_url(persisted.base_url):
        return persisted.base_url.strip()
    if persisted.base_url:
        logger.debug(f"Ignoring invalid base_url override for provider '{descriptor.id}'")
    return descriptor.base_url


def resolve_capability_settings(
    descriptor: ProviderDescriptor, persisted: PersistedProviderConfig
) -> Dict[CapabilityTag, Dict[str, Any]]:
    """Resolve settings field by field, so a partial record keeps sibling defaults."""
    settings: Dict[CapabilityTag, Dict[str, Any]] = {}
    for tag in sorted(descriptor.capabilities, key=lambda t: t.value):
        stored = persisted.capability_settings.get(tag.value) or {}
        settings[tag] = {spec.key: resolve_field(spec, stored.get(spec.key)) for spec in descriptor.fields_for(tag)}
    return settings


def resolve(descriptor: ProviderDescriptor, persisted: Optional[PersistedProviderConfig]) -> EffectiveConfig:
    """Merge a descriptor's defaults with a persisted record.

    Args:
        descriptor: Provider descriptor
        persisted: Stored record, or None if the provider was never configured

    Returns:
        EffectiveConfig with every schema field holding a value or UNSET
    """
    if persisted is None:
        persisted = PersistedProviderConfig(provider_id=descriptor.id)

    credentials: Dict[str, Any] = {}
    missing: List[str] = []
    for spec in descriptor.credential_fields:
        raw = persisted.api_key if spec.key == "api_key" else persisted.extra.get(spec.key)
        value = resolve_field(spec, raw)
        if value is UNSET and spec.required:
            missing.append(spec.key)
        credentials[spec.key] = value

    api_key = credentials.pop("api_key", UNSET)

    return EffectiveConfig(
        provider_id=descriptor.id,
        api_key=api_key,
        base_url=resolve_base_url(descriptor, persisted),
        credentials=credentials,
        capability_settings=resolve_capability_settings(descriptor, persisted),
        missing_fields=tuple(missing),
    )


def fingerprint(effective: EffectiveConfig) -> str:
    """Deterministic digest of an effective configuration."""
    payload = json.dumps(effective.canonical(), sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()
