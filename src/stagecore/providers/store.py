"""Persisted provider configuration.

All writes to provider configuration go through a ConfigStore. Records are kept per
provider id in the layout::

    {
        "api_key": "...",
        "base_url": "...",
        "capability_settings": {"speech": {"stability": 0.8}},
        "extra": {"organization": "..."}
    }

Every successful update, reset or delete notifies the subscribed listeners with the
provider id, after the write has completed.
"""
import copy
import json
import logging
import os
import re
import tempfile
import threading
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional, Union

from sqlalchemy import JSON, Column, DateTime, String, create_engine, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base

from stagecore.config.security import SecretCipher
from stagecore.providers.models import PersistedProviderConfig

logger = logging.getLogger(__name__)

ConfigListener = Callable[[str], None]

PROVIDER_ID_PATTERN = re.compile(r"^[a-z0-9][a-z0-9_\-]*$")
SCALAR_KEYS = ("api_key", "base_url")
SECTION_KEYS = ("capability_settings", "extra")
ENCRYPTED_MARKER = "encrypted"


def normalize_provider_id(provider_id: str) -> str:
    """Lower-case and validate a provider id used as a storage key.

    Raises:
        ValueError: If the id contains characters that are not allowed in a key
    """
    key = str(provider_id).strip().lower()
    if not PROVIDER_ID_PATTERN.match(key):
        raise ValueError(f"Invalid provider id: {provider_id!r}")
    return key


def _section_key(key: Any) -> str:
    return key.value if isinstance(key, Enum) else str(key)


def _check_sections(partial: Mapping[str, Any]) -> None:
    for key in SECTION_KEYS:
        section = partial.get(key)
        if section is not None and not isinstance(section, Mapping):
            raise ValueError(f"'{key}' must be a mapping, got {type(section).__name__}")
    for capability, fields in (partial.get("capability_settings") or {}).items():
        if fields is not None and not isinstance(fields, Mapping):
            raise ValueError(
                f"Settings for capability '{_section_key(capability)}' must be a mapping, got {type(fields).__name__}"
            )


def merge_record(current: Mapping[str, Any], partial: Mapping[str, Any]) -> Dict[str, Any]:
    """Merge a partial update into a stored record.

    Top-level keys not present in `partial` are kept. Sections are merged per field, and
    a None value removes the key it is given for.

    Raises:
        ValueError: If `partial` contains keys outside the record layout, or a section
            that is not a mapping
    """
    unknown = set(partial) - set(SCALAR_KEYS) - set(SECTION_KEYS)
    if unknown:
        raise ValueError(f"Unknown configuration keys: {sorted(unknown)}")
    _check_sections(partial)

    merged = copy.deepcopy(dict(current))
    for key in SCALAR_KEYS:
        if key not in partial:
            continue
        if partial[key] is None:
            merged.pop(key, None)
        else:
            merged[key] = partial[key]

    if "extra" in partial:
        if partial["extra"] is None:
            merged.pop("extra", None)
        else:
            if not isinstance(merged.get("extra"), dict):
                merged["extra"] = {}
            extra = merged["extra"]
            for field, value in partial["extra"].items():
                if value is None:
                    extra.pop(field, None)
                else:
                    extra[field] = value

    if "capability_settings" in partial:
        if partial["capability_settings"] is None:
            merged.pop("capability_settings", None)
        else:
            if not isinstance(merged.get("capability_settings"), dict):
                merged["capability_settings"] = {}
            settings = merged["capability_settings"]
            for capability, fields in partial["capability_settings"].items():
                cap_key = _section_key(capability)
                if fields is None:
                    settings.pop(cap_key, None)
                    continue
                if not isinstance(settings.get(cap_key), dict):
                    settings[cap_key] = {}
                section = settings[cap_key]
                for field, value in fields.items():
                    if value is None:
                        section.pop(field, None)
                    else:
                        section[field] = value
                if not section:
                    settings.pop(cap_key)

    for key in SECTION_KEYS:
        if key in merged and not merged[key]:
            merged.pop(key)
    return merged


class ConfigStore:
    """Base class defining the interface for provider configuration storage.

    Subclasses implement the raw record primitives `_read`, `_write`, `_remove` and
    `list_configured`. Merging, locking, secret encryption and change notification are
    handled here.
    """

    def __init__(self, cipher: Optional[SecretCipher] = None):
        self._cipher = cipher
        self._locks: Dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()
        self._listeners: List[ConfigListener] = []

    def _read(self, provider_id: str) -> Optional[Dict[str, Any]]:
        """Read a raw record from storage."""
        raise NotImplementedError

    def _write(self, provider_id: str, record: Dict[str, Any]) -> None:
        """Durably write a raw record to storage."""
        raise NotImplementedError

    def _remove(self, provider_id: str) -> bool:
        """Remove a raw record from storage."""
        raise NotImplementedError

    def list_configured(self) -> List[str]:
        """List provider ids that have a stored record."""
        raise NotImplementedError

    def _lock_for(self, provider_id: str) -> threading.Lock:
        with self._locks_guard:
            return self._locks.setdefault(provider_id, threading.Lock())

    def subscribe(self, listener: ConfigListener) -> None:
        """Register a callback invoked with the provider id after every mutation."""
        if listener not in self._listeners:
            self._listeners.append(listener)

    def unsubscribe(self, listener: ConfigListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _notify(self, provider_id: str) -> None:
        for listener in list(self._listeners):
            listener(provider_id)

    def _seal(self, record: Dict[str, Any]) -> Dict[str, Any]:
        """Encrypt the api key of a record before it is written."""
        if not self._cipher or "api_key" not in record:
            return record
        sealed = dict(record)
        sealed["api_key"] = self._cipher.encrypt(str(record["api_key"]))
        sealed[ENCRYPTED_MARKER] = ["api_key"]
        return sealed

    def _unseal(self, provider_id: str, record: Dict[str, Any]) -> Dict[str, Any]:
        """Decrypt a record read from storage. Keys that cannot be decrypted are dropped."""
        opened = dict(record)
        encrypted = opened.pop(ENCRYPTED_MARKER, None) or []
        if "api_key" not in encrypted or "api_key" not in opened:
            return opened

        if not self._cipher:
            logger.warning(f"Stored api_key for provider '{provider_id}' is encrypted but no key is configured")
            opened.pop("api_key")
            return opened
        try:
            opened["api_key"] = self._cipher.decrypt(str(opened["api_key"]))
        except ValueError as e:
            logger.warning(f"Dropping api_key for provider '{provider_id}': {e}")
            opened.pop("api_key")
        return opened

    def _load(self, provider_id: str) -> Optional[Dict[str, Any]]:
        record = self._read(provider_id)
        if record is None:
            return None
        return self._unseal(provider_id, record)

    def get(self, provider_id: str) -> Optional[PersistedProviderConfig]:
        """Get the persisted record of a provider, None if it was never configured."""
        key = normalize_provider_id(provider_id)
        with self._lock_for(key):
            record = self._load(key)
        if record is None:
            return None
        return PersistedProviderConfig.from_record(key, record)

    def update(
        self, provider_id: str, partial: Union[Mapping[str, Any], PersistedProviderConfig]
    ) -> PersistedProviderConfig:
        """Merge a partial record into the stored one, creating it if absent.

        Args:
            provider_id: Provider id
            partial: Keys to change; unspecified keys keep their stored value

        Returns:
            The record as stored after the update
        """
        key = normalize_provider_id(provider_id)
        if isinstance(partial, PersistedProviderConfig):
            partial = partial.to_record()

        with self._lock_for(key):
            current = self._load(key) or {}
            merged = merge_record(current, partial)
            self._write(key, self._seal(merged))
        logger.debug(f"Updated configuration for provider '{key}'")

        self._notify(key)
        return PersistedProviderConfig.from_record(key, merged)

    def reset(self, provider_id: str, include_credentials: bool = False) -> None:
        """Remove capability overrides so descriptor defaults apply again.

        Credentials and the endpoint override are kept unless `include_credentials` is set.
        """
        key = normalize_provider_id(provider_id)
        with self._lock_for(key):
            current = self._load(key)
            if current is not None:
                if include_credentials:
                    self._remove(key)
                else:
                    current.pop("capability_settings", None)
                    self._write(key, self._seal(current))
        logger.debug(f"Reset configuration for provider '{key}' (credentials: {include_credentials})")

        self._notify(key)

    def delete(self, provider_id: str) -> bool:
        """Remove the whole record of a provider."""
        key = normalize_provider_id(provider_id)
        with self._lock_for(key):
            removed = self._remove(key)
        self._notify(key)
        return removed


class InMemoryConfigStore(ConfigStore):
    """Process-local store, mainly for tests and ephemeral sessions."""

    def __init__(self, cipher: Optional[SecretCipher] = None):
        super().__init__(cipher=cipher)
        self._records: Dict[str, Dict[str, Any]] = {}

    def _read(self, provider_id: str) -> Optional[Dict[str, Any]]:
        record = self._records.get(provider_id)
        return copy.deepcopy(record) if record is not None else None

    def _write(self, provider_id: str, record: Dict[str, Any]) -> None:
        self._records[provider_id] = copy.deepcopy(record)

    def _remove(self, provider_id: str) -> bool:
        return self._records.pop(provider_id, None) is not None

    def list_configured(self) -> List[str]:
        return sorted(self._records)


class FileSystemConfigStore(ConfigStore):
    """File system implementation: one JSON file per provider under a namespace directory."""

    def __init__(self, base_path: Union[str, Path], namespace: str = "providers", cipher: Optional[SecretCipher] = None):
        super().__init__(cipher=cipher)
        self.base_path = Path(base_path).expanduser() / namespace
        self._ensure_storage_path()

    def _ensure_storage_path(self) -> None:
        """Create storage directory if it doesn't exist."""
        self.base_path.mkdir(parents=True, exist_ok=True)

    def _get_record_path(self, provider_id: str) -> Path:
        return self.base_path / f"{provider_id}.json"

    def _read(self, provider_id: str) -> Optional[Dict[str, Any]]:
        path = self._get_record_path(provider_id)
        if not path.exists():
            return None
        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            logger.error(f"Unreadable configuration file {path}: {e}")
            return None
        if not isinstance(data, dict):
            logger.error(f"Configuration file {path} does not contain an object")
            return None
        return data

    def _write(self, provider_id: str, record: Dict[str, Any]) -> None:
        path = self._get_record_path(provider_id)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{provider_id}.", suffix=".tmp", dir=self.base_path)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(record, f, indent=2, sort_keys=True)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def _remove(self, provider_id: str) -> bool:
        path = self._get_record_path(provider_id)
        if path.exists():
            path.unlink()
            return True
        return False

    def list_configured(self) -> List[str]:
        return sorted(path.stem for path in self.base_path.glob("*.json"))


Base = declarative_base()


class ProviderConfigRecord(Base):
    """SQLAlchemy model for storing provider configuration records."""

    __tablename__ = "provider_configs"

    provider_id = Column(String, primary_key=True)
    data = Column(JSON, nullable=False)
    updated_at = Column(DateTime, nullable=False)


class DatabaseConfigStore(ConfigStore):
    """Database implementation of the configuration store using SQLAlchemy."""

    def __init__(self, connection_string: str, cipher: Optional[SecretCipher] = None):
        """Initialize database storage.

        Args:
            connection_string: SQLAlchemy connection string (e.g., 'sqlite:///providers.db')
            cipher: Optional cipher used to encrypt api keys at rest
        """
        super().__init__(cipher=cipher)
        self.engine = create_engine(connection_string)
        Base.metadata.create_all(self.engine)

    def _read(self, provider_id: str) -> Optional[Dict[str, Any]]:
        try:
            with Session(self.engine) as session:
                row = session.get(ProviderConfigRecord, provider_id)
                if row is None:
                    return None
                return dict(row.data) if isinstance(row.data, dict) else None
        except SQLAlchemyError as e:
            logger.error(f"Error loading configuration for provider '{provider_id}': {e}")
            raise

    def _write(self, provider_id: str, record: Dict[str, Any]) -> None:
        try:
            with Session(self.engine) as session:
                session.merge(ProviderConfigRecord(provider_id=provider_id, data=record, updated_at=datetime.now()))
                session.commit()
        except SQLAlchemyError as e:
            logger.error(f"Error saving configuration for provider '{provider_id}': {e}")
            raise

    def _remove(self, provider_id: str) -> bool:
        try:
            with Session(self.engine) as session:
                row = session.get(ProviderConfigRecord, provider_id)
                if row is None:
                    return False
                session.delete(row)
                session.commit()
                return True
        except SQLAlchemyError as e:
            logger.error(f"Error deleting configuration for provider '{provider_id}': {e}")
            raise

    def list_configured(self) -> List[str]:
        with Session(self.engine) as session:
            return sorted(session.scalars(select(ProviderConfigRecord.provider_id)).all())
