"""Tests for the ConfigurationManager class."""
import json
from pathlib import Path
from typing import Any, Dict

import pytest
import yaml

from stagecore.clients import factory
from stagecore.config.manager import ConfigurationManager
from stagecore.config.system import SystemConfig
from stagecore.providers import (
    CapabilityTag,
    DatabaseConfigStore,
    FileSystemConfigStore,
    InMemoryConfigStore,
    ProviderNotConfiguredError,
    ProviderNotFoundError,
    TextResult,
)


@pytest.fixture
def sample_system_config(tmp_path) -> Dict[str, Any]:
    """Sample system configuration for testing."""
    return {
        "logging": {"level": "DEBUG"},
        "storage": {
            "backend": "file",
            "path": str(tmp_path / "state"),
            "encrypt_secrets": True,
            "key_file": str(tmp_path / "state" / "credentials.key"),
        },
        "default_locale": "ja",
    }


@pytest.fixture
def fake_clients(monkeypatch, fake_client_class):
    """Make the 'fake' client name used by the test descriptors resolvable."""
    monkeypatch.setitem(factory.CLIENT_CLASSES, "fake", fake_client_class)


@pytest.fixture
def config_manager(catalog, store, fake_clients) -> ConfigurationManager:
    """Create a ConfigurationManager over the test catalog and an in-memory store."""
    system_config = SystemConfig.model_validate({"storage": {"backend": "memory"}})
    return ConfigurationManager.from_configs(system_config, catalog=catalog, store=store)


class TestConstruction:
    def test_from_yaml_files(self, tmp_path, sample_system_config):
        config_path = tmp_path / "stagecore.yaml"
        config_path.write_text(yaml.safe_dump(sample_system_config))

        manager = ConfigurationManager.from_yaml_files(config_path)

        assert manager.system_config.default_locale == "ja"
        assert isinstance(manager.store, FileSystemConfigStore)
        assert "elevenlabs" in manager.catalog
        assert (tmp_path / "state" / "credentials.key").exists()

    def test_file_backend_encrypts_keys(self, tmp_path, sample_system_config):
        manager = ConfigurationManager(system_config=SystemConfig.model_validate(sample_system_config))
        manager.update_config("openai", {"api_key": "sk-secret"})

        raw = json.loads((tmp_path / "state" / "providers" / "openai.json").read_text())
        assert raw["api_key"] != "sk-secret"
        assert manager.get_config("openai").api_key == "sk-secret"

    def test_memory_backend(self):
        manager = ConfigurationManager(system_config=SystemConfig.model_validate({"storage": {"backend": "memory"}}))
        assert isinstance(manager.store, InMemoryConfigStore)

    def test_database_backend(self, tmp_path):
        system_config = SystemConfig.model_validate(
            {
                "storage": {
                    "backend": "database",
                    "url": f"sqlite:///{tmp_path / 'providers.db'}",
                    "encrypt_secrets": False,
                }
            }
        )
        manager = ConfigurationManager(system_config=system_config)
        assert isinstance(manager.store, DatabaseConfigStore)

    def test_database_backend_requires_url(self):
        system_config = SystemConfig.model_validate({"storage": {"backend": "database", "encrypt_secrets": False}})
        with pytest.raises(ValueError, match="storage.url"):
            ConfigurationManager(system_config=system_config)

    def test_extra_catalog_paths(self, tmp_path):
        descriptor = {
            "id": "local-llm",
            "client": "openai",
            "localized_name": {"en": "Local LLM"},
            "capabilities": ["chat", "models"],
            "default_options": {"base_url": "http://localhost:11434/v1/"},
        }
        (tmp_path / "local.yaml").write_text(yaml.safe_dump(descriptor))
        system_config = SystemConfig.model_validate(
            {"storage": {"backend": "memory"}, "catalog_paths": [str(tmp_path)]}
        )

        manager = ConfigurationManager(system_config=system_config)

        # No required credentials, so it is usable right away
        assert manager.is_configured("local-llm")
        assert manager.get_effective_config("local-llm").base_url == "http://localhost:11434/v1/"


class TestConfigurationManager:
    """Read surface, mutations and invocation through the manager."""

    def test_list_and_get(self, config_manager):
        assert [d.id for d in config_manager.list_descriptors()] == ["openai", "elevenlabs"]
        assert [d.id for d in config_manager.list_descriptors("speech")] == ["elevenlabs"]
        assert config_manager.get_descriptor("OPENAI").id == "openai"
        assert config_manager.get_config("openai") is None

    def test_mutations_require_known_provider(self, config_manager):
        with pytest.raises(ProviderNotFoundError):
            config_manager.update_config("nobody", {"api_key": "k"})
        with pytest.raises(ProviderNotFoundError):
            config_manager.reset_config("nobody")

    def test_update_and_reset(self, config_manager):
        assert not config_manager.is_configured("elevenlabs")

        config_manager.update_config(
            "elevenlabs", {"api_key": "xi-1", "capability_settings": {"speech": {"stability": 0.9}}}
        )
        effective = config_manager.get_effective_config("elevenlabs")
        assert effective.is_configured
        assert effective.settings_for(CapabilityTag.SPEECH)["stability"] == 0.9

        config_manager.reset_config("elevenlabs")
        effective = config_manager.get_effective_config("elevenlabs")
        assert effective.settings_for(CapabilityTag.SPEECH)["stability"] == 0.5
        assert effective.is_configured

    def test_delete_config(self, config_manager):
        config_manager.update_config("openai", {"api_key": "sk-1"})
        assert config_manager.delete_config("openai")
        assert not config_manager.is_configured("openai")

    @pytest.mark.asyncio
    async def test_update_rebuilds_instance(self, config_manager):
        config_manager.update_config("openai", {"api_key": "sk-1"})
        first = await config_manager.get_instance("openai")

        config_manager.update_config("openai", {"capability_settings": {"chat": {"temperature": 0.1}}})
        second = await config_manager.get_instance("openai")

        assert second is not first
        assert first.is_closed
        await config_manager.aclose()
        assert second.is_closed

    @pytest.mark.asyncio
    async def test_invoke_and_stream(self, config_manager):
        with pytest.raises(ProviderNotConfiguredError):
            await config_manager.invoke("openai", "chat", {"content": "hi"})

        config_manager.update_config("openai", {"api_key": "sk-1"})
        result = await config_manager.invoke("openai", "chat", {"content": "hi"})
        deltas = [delta async for delta in config_manager.stream("openai", {"content": "hi"})]

        assert isinstance(result, TextResult)
        assert "".join(deltas) == result.text

    @pytest.mark.asyncio
    async def test_speech_file(self, config_manager):
        config_manager.update_config("elevenlabs", {"api_key": "xi-1"})

        async with config_manager.speech_file("elevenlabs", {"text": "Hello"}) as path:
            assert Path(path).read_bytes() == b"ID3fake-audio"

        assert not path.exists()
