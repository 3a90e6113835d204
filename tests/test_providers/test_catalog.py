"""Tests for provider descriptors and the ProviderCatalog."""
import pytest
import yaml
from pydantic import ValidationError

from stagecore.providers import (
    CapabilityTag,
    FieldConstraints,
    FieldKind,
    FieldSpec,
    ProviderCatalog,
    ProviderDescriptor,
    ProviderNotFoundError,
)


def make_descriptor(**overrides) -> ProviderDescriptor:
    data = {
        "id": "acme",
        "client": "openai",
        "localized_name": {"en": "Acme"},
        "capabilities": ["chat"],
    }
    data.update(overrides)
    return ProviderDescriptor.model_validate(data)


class TestDescriptor:
    """Validation and helpers of ProviderDescriptor."""

    def test_requires_a_capability(self):
        with pytest.raises(ValidationError):
            make_descriptor(capabilities=[])

    def test_rejects_fields_for_undeclared_capability(self):
        with pytest.raises(ValidationError, match="undeclared capabilities"):
            make_descriptor(capability_fields={"speech": [{"key": "voice", "kind": "text"}]})

    def test_rejects_duplicate_field_keys(self):
        fields = [{"key": "model", "kind": "text"}, {"key": "model", "kind": "text"}]
        with pytest.raises(ValidationError, match="duplicate"):
            make_descriptor(capability_fields={"chat": fields})

    def test_rejects_invalid_id(self):
        with pytest.raises(ValidationError):
            make_descriptor(id="Not A Valid Id")

    def test_enum_field_needs_allowed_values(self):
        with pytest.raises(ValidationError, match="allowed_values"):
            FieldSpec(key="voice", kind=FieldKind.ENUM)

    def test_constraints_min_above_max(self):
        with pytest.raises(ValidationError):
            FieldConstraints(min=2, max=1)

    def test_clamp(self):
        constraints = FieldConstraints(min=0.7, max=1.2)
        assert constraints.clamp(5.0) == 1.2
        assert constraints.clamp(0.1) == 0.7
        assert constraints.clamp(1.0) == 1.0

    def test_is_immutable(self, speech_descriptor):
        with pytest.raises(ValidationError):
            speech_descriptor.id = "other"

    def test_display_name_falls_back_to_english(self, speech_descriptor):
        assert speech_descriptor.display_name("ja") == "イレブンラボ"
        assert speech_descriptor.display_name("de") == "ElevenLabs"

    def test_field_schema_lists_credentials_first(self, chat_descriptor):
        keys = [spec.key for spec in chat_descriptor.field_schema]
        assert keys[:2] == ["api_key", "organization"]
        assert set(keys[2:]) == {"model", "temperature", "max_tokens"}

    def test_capability_helpers(self, speech_descriptor):
        assert speech_descriptor.supports(CapabilityTag.SPEECH)
        assert not speech_descriptor.supports(CapabilityTag.CHAT)
        assert speech_descriptor.fields_for(CapabilityTag.CHAT) == []
        assert speech_descriptor.required_credentials() == ["api_key"]
        assert speech_descriptor.base_url == "https://api.elevenlabs.io/v1/"


class TestCapabilityTag:
    def test_from_name(self):
        assert CapabilityTag.from_name("Speech") is CapabilityTag.SPEECH
        assert CapabilityTag.from_name(CapabilityTag.CHAT) is CapabilityTag.CHAT

    def test_from_name_unknown(self):
        with pytest.raises(ValueError, match="Valid capabilities"):
            CapabilityTag.from_name("transcription")


class TestProviderCatalog:
    """Registration and lookup of descriptors."""

    def test_lookup_is_case_insensitive(self, catalog):
        assert catalog.get_descriptor("OpenAI").id == "openai"
        assert "ElevenLabs" in catalog
        assert "nobody" not in catalog

    def test_unknown_provider(self, catalog):
        with pytest.raises(ProviderNotFoundError) as exc_info:
            catalog.get_descriptor("nobody")
        assert exc_info.value.provider_id == "nobody"

    def test_duplicate_registration(self, catalog, chat_descriptor):
        with pytest.raises(ValueError, match="already registered"):
            catalog.register_descriptor(chat_descriptor)

    def test_list_keeps_registration_order(self, catalog):
        assert [d.id for d in catalog.list_descriptors()] == ["openai", "elevenlabs"]
        assert len(catalog) == 2

    def test_list_by_capability(self, catalog):
        assert [d.id for d in catalog.list_descriptors("speech")] == ["elevenlabs"]
        assert [d.id for d in catalog.list_descriptors(CapabilityTag.MODELS)] == ["openai", "elevenlabs"]

    def test_from_yaml_skips_broken_files(self, tmp_path, caplog):
        good = {
            "id": "local",
            "client": "openai",
            "localized_name": {"en": "Local"},
            "capabilities": ["chat"],
            "default_options": {"base_url": "http://localhost:8080/v1"},
        }
        (tmp_path / "a_local.yaml").write_text(yaml.safe_dump(good))
        (tmp_path / "b_broken.yaml").write_text("id: broken\ncapabilities: []\n")
        (tmp_path / "c_invalid.yaml").write_text(": : not yaml [")

        catalog = ProviderCatalog.from_yaml([tmp_path])

        assert [d.id for d in catalog.list_descriptors()] == ["local"]
        assert "Failed to load provider descriptor" in caplog.text

    def test_create_default_adds_extra_paths(self, tmp_path):
        extra = tmp_path / "echo.yaml"
        extra.write_text(
            yaml.safe_dump(
                {
                    "id": "echo",
                    "client": "openai",
                    "localized_name": {"en": "Echo"},
                    "capabilities": ["chat"],
                }
            )
        )
        catalog = ProviderCatalog.create_default([extra])
        assert "openai" in catalog
        assert catalog.list_descriptors()[-1].id == "echo"
