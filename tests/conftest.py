"""Root test configuration and common fixtures."""
import asyncio
import logging
from typing import Any, Dict, List, Optional

import pytest

from stagecore.clients.base import BaseProviderClient
from stagecore.providers import (
    CapabilityInvoker,
    InMemoryConfigStore,
    InstanceCache,
    ModelInfo,
    ProviderCatalog,
    ProviderDescriptor,
    SpeechResult,
)

# Configure logging for tests
logging.basicConfig(level=logging.DEBUG, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")


def pytest_addoption(parser):
    """Add custom command line options to pytest."""
    parser.addoption(
        "--use-llm-tokens",
        action="store_true",
        default=False,
        help="run tests that call real provider APIs",
    )


class FakeClient(BaseProviderClient):
    """In-process client that records every call instead of talking to a provider."""

    def __init__(self, descriptor, config):
        super().__init__(descriptor, config)
        self.calls: List[Dict[str, Any]] = []
        self.fail_with: Optional[Exception] = None

    async def initialize(self) -> None:
        # Yield once so concurrent lookups overlap with construction
        await asyncio.sleep(0)
        await super().initialize()

    async def stream_text(self, messages, **options):
        self.calls.append({"capability": "chat", "messages": messages, "options": options})
        if self.fail_with:
            raise self.fail_with
        for part in ("Hello", ", ", "world"):
            yield part

    async def list_models(self):
        self.calls.append({"capability": "models"})
        if self.fail_with:
            raise self.fail_with
        return [ModelInfo(id="fake-small"), ModelInfo(id="fake-large", display_name="Fake Large")]

    async def generate_speech(self, text, **options):
        self.calls.append({"capability": "speech", "text": text, "options": options})
        if self.fail_with:
            raise self.fail_with
        return SpeechResult(provider_id=self.provider_id, audio=b"ID3fake-audio", media_type="audio/mpeg")


class FakeClientFactory:
    """Client factory that keeps every client it built."""

    def __init__(self):
        self.built: List[FakeClient] = []

    def __call__(self, descriptor, config) -> FakeClient:
        client = FakeClient(descriptor, config)
        self.built.append(client)
        return client


@pytest.fixture
def fake_client_class():
    return FakeClient


@pytest.fixture
def speech_descriptor() -> ProviderDescriptor:
    """Speech provider shaped like ElevenLabs."""
    return ProviderDescriptor.model_validate(
        {
            "id": "elevenlabs",
            "client": "fake",
            "localized_name": {"en": "ElevenLabs", "ja": "イレブンラボ"},
            "capabilities": ["speech", "models"],
            "default_options": {"base_url": "https://api.elevenlabs.io/v1/"},
            "credential_fields": [{"key": "api_key", "kind": "secret", "required": True}],
            "capability_fields": {
                "speech": [
                    {"key": "voice_id", "kind": "text", "default": "voice-1"},
                    {
                        "key": "model_id",
                        "kind": "enum",
                        "default": "eleven_multilingual_v2",
                        "constraints": {"allowed_values": ["eleven_multilingual_v2", "eleven_turbo_v2_5"]},
                    },
                    {
                        "key": "stability",
                        "kind": "number",
                        "default": 0.5,
                        "constraints": {"min": 0, "max": 1, "step": 0.01},
                    },
                    {
                        "key": "speed",
                        "kind": "number",
                        "default": 1.0,
                        "constraints": {"min": 0.7, "max": 1.2, "step": 0.01},
                    },
                    {"key": "use_speaker_boost", "kind": "boolean", "default": True},
                ]
            },
        }
    )


@pytest.fixture
def chat_descriptor() -> ProviderDescriptor:
    """Chat provider shaped like OpenAI, with an optional organization credential."""
    return ProviderDescriptor.model_validate(
        {
            "id": "openai",
            "client": "fake",
            "localized_name": {"en": "OpenAI"},
            "capabilities": ["chat", "models"],
            "default_options": {"base_url": "https://api.openai.com/v1/"},
            "credential_fields": [
                {"key": "api_key", "kind": "secret", "required": True},
                {"key": "organization", "kind": "text"},
            ],
            "capability_fields": {
                "chat": [
                    {"key": "model", "kind": "text", "default": "gpt-4o-mini"},
                    {
                        "key": "temperature",
                        "kind": "number",
                        "default": 0.7,
                        "constraints": {"min": 0, "max": 2, "step": 0.1},
                    },
                    {
                        "key": "max_tokens",
                        "kind": "number",
                        "default": 1024,
                        "constraints": {"min": 1, "max": 4096, "step": 1},
                    },
                ]
            },
        }
    )


@pytest.fixture
def catalog(speech_descriptor, chat_descriptor) -> ProviderCatalog:
    return ProviderCatalog([chat_descriptor, speech_descriptor])


@pytest.fixture
def store() -> InMemoryConfigStore:
    return InMemoryConfigStore()


@pytest.fixture
def client_factory() -> FakeClientFactory:
    return FakeClientFactory()


@pytest.fixture
def cache(catalog, store, client_factory) -> InstanceCache:
    return InstanceCache(catalog, store, client_factory=client_factory)


@pytest.fixture
def invoker(catalog, cache) -> CapabilityInvoker:
    return CapabilityInvoker(catalog, cache)


@pytest.fixture
def configured_store(store) -> InMemoryConfigStore:
    """Store with api keys for both test providers."""
    store.update("openai", {"api_key": "sk-test-openai"})
    store.update("elevenlabs", {"api_key": "xi-test-key"})
    return store
