"""Base class for provider clients."""
import logging
from abc import ABC
from typing import Any, AsyncIterator, Dict, List

from stagecore.providers.descriptors import ProviderDescriptor
from stagecore.providers.models import UNSET, EffectiveConfig
from stagecore.providers.responses import ModelInfo, SpeechResult

logger = logging.getLogger(__name__)

DEFAULT_REQUEST_TIMEOUT = 30.0
DEFAULT_CONNECT_TIMEOUT = 10.0


class BaseProviderClient(ABC):
    """Uniform entry points to a third-party provider.

    A client is built from a descriptor and an effective configuration and stays bound
    to that configuration for its whole life; a configuration change means a new client.
    Subclasses override the entry points of the capabilities they implement:

    - `stream_text` for the chat capability (async generator of text deltas)
    - `list_models` for the models capability
    - `generate_speech` for the speech capability

    Entry points receive the capability settings already merged with request overrides,
    with unset values removed.
    """

    def __init__(self, descriptor: ProviderDescriptor, config: EffectiveConfig):
        self.descriptor = descriptor
        self.config = config
        self.is_initialized = False
        self.is_closed = False

    @property
    def provider_id(self) -> str:
        return self.descriptor.id

    @property
    def request_timeout(self) -> float:
        return float(self.descriptor.default_options.get("request_timeout", DEFAULT_REQUEST_TIMEOUT))

    @property
    def connect_timeout(self) -> float:
        return float(self.descriptor.default_options.get("connect_timeout", DEFAULT_CONNECT_TIMEOUT))

    @property
    def api_key(self) -> str:
        return "" if self.config.api_key is UNSET else self.config.api_key

    async def initialize(self) -> None:
        """Initialize async components of the client."""
        self.is_initialized = True

    async def aclose(self) -> None:
        """Release network resources held by the client."""
        self.is_closed = True

    def stream_text(self, messages: List[Dict[str, Any]], **options: Any) -> AsyncIterator[str]:
        raise NotImplementedError(f"{type(self).__name__} does not implement text streaming")

    async def list_models(self) -> List[ModelInfo]:
        raise NotImplementedError(f"{type(self).__name__} does not implement model listing")

    async def generate_speech(self, text: str, **options: Any) -> SpeechResult:
        raise NotImplementedError(f"{type(self).__name__} does not implement speech generation")

    def __repr__(self) -> str:
        return f"{type(self).__name__}(provider={self.provider_id!r})"
