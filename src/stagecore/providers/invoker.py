"""Capability invocation on cached provider clients."""
import logging
import os
import tempfile
from contextlib import aclosing, asynccontextmanager
from pathlib import Path
from typing import Any, AsyncIterator, Dict, List, Mapping, Optional, Tuple, Union

from stagecore.clients.base import BaseProviderClient
from stagecore.providers.cache import InstanceCache
from stagecore.providers.catalog import ProviderCatalog
from stagecore.providers.descriptors import ProviderDescriptor
from stagecore.providers.enums import CapabilityTag
from stagecore.providers.errors import (
    InvalidRequestError,
    ProviderCallError,
    ProviderRegistryError,
    UnsupportedCapabilityError,
)
from stagecore.providers.models import UNSET, EffectiveConfig
from stagecore.providers.responses import ModelInfo, SpeechResult, TextResult

logger = logging.getLogger(__name__)

InvocationResult = Union[TextResult, SpeechResult, List[ModelInfo]]


def merge_settings(
    config: EffectiveConfig, capability: CapabilityTag, overrides: Optional[Mapping[str, Any]] = None
) -> Dict[str, Any]:
    """Overlay request-scoped values on the resolved capability settings, field by field.

    Unset settings are dropped and None overrides are ignored.
    """
    params = {key: value for key, value in config.settings_for(capability).items() if value is not UNSET}
    for key, value in (overrides or {}).items():
        if value is not None and value is not UNSET:
            params[key] = value
    return params


def build_messages(params: Dict[str, Any]) -> List[Dict[str, Any]]:
    """Take the chat input out of the params as a message list.

    Accepts either `messages` or a single user `content` string.
    """
    messages = params.pop("messages", None)
    content = params.pop("content", None)
    if messages is None:
        if content is None:
            raise ValueError("Chat requires either 'messages' or 'content'")
        messages = [{"role": "user", "content": content}]
    return list(messages)


class CapabilityInvoker:
    """Performs capability calls on behalf of callers.

    Never changes stored configuration or the cache bookkeeping; every downstream
    failure is raised as ProviderCallError with the original exception attached.
    """

    def __init__(self, catalog: ProviderCatalog, cache: InstanceCache):
        self._catalog = catalog
        self._cache = cache

    def _check_capability(
        self, provider_id: str, capability: Union[CapabilityTag, str]
    ) -> Tuple[ProviderDescriptor, CapabilityTag]:
        descriptor = self._catalog.get_descriptor(provider_id)
        try:
            tag = CapabilityTag.from_name(capability)
        except ValueError:
            raise UnsupportedCapabilityError(descriptor.id, str(capability)) from None
        if not descriptor.supports(tag):
            raise UnsupportedCapabilityError(descriptor.id, tag.value)
        return descriptor, tag

    async def _prepare(
        self, provider_id: str, capability: Union[CapabilityTag, str], args: Optional[Mapping[str, Any]]
    ) -> Tuple[ProviderDescriptor, CapabilityTag, BaseProviderClient, Dict[str, Any]]:
        descriptor, tag = self._check_capability(provider_id, capability)
        try:
            entry = await self._cache.checkout(descriptor.id)
        except ProviderRegistryError:
            raise
        except Exception as e:
            logger.error(f"Could not build client for provider {descriptor.id}: {str(e)}")
            raise ProviderCallError(descriptor.id, tag.value, e, detail=f"client construction failed: {e}") from e
        return descriptor, tag, entry.instance, merge_settings(entry.config, tag, args)

    def _chat_input(self, descriptor: ProviderDescriptor, params: Dict[str, Any]) -> List[Dict[str, Any]]:
        try:
            return build_messages(params)
        except ValueError as e:
            raise InvalidRequestError(descriptor.id, CapabilityTag.CHAT.value, str(e)) from None

    async def invoke(
        self,
        provider_id: str,
        capability: Union[CapabilityTag, str],
        args: Optional[Mapping[str, Any]] = None,
    ) -> InvocationResult:
        """Invoke a capability of a provider.

        Args:
            provider_id: Provider id
            capability: Capability to invoke
            args: Request-scoped values; they override configured settings per field

        Returns:
            TextResult for chat, a list of ModelInfo for models, SpeechResult for speech

        Raises:
            ProviderNotFoundError: If the provider is not in the catalog
            UnsupportedCapabilityError: If the provider does not declare the capability
            ProviderNotConfiguredError: If required credentials are missing
            InvalidRequestError: If chat has no 'messages' or 'content', or speech has no 'text'
            ProviderCallError: If building the client or the downstream call fails
        """
        descriptor, tag, instance, params = await self._prepare(provider_id, capability, args)
        logger.debug(f"Invoking {tag} on provider {descriptor.id}")

        messages: List[Dict[str, Any]] = []
        text: Optional[str] = None
        if tag == CapabilityTag.CHAT:
            messages = self._chat_input(descriptor, params)
        elif tag == CapabilityTag.SPEECH:
            text = params.pop("text", None)
            if not text:
                raise InvalidRequestError(descriptor.id, tag.value, "speech requires 'text'")

        try:
            match tag:
                case CapabilityTag.CHAT:
                    async with aclosing(instance.stream_text(messages, **params)) as deltas:
                        chunks = [delta async for delta in deltas]
                    return TextResult(provider_id=descriptor.id, text="".join(chunks), model=params.get("model"))
                case CapabilityTag.MODELS:
                    return await instance.list_models()
                case CapabilityTag.SPEECH:
                    return await instance.generate_speech(text, **params)
        except Exception as e:
            logger.error(f"Provider {descriptor.id} failed during {tag}: {str(e)}")
            raise ProviderCallError(descriptor.id, tag.value, e) from e
        raise UnsupportedCapabilityError(descriptor.id, tag.value)

    async def stream(self, provider_id: str, args: Optional[Mapping[str, Any]] = None) -> AsyncIterator[str]:
        """Stream text deltas from the chat capability of a provider.

        Closing the iterator early also closes the provider's stream.
        """
        descriptor, tag, instance, params = await self._prepare(provider_id, CapabilityTag.CHAT, args)
        messages = self._chat_input(descriptor, params)
        try:
            async with aclosing(instance.stream_text(messages, **params)) as deltas:
                async for delta in deltas:
                    yield delta
        except Exception as e:
            logger.error(f"Provider {descriptor.id} failed while streaming: {str(e)}")
            raise ProviderCallError(descriptor.id, tag.value, e) from e

    @asynccontextmanager
    async def speech_file(self, provider_id: str, args: Optional[Mapping[str, Any]] = None) -> AsyncIterator[Path]:
        """Synthesize speech into a temporary file that exists only inside the context.

        The file is removed on every exit path, including errors and cancellation.
        """
        result = await self.invoke(provider_id, CapabilityTag.SPEECH, args)
        fd, name = tempfile.mkstemp(prefix=f"stagecore-{result.provider_id}-", suffix=result.suffix)
        path = Path(name)
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(result.audio)
            yield path
        finally:
            path.unlink(missing_ok=True)
            logger.debug(f"Released speech artifact {path}")
