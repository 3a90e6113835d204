"""Client for the Anthropic Messages API."""
import logging
from typing import Any, AsyncIterator, Dict, List, Optional, Tuple

import httpx
from anthropic import AsyncAnthropic

from stagecore.clients.base import BaseProviderClient
from stagecore.providers.descriptors import ProviderDescriptor
from stagecore.providers.models import EffectiveConfig
from stagecore.providers.responses import ModelInfo

logger = logging.getLogger(__name__)

DEFAULT_MAX_TOKENS = 1024


def split_system_messages(messages: List[Dict[str, Any]]) -> Tuple[Optional[str], List[Dict[str, Any]]]:
    """Anthropic takes the system prompt separately from the conversation."""
    system_parts = [str(m["content"]) for m in messages if m.get("role") == "system"]
    conversation = [m for m in messages if m.get("role") != "system"]
    return ("\n\n".join(system_parts) if system_parts else None), conversation


class AnthropicClient(BaseProviderClient):
    """Anthropic implementation of the provider client."""

    def __init__(self, descriptor: ProviderDescriptor, config: EffectiveConfig):
        super().__init__(descriptor, config)
        self.client = AsyncAnthropic(
            api_key=self.api_key,
            base_url=config.base_url or None,
            timeout=httpx.Timeout(self.request_timeout, connect=self.connect_timeout),
        )

    async def aclose(self) -> None:
        await self.client.close()
        await super().aclose()

    async def stream_text(
        self,
        messages: List[Dict[str, Any]],
        model: Optional[str] = None,
        max_tokens: int = DEFAULT_MAX_TOKENS,
        **options: Any,
    ) -> AsyncIterator[str]:
        system, conversation = split_system_messages(messages)
        if system:
            options["system"] = system

        logger.debug(f"Streaming message from {self.provider_id} with model {model}")
        async with self.client.messages.stream(
            model=model,
            max_tokens=max_tokens,
            messages=conversation,
            **options,
        ) as stream:
            async for text in stream.text_stream:
                yield text

    async def list_models(self) -> List[ModelInfo]:
        models = []
        async for model in self.client.models.list():
            models.append(ModelInfo(id=model.id, display_name=getattr(model, "display_name", None)))
        return models
