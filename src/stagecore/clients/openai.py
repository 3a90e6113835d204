"""Client for OpenAI and OpenAI-compatible APIs."""
import logging
from typing import Any, AsyncIterator, Dict, List, Optional

import httpx
from openai import AsyncOpenAI

from stagecore.clients.base import BaseProviderClient
from stagecore.providers.descriptors import ProviderDescriptor
from stagecore.providers.models import EffectiveConfig
from stagecore.providers.responses import ModelInfo, SpeechResult

logger = logging.getLogger(__name__)

SPEECH_MEDIA_TYPES = {
    "mp3": "audio/mpeg",
    "opus": "audio/ogg",
    "aac": "audio/aac",
    "flac": "audio/flac",
    "wav": "audio/wav",
    "pcm": "audio/pcm",
}


class OpenAIClient(BaseProviderClient):
    """OpenAI-compatible implementation of the provider client."""

    def __init__(self, descriptor: ProviderDescriptor, config: EffectiveConfig):
        super().__init__(descriptor, config)
        timeout_config = httpx.Timeout(
            connect=self.connect_timeout,
            read=self.request_timeout,
            write=self.request_timeout,
            pool=self.connect_timeout,
        )
        self.client = AsyncOpenAI(
            api_key=self.api_key,
            base_url=config.base_url or None,
            organization=config.credential("organization"),
            timeout=timeout_config,
        )

    async def aclose(self) -> None:
        await self.client.close()
        await super().aclose()

    async def stream_text(
        self, messages: List[Dict[str, Any]], model: Optional[str] = None, **options: Any
    ) -> AsyncIterator[str]:
        """Stream a chat completion, yielding text deltas."""
        logger.debug(f"Streaming chat completion from {self.provider_id} with model {model}")
        stream = await self.client.chat.completions.create(
            model=model,
            messages=messages,
            stream=True,
            **options,
        )
        try:
            async for chunk in stream:
                if not chunk.choices:
                    continue
                delta = chunk.choices[0].delta.content
                if delta:
                    yield delta
        finally:
            await stream.close()

    async def list_models(self) -> List[ModelInfo]:
        models = []
        async for model in self.client.models.list():
            models.append(ModelInfo(id=model.id, owned_by=getattr(model, "owned_by", None)))
        return models

    async def generate_speech(
        self,
        text: str,
        model: Optional[str] = None,
        voice: Optional[str] = None,
        response_format: str = "mp3",
        **options: Any,
    ) -> SpeechResult:
        response = await self.client.audio.speech.create(
            model=model,
            voice=voice,
            input=text,
            response_format=response_format,
            **options,
        )
        return SpeechResult(
            provider_id=self.provider_id,
            audio=response.content,
            media_type=SPEECH_MEDIA_TYPES.get(response_format, "application/octet-stream"),
        )
