"""Client for the ElevenLabs text-to-speech API."""
import logging
from typing import Any, List, Optional

import httpx

from stagecore.clients.base import BaseProviderClient
from stagecore.providers.descriptors import ProviderDescriptor
from stagecore.providers.models import EffectiveConfig
from stagecore.providers.responses import ModelInfo, SpeechResult

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.elevenlabs.io/v1/"
VOICE_SETTING_KEYS = ("stability", "similarity_boost", "style", "use_speaker_boost", "speed")


def output_media_type(output_format: str) -> str:
    """Media type of an ElevenLabs output format such as 'mp3_44100_128'."""
    codec = output_format.split("_", 1)[0]
    return {
        "mp3": "audio/mpeg",
        "pcm": "audio/pcm",
        "ulaw": "audio/basic",
        "opus": "audio/opus",
    }.get(codec, "application/octet-stream")


class ElevenLabsClient(BaseProviderClient):
    """ElevenLabs implementation of the provider client over plain HTTP."""

    def __init__(self, descriptor: ProviderDescriptor, config: EffectiveConfig):
        super().__init__(descriptor, config)
        base_url = config.base_url or DEFAULT_BASE_URL
        self.http = httpx.AsyncClient(
            base_url=base_url if base_url.endswith("/") else f"{base_url}/",
            headers={"xi-api-key": self.api_key},
            timeout=httpx.Timeout(self.request_timeout, connect=self.connect_timeout),
        )

    async def aclose(self) -> None:
        await self.http.aclose()
        await super().aclose()

    async def list_models(self) -> List[ModelInfo]:
        response = await self.http.get("models")
        response.raise_for_status()
        return [
            ModelInfo(
                id=item["model_id"],
                display_name=item.get("name"),
                metadata={"languages": [lang.get("language_id") for lang in item.get("languages", [])]},
            )
            for item in response.json()
        ]

    async def generate_speech(
        self,
        text: str,
        voice_id: Optional[str] = None,
        model_id: Optional[str] = None,
        output_format: str = "mp3_44100_128",
        **options: Any,
    ) -> SpeechResult:
        """Synthesize speech for a voice.

        Voice settings (stability, similarity_boost, style, use_speaker_boost, speed) are
        sent as the request's voice_settings object; other options are ignored.
        """
        if not voice_id:
            raise ValueError("voice_id is required for ElevenLabs speech generation")

        voice_settings = {key: options[key] for key in VOICE_SETTING_KEYS if key in options}
        payload: dict = {"text": text, "voice_settings": voice_settings}
        if model_id:
            payload["model_id"] = model_id

        logger.debug(f"Requesting speech from {self.provider_id} for voice {voice_id}")
        response = await self.http.post(
            f"text-to-speech/{voice_id}",
            params={"output_format": output_format},
            json=payload,
        )
        response.raise_for_status()
        return SpeechResult(
            provider_id=self.provider_id,
            audio=response.content,
            media_type=output_media_type(output_format),
        )
