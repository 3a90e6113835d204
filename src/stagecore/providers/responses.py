"""Result payloads returned by capability invocations."""
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

# File suffixes for audio formats returned by speech providers
AUDIO_SUFFIXES: Dict[str, str] = {
    "audio/mpeg": ".mp3",
    "audio/wav": ".wav",
    "audio/ogg": ".ogg",
    "audio/opus": ".opus",
    "audio/aac": ".aac",
    "audio/flac": ".flac",
    "audio/pcm": ".pcm",
    "audio/basic": ".ulaw",
}


class ModelInfo(BaseModel):
    """A model offered by a provider."""

    id: str
    display_name: Optional[str] = None
    owned_by: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(frozen=True)

    def __str__(self) -> str:
        return self.display_name or self.id


class TextResult(BaseModel):
    """Complete text produced by a chat capability."""

    provider_id: str
    text: str
    model: Optional[str] = None

    model_config = ConfigDict(frozen=True)


class SpeechResult(BaseModel):
    """Synthesized audio produced by a speech capability."""

    provider_id: str
    audio: bytes = Field(repr=False)
    media_type: str = "audio/mpeg"

    model_config = ConfigDict(frozen=True)

    @property
    def suffix(self) -> str:
        """File suffix matching the audio format."""
        return AUDIO_SUFFIXES.get(self.media_type, ".bin")
