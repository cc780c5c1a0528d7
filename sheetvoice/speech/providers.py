"""
Speech synthesis providers.

Two implementations share one contract, ``synthesize(text, voice)``:

- OpenAISpeechProvider: the primary path, backed by the OpenAI speech API.
  Any failure is raised as ProviderError.
- SilentAudioProvider: the deterministic placeholder path. Always succeeds
  and renders silence sized from the text length.

FallbackSynthesisProvider wraps the two: it tries the primary (when one was
injected) and switches to the placeholder on any error it raises. The choice of
primary is made once at startup by create_provider().
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from ..config import ConfigManager
from ..errors import ProviderError
from ..models import SynthesisMethod
from .utils import placeholder_duration, render_silence_wav

logger = logging.getLogger(__name__)

VOICES: List[Dict[str, str]] = [
    {"id": "alloy", "name": "Alloy", "gender": "Neutral"},
    {"id": "echo", "name": "Echo", "gender": "Male"},
    {"id": "fable", "name": "Fable", "gender": "Neutral"},
    {"id": "onyx", "name": "Onyx", "gender": "Male"},
    {"id": "nova", "name": "Nova", "gender": "Female"},
    {"id": "shimmer", "name": "Shimmer", "gender": "Female"},
]

NOT_CONFIGURED_NOTE = "Placeholder audio created - speech service not configured"


@dataclass(frozen=True)
class SynthesisResult:
    """Audio produced for one (text, voice) pair."""

    audio_bytes: bytes
    method: SynthesisMethod
    content_type: str
    file_extension: str
    note: Optional[str] = None


class SynthesisProvider(ABC):
    """Contract shared by every synthesis path."""

    @abstractmethod
    def synthesize(self, text: str, voice: str) -> SynthesisResult:
        """
        Convert text to audio.

        Raises:
            ProviderError: If the audio could not be produced
        """


class OpenAISpeechProvider(SynthesisProvider):
    """
    Primary synthesis through the OpenAI speech endpoint.

    The client is created lazily on first use so that constructing the
    provider never performs network or credential work.
    """

    def __init__(self, api_key: str, model: str = "tts-1", client: Optional[Any] = None):
        """
        Initialize the provider.

        Args:
            api_key: OpenAI API authentication key
            model: Speech model (default: "tts-1")
            client: Pre-built OpenAI client, mainly for tests
        """
        self.api_key = api_key
        self.model = model
        self.client = client

    def _load_client(self):
        if self.client is None:
            from openai import OpenAI

            self.client = OpenAI(api_key=self.api_key)
            logger.info(f"OpenAI speech client loaded (model: {self.model})")
        return self.client

    def synthesize(self, text: str, voice: str) -> SynthesisResult:
        try:
            client = self._load_client()
            response = client.audio.speech.create(
                model=self.model,
                voice=voice,
                input=text,
                response_format="mp3",
            )
            audio_bytes = response.content
        except Exception as e:
            raise ProviderError(f"{type(e).__name__}: {e}") from e

        if not audio_bytes:
            raise ProviderError("No audio stream received from speech service")

        return SynthesisResult(
            audio_bytes=audio_bytes,
            method=SynthesisMethod.PRIMARY,
            content_type="audio/mpeg",
            file_extension="mp3",
        )


class SilentAudioProvider(SynthesisProvider):
    """Deterministic placeholder: ceil(len(text) / 10) seconds of WAV silence."""

    def __init__(self, note: str = NOT_CONFIGURED_NOTE):
        self.note = note

    def synthesize(self, text: str, voice: str) -> SynthesisResult:
        return SynthesisResult(
            audio_bytes=render_silence_wav(placeholder_duration(text)),
            method=SynthesisMethod.FALLBACK,
            content_type="audio/wav",
            file_extension="wav",
            note=self.note,
        )


class FallbackSynthesisProvider(SynthesisProvider):
    """
    Try the primary provider, fall back to the placeholder on any failure.

    The fallback applies per call whether or not a primary is configured;
    ``is_primary_available`` is informational only.
    """

    def __init__(self, primary: Optional[SynthesisProvider], fallback: Optional[SynthesisProvider] = None):
        self.primary = primary
        self.fallback = fallback or SilentAudioProvider()

    @property
    def is_primary_available(self) -> bool:
        return self.primary is not None

    def synthesize(self, text: str, voice: str) -> SynthesisResult:
        if self.primary is None:
            return self._fallback(text, voice, NOT_CONFIGURED_NOTE)

        try:
            return self.primary.synthesize(text, voice)
        except Exception as e:
            logger.warning(f"Primary synthesis failed, falling back to placeholder audio: {e}")
            return self._fallback(text, voice, f"Placeholder audio created - speech service failed: {e}")

    def _fallback(self, text: str, voice: str, note: str) -> SynthesisResult:
        result = self.fallback.synthesize(text, voice)
        return SynthesisResult(
            audio_bytes=result.audio_bytes,
            method=SynthesisMethod.FALLBACK,
            content_type=result.content_type,
            file_extension=result.file_extension,
            note=note,
        )

    def list_voices(self) -> Dict[str, Any]:
        """Voice catalogue plus whether clients should expect placeholder audio."""
        return {"voices": [dict(voice) for voice in VOICES], "fallback": not self.is_primary_available}


def create_provider(config: Optional[ConfigManager] = None) -> FallbackSynthesisProvider:
    """
    Build the provider used by the server.

    The primary is injected only when an OpenAI API key is configured.
    """
    config = config or ConfigManager()
    api_key = config["OPENAI_API_KEY"]
    if api_key:
        logger.info("Speech service configured - primary synthesis enabled")
        primary = OpenAISpeechProvider(api_key=api_key, model=config["TTS_MODEL"])
    else:
        logger.info("No speech service credentials found - running in fallback mode")
        primary = None
    return FallbackSynthesisProvider(primary=primary)
