import io
import wave
from unittest import mock

import pytest

from sheetvoice.config import ConfigManager
from sheetvoice.errors import ProviderError
from sheetvoice.models import SynthesisMethod
from sheetvoice.speech.providers import (
    NOT_CONFIGURED_NOTE,
    FallbackSynthesisProvider,
    OpenAISpeechProvider,
    SilentAudioProvider,
    create_provider,
)
from sheetvoice.speech.utils import format_file_size, placeholder_duration

from .helpers import FAKE_MP3, ScriptedPrimary


def _wav_info(data: bytes):
    with wave.open(io.BytesIO(data), "rb") as wf:
        return wf.getnchannels(), wf.getsampwidth(), wf.getframerate(), wf.getnframes()


@pytest.mark.parametrize("length, seconds", [(0, 1), (1, 1), (10, 1), (11, 2), (25, 3), (3000, 300)])
def test_placeholder_duration(length, seconds):
    assert placeholder_duration("x" * length) == seconds


def test_silent_provider_renders_valid_wav():
    result = SilentAudioProvider().synthesize("a" * 25, "alloy")

    assert result.method is SynthesisMethod.FALLBACK
    assert result.file_extension == "wav"
    assert _wav_info(result.audio_bytes) == (1, 2, 8000, 3 * 8000)


def test_silent_provider_is_deterministic():
    provider = SilentAudioProvider()

    assert provider.synthesize("same text", "alloy") == provider.synthesize("same text", "nova")


def test_no_primary_uses_fallback_with_note():
    provider = FallbackSynthesisProvider(primary=None)

    result = provider.synthesize("hello", "alloy")

    assert not provider.is_primary_available
    assert result.method is SynthesisMethod.FALLBACK
    assert result.note == NOT_CONFIGURED_NOTE


def test_primary_success_has_no_note():
    provider = FallbackSynthesisProvider(primary=ScriptedPrimary())

    result = provider.synthesize("hello", "nova")

    assert provider.is_primary_available
    assert result.method is SynthesisMethod.PRIMARY
    assert result.audio_bytes == FAKE_MP3
    assert result.note is None


def test_primary_failure_falls_back():
    primary = ScriptedPrimary(fail_texts={"broken"})
    provider = FallbackSynthesisProvider(primary=primary)

    result = provider.synthesize("broken", "nova")

    assert primary.calls == [("broken", "nova")]
    assert result.method is SynthesisMethod.FALLBACK
    assert result.file_extension == "wav"
    assert "quota exceeded" in result.note


def test_openai_provider_calls_speech_endpoint():
    client = mock.Mock()
    client.audio.speech.create.return_value.content = FAKE_MP3
    provider = OpenAISpeechProvider(api_key="sk-test", model="tts-1", client=client)

    result = provider.synthesize("hello", "shimmer")

    client.audio.speech.create.assert_called_once_with(
        model="tts-1", voice="shimmer", input="hello", response_format="mp3"
    )
    assert result.method is SynthesisMethod.PRIMARY
    assert result.audio_bytes == FAKE_MP3
    assert result.file_extension == "mp3"


def test_openai_provider_wraps_errors():
    client = mock.Mock()
    client.audio.speech.create.side_effect = RuntimeError("invalid voice")
    provider = OpenAISpeechProvider(api_key="sk-test", client=client)

    with pytest.raises(ProviderError, match="invalid voice"):
        provider.synthesize("hello", "nobody")


def test_openai_provider_rejects_empty_audio():
    client = mock.Mock()
    client.audio.speech.create.return_value.content = b""
    provider = OpenAISpeechProvider(api_key="sk-test", client=client)

    with pytest.raises(ProviderError):
        provider.synthesize("hello", "alloy")


def test_fallback_decorator_recovers_from_openai_failure():
    client = mock.Mock()
    client.audio.speech.create.side_effect = ConnectionError("network down")
    provider = FallbackSynthesisProvider(primary=OpenAISpeechProvider(api_key="sk-test", client=client))

    result = provider.synthesize("hello", "alloy")

    assert result.method is SynthesisMethod.FALLBACK
    assert "network down" in result.note


def test_create_provider_with_key_injects_primary():
    provider = create_provider(ConfigManager({"OPENAI_API_KEY": "sk-test", "TTS_MODEL": "tts-1-hd"}))

    assert provider.is_primary_available
    assert isinstance(provider.primary, OpenAISpeechProvider)
    assert provider.primary.model == "tts-1-hd"
    # client is built lazily on first synthesis
    assert provider.primary.client is None


def test_create_provider_without_key_is_fallback_only(monkeypatch):
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)

    provider = create_provider(ConfigManager())

    assert not provider.is_primary_available
    assert provider.list_voices()["fallback"] is True
    assert {voice["id"] for voice in provider.list_voices()["voices"]} >= {"alloy", "nova"}


@pytest.mark.parametrize("num_bytes, expected", [(0, "0 Bytes"), (64, "64 Bytes"), (1536, "1.5 KB"), (10485760, "10 MB")])
def test_format_file_size(num_bytes, expected):
    assert format_file_size(num_bytes) == expected


def test_fallback_recovers_from_any_primary_exception():
    class UnwrappedPrimary(ScriptedPrimary):
        def synthesize(self, text, voice):
            raise ConnectionError("network down")

    provider = FallbackSynthesisProvider(primary=UnwrappedPrimary())

    result = provider.synthesize("hello", "alloy")

    assert result.method is SynthesisMethod.FALLBACK
    assert result.file_extension == "wav"
    assert "network down" in result.note
