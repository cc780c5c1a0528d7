"""
Utility functions for speech artifacts.

This module provides helper functions for rendering placeholder audio,
turning record ids into safe artifact filenames and validating audio
references handed back by clients.

Key features:
- Silent WAV rendering sized from text length
- Record id to filename mapping restricted to a safe charset
- Audio reference validation (path traversal guard)
- Human readable file sizes
"""

import io
import math
import re
import wave

import numpy as np

from ..errors import InvalidAudioReference

PLACEHOLDER_SAMPLE_RATE = 8000
CHARS_PER_SECOND = 10

AUDIO_REF_PATTERN = re.compile(r"^[A-Za-z0-9_-]+\.(mp3|wav)$")
_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9_-]")

AUDIO_CONTENT_TYPES = {
    "mp3": "audio/mpeg",
    "wav": "audio/wav",
}


def placeholder_duration(text: str) -> int:
    """
    Seconds of placeholder audio for a text.

    Args:
        text: Text that would have been spoken

    Returns:
        ceil(len(text) / 10), at least one second
    """
    return max(1, math.ceil(len(text) / CHARS_PER_SECOND))


def render_silence_wav(seconds: int, rate: int = PLACEHOLDER_SAMPLE_RATE) -> bytes:
    """
    Render mono 16-bit PCM silence as a complete WAV file.

    Args:
        seconds: Duration of silence
        rate: Sample rate in Hz (default: 8000)

    Returns:
        WAV file contents
    """
    audio_int = np.zeros(int(seconds * rate), dtype=np.int16)

    buffer = io.BytesIO()
    with wave.open(buffer, "wb") as wf:
        wf.setnchannels(1)
        wf.setsampwidth(2)
        wf.setframerate(rate)
        wf.writeframes(audio_int.tobytes())
    return buffer.getvalue()


def safe_record_name(record_id: str) -> str:
    """Map a record id onto [A-Za-z0-9_-]; every other character becomes '_'."""
    return _UNSAFE_CHARS.sub("_", record_id) or "_"


def audio_filename(record_id: str, extension: str) -> str:
    """Artifact filename for a record, keyed by its id."""
    return f"{safe_record_name(record_id)}.{extension.lstrip('.').lower()}"


def validate_audio_ref(audio_ref: str) -> str:
    """
    Check an audio reference against the safe charset.

    Raises:
        InvalidAudioReference: If the reference could escape the audio directory
    """
    if not audio_ref or not AUDIO_REF_PATTERN.match(audio_ref):
        raise InvalidAudioReference(f"Invalid audio reference: {audio_ref!r}")
    return audio_ref


def content_type_for(audio_ref: str) -> str:
    """MIME type for an audio reference, by extension."""
    extension = audio_ref.rsplit(".", 1)[-1].lower()
    return AUDIO_CONTENT_TYPES.get(extension, "application/octet-stream")


def format_file_size(num_bytes: int) -> str:
    """
    Format a byte count as a human readable string.

    Args:
        num_bytes: Size in bytes

    Returns:
        e.g. "0 Bytes", "1.5 KB", "10 MB"
    """
    if num_bytes <= 0:
        return "0 Bytes"
    units = ["Bytes", "KB", "MB", "GB"]
    index = min(int(math.log(num_bytes, 1024)), len(units) - 1)
    value = round(num_bytes / 1024**index, 2)
    return f"{value:g} {units[index]}"
