"""
Spreadsheet extraction and speech synthesis.

Main components:
- RecordExtractor: CSV/XLSX parsing and record validation
- FallbackSynthesisProvider: primary speech service with placeholder fallback
- Utility functions: placeholder audio, artifact filenames, reference validation

Example usage:
    from sheetvoice.speech import RecordExtractor, create_provider

    records = RecordExtractor().extract("uploads/spreadsheets/batch.csv")
    provider = create_provider()
    result = provider.synthesize(records[0].text, "alloy")
"""

from .extractor import RecordExtractor
from .providers import (
    VOICES,
    FallbackSynthesisProvider,
    OpenAISpeechProvider,
    SilentAudioProvider,
    SynthesisProvider,
    SynthesisResult,
    create_provider,
)
from .utils import (
    audio_filename,
    content_type_for,
    format_file_size,
    placeholder_duration,
    render_silence_wav,
    safe_record_name,
    validate_audio_ref,
)

__all__ = [
    "RecordExtractor",
    "VOICES",
    "FallbackSynthesisProvider",
    "OpenAISpeechProvider",
    "SilentAudioProvider",
    "SynthesisProvider",
    "SynthesisResult",
    "create_provider",
    "audio_filename",
    "content_type_for",
    "format_file_size",
    "placeholder_duration",
    "render_silence_wav",
    "safe_record_name",
    "validate_audio_ref",
]
