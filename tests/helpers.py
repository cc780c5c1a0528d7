"""Shared fakes for the test suite."""

import csv
from pathlib import Path
from typing import Iterable, List, Sequence, Tuple

from sheetvoice.errors import ProviderError
from sheetvoice.models import SynthesisMethod
from sheetvoice.speech.providers import SynthesisProvider, SynthesisResult

FAKE_MP3 = b"ID3\x03\x00fake-mp3-payload"


class FakeClock:
    """Manually advanced clock returning epoch seconds."""

    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class ScriptedPrimary(SynthesisProvider):
    """Primary provider returning FAKE_MP3, failing for selected texts."""

    def __init__(self, fail_texts: Iterable[str] = ()):
        self.fail_texts = set(fail_texts)
        self.calls: List[Tuple[str, str]] = []

    def synthesize(self, text: str, voice: str) -> SynthesisResult:
        self.calls.append((text, voice))
        if text in self.fail_texts:
            raise ProviderError("quota exceeded")
        return SynthesisResult(
            audio_bytes=FAKE_MP3,
            method=SynthesisMethod.PRIMARY,
            content_type="audio/mpeg",
            file_extension="mp3",
        )


def write_csv(path: Path, rows: Sequence[Sequence[str]]) -> Path:
    with open(path, "w", encoding="utf-8", newline="") as f:
        csv.writer(f).writerows(rows)
    return path


def csv_bytes(rows: Sequence[Sequence[str]]) -> bytes:
    lines = [",".join(row) for row in rows]
    return ("\n".join(lines) + "\n").encode("utf-8")
