"""
Batch synthesis of extracted records.

This module drives the synthesis provider over every record of a batch,
strictly in extraction order and one record at a time, writing each audio
artifact into the shared audio directory.
"""

import logging
from pathlib import Path
from typing import Callable, List, Optional, Sequence, Union

from ..models import ProgressEvent, SynthesisOutcome, TextRecord
from ..speech.providers import SynthesisProvider
from ..speech.utils import audio_filename

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[ProgressEvent], None]


class BatchProcessor:
    """Runs synthesis for a batch of records and isolates per-record failure."""

    def __init__(self, provider: SynthesisProvider, audio_dir: Union[str, Path]):
        """
        Initialize the batch processor.

        Args:
            provider: Synthesis provider (normally the fallback decorator)
            audio_dir: Directory receiving audio artifacts
        """
        self.provider = provider
        self.audio_dir = Path(audio_dir)
        self.audio_dir.mkdir(parents=True, exist_ok=True)

    def run(
        self,
        records: Sequence[TextRecord],
        voice: str,
        on_progress: Optional[ProgressCallback] = None,
    ) -> List[SynthesisOutcome]:
        """
        Synthesize every record in order.

        Args:
            records: Records in extraction order
            voice: Voice identifier passed to the provider
            on_progress: Called after each record, before the next one starts

        Returns:
            One outcome per record, in the same order
        """
        total = len(records)
        outcomes: List[SynthesisOutcome] = []

        for index, record in enumerate(records):
            outcomes.append(self._process_record(record, voice))

            if on_progress:
                on_progress(ProgressEvent(completed=index + 1, total=total, current=record.id))

        succeeded = sum(1 for outcome in outcomes if outcome.success)
        logger.info(f"Batch finished: {succeeded}/{total} records synthesized")
        return outcomes

    def _process_record(self, record: TextRecord, voice: str) -> SynthesisOutcome:
        try:
            result = self.provider.synthesize(record.text, voice)
            filename = audio_filename(record.id, result.file_extension)
            (self.audio_dir / filename).write_bytes(result.audio_bytes)
        except Exception as e:
            logger.error(f"Failed to process record {record.id}: {e}")
            return SynthesisOutcome(id=record.id, text=record.text, success=False, error=str(e))

        return SynthesisOutcome(
            id=record.id,
            text=record.text,
            success=True,
            audio_ref=filename,
            method=result.method,
            note=result.note,
        )
