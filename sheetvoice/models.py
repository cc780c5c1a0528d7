"""
Data models for the conversion server.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

MAX_TEXT_LENGTH = 3000


class JobStatus(Enum):
    """Lifecycle status of a conversion job."""

    EXTRACTING = "extracting"
    SYNTHESIZING = "synthesizing"
    SAVING = "saving"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)


class SynthesisMethod(Enum):
    """Which synthesis path produced an audio artifact."""

    PRIMARY = "primary"
    FALLBACK = "fallback"


@dataclass(frozen=True)
class TextRecord:
    """One (id, text) pair extracted from the input document."""

    id: str
    text: str


@dataclass(frozen=True)
class SynthesisOutcome:
    """Per-record result of attempting synthesis."""

    id: str
    text: str
    success: bool
    audio_ref: Optional[str] = None
    method: Optional[SynthesisMethod] = None
    note: Optional[str] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "text": self.text,
            "success": self.success,
            "audio_ref": self.audio_ref,
            "method": self.method.value if self.method else None,
            "note": self.note,
            "error": self.error,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SynthesisOutcome":
        method = data.get("method")
        return cls(
            id=str(data["id"]),
            text=str(data.get("text", "")),
            success=bool(data.get("success")),
            audio_ref=data.get("audio_ref"),
            method=SynthesisMethod(method) if method else None,
            note=data.get("note"),
            error=data.get("error"),
        )


@dataclass(frozen=True)
class ProgressEvent:
    """Emitted by the batch processor after each record is attempted."""

    completed: int
    total: int
    current: str


def _isoformat(timestamp: Optional[float]) -> Optional[str]:
    if timestamp is None:
        return None
    return datetime.fromtimestamp(timestamp).isoformat()


@dataclass
class Job:
    """Tracked state of one conversion job."""

    job_id: str
    start_time: float
    status: JobStatus = JobStatus.EXTRACTING
    total: int = 0
    completed: int = 0
    current: Optional[str] = None
    end_time: Optional[float] = None
    error: Optional[str] = None
    library_ref: Optional[str] = None
    outcomes: List[SynthesisOutcome] = field(default_factory=list)

    @property
    def progress(self) -> int:
        """Completion percentage, rounded to an integer."""
        if self.status == JobStatus.COMPLETED:
            return 100
        if self.total <= 0:
            return 0
        return round(self.completed / self.total * 100)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "job_id": self.job_id,
            "status": self.status.value,
            "total": self.total,
            "completed": self.completed,
            "current": self.current,
            "progress": self.progress,
            "start_time": _isoformat(self.start_time),
            "end_time": _isoformat(self.end_time),
            "error": self.error,
            "library_ref": self.library_ref,
        }
        if self.status.is_terminal:
            data["outcomes"] = [outcome.to_dict() for outcome in self.outcomes]
        return data


@dataclass
class LibraryEntry:
    """Durable archived record of one completed job."""

    id: str
    source_name: str
    created_at: str
    total: int
    succeeded: int
    failed: int
    voice: str
    outcomes: List[SynthesisOutcome] = field(default_factory=list)
    source_path: Optional[str] = None

    @classmethod
    def from_outcomes(
        cls,
        source_name: str,
        voice: str,
        outcomes: Sequence[SynthesisOutcome],
        source_path: Optional[str] = None,
    ) -> "LibraryEntry":
        """Build a new entry; aggregate counters are computed here and never again."""
        succeeded = sum(1 for outcome in outcomes if outcome.success)
        return cls(
            id=str(uuid.uuid4()),
            source_name=source_name,
            created_at=datetime.now().isoformat(),
            total=len(outcomes),
            succeeded=succeeded,
            failed=len(outcomes) - succeeded,
            voice=voice,
            outcomes=list(outcomes),
            source_path=source_path,
        )

    def audio_refs(self) -> List[str]:
        return [outcome.audio_ref for outcome in self.outcomes if outcome.success and outcome.audio_ref]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "source_name": self.source_name,
            "created_at": self.created_at,
            "total": self.total,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "voice": self.voice,
            "outcomes": [outcome.to_dict() for outcome in self.outcomes],
            "source_path": self.source_path,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LibraryEntry":
        return cls(
            id=str(data["id"]),
            source_name=str(data.get("source_name", "")),
            created_at=str(data.get("created_at", "")),
            total=int(data.get("total", 0)),
            succeeded=int(data.get("succeeded", 0)),
            failed=int(data.get("failed", 0)),
            voice=str(data.get("voice", "")),
            outcomes=[SynthesisOutcome.from_dict(item) for item in data.get("outcomes", [])],
            source_path=data.get("source_path"),
        )
