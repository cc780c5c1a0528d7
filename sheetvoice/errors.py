"""
Exception types shared by the conversion pipeline.

Every user-facing failure derives from SheetVoiceError and carries a
human-readable message. JobStateError is deliberately outside that hierarchy:
it signals a programming error in the pipeline, not a user problem.
"""

from typing import Iterable, List, Optional


class SheetVoiceError(Exception):
    """Base class for errors that are reported back to clients."""


class FormatError(SheetVoiceError):
    """The input document cannot be parsed or has no id/text columns."""


class ValidationError(SheetVoiceError):
    """Extracted records violate domain constraints."""

    def __init__(self, violations: Iterable[str], ids: Optional[Iterable[str]] = None):
        self.violations: List[str] = list(violations)
        self.ids: List[str] = list(ids or [])
        super().__init__(" ".join(self.violations))


class ProviderError(SheetVoiceError):
    """The primary speech provider failed for one request."""


class DuplicateJobError(SheetVoiceError):
    """A job with the same id is already tracked."""


class NotFoundError(SheetVoiceError):
    """A job or library entry is absent or has been evicted."""


class PersistenceError(SheetVoiceError):
    """The archive could not be written."""


class InvalidAudioReference(SheetVoiceError):
    """An audio reference contains characters outside the safe charset."""


class JobStateError(RuntimeError):
    """Illegal job transition or regressing progress report."""
