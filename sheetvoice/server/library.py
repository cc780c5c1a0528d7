"""
Durable archive of completed conversions.

The library is a single JSON document holding every LibraryEntry. The
document is always rewritten as a whole through a temporary file and an
atomic rename, so readers never observe a partially written entry.
"""

import json
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Any, Dict, List, Union

from ..errors import InvalidAudioReference, NotFoundError, PersistenceError
from ..models import LibraryEntry
from ..speech.utils import validate_audio_ref

logger = logging.getLogger(__name__)


class ArchiveStore:
    """Manages library entries and the audio artifacts they reference."""

    def __init__(self, storage_dir: Union[str, Path] = "uploads"):
        """
        Initialize the archive store.

        Args:
            storage_dir: Root holding library.json, audio/ and spreadsheets/
        """
        self.storage_dir = Path(storage_dir)
        self.audio_dir = self.storage_dir / "audio"
        self.spreadsheets_dir = self.storage_dir / "spreadsheets"
        self.library_file = self.storage_dir / "library.json"

        for directory in (self.storage_dir, self.audio_dir, self.spreadsheets_dir):
            directory.mkdir(parents=True, exist_ok=True)

        self._lock = threading.Lock()

    def save(self, entry: LibraryEntry) -> str:
        """
        Append an entry to the library.

        Returns:
            The stored entry id

        Raises:
            PersistenceError: If the library could not be written
        """
        with self._lock:
            entries = self._read()
            entries.append(entry.to_dict())
            self._write(entries)

        logger.info(f"Library entry {entry.id} saved ({entry.succeeded}/{entry.total} succeeded)")
        return entry.id

    def list_entries(self) -> List[LibraryEntry]:
        """All library entries, in the order they were saved."""
        with self._lock:
            return [LibraryEntry.from_dict(data) for data in self._read()]

    def get(self, entry_id: str) -> LibraryEntry:
        """
        Get one library entry.

        Raises:
            NotFoundError: If no entry has this id
        """
        with self._lock:
            for data in self._read():
                if data.get("id") == entry_id:
                    return LibraryEntry.from_dict(data)
        raise NotFoundError("Library entry not found")

    def delete(self, entry_id: str) -> None:
        """
        Remove an entry and, best-effort, every artifact it references.

        Raises:
            NotFoundError: If no entry has this id
            PersistenceError: If the library could not be written
        """
        with self._lock:
            entries = self._read()
            index = next((i for i, data in enumerate(entries) if data.get("id") == entry_id), None)
            if index is None:
                raise NotFoundError("Library entry not found")

            entry = LibraryEntry.from_dict(entries.pop(index))
            self._write(entries)

        for audio_ref in entry.audio_refs():
            try:
                self._remove_file(self.audio_path(audio_ref))
            except InvalidAudioReference as e:
                logger.error(f"Skipping audio file for entry {entry_id}: {e}")

        if entry.source_path:
            self._remove_file(Path(entry.source_path))

        logger.info(f"Library entry {entry_id} deleted")

    def audio_path(self, audio_ref: str) -> Path:
        """
        Resolve an audio reference inside the audio directory.

        Raises:
            InvalidAudioReference: If the reference is outside the safe charset
        """
        return self.audio_dir / validate_audio_ref(audio_ref)

    def stats(self) -> Dict[str, Any]:
        """Aggregate counts across the library and the storage directories."""
        entries = self.list_entries()
        succeeded = sum(entry.succeeded for entry in entries)
        failed = sum(entry.failed for entry in entries)
        attempted = succeeded + failed

        return {
            "total_libraries": len(entries),
            "total_audio_files": sum(1 for path in self.audio_dir.iterdir() if path.is_file()),
            "total_spreadsheets": sum(1 for path in self.spreadsheets_dir.iterdir() if path.is_file()),
            "total_successful": succeeded,
            "total_failed": failed,
            "success_rate": round(succeeded / attempted * 100) if attempted else 0,
        }

    def _remove_file(self, path: Path) -> None:
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            logger.error(f"Error deleting file {path}: {e}")

    def _read(self) -> List[Dict[str, Any]]:
        if not self.library_file.exists():
            return []

        try:
            with open(self.library_file, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (json.JSONDecodeError, OSError) as e:
            raise PersistenceError(f"Library could not be read: {e}") from e

        if not isinstance(data, list):
            raise PersistenceError("Library document is not a list of entries")
        return data

    def _write(self, entries: List[Dict[str, Any]]) -> None:
        tmp_path = None
        try:
            with tempfile.NamedTemporaryFile(
                "w", encoding="utf-8", dir=self.storage_dir, prefix=".library-", suffix=".tmp", delete=False
            ) as tmp_file:
                tmp_path = tmp_file.name
                json.dump(entries, tmp_file, ensure_ascii=False, indent=2)
                tmp_file.flush()
                os.fsync(tmp_file.fileno())
            os.replace(tmp_path, self.library_file)
        except (OSError, TypeError, ValueError) as e:
            if tmp_path and os.path.exists(tmp_path):
                os.unlink(tmp_path)
            logger.error(f"Failed to write library: {e}")
            raise PersistenceError(f"Failed to save library: {e}") from e
