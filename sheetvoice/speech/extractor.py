"""
Record extraction from spreadsheet documents.

This module reads CSV and XLSX documents, locates the id and text columns
and turns each row into a TextRecord. Extracted records are validated
against the domain constraints before any synthesis is attempted.

Key features:
- Case-insensitive substring matching of the "id" and "text" headers
- First worksheet of an XLSX workbook only
- Validation reports every violation at once, not just the first
"""

import csv
import logging
import zipfile
from collections import Counter
from pathlib import Path
from typing import Any, Iterable, List, Optional, Sequence, Tuple

from openpyxl import load_workbook
from openpyxl.utils.exceptions import InvalidFileException

from ..errors import FormatError, ValidationError
from ..models import MAX_TEXT_LENGTH, TextRecord

logger = logging.getLogger(__name__)

SUPPORTED_EXTENSIONS = {".csv", ".xlsx"}


def find_column(headers: Sequence[Any], needle: str) -> Optional[int]:
    """Index of the first header containing needle (case-insensitive), or None."""
    for index, header in enumerate(headers):
        if header is not None and needle in str(header).lower():
            return index
    return None


def _cell_to_str(value: Any) -> str:
    if value is None:
        return ""
    # Spreadsheet ids such as 12 come back as 12.0
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value).strip()


class RecordExtractor:
    """
    Parse a spreadsheet into validated TextRecords.

    Supports .csv and .xlsx documents. Raises FormatError when the table
    cannot be located and ValidationError when the records violate the
    uniqueness, emptiness or length constraints.
    """

    def __init__(self, max_text_length: int = MAX_TEXT_LENGTH):
        self.max_text_length = max_text_length

    def extract(self, document_path: str, original_name: Optional[str] = None) -> List[TextRecord]:
        """
        Extract and validate records from a document.

        Args:
            document_path: Path to the stored document
            original_name: Uploaded filename, used to pick the parser (default: path name)

        Returns:
            Records in document order

        Raises:
            FormatError: If the document cannot be parsed or has no id/text columns
            ValidationError: If the records violate domain constraints
        """
        name = original_name or Path(document_path).name
        extension = Path(name).suffix.lower()

        if extension == ".csv":
            rows = self._read_csv(document_path)
        elif extension == ".xlsx":
            rows = self._read_xlsx(document_path)
        else:
            raise FormatError("Unsupported file format. Please use CSV or XLSX files.")

        records = self._rows_to_records(rows)
        self.validate(records)

        logger.info(f"Extracted {len(records)} records from {name}")
        return records

    def validate(self, records: Sequence[TextRecord]) -> None:
        """
        Check records against domain constraints.

        Raises:
            ValidationError: Listing every violation found
        """
        if not records:
            raise ValidationError(
                ["No valid data found. Please ensure your file has ID and Text columns with data."]
            )

        violations: List[str] = []
        offending: List[str] = []

        counts = Counter(record.id for record in records)
        duplicates = [record_id for record_id, count in counts.items() if count > 1]
        if duplicates:
            violations.append(f"Duplicate IDs found: {', '.join(duplicates)}. Each ID must be unique.")
            offending.extend(duplicates)

        empty = _unique(record.id for record in records if not record.text.strip())
        if empty:
            violations.append(f"Empty text found for IDs: {', '.join(empty)}.")
            offending.extend(empty)

        too_long = _unique(record.id for record in records if len(record.text) > self.max_text_length)
        if too_long:
            violations.append(
                f"Text too long for IDs: {', '.join(too_long)}. "
                f"Maximum {self.max_text_length} characters per text."
            )
            offending.extend(too_long)

        if violations:
            raise ValidationError(violations, _unique(offending))

    def _rows_to_records(self, rows: Iterable[Tuple[Any, ...]]) -> List[TextRecord]:
        rows = iter(rows)
        headers = next(rows, None)
        if headers is None:
            raise FormatError("Document is empty.")

        id_column = find_column(headers, "id")
        text_column = find_column(headers, "text")
        if id_column is None or text_column is None:
            raise FormatError("Could not find ID and Text columns. Column headers must contain 'id' and 'text'.")
        if id_column == text_column:
            raise FormatError("The ID and Text columns must be different columns.")

        records = []
        for row in rows:
            record_id = _cell_to_str(row[id_column]) if id_column < len(row) else ""
            if not record_id:
                continue
            text = _cell_to_str(row[text_column]) if text_column < len(row) else ""
            records.append(TextRecord(id=record_id, text=text))
        return records

    def _read_csv(self, path: str) -> List[Tuple[str, ...]]:
        try:
            with open(path, "r", encoding="utf-8-sig", newline="") as f:
                return [tuple(row) for row in csv.reader(f)]
        except (UnicodeDecodeError, csv.Error) as e:
            raise FormatError(f"Could not read CSV file: {e}") from e

    def _read_xlsx(self, path: str) -> List[Tuple[Any, ...]]:
        try:
            workbook = load_workbook(path, read_only=True, data_only=True)
        except (InvalidFileException, zipfile.BadZipFile, KeyError, OSError, ValueError) as e:
            raise FormatError(f"Could not read XLSX file: {e}") from e

        try:
            # First sheet only
            worksheet = workbook.worksheets[0]
            return [tuple(row) for row in worksheet.iter_rows(values_only=True)]
        finally:
            workbook.close()


def _unique(values: Iterable[str]) -> List[str]:
    seen = []
    for value in values:
        if value not in seen:
            seen.append(value)
    return seen
