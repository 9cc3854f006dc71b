"""Delimited-text extractor for legacy table exports."""

import csv
import logging
from pathlib import Path
from typing import Callable, Iterator, List, Optional, Tuple
from datetime import datetime

from .base import BaseExtractor, ExtractionResult
from ..models.record import SourceRecord
from ..models.table import TableInfo

logger = logging.getLogger(__name__)

SNIFF_DELIMITERS = ",\t;|"


def default_delimiter(path: Path, fallback: str = ",") -> str:
    return "\t" if path.suffix.lower() == ".tsv" else fallback


class DelimitedFileReader:
    """
    Reads a delimited export row by row.

    Supports:
    - Dialect sniffing with a configured delimiter fallback
    - UTF-8 with a latin-1 fallback for legacy exports
    - Skipping rows the csv module cannot parse
    """

    def __init__(self, path: Path, encoding: str = "utf-8-sig", delimiter: Optional[str] = None):
        self.path = Path(path)
        self.preferred_encoding = encoding
        self.delimiter = delimiter or default_delimiter(self.path)
        self._encoding: Optional[str] = None

    @property
    def encoding(self) -> str:
        """Encoding that decodes the whole file, checked once."""
        if self._encoding is None:
            self._encoding = self._detect_encoding()
        return self._encoding

    def _detect_encoding(self) -> str:
        try:
            with open(self.path, "r", encoding=self.preferred_encoding, newline="") as f:
                while f.read(65536):
                    pass
            return self.preferred_encoding
        except UnicodeDecodeError:
            logger.warning(f"UTF-8 decode failed, trying latin-1 for {self.path}")
            return "latin-1"

    def _reader(self, f, sample: str):
        try:
            dialect = csv.Sniffer().sniff(sample, delimiters=SNIFF_DELIMITERS)
        except csv.Error:
            return csv.reader(f, delimiter=self.delimiter)
        return csv.reader(f, dialect)

    def rows(
        self,
        on_bad_row: Optional[Callable[[int, str], None]] = None,
    ) -> Iterator[Tuple[int, List[str]]]:
        """
        Yield (line number, row) pairs, header included.

        Args:
            on_bad_row: Called with the line number and message for unparseable rows

        Yields:
            Raw rows as parsed by the csv module
        """
        with open(self.path, "r", encoding=self.encoding, newline="") as f:
            sample = f.read(8192)
            f.seek(0)
            reader = self._reader(f, sample)
            while True:
                line_before = reader.line_num
                try:
                    row = next(reader)
                except StopIteration:
                    break
                except csv.Error as e:
                    if on_bad_row:
                        on_bad_row(reader.line_num, str(e))
                    if reader.line_num == line_before:
                        break
                    continue
                yield reader.line_num, row

    def header(self) -> List[str]:
        """First non-blank row of the file, or an empty list."""
        for _, row in self.rows():
            if any(cell.strip() for cell in row):
                return row
        return []


class CSVTableExtractor(BaseExtractor):
    """
    Extractor for one table exported as CSV, TXT or TSV.

    Short rows are padded and long rows truncated to the header width.
    Blank lines are ignored.
    """

    def __init__(self, table: TableInfo, encoding: str = "utf-8-sig", delimiter: Optional[str] = None):
        """
        Initialize the extractor.

        Args:
            table: Analyzed table (columns in file order)
            encoding: Preferred file encoding
            delimiter: Delimiter used when sniffing fails
        """
        super().__init__(table)
        self.reader = DelimitedFileReader(Path(table.source_path), encoding=encoding, delimiter=delimiter)

    def extract(
        self, batch_size: int = 1000, on_batch: Optional[Callable[[int], None]] = None
    ) -> ExtractionResult:
        """Extract all rows of the table, one batch at a time."""
        self.reset()
        started_at = datetime.utcnow()
        records: List[SourceRecord] = []

        try:
            for batch in self.stream(batch_size):
                records.extend(batch)
                if on_batch:
                    on_batch(len(records))
            result_encoding = self.reader.encoding
        except OSError as e:
            result_encoding = None
            self.add_error(f"Failed to read {self.table.source_path}: {e}")

        result = self.get_extraction_result(records)
        result.started_at = started_at
        result.completed_at = datetime.utcnow()
        result.metadata["source_file"] = self.table.source_path
        result.metadata["encoding"] = result_encoding

        logger.info(f"Extracted {len(records)} records from {self.table.original_name}")
        return result

    def iter_records(self) -> Iterator[SourceRecord]:
        width = len(self.table.columns)
        header_seen = False
        row_number = 0

        for line_number, row in self.reader.rows(on_bad_row=self.add_row_error):
            if not any(cell.strip() for cell in row):
                continue
            if not header_seen:
                header_seen = True
                continue

            row_number += 1
            if len(row) < width:
                self.add_warning(
                    f"{self.table.original_name} line {line_number}: padded {width - len(row)} missing value(s)")
                row = row + [""] * (width - len(row))
            elif len(row) > width:
                self.add_warning(
                    f"{self.table.original_name} line {line_number}: dropped {len(row) - width} extra value(s)")
                row = row[:width]

            yield self.create_record(row, row_number)
