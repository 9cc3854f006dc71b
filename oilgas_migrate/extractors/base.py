"""Base extractor interface."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterator, List, Optional
from datetime import datetime
import logging

from ..models.record import SourceRecord
from ..models.table import TableInfo

logger = logging.getLogger(__name__)


@dataclass
class ExtractionResult:
    """Result of extracting one legacy table."""
    table: TableInfo
    records: List[SourceRecord] = field(default_factory=list)
    total_extracted: int = 0
    row_errors: int = 0  # Unparseable rows that were skipped
    errors: List[Dict[str, Any]] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def duration_seconds(self) -> Optional[float]:
        """Get duration in seconds."""
        if self.started_at and self.completed_at:
            return (self.completed_at - self.started_at).total_seconds()
        return None

    @property
    def success(self) -> bool:
        """Check if the table could be read."""
        return len(self.errors) == 0

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "table": self.table.name,
            "total_extracted": self.total_extracted,
            "row_errors": self.row_errors,
            "errors": self.errors,
            "warnings": self.warnings,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "duration_seconds": self.duration_seconds,
            "metadata": self.metadata,
        }


class BaseExtractor(ABC):
    """
    Base class for legacy table extractors.

    Extractors pull rows for one analyzed table and turn them into
    SourceRecord objects keyed by target column name.
    """

    def __init__(self, table: TableInfo):
        """
        Initialize the extractor.

        Args:
            table: Analyzed table to extract
        """
        self.table = table
        self._row_errors = 0
        self._errors: List[Dict[str, Any]] = []
        self._warnings: List[str] = []

    @abstractmethod
    def extract(
        self, batch_size: int = 1000, on_batch: Optional[Callable[[int], None]] = None
    ) -> ExtractionResult:
        """
        Extract all rows of the table.

        Args:
            batch_size: Rows read per batch
            on_batch: Called with the running record count after each batch

        Returns:
            ExtractionResult containing all extracted records
        """
        pass

    @abstractmethod
    def iter_records(self) -> Iterator[SourceRecord]:
        """Yield records in source order."""
        pass

    def stream(self, batch_size: int = 1000) -> Iterator[List[SourceRecord]]:
        """
        Stream records in batches.

        Args:
            batch_size: Size of each batch

        Yields:
            Batches of SourceRecord objects
        """
        batch: List[SourceRecord] = []
        for record in self.iter_records():
            batch.append(record)
            if len(batch) >= batch_size:
                yield batch
                batch = []
        if batch:
            yield batch

    def create_record(self, values: List[str], row_number: int) -> SourceRecord:
        """
        Create a SourceRecord from a positional row.

        Args:
            values: Row values, already padded to the column count
            row_number: 1-based data row number

        Returns:
            SourceRecord object
        """
        data = {column.name: value for column, value in zip(self.table.columns, values)}
        record_id = str(row_number)
        key_column = self.table.primary_key_column()
        if key_column and data.get(key_column.name, "").strip():
            record_id = data[key_column.name].strip()
        return SourceRecord(table=self.table.name, record_id=record_id, row_number=row_number, data=data)

    def add_error(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        """Add a table-level error to the extraction."""
        error = {
            "message": message,
            "table": self.table.name,
            "timestamp": datetime.utcnow().isoformat(),
        }
        if details:
            error.update(details)
        self._errors.append(error)
        logger.error(f"Extraction error: {message}")

    def add_row_error(self, row_number: int, message: str) -> None:
        """Count an unparseable row that is being skipped."""
        self._row_errors += 1
        logger.warning(f"Skipping row {row_number} of {self.table.name}: {message}")

    def add_warning(self, message: str) -> None:
        """Add a warning to the extraction."""
        self._warnings.append(message)
        logger.warning(f"Extraction warning: {message}")

    def get_extraction_result(self, records: List[SourceRecord]) -> ExtractionResult:
        """
        Create an ExtractionResult from extracted records.

        Args:
            records: List of extracted records

        Returns:
            ExtractionResult object
        """
        return ExtractionResult(
            table=self.table,
            records=records,
            total_extracted=len(records),
            row_errors=self._row_errors,
            errors=self._errors.copy(),
            warnings=self._warnings.copy(),
        )

    def reset(self) -> None:
        """Reset the extractor state."""
        self._row_errors = 0
        self._errors = []
        self._warnings = []
