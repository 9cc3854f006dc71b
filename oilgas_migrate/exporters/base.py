"""Base exporter interface for conversion sinks."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
from datetime import datetime
import logging

from ..models.job import SequenceDeclaration
from ..models.record import NormalizedRecord
from ..models.table import TableInfo

logger = logging.getLogger(__name__)


@dataclass
class ExportResult:
    """Result of exporting one table (or the sequence set) to a sink."""
    exporter: str
    table: str
    records_written: int = 0
    output_files: List[str] = field(default_factory=list)
    errors: List[Dict[str, Any]] = field(default_factory=list)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @property
    def duration_seconds(self) -> Optional[float]:
        if self.started_at and self.completed_at:
            return (self.completed_at - self.started_at).total_seconds()
        return None

    @property
    def success(self) -> bool:
        return len(self.errors) == 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "exporter": self.exporter,
            "table": self.table,
            "records_written": self.records_written,
            "output_files": self.output_files,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "duration_seconds": self.duration_seconds,
            "errors": self.errors,
        }


class BaseExporter(ABC):
    """
    Base class for conversion sinks.

    Exporters write normalized records of one table at a time. Several
    exporters may run for the same table; each reports independently.
    """

    name = "base"

    def __init__(self, batch_size: int = 1000):
        """
        Initialize the exporter.

        Args:
            batch_size: Number of records per write
        """
        self.batch_size = batch_size

    @abstractmethod
    def export_table(self, table: TableInfo, records: List[NormalizedRecord]) -> ExportResult:
        """
        Write the records of one table.

        Args:
            table: Analyzed table (column order)
            records: Records to write, in source order

        Returns:
            ExportResult for the table
        """
        pass

    def export_sequences(self, sequences: List[SequenceDeclaration]) -> ExportResult:
        """Declare sequences seeded from counter tables. Sinks without sequences ignore them."""
        result = self.new_result("sequences")
        result.completed_at = datetime.utcnow()
        return result

    def validate_connection(self) -> bool:
        """Validate the connection to the sink."""
        return True

    def close(self) -> None:
        """Release sink resources."""

    def new_result(self, table: str) -> ExportResult:
        return ExportResult(exporter=self.name, table=table, started_at=datetime.utcnow())

    def add_error(self, result: ExportResult, message: str, **details: Any) -> None:
        """Add an error to an export result."""
        error = {"message": message, "exporter": self.name, "table": result.table}
        error.update(details)
        result.errors.append(error)
        logger.error(f"{self.name} export error for {result.table}: {message}")

    def batches(self, records: List[NormalizedRecord]):
        for i in range(0, len(records), self.batch_size):
            yield records[i:i + self.batch_size]
