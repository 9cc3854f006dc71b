"""CSV file exporter."""

import csv
import logging
from pathlib import Path
from typing import List
from datetime import datetime

from .base import BaseExporter, ExportResult
from ..models.record import NormalizedRecord
from ..models.table import TableInfo

logger = logging.getLogger(__name__)


def csv_path(output_dir: str, table_name: str) -> Path:
    return Path(output_dir) / "csv" / f"{table_name}.csv"


class CSVExporter(BaseExporter):
    """Writes one CSV file per table: header row, then records in source order."""

    name = "csv"

    def __init__(self, output_dir: str, batch_size: int = 1000):
        super().__init__(batch_size=batch_size)
        self.output_dir = output_dir

    def export_table(self, table: TableInfo, records: List[NormalizedRecord]) -> ExportResult:
        result = self.new_result(table.name)
        path = csv_path(self.output_dir, table.name)
        columns = table.column_names

        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(path, "w", encoding="utf-8", newline="") as f:
                writer = csv.writer(f, quoting=csv.QUOTE_MINIMAL)
                writer.writerow(columns)
                for batch in self.batches(records):
                    writer.writerows(record.as_text(columns) for record in batch)
                    result.records_written += len(batch)
            result.output_files.append(str(path))
            logger.info(f"Wrote {result.records_written} {table.name} records to {path}")
        except OSError as e:
            self.add_error(result, f"Failed to write {path}: {e}")

        result.completed_at = datetime.utcnow()
        return result
