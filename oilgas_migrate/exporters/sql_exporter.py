"""SQL import-script exporter for a PostgreSQL target store."""

import logging
from pathlib import Path
from typing import Dict, List, Optional
from datetime import datetime

from sqlalchemy import Boolean, BigInteger, Column, Date, DateTime, MetaData, Numeric, Sequence, Table, Text
from sqlalchemy import column as sql_column, insert, table as sql_table
from sqlalchemy.dialects import postgresql
from sqlalchemy.schema import CreateSchema, CreateSequence, CreateTable

from .base import BaseExporter, ExportResult
from .csv_exporter import csv_path
from ..models.job import SequenceDeclaration
from ..models.record import NormalizedRecord, format_value
from ..models.table import TableInfo

logger = logging.getLogger(__name__)

COLUMN_TYPES = {
    "string": Text,
    "integer": BigInteger,
    "decimal": Numeric,
    "boolean": Boolean,
    "date": Date,
    "timestamp": DateTime,
}


class SQLScriptExporter(BaseExporter):
    """
    Writes a per-table import script.

    The script loads the table's CSV with COPY when the CSV sink produced
    one, and falls back to literal INSERT statements otherwise.
    """

    name = "sql"

    def __init__(self, output_dir: str, schema: str = "store", mode: str = "copy", batch_size: int = 1000):
        """
        Initialize the exporter.

        Args:
            output_dir: Root output directory (scripts go to <output_dir>/sql)
            schema: Target schema namespace
            mode: "copy" to prefer COPY from CSV, "insert" to always inline rows
            batch_size: Rows per INSERT statement
        """
        super().__init__(batch_size=batch_size)
        self.output_dir = output_dir
        self.schema = schema or None
        self.mode = mode
        self.dialect = postgresql.dialect()

    def script_path(self, name: str) -> Path:
        return Path(self.output_dir) / "sql" / f"{name}.sql"

    def _compile(self, statement) -> str:
        return str(statement.compile(dialect=self.dialect, compile_kwargs={"literal_binds": True})).strip()

    def _table_ddl(self, table: TableInfo) -> Table:
        metadata = MetaData(schema=self.schema)
        return Table(
            table.name,
            metadata,
            *[Column(c.name, COLUMN_TYPES.get(c.target_type, Text)()) for c in table.columns],
        )

    def export_table(self, table: TableInfo, records: List[NormalizedRecord]) -> ExportResult:
        result = self.new_result(table.name)
        path = self.script_path(table.name)
        columns = table.column_names
        preparer = self.dialect.identifier_preparer

        lines = [f"-- Import script for {table.name} (source: {table.original_name})"]
        if self.schema:
            lines.append(f"{self._compile(CreateSchema(self.schema, if_not_exists=True))};")
        lines.append(f"{self._compile(CreateTable(self._table_ddl(table), if_not_exists=True))};")

        source_csv = csv_path(self.output_dir, table.name)
        target = sql_table(table.name, *[sql_column(c, Text) for c in columns], schema=self.schema)
        qualified = preparer.format_table(target)

        if self.mode == "copy" and source_csv.exists():
            column_list = ", ".join(preparer.quote(c) for c in columns)
            location = str(source_csv.resolve()).replace("'", "''")
            lines.append(
                f"COPY {qualified} ({column_list}) FROM '{location}' WITH (FORMAT csv, HEADER true);")
        else:
            for batch in self.batches(records):
                rows = [self._row(record, columns) for record in batch]
                lines.append(f"{self._compile(insert(target).values(rows))};")

        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text("\n\n".join(lines) + "\n", encoding="utf-8")
            result.records_written = len(records)
            result.output_files.append(str(path))
            logger.info(f"Wrote import script for {table.name} to {path}")
        except OSError as e:
            self.add_error(result, f"Failed to write {path}: {e}")

        result.completed_at = datetime.utcnow()
        return result

    @staticmethod
    def _row(record: NormalizedRecord, columns: List[str]) -> Dict[str, Optional[str]]:
        row = {}
        for name in columns:
            value = record.data.get(name)
            row[name] = None if value is None else format_value(value)
        return row

    def export_sequences(self, sequences: List[SequenceDeclaration]) -> ExportResult:
        """Write CREATE SEQUENCE statements for counter tables to sequences.sql."""
        result = self.new_result("sequences")
        if not sequences:
            result.completed_at = datetime.utcnow()
            return result

        path = self.script_path("sequences")
        lines = ["-- Sequences seeded from legacy counter tables"]
        for declaration in sequences:
            sequence = Sequence(declaration.name, start=declaration.start_value, schema=self.schema)
            lines.append(f"-- {declaration.source_table}")
            lines.append(f"{self._compile(CreateSequence(sequence, if_not_exists=True))};")

        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text("\n".join(lines) + "\n", encoding="utf-8")
            result.output_files.append(str(path))
            logger.info(f"Wrote {len(sequences)} sequence declaration(s) to {path}")
        except OSError as e:
            self.add_error(result, f"Failed to write {path}: {e}")

        result.completed_at = datetime.utcnow()
        return result
