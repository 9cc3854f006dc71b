"""Direct-insert exporter for a relational target store."""

import logging
import threading
from typing import Dict, List, Optional
from datetime import datetime

from sqlalchemy import Column, MetaData, Sequence, Table, Text, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.schema import CreateSchema

from .base import BaseExporter, ExportResult
from ..exceptions import ExportError
from ..models.job import SequenceDeclaration
from ..models.record import NormalizedRecord, format_value
from ..models.table import TableInfo

logger = logging.getLogger(__name__)


class DatabaseExporter(BaseExporter):
    """
    Inserts normalized records straight into the target store.

    Supports:
    - Creating missing target tables (all columns text)
    - Batched inserts, one pooled connection borrowed per batch
    - Sequence creation on dialects that have sequences
    """

    name = "database"

    def __init__(self, engine: Engine, schema: Optional[str] = "store", batch_size: int = 1000):
        """
        Initialize the exporter.

        Args:
            engine: SQLAlchemy engine from the connection registry
            schema: Target schema namespace (ignored on SQLite)
            batch_size: Rows per insert batch
        """
        super().__init__(batch_size=batch_size)
        self.engine = engine
        self.schema = None if engine.dialect.name == "sqlite" else (schema or None)
        self.metadata = MetaData(schema=self.schema)
        self.peak_connections = 0
        self._lock = threading.Lock()

    def validate_connection(self) -> bool:
        """
        Check the target store is reachable and the schema exists.

        Raises:
            ExportError: critical, when the store cannot be reached
        """
        try:
            with self.engine.begin() as conn:
                conn.execute(text("SELECT 1"))
                if self.schema:
                    conn.execute(CreateSchema(self.schema, if_not_exists=True))
            logger.info(f"Target store reachable: {self.engine.url.render_as_string(hide_password=True)}")
            return True
        except SQLAlchemyError as e:
            logger.error(f"Target store unreachable: {e}")
            raise ExportError(f"Target store unreachable: {e}", critical=True) from e

    def _target_table(self, table: TableInfo) -> Table:
        with self._lock:
            key = f"{self.schema}.{table.name}" if self.schema else table.name
            if key in self.metadata.tables:
                return self.metadata.tables[key]
            return Table(table.name, self.metadata, *[Column(name, Text) for name in table.column_names])

    def _track_connections(self) -> None:
        checkedout = getattr(self.engine.pool, "checkedout", None)
        if checkedout is None:
            return
        with self._lock:
            self.peak_connections = max(self.peak_connections, checkedout())

    def export_table(self, table: TableInfo, records: List[NormalizedRecord]) -> ExportResult:
        result = self.new_result(table.name)
        columns = table.column_names

        try:
            target = self._target_table(table)
            target.create(self.engine, checkfirst=True)
            for batch in self.batches(records):
                rows = [self._row(record, columns) for record in batch]
                with self.engine.begin() as conn:
                    self._track_connections()
                    conn.execute(target.insert(), rows)
                result.records_written += len(batch)
                logger.debug(f"Inserted {result.records_written}/{len(records)} {table.name} records")
            logger.info(f"Inserted {result.records_written} {table.name} records")
        except SQLAlchemyError as e:
            self.add_error(result, f"Insert failed after {result.records_written} records: {e}")

        result.completed_at = datetime.utcnow()
        return result

    @staticmethod
    def _row(record: NormalizedRecord, columns: List[str]) -> Dict[str, Optional[str]]:
        return {
            name: None if record.data.get(name) is None else format_value(record.data[name])
            for name in columns
        }

    def export_sequences(self, sequences: List[SequenceDeclaration]) -> ExportResult:
        result = self.new_result("sequences")
        if sequences and not self.engine.dialect.supports_sequences:
            logger.info(f"{self.engine.dialect.name} has no sequences; skipping {len(sequences)} declaration(s)")
            sequences = []

        for declaration in sequences:
            try:
                Sequence(declaration.name, start=declaration.start_value, schema=self.schema).create(
                    self.engine, checkfirst=True)
                logger.info(f"Created sequence {declaration.name} starting at {declaration.start_value}")
            except SQLAlchemyError as e:
                self.add_error(result, f"Failed to create sequence {declaration.name}: {e}")

        result.completed_at = datetime.utcnow()
        return result
