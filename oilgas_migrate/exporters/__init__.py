"""Exporters write normalized records to the conversion sinks."""

from .base import BaseExporter, ExportResult
from .csv_exporter import CSVExporter
from .sql_exporter import SQLScriptExporter
from .database_exporter import DatabaseExporter

__all__ = [
    "BaseExporter",
    "ExportResult",
    "CSVExporter",
    "SQLScriptExporter",
    "DatabaseExporter",
]
