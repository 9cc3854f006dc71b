"""Extractors for legacy table exports."""

from .base import BaseExtractor, ExtractionResult
from .csv_extractor import CSVTableExtractor, DelimitedFileReader

__all__ = [
    "BaseExtractor",
    "ExtractionResult",
    "CSVTableExtractor",
    "DelimitedFileReader",
]
