"""Data models for the conversion pipeline."""

from .config import (
    BusinessRule,
    ColumnMapping,
    ConversionConfig,
    DatabaseConfig,
    EnumRule,
    FieldType,
    FormatRule,
    NormalizationRule,
    NormalizerType,
    OutputSettings,
    ProcessingOptions,
    RangeRule,
    ReferenceData,
    RequiredRule,
    RuleSeverity,
    SequenceConfig,
    TableMapping,
    TenantSettings,
    ValidationRules,
)
from .table import ColumnInfo, RelationshipInfo, TableInfo
from .job import (
    ConversionJob,
    ErrorType,
    JobStatus,
    PerformanceStats,
    Phase,
    ProcessingError,
    ProgressUpdate,
    SequenceDeclaration,
    Severity,
    TableStats,
    ValidationOutcome,
    ValidationStats,
    WorkerJob,
    WorkerResult,
)
from .record import NormalizedRecord, SourceRecord, format_value

__all__ = [
    "BusinessRule",
    "ColumnMapping",
    "ConversionConfig",
    "DatabaseConfig",
    "EnumRule",
    "FieldType",
    "FormatRule",
    "NormalizationRule",
    "NormalizerType",
    "OutputSettings",
    "ProcessingOptions",
    "RangeRule",
    "ReferenceData",
    "RequiredRule",
    "RuleSeverity",
    "SequenceConfig",
    "TableMapping",
    "TenantSettings",
    "ValidationRules",
    "ColumnInfo",
    "RelationshipInfo",
    "TableInfo",
    "ConversionJob",
    "ErrorType",
    "JobStatus",
    "PerformanceStats",
    "Phase",
    "ProcessingError",
    "ProgressUpdate",
    "SequenceDeclaration",
    "Severity",
    "TableStats",
    "ValidationOutcome",
    "ValidationStats",
    "WorkerJob",
    "WorkerResult",
    "NormalizedRecord",
    "SourceRecord",
    "format_value",
]
