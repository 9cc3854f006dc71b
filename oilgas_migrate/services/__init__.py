"""Pipeline services: configuration, analysis, validation, transformation and reporting."""

from .rule_repository import RuleRepository
from .normalizers import TypeCoercer, ValueNormalizer
from .transformer import ColumnMapper, RecordTransformer, TableTransformation
from .validator import BusinessRuleValidator, TableValidation
from .schema_analyzer import AnalysisResult, SchemaAnalyzer
from .connection_registry import ConnectionRegistry
from . import reporter

__all__ = [
    "RuleRepository",
    "TypeCoercer",
    "ValueNormalizer",
    "ColumnMapper",
    "RecordTransformer",
    "TableTransformation",
    "BusinessRuleValidator",
    "TableValidation",
    "AnalysisResult",
    "SchemaAnalyzer",
    "ConnectionRegistry",
    "reporter",
]
