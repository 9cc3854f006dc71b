"""Transformation engine: column renaming, value normalization and type coercion."""

import re
import logging
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Dict, List, Optional, Tuple

from ..exceptions import NormalizationError
from ..models.config import ColumnMapping, FieldType, RuleSeverity
from ..models.job import (
    ErrorType,
    ProcessingError,
    SequenceDeclaration,
    Severity,
    ValidationOutcome,
)
from ..models.record import NormalizedRecord, SourceRecord
from ..models.table import ColumnInfo, TableInfo
from .normalizers import TypeCoercer, ValueNormalizer, default_severity
from .rule_repository import RuleRepository

logger = logging.getLogger(__name__)

SEVERITY_LEVELS = {
    RuleSeverity.CRITICAL: Severity.CRITICAL,
    RuleSeverity.ERROR: Severity.ERROR,
    RuleSeverity.WARNING: Severity.WARNING,
}


def normalize_identifier(name: str) -> str:
    """Generic legacy name cleanup: 'Date Recvd' becomes 'date_recvd'."""
    text = name.strip().lower()
    text = re.sub(r"[\s\-]+", "_", text)
    text = re.sub(r"[^a-z0-9_]", "_", text)
    text = re.sub(r"_+", "_", text)
    return text.strip("_")


class ColumnMapper:
    """Resolves target table and column names for legacy tables."""

    def __init__(self, repository: RuleRepository):
        self.repository = repository

    def table_target(self, original_name: str) -> Tuple[str, bool, str]:
        """
        Resolve a legacy table name.

        Args:
            original_name: Table name as exported (file stem)

        Returns:
            Tuple of (target name, is counter table, sequence name)
        """
        mapping, found = self.repository.get_table_mapping(original_name)
        if found and mapping.is_counter_table:
            return normalize_identifier(original_name), True, mapping.sequence_name
        if found and mapping.target_name:
            return mapping.target_name, False, ""
        return normalize_identifier(original_name), False, ""

    def column_target(self, table_name: str, column_name: str) -> str:
        """Explicit table mapping first, then the industry mapping, then generic cleanup."""
        mapping, found = self.repository.get_table_mapping(table_name)
        if found:
            target = mapping.target_column(column_name)
            if target:
                return target
        industry = self.repository.column_mapping_by_source(column_name)
        if industry:
            return industry.target_column
        return normalize_identifier(column_name)


@dataclass
class TableTransformation:
    """Everything the transform phase produced for one table."""
    table: str
    records: List[NormalizedRecord] = field(default_factory=list)
    errors: List[ProcessingError] = field(default_factory=list)
    validations: List[ValidationOutcome] = field(default_factory=list)
    sequence: Optional[SequenceDeclaration] = None

    @property
    def valid_records(self) -> List[NormalizedRecord]:
        return [r for r in self.records if r.is_valid]

    @property
    def invalid_count(self) -> int:
        return sum(1 for r in self.records if not r.is_valid)


class RecordTransformer:
    """
    Engine for turning extracted rows into normalized target records.

    Supports:
    - Industry normalizers attached through column mappings
    - Target type coercion
    - Counter-table to sequence conversion
    """

    def __init__(
        self,
        repository: RuleRepository,
        normalizer: Optional[ValueNormalizer] = None,
        coercer: Optional[TypeCoercer] = None,
    ):
        self.repository = repository
        config = repository.config
        self.normalizer = normalizer or ValueNormalizer(
            config.reference, work_order_width=config.sequence_config.work_order_digits)
        self.coercer = coercer or TypeCoercer()

    def transform_table(
        self,
        table: TableInfo,
        records: List[SourceRecord],
        prior_issues: Optional[Dict[int, List[ProcessingError]]] = None,
    ) -> TableTransformation:
        """
        Transform every record of a table.

        Args:
            table: Analyzed table
            records: Extracted records in source order
            prior_issues: Validation issues keyed by row number, carried onto the records

        Returns:
            TableTransformation with records in source order
        """
        result = TableTransformation(table=table.name)
        if table.is_counter_table:
            result.sequence = self.convert_counter_table(table, records)
            return result

        prior_issues = prior_issues or {}
        for record in records:
            normalized, outcomes = self.transform_record(record, table)
            result.errors.extend(normalized.issues)
            normalized.issues = list(prior_issues.get(record.row_number, [])) + normalized.issues
            result.records.append(normalized)
            result.validations.extend(outcomes)

        logger.info(
            f"Transformed {len(result.records)} records of {table.name} "
            f"({result.invalid_count} invalid)"
        )
        return result

    def transform_record(
        self, record: SourceRecord, table: TableInfo
    ) -> Tuple[NormalizedRecord, List[ValidationOutcome]]:
        """
        Normalize and coerce one record.

        Args:
            record: Extracted record keyed by target column name
            table: Analyzed table

        Returns:
            Tuple of (normalized record, rule outcomes for the quality score)
        """
        normalized = NormalizedRecord(
            table=table.name, record_id=record.record_id, row_number=record.row_number)
        outcomes: List[ValidationOutcome] = []

        for column in table.columns:
            value = record.get(column.name).strip()
            if not value and column.default is not None:
                value = column.default
            mapping = self.repository.column_mapping_for(column.name)
            if value and mapping:
                value = self._normalize_value(value, column, mapping, record, normalized, outcomes)
            normalized.data[column.name] = self._coerce_value(
                value, column, mapping, record, normalized, outcomes)

        return normalized, outcomes

    def _normalize_value(
        self,
        value: str,
        column: ColumnInfo,
        mapping: ColumnMapping,
        record: SourceRecord,
        normalized: NormalizedRecord,
        outcomes: List[ValidationOutcome],
    ) -> str:
        for rule in mapping.rules:
            try:
                value, warning = self.normalizer.apply(rule.normalizer, value, rule.config)
            except NormalizationError as e:
                severity = SEVERITY_LEVELS[rule.severity or default_severity(rule.normalizer)]
                normalized.issues.append(ProcessingError(
                    error_type=ErrorType.TRANSFORMATION,
                    severity=severity,
                    message=e.message,
                    table=record.table,
                    record_id=record.record_id,
                    column=column.name,
                    original_value=value,
                    suggested_fix=e.suggested_fix,
                ))
                outcomes.append(ValidationOutcome(ErrorType.TRANSFORMATION.value, False, e.message))
                return value

            outcomes.append(ValidationOutcome(ErrorType.TRANSFORMATION.value, True))
            if warning:
                normalized.issues.append(ProcessingError(
                    error_type=ErrorType.TRANSFORMATION,
                    severity=Severity.WARNING,
                    message=warning,
                    table=record.table,
                    record_id=record.record_id,
                    column=column.name,
                    original_value=value,
                ))
        return value

    def _coerce_value(
        self,
        value: str,
        column: ColumnInfo,
        mapping: Optional[ColumnMapping],
        record: SourceRecord,
        normalized: NormalizedRecord,
        outcomes: List[ValidationOutcome],
    ):
        field_type = mapping.data_type if mapping else _field_type(column.target_type)
        try:
            typed = self.coercer.coerce(value, field_type)
        except NormalizationError as e:
            required = not column.nullable or (mapping is not None and mapping.required)
            normalized.issues.append(ProcessingError(
                error_type=ErrorType.TRANSFORMATION,
                severity=Severity.ERROR if required else Severity.WARNING,
                message=f"Cannot convert {column.name} to {field_type.value}: {e.message}",
                table=record.table,
                record_id=record.record_id,
                column=column.name,
                original_value=value,
                suggested_fix=e.suggested_fix,
            ))
            outcomes.append(ValidationOutcome(ErrorType.TRANSFORMATION.value, False, e.message))
            # optional columns load as NULL; the raw text stays on the issue
            return value if required else None

        if value and field_type != FieldType.STRING:
            outcomes.append(ValidationOutcome(ErrorType.TRANSFORMATION.value, True))
        return typed

    def convert_counter_table(self, table: TableInfo, records: List[SourceRecord]) -> SequenceDeclaration:
        """
        Seed a sequence from a legacy counter table.

        The highest integer found anywhere in the table plus one becomes the
        start value. A counter with no usable value starts at the configured
        start for its sequence.
        """
        highest: Optional[int] = None
        for record in records:
            for value in record.data.values():
                number = _parse_counter(value)
                if number is not None and (highest is None or number > highest):
                    highest = number

        sequence_name = table.sequence_name or f"{table.name}_seq"
        if highest is None:
            start = self.repository.config.sequence_config.start_for(sequence_name)
            logger.warning(f"Counter table {table.original_name} has no numeric value, starting at {start}")
        else:
            start = highest + 1
        logger.info(f"Counter table {table.original_name} seeds {sequence_name} at {start}")
        return SequenceDeclaration(name=sequence_name, start_value=start, source_table=table.original_name)


def _field_type(name: str) -> FieldType:
    try:
        return FieldType(name)
    except ValueError:
        return FieldType.STRING


def _parse_counter(value: str) -> Optional[int]:
    text = (value or "").strip().replace(",", "")
    if not text:
        return None
    try:
        number = Decimal(text)
    except InvalidOperation:
        return None
    if not number.is_finite() or number != number.to_integral_value():
        return None
    return int(number)
