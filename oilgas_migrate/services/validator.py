"""Business rule validation for extracted records."""

import re
import logging
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Dict, List, Optional, Tuple

from ..models.config import (
    BusinessRule,
    EnumRule,
    FormatRule,
    RangeRule,
    RequiredRule,
    RuleCheck,
    RuleSeverity,
)
from ..models.job import ErrorType, ProcessingError, Severity, ValidationOutcome
from ..models.record import SourceRecord
from ..models.table import TableInfo
from .rule_repository import RuleRepository

logger = logging.getLogger(__name__)


@dataclass
class TableValidation:
    """Validation results for one table."""
    table: str
    issues_by_row: Dict[int, List[ProcessingError]] = field(default_factory=dict)
    errors: List[ProcessingError] = field(default_factory=list)
    validations: List[ValidationOutcome] = field(default_factory=list)

    @property
    def invalid_rows(self) -> int:
        return sum(
            1 for issues in self.issues_by_row.values()
            if any(i.severity <= Severity.ERROR for i in issues)
        )


def evaluate_rule(check: RuleCheck, value: str) -> bool:
    """Evaluate a typed rule against a raw value."""
    text = value.strip()
    match check:
        case RequiredRule():
            return bool(text)
        case EnumRule(values=values):
            return text.upper() in {v.upper() for v in values}
        case FormatRule(pattern=pattern):
            return re.search(pattern, text) is not None
        case RangeRule(min_length=min_length, max_length=max_length,
                       min_value=min_value, max_value=max_value):
            if min_length is not None and len(text) < min_length:
                return False
            if max_length is not None and len(text) > max_length:
                return False
            if min_value is None and max_value is None:
                return True
            try:
                number = Decimal(text.replace(",", ""))
            except InvalidOperation:
                return False
            if not number.is_finite():
                return False
            if min_value is not None and number < min_value:
                return False
            if max_value is not None and number > max_value:
                return False
            return True
        case _:
            raise TypeError(f"Unsupported rule check: {check!r}")


class BusinessRuleValidator:
    """
    Validates records against structural and configured business rules.

    Each field is reported at most once as missing: non-nullable columns,
    configured required columns, required industry mappings and required
    business rules are merged into one check.
    """

    def __init__(self, repository: RuleRepository):
        """
        Initialize the validator.

        Args:
            repository: Source of required columns and business rules
        """
        self.repository = repository

    def check_required_tables(self, tables: List[TableInfo]) -> List[ProcessingError]:
        """One warning for every configured table missing from the source."""
        present = set()
        for table in tables:
            present.add(table.name.lower())
            present.add(table.original_name.lower())

        warnings = []
        for required in self.repository.required_tables:
            if required.lower() not in present:
                logger.warning(f"Required table {required} not found in source")
                warnings.append(ProcessingError(
                    error_type=ErrorType.VALIDATION,
                    severity=Severity.WARNING,
                    message=f"Required table '{required}' not found in source",
                    table=required,
                ))
        return warnings

    def required_columns(self, table: TableInfo) -> Dict[str, str]:
        """Required column name -> reason."""
        required: Dict[str, str] = {}
        for column in table.columns:
            if not column.nullable and column.default is None:
                required[column.name] = "column is not nullable"
            mapping = self.repository.column_mapping_for(column.name)
            if mapping and mapping.required:
                required.setdefault(column.name, "field is required")

        configured = (self.repository.required_columns_for(table.name)
                      or self.repository.required_columns_for(table.original_name))
        for name in configured:
            required.setdefault(name, f"required for {table.name}")
        return required

    def rules_for_table(self, table: TableInfo) -> List[Tuple[str, BusinessRule]]:
        """(column name, rule) pairs that apply to the table's columns."""
        pairs = []
        for column in table.columns:
            for rule in self.repository.rules_for(table.name, column.name):
                pairs.append((column.name, rule))
            if table.original_name.lower() != table.name.lower():
                for rule in self.repository.rules_for(table.original_name, column.name):
                    if rule.table != "*" and (column.name, rule) not in pairs:
                        pairs.append((column.name, rule))
        return pairs

    def validate_table(self, table: TableInfo, records: List[SourceRecord]) -> TableValidation:
        """
        Validate every record of a table.

        Args:
            table: Analyzed table
            records: Extracted records

        Returns:
            TableValidation with issues keyed by row number
        """
        result = TableValidation(table=table.name)
        required = self.required_columns(table)
        rules = self.rules_for_table(table)

        for name in required:
            if table.get_column(name) is None:
                result.errors.append(ProcessingError(
                    error_type=ErrorType.VALIDATION,
                    severity=Severity.ERROR,
                    message=f"Required column '{name}' missing from table {table.name}",
                    table=table.name,
                    column=name,
                ))

        for record in records:
            issues, outcomes = self.validate_record(record, table, required, rules)
            if issues:
                result.issues_by_row[record.row_number] = issues
                result.errors.extend(issues)
            result.validations.extend(outcomes)

        logger.info(
            f"Validated {len(records)} records of {table.name}: "
            f"{result.invalid_rows} invalid, {len(result.errors)} issue(s)"
        )
        return result

    def validate_record(
        self,
        record: SourceRecord,
        table: TableInfo,
        required: Optional[Dict[str, str]] = None,
        rules: Optional[List[Tuple[str, BusinessRule]]] = None,
    ) -> Tuple[List[ProcessingError], List[ValidationOutcome]]:
        """
        Validate one record.

        Args:
            record: Extracted record
            table: Analyzed table
            required: Precomputed required columns
            rules: Precomputed (column, rule) pairs

        Returns:
            Tuple of (issues, rule outcomes)
        """
        if required is None:
            required = self.required_columns(table)
        if rules is None:
            rules = self.rules_for_table(table)

        issues: List[ProcessingError] = []
        outcomes: List[ValidationOutcome] = []
        missing = set()

        for name, reason in required.items():
            column = table.get_column(name)
            if column is None:
                continue
            value = record.get(name)
            if value.strip() or column.default is not None:
                outcomes.append(ValidationOutcome(ErrorType.VALIDATION.value, True))
                continue
            missing.add(name)
            message = f"Missing value for {name} ({reason})"
            issues.append(ProcessingError(
                error_type=ErrorType.VALIDATION,
                severity=Severity.ERROR,
                message=message,
                table=table.name,
                record_id=record.record_id,
                column=name,
                original_value=value,
                suggested_fix=f"Provide a value for {name}",
            ))
            outcomes.append(ValidationOutcome(ErrorType.VALIDATION.value, False, message))

        for column, rule in rules:
            value = _with_default(record.get(column), table, column)
            if isinstance(rule.check, RequiredRule):
                if column in missing or column in required:
                    continue
            elif not value.strip():
                continue

            error_type = ErrorType.CRITICAL if rule.severity == RuleSeverity.CRITICAL else ErrorType.BUSINESS_RULE
            if evaluate_rule(rule.check, value):
                outcomes.append(ValidationOutcome(error_type.value, True))
                continue

            message = rule.error_message or f"Rule {rule.name} failed for {column}"
            issues.append(ProcessingError(
                error_type=error_type,
                severity=_severity(rule.severity),
                message=message,
                table=table.name,
                record_id=record.record_id,
                column=column,
                original_value=value,
                suggested_fix=_suggested_fix(rule.check),
            ))
            outcomes.append(ValidationOutcome(error_type.value, False, message))

        return issues, outcomes


def _with_default(value: str, table: TableInfo, name: str) -> str:
    if value.strip():
        return value
    column = table.get_column(name)
    if column is not None and column.default is not None:
        return column.default
    return value


def _severity(severity: RuleSeverity) -> Severity:
    if severity == RuleSeverity.CRITICAL:
        return Severity.CRITICAL
    if severity == RuleSeverity.WARNING:
        return Severity.WARNING
    return Severity.ERROR


def _suggested_fix(check: RuleCheck) -> Optional[str]:
    if isinstance(check, EnumRule):
        return f"Use one of: {', '.join(check.values)}"
    if isinstance(check, FormatRule):
        return f"Match the pattern {check.pattern}"
    if isinstance(check, RangeRule):
        bounds = []
        if check.min_length is not None or check.max_length is not None:
            bounds.append(f"length {check.min_length or 0}-{check.max_length or 'any'}")
        if check.min_value is not None or check.max_value is not None:
            bounds.append(f"value {check.min_value if check.min_value is not None else 'any'}"
                          f"-{check.max_value if check.max_value is not None else 'any'}")
        return f"Keep within {', '.join(bounds)}" if bounds else None
    return None
