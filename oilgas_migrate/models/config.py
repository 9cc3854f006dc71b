"""Conversion configuration models."""

import re
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional, Tuple, Union
from enum import Enum


class FieldType(str, Enum):
    """Target column types supported by the type coercer."""
    STRING = "string"
    INTEGER = "integer"
    DECIMAL = "decimal"
    BOOLEAN = "boolean"
    DATE = "date"
    TIMESTAMP = "timestamp"


class NormalizerType(str, Enum):
    """Value normalizers that can be attached to a column."""
    GRADE = "grade"
    SIZE = "size"
    CONNECTION = "connection"
    CUSTOMER_NAME = "customer_name"
    WORK_ORDER = "work_order"
    PHONE = "phone"
    EMAIL = "email"
    WEIGHT = "weight"


class RuleSeverity(str, Enum):
    """Severity attached to a business rule or normalizer."""
    CRITICAL = "critical"
    ERROR = "error"
    WARNING = "warning"


@dataclass(frozen=True)
class RequiredRule:
    """Value must be non-empty."""


@dataclass(frozen=True)
class EnumRule:
    """Value must be one of an allowed set (case-insensitive)."""
    values: Tuple[str, ...]


@dataclass(frozen=True)
class FormatRule:
    """Value must match a regular expression."""
    pattern: str


@dataclass(frozen=True)
class RangeRule:
    """Length and/or numeric value must fall within bounds."""
    min_length: Optional[int] = None
    max_length: Optional[int] = None
    min_value: Optional[Decimal] = None
    max_value: Optional[Decimal] = None


RuleCheck = Union[RequiredRule, EnumRule, FormatRule, RangeRule]


def _rule_check_from_dict(rule_type: str, params: Dict[str, Any]) -> RuleCheck:
    """Build the typed check for a rule loaded from JSON.

    Raises ValueError for an unknown rule type or for parameters that
    could never be evaluated against a value.
    """
    rule_type = (rule_type or "").lower()
    if rule_type == "required":
        return RequiredRule()
    if rule_type == "enum":
        return EnumRule(values=tuple(str(v) for v in params.get("values", [])))
    if rule_type in ("format", "regex"):
        if not params.get("pattern"):
            raise ValueError("format rule requires a 'pattern' parameter")
        pattern = str(params["pattern"])
        try:
            re.compile(pattern)
        except re.error as e:
            raise ValueError(f"invalid pattern {pattern!r}: {e}") from e
        return FormatRule(pattern=pattern)
    if rule_type == "range":
        def _int(key: str) -> Optional[int]:
            value = params.get(key)
            if value is None:
                return None
            if isinstance(value, bool):
                raise ValueError(f"{key} must be an integer, got {value!r}")
            try:
                return int(value)
            except (TypeError, ValueError) as e:
                raise ValueError(f"{key} must be an integer, got {value!r}") from e

        def _dec(key: str) -> Optional[Decimal]:
            value = params.get(key)
            if value is None:
                return None
            try:
                number = Decimal(str(value))
            except InvalidOperation as e:
                raise ValueError(f"{key} must be a number, got {value!r}") from e
            if not number.is_finite():
                raise ValueError(f"{key} must be a finite number, got {value!r}")
            return number

        return RangeRule(
            min_length=_int("min_length"),
            max_length=_int("max_length"),
            min_value=_dec("min_value") if "min_value" in params else _dec("min"),
            max_value=_dec("max_value") if "max_value" in params else _dec("max"),
        )
    raise ValueError(f"Unsupported rule type: {rule_type!r}")


def _rule_check_to_dict(check: RuleCheck) -> Tuple[str, Dict[str, Any]]:
    if isinstance(check, RequiredRule):
        return "required", {}
    if isinstance(check, EnumRule):
        return "enum", {"values": list(check.values)}
    if isinstance(check, FormatRule):
        return "format", {"pattern": check.pattern}
    params: Dict[str, Any] = {}
    for key in ("min_length", "max_length", "min_value", "max_value"):
        value = getattr(check, key)
        if value is not None:
            params[key] = str(value) if isinstance(value, Decimal) else value
    return "range", params


@dataclass
class BusinessRule:
    """A typed validation rule bound to a table/column pair."""
    name: str
    table: str
    column: str
    check: RuleCheck
    severity: RuleSeverity = RuleSeverity.ERROR
    error_message: str = ""

    @property
    def rule_type(self) -> str:
        return _rule_check_to_dict(self.check)[0]

    def applies_to(self, table: str, column: str) -> bool:
        """Check whether the rule covers the given table and column."""
        if self.column.lower() != column.lower():
            return False
        return self.table == "*" or self.table.lower() == table.lower()

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        rule_type, params = _rule_check_to_dict(self.check)
        return {
            "name": self.name,
            "table": self.table,
            "column": self.column,
            "rule_type": rule_type,
            "parameters": params,
            "error_message": self.error_message,
            "severity": self.severity.value,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BusinessRule":
        """Create from dictionary representation."""
        return cls(
            name=data.get("name", ""),
            table=data.get("table", "*") or "*",
            column=data.get("column", ""),
            check=_rule_check_from_dict(data.get("rule_type", ""), data.get("parameters") or {}),
            severity=RuleSeverity(data.get("severity", "error")),
            error_message=data.get("error_message", ""),
        )


@dataclass
class NormalizationRule:
    """A value normalizer applied to a column, with its options."""
    normalizer: NormalizerType
    config: Dict[str, Any] = field(default_factory=dict)
    severity: Optional[RuleSeverity] = None  # None: normalizer default

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        result = {"normalizer": self.normalizer.value}
        if self.config:
            result["config"] = self.config
        if self.severity:
            result["severity"] = self.severity.value
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "NormalizationRule":
        """Create from dictionary representation."""
        severity = data.get("severity")
        return cls(
            normalizer=NormalizerType(data.get("normalizer") or data.get("type")),
            config=dict(data.get("config") or data.get("parameters") or {}),
            severity=RuleSeverity(severity) if severity else None,
        )


@dataclass
class ColumnMapping:
    """Industry mapping for a logical field (e.g. grade, customer_name)."""
    source_column: str
    target_column: str
    data_type: FieldType = FieldType.STRING
    required: bool = False
    rules: List[NormalizationRule] = field(default_factory=list)
    default: Optional[str] = None  # Filled in for blank source values

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "source_column": self.source_column,
            "target_column": self.target_column,
            "data_type": self.data_type.value,
            "required": self.required,
            "rules": [r.to_dict() for r in self.rules],
            "default": self.default,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ColumnMapping":
        """Create from dictionary representation."""
        return cls(
            source_column=data.get("source_column", ""),
            target_column=data.get("target_column", ""),
            data_type=FieldType(data.get("data_type", "string")),
            required=data.get("required", False),
            rules=[NormalizationRule.from_dict(r) for r in data.get("rules", [])],
            default=data.get("default"),
        )


@dataclass
class TableMapping:
    """How a legacy table is renamed, or converted to a sequence."""
    source_name: str
    target_name: str = ""
    column_mappings: Dict[str, str] = field(default_factory=dict)
    is_counter_table: bool = False
    sequence_name: str = ""

    def validate(self) -> List[str]:
        """Return structural problems with this mapping."""
        errors = []
        if self.is_counter_table:
            if self.target_name:
                errors.append(f"Counter table {self.source_name} must not have a target table")
            if not self.sequence_name:
                errors.append(f"Counter table {self.source_name} requires a sequence name")
        return errors

    def target_column(self, column: str) -> Optional[str]:
        """Look up an explicit column rename, ignoring case."""
        if column in self.column_mappings:
            return self.column_mappings[column]
        lowered = column.lower()
        for source, target in self.column_mappings.items():
            if source.lower() == lowered:
                return target
        return None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "source_name": self.source_name,
            "target_name": self.target_name,
            "column_mappings": self.column_mappings,
            "is_counter_table": self.is_counter_table,
            "sequence_name": self.sequence_name,
        }

    @classmethod
    def from_dict(cls, name: str, data: Dict[str, Any]) -> "TableMapping":
        """Create from dictionary representation."""
        return cls(
            source_name=data.get("source_name") or name,
            target_name=data.get("target_name", ""),
            column_mappings=dict(data.get("column_mappings") or {}),
            is_counter_table=data.get("is_counter_table", False),
            sequence_name=data.get("sequence_name", ""),
        )


@dataclass
class ValidationRules:
    """Required tables/columns and the business-rule list."""
    required_tables: List[str] = field(default_factory=list)
    required_columns: Dict[str, List[str]] = field(default_factory=dict)
    business_rules: List[BusinessRule] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "required_tables": self.required_tables,
            "required_columns": self.required_columns,
            "business_rules": [r.to_dict() for r in self.business_rules],
        }


@dataclass
class ProcessingOptions:
    """Execution options for a conversion job."""
    workers: int = 4
    batch_size: int = 1000
    continue_on_error: bool = True
    dry_run: bool = False

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "workers": self.workers,
            "batch_size": self.batch_size,
            "continue_on_error": self.continue_on_error,
            "dry_run": self.dry_run,
        }


@dataclass
class DatabaseConfig:
    """Target-store connection descriptor."""
    host: str = "localhost"
    port: int = 5432
    username: str = ""
    password: str = ""
    database_name: str = ""
    ssl_mode: str = "disable"
    max_conns: int = 25
    idle_conns: int = 10
    conn_max_lifetime: int = 3600  # seconds
    tenant_db_template: str = "oilgas_%s"
    url: Optional[str] = None  # Explicit SQLAlchemy URL, overrides host/port

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation (without credentials)."""
        return {
            "host": self.host,
            "port": self.port,
            "username": self.username,
            "database_name": self.database_name,
            "ssl_mode": self.ssl_mode,
            "max_conns": self.max_conns,
            "idle_conns": self.idle_conns,
            "conn_max_lifetime": self.conn_max_lifetime,
            "tenant_db_template": self.tenant_db_template,
        }


@dataclass
class TenantSettings:
    """Tenant to database routing."""
    default_tenant: str = "location_longbeach"
    tenant_databases: Dict[str, str] = field(default_factory=dict)
    isolation_mode: str = "database"  # database or schema


@dataclass
class SequenceConfig:
    """Sequence numbering used when a counter table carries no value."""
    r_number_start: int = 1000
    work_order_start: int = 1000
    work_order_prefix: str = "WO"
    work_order_digits: int = 6

    def start_for(self, sequence_name: str) -> int:
        if sequence_name.startswith("work_order"):
            return self.work_order_start
        return self.r_number_start


@dataclass
class OutputSettings:
    """Which sinks run during the export phase."""
    csv: bool = True
    sql: bool = True
    direct: bool = False
    schema: str = "store"
    sql_mode: str = "copy"  # copy or insert


@dataclass
class ReferenceData:
    """Canonical dictionaries used by the value normalizers."""
    grades: Tuple[str, ...] = ()
    deprecated_grades: Tuple[str, ...] = ()
    size_fractions: Dict[Decimal, str] = field(default_factory=dict)
    connection_codes: Tuple[str, ...] = ()
    connection_aliases: Dict[str, str] = field(default_factory=dict)


@dataclass
class ConversionConfig:
    """Complete configuration for one company's conversion."""
    company: str = ""
    tenant_id: str = ""
    oil_gas_mappings: Dict[str, ColumnMapping] = field(default_factory=dict)
    table_mappings: Dict[str, TableMapping] = field(default_factory=dict)
    validation_rules: ValidationRules = field(default_factory=ValidationRules)
    processing_options: ProcessingOptions = field(default_factory=ProcessingOptions)
    database_config: DatabaseConfig = field(default_factory=DatabaseConfig)
    tenant_settings: TenantSettings = field(default_factory=TenantSettings)
    sequence_config: SequenceConfig = field(default_factory=SequenceConfig)
    output_settings: OutputSettings = field(default_factory=OutputSettings)
    reference: ReferenceData = field(default_factory=ReferenceData)

    def validate(self) -> List[str]:
        """Return every structural problem in the configuration."""
        errors = []
        for mapping in self.table_mappings.values():
            errors.extend(mapping.validate())
        if self.processing_options.workers < 1:
            errors.append("processing_options.workers must be at least 1")
        if self.processing_options.batch_size < 1:
            errors.append("processing_options.batch_size must be at least 1")
        return errors

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "company": self.company,
            "tenant_id": self.tenant_id,
            "oil_gas_mappings": {k: v.to_dict() for k, v in self.oil_gas_mappings.items()},
            "table_mappings": {k: v.to_dict() for k, v in self.table_mappings.items()},
            "validation_rules": self.validation_rules.to_dict(),
            "processing_options": self.processing_options.to_dict(),
            "database_config": self.database_config.to_dict(),
        }
