"""Repository for conversion mappings, reference data and business rules."""

import os
import json
import logging
from dataclasses import replace
from decimal import Decimal
from typing import Any, Dict, List, Mapping, Optional, Tuple
from pathlib import Path

from pydantic import BaseModel, Field, ValidationError

from ..exceptions import ConfigurationError
from ..models.config import (
    BusinessRule,
    ColumnMapping,
    ConversionConfig,
    FieldType,
    NormalizationRule,
    NormalizerType,
    RuleSeverity,
    TableMapping,
)
from .defaults import default_config

logger = logging.getLogger(__name__)


# Override file schema
class BusinessRuleFile(BaseModel):
    name: str
    table: str = "*"
    column: str
    rule_type: str
    parameters: Dict[str, Any] = Field(default_factory=dict)
    error_message: str = ""
    severity: RuleSeverity = RuleSeverity.ERROR


class NormalizationRuleFile(BaseModel):
    normalizer: NormalizerType
    config: Dict[str, Any] = Field(default_factory=dict)
    severity: Optional[RuleSeverity] = None


class ColumnMappingFile(BaseModel):
    source_column: str = ""
    target_column: str
    data_type: FieldType = FieldType.STRING
    required: bool = False
    rules: List[NormalizationRuleFile] = Field(default_factory=list)
    default: Optional[str] = None


class TableMappingFile(BaseModel):
    source_name: Optional[str] = None
    target_name: str = ""
    column_mappings: Dict[str, str] = Field(default_factory=dict)
    is_counter_table: bool = False
    sequence_name: str = ""


class ValidationRulesFile(BaseModel):
    required_tables: Optional[List[str]] = None
    required_columns: Dict[str, List[str]] = Field(default_factory=dict)
    business_rules: List[BusinessRuleFile] = Field(default_factory=list)


class ProcessingOptionsFile(BaseModel):
    workers: int = Field(4, ge=1)
    batch_size: int = Field(1000, ge=1)
    continue_on_error: bool = True
    dry_run: bool = False


class DatabaseConfigFile(BaseModel):
    host: str = "localhost"
    port: int = 5432
    username: str = ""
    password: str = ""
    database_name: str = ""
    ssl_mode: str = "disable"
    max_conns: int = Field(25, ge=1)
    idle_conns: int = Field(10, ge=0)
    conn_max_lifetime: int = 3600
    tenant_db_template: str = "oilgas_%s"
    url: Optional[str] = None


class TenantSettingsFile(BaseModel):
    default_tenant: str = "location_longbeach"
    tenant_databases: Dict[str, str] = Field(default_factory=dict)
    isolation_mode: str = "database"


class SequenceConfigFile(BaseModel):
    r_number_start: int = 1000
    work_order_start: int = 1000
    work_order_prefix: str = "WO"
    work_order_digits: int = Field(6, ge=1)


class OutputSettingsFile(BaseModel):
    csv: bool = True
    sql: bool = True
    direct: bool = False
    schema_name: str = Field("store", alias="schema")
    sql_mode: str = "copy"


class ReferenceDataFile(BaseModel):
    grades: Optional[List[str]] = None
    deprecated_grades: Optional[List[str]] = None
    connection_aliases: Dict[str, str] = Field(default_factory=dict)


class ConversionConfigFile(BaseModel):
    company: Optional[str] = None
    tenant_id: Optional[str] = None
    oil_gas_mappings: Dict[str, ColumnMappingFile] = Field(default_factory=dict)
    table_mappings: Dict[str, TableMappingFile] = Field(default_factory=dict)
    validation_rules: Optional[ValidationRulesFile] = None
    processing_options: Optional[ProcessingOptionsFile] = None
    database_config: Optional[DatabaseConfigFile] = None
    tenant_settings: Optional[TenantSettingsFile] = None
    sequence_config: Optional[SequenceConfigFile] = None
    output_settings: Optional[OutputSettingsFile] = None
    reference_data: Optional[ReferenceDataFile] = None


ENVIRONMENT_OVERRIDES = {
    "OILGAS_DB_HOST": "host",
    "OILGAS_DB_PORT": "port",
    "OILGAS_DB_USER": "username",
    "OILGAS_DB_PASSWORD": "password",
    "OILGAS_DB_NAME": "database_name",
}


def _set_fields(model: Optional[BaseModel], rename: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
    """Fields explicitly present in the override file."""
    if model is None:
        return {}
    values = model.model_dump(exclude_unset=True)
    for source, target in (rename or {}).items():
        if source in values:
            values[target] = values.pop(source)
    return values


class RuleRepository:
    """
    Registry for the active conversion configuration.

    Supports:
    - Built-in oil & gas defaults
    - Overlaying a JSON override file
    - Environment overrides for the database connection
    - Case-insensitive table mapping and rule lookups
    """

    def __init__(self, config: Optional[ConversionConfig] = None):
        """
        Initialize the repository.

        Args:
            config: Starting configuration; built-in defaults when omitted
        """
        self.config = config or default_config()
        self._reindex()

    @classmethod
    def load(
        cls,
        config_path: Optional[str] = None,
        environ: Optional[Mapping[str, str]] = None,
    ) -> "RuleRepository":
        """
        Build a repository from defaults, an optional override file and the environment.

        Args:
            config_path: JSON override file; a missing file means defaults only
            environ: Environment mapping (defaults to os.environ)

        Returns:
            The loaded repository
        """
        repository = cls()
        if config_path:
            if Path(config_path).exists():
                repository.load_overrides(config_path)
            else:
                logger.info(f"Config file {config_path} not found, using built-in defaults")
        repository.apply_environment(os.environ if environ is None else environ)
        return repository

    def load_overrides(self, config_path: str) -> None:
        """Overlay a JSON configuration file onto the current configuration."""
        try:
            with open(config_path, "r", encoding="utf-8") as f:
                raw = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise ConfigurationError(f"Cannot read config file {config_path}: {e}") from e

        try:
            overrides = ConversionConfigFile.model_validate(raw)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid config file {config_path}: {e}") from e

        self.apply_overrides(overrides)
        logger.info(f"Loaded configuration overrides from {config_path}")

    def apply_overrides(self, overrides: ConversionConfigFile) -> None:
        """Merge a validated override document into the configuration."""
        config = self.config

        if overrides.company is not None:
            config.company = overrides.company
        if overrides.tenant_id is not None:
            config.tenant_id = overrides.tenant_id

        for name, mapping in overrides.oil_gas_mappings.items():
            config.oil_gas_mappings[name] = ColumnMapping(
                source_column=mapping.source_column or name,
                target_column=mapping.target_column,
                data_type=mapping.data_type,
                required=mapping.required,
                rules=[
                    NormalizationRule(normalizer=r.normalizer, config=dict(r.config), severity=r.severity)
                    for r in mapping.rules
                ],
                default=mapping.default,
            )

        for name, mapping in overrides.table_mappings.items():
            existing = self._find_key(config.table_mappings, name)
            if existing is not None:
                del config.table_mappings[existing]
            config.table_mappings[name] = TableMapping.from_dict(name, mapping.model_dump())

        if overrides.validation_rules is not None:
            self._merge_validation_rules(overrides.validation_rules)

        config.processing_options = replace(
            config.processing_options, **_set_fields(overrides.processing_options))
        config.database_config = replace(
            config.database_config, **_set_fields(overrides.database_config))
        tenant_fields = _set_fields(overrides.tenant_settings)
        if "tenant_databases" in tenant_fields:
            tenant_fields["tenant_databases"] = {
                **config.tenant_settings.tenant_databases, **tenant_fields["tenant_databases"]}
        config.tenant_settings = replace(config.tenant_settings, **tenant_fields)
        config.sequence_config = replace(
            config.sequence_config, **_set_fields(overrides.sequence_config))
        config.output_settings = replace(
            config.output_settings, **_set_fields(overrides.output_settings, {"schema_name": "schema"}))

        if overrides.reference_data is not None:
            reference = overrides.reference_data
            if reference.grades is not None:
                config.reference.grades = tuple(g.upper() for g in reference.grades)
            if reference.deprecated_grades is not None:
                config.reference.deprecated_grades = tuple(g.upper() for g in reference.deprecated_grades)
            for alias, code in reference.connection_aliases.items():
                config.reference.connection_aliases[alias.upper()] = code.upper()

        problems = config.validate()
        if problems:
            raise ConfigurationError("; ".join(problems))
        self._reindex()

    def _merge_validation_rules(self, rules_file: ValidationRulesFile) -> None:
        rules = self.config.validation_rules
        if rules_file.required_tables is not None:
            rules.required_tables = list(rules_file.required_tables)
        rules.required_columns.update(rules_file.required_columns)

        by_name = {rule.name: i for i, rule in enumerate(rules.business_rules)}
        for rule_file in rules_file.business_rules:
            try:
                rule = BusinessRule.from_dict(rule_file.model_dump(mode="json"))
            except ValueError as e:
                raise ConfigurationError(f"Invalid business rule {rule_file.name}: {e}") from e
            if rule.name in by_name:
                rules.business_rules[by_name[rule.name]] = rule
            else:
                by_name[rule.name] = len(rules.business_rules)
                rules.business_rules.append(rule)

    def apply_environment(self, environ: Mapping[str, str]) -> None:
        """Replace database connection fields from OILGAS_DB_* variables."""
        updates: Dict[str, Any] = {}
        for variable, field_name in ENVIRONMENT_OVERRIDES.items():
            value = environ.get(variable)
            if not value:
                continue
            if field_name == "port":
                try:
                    updates[field_name] = int(value)
                except ValueError as e:
                    raise ConfigurationError(f"{variable} must be an integer, got {value!r}") from e
            else:
                updates[field_name] = value
        if updates:
            logger.debug(f"Database settings overridden from environment: {sorted(updates)}")
            self.config.database_config = replace(self.config.database_config, **updates)

    def _reindex(self) -> None:
        self._table_index = {name.lower(): name for name in self.config.table_mappings}
        for name, mapping in self.config.table_mappings.items():
            self._table_index.setdefault(mapping.source_name.lower(), name)

    @staticmethod
    def _find_key(mapping: Dict[str, Any], name: str) -> Optional[str]:
        lowered = name.lower()
        for key in mapping:
            if key.lower() == lowered:
                return key
        return None

    def get_table_mapping(self, table_name: str) -> Tuple[Optional[TableMapping], bool]:
        """Look up a table mapping, ignoring case."""
        key = self._table_index.get(table_name.lower())
        if key is None:
            return None, False
        return self.config.table_mappings[key], True

    def is_counter_table(self, table_name: str) -> bool:
        mapping, found = self.get_table_mapping(table_name)
        return found and mapping.is_counter_table

    def get_target_database_name(self, tenant: str) -> str:
        """Resolve the database for a tenant, falling back to the name template."""
        databases = self.config.tenant_settings.tenant_databases
        if tenant in databases:
            return databases[tenant]
        return self.config.database_config.tenant_db_template % tenant

    def column_mapping_for(self, column: str) -> Optional[ColumnMapping]:
        """Find the industry mapping whose logical or target name matches a column."""
        lowered = column.lower()
        for name, mapping in self.config.oil_gas_mappings.items():
            if name.lower() == lowered or mapping.target_column.lower() == lowered:
                return mapping
        return None

    def column_mapping_by_source(self, source_column: str) -> Optional[ColumnMapping]:
        """Find the industry mapping for a raw legacy header."""
        lowered = source_column.lower()
        for mapping in self.config.oil_gas_mappings.values():
            if mapping.source_column and mapping.source_column.lower() == lowered:
                return mapping
        return None

    def rules_for(self, table: str, column: str) -> List[BusinessRule]:
        """Business rules bound to a column of a table (or to any table)."""
        return [r for r in self.config.validation_rules.business_rules if r.applies_to(table, column)]

    def required_columns_for(self, table: str) -> List[str]:
        required = self.config.validation_rules.required_columns
        key = self._find_key(required, table)
        return list(required[key]) if key is not None else []

    @property
    def required_tables(self) -> List[str]:
        return list(self.config.validation_rules.required_tables)

    @property
    def grade_dictionary(self) -> Tuple[str, ...]:
        return self.config.reference.grades

    @property
    def size_table(self) -> Dict[Decimal, str]:
        return self.config.reference.size_fractions

    @property
    def connection_aliases(self) -> Dict[str, str]:
        return self.config.reference.connection_aliases
