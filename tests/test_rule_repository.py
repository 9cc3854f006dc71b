import json
from pathlib import Path
from decimal import Decimal

import pytest

from oilgas_migrate import cli
from oilgas_migrate.exceptions import ConfigurationError
from oilgas_migrate.models.config import EnumRule, FormatRule, RangeRule, RuleSeverity
from oilgas_migrate.services.rule_repository import RuleRepository


def write_config(tmp_path, data):
    path = tmp_path / "config.json"
    path.write_text(json.dumps(data))
    return str(path)


def test_missing_config_file_uses_defaults(tmp_path):
    repo = RuleRepository.load(str(tmp_path / "absent.json"), environ={})
    assert repo.config.processing_options.workers == 4
    assert repo.is_counter_table("rnumber")
    assert "J55" in repo.grade_dictionary


def test_table_mapping_lookup_ignores_case():
    repo = RuleRepository()
    mapping, found = repo.get_table_mapping("Received")
    assert found
    assert mapping.target_name == "received"
    assert mapping.target_column("wkorder") == "work_order"

    mapping, found = repo.get_table_mapping("nonexistent")
    assert mapping is None
    assert not found


def test_target_database_name():
    repo = RuleRepository()
    assert repo.get_target_database_name("location_lasvegas") == "oilgas_location_lasvegas"
    assert repo.get_target_database_name("location_denver") == "oilgas_location_denver"


def test_overrides_merge_onto_defaults(tmp_path):
    path = write_config(tmp_path, {
        "company": "Las Vegas Pipe",
        "processing_options": {"workers": 8, "dry_run": True},
        "database_config": {"host": "db.internal", "max_conns": 40},
        "output_settings": {"schema": "legacy", "direct": True},
        "table_mappings": {
            "received": {"target_name": "received_pipe", "column_mappings": {"WKORDER": "work_order"}},
        },
        "validation_rules": {
            "business_rules": [
                {"name": "grade_allowed", "table": "received", "column": "grade",
                 "rule_type": "enum", "parameters": {"values": ["J55", "L80"]}, "severity": "critical"},
                {"name": "joints_range", "column": "joints",
                 "rule_type": "range", "parameters": {"min": 1, "max": 500}, "severity": "error"},
            ],
        },
    })
    repo = RuleRepository.load(path, environ={})
    config = repo.config

    assert config.company == "Las Vegas Pipe"
    assert config.processing_options.workers == 8
    assert config.processing_options.dry_run is True
    assert config.processing_options.batch_size == 1000
    assert config.database_config.host == "db.internal"
    assert config.database_config.max_conns == 40
    assert config.database_config.idle_conns == 10
    assert config.output_settings.schema == "legacy"
    assert config.output_settings.direct is True

    mapping, found = repo.get_table_mapping("RECEIVED")
    assert found and mapping.target_name == "received_pipe"
    assert list(config.table_mappings).count("RECEIVED") == 0

    grade_rules = repo.rules_for("received", "grade")
    assert isinstance(grade_rules[0].check, EnumRule)
    assert grade_rules[0].severity == RuleSeverity.CRITICAL

    joints = [r for r in config.validation_rules.business_rules if r.name == "joints_range"]
    assert len(joints) == 1
    assert joints[0].check == RangeRule(min_value=Decimal("1"), max_value=Decimal("500"))


def test_counter_table_override_must_name_a_sequence(tmp_path):
    path = write_config(tmp_path, {"table_mappings": {"TICKETNO": {"is_counter_table": True}}})
    with pytest.raises(ConfigurationError, match="sequence"):
        RuleRepository.load(path, environ={})


@pytest.mark.parametrize("content", ["{not json", json.dumps({"processing_options": {"workers": 0}})])
def test_invalid_config_file(tmp_path, content):
    path = tmp_path / "config.json"
    path.write_text(content)
    with pytest.raises(ConfigurationError):
        RuleRepository.load(str(path), environ={})


def test_unknown_rule_type_is_a_configuration_error(tmp_path):
    path = write_config(tmp_path, {"validation_rules": {"business_rules": [
        {"name": "odd", "column": "grade", "rule_type": "lookup"},
    ]}})
    with pytest.raises(ConfigurationError, match="odd"):
        RuleRepository.load(path, environ={})


@pytest.mark.parametrize("rule_type, parameters", [
    ("range", {"min_value": "abc"}),
    ("range", {"max": "NaN"}),
    ("range", {"min_length": "x"}),
    ("range", {"max_length": [3]}),
    ("format", {"pattern": "[A-Z"}),
    ("regex", {"pattern": "(unclosed"}),
])
def test_unusable_rule_parameters_fail_at_load(tmp_path, rule_type, parameters):
    path = write_config(tmp_path, {"validation_rules": {"business_rules": [
        {"name": "broken", "column": "joints", "rule_type": rule_type, "parameters": parameters},
    ]}})
    with pytest.raises(ConfigurationError, match="broken"):
        RuleRepository.load(path, environ={})


def test_unusable_rule_parameters_exit_with_configuration_code(tmp_path, legacy_export):
    path = write_config(tmp_path, {"validation_rules": {"business_rules": [
        {"name": "joints_floor", "column": "joints", "rule_type": "range", "parameters": {"min_value": "abc"}},
    ]}})
    code = cli.main(["analyze", "--source", str(legacy_export), "--config", str(path)])
    assert code == 2


def test_range_rule_bounds_are_converted(tmp_path):
    path = write_config(tmp_path, {"validation_rules": {"business_rules": [
        {"name": "joints_range", "column": "joints", "rule_type": "range",
         "parameters": {"min": "1", "max": 2000, "min_length": "1", "max_length": 4}},
    ]}})
    rule = RuleRepository.load(path, environ={}).rules_for("received", "joints")[0]
    assert rule.check == RangeRule(min_length=1, max_length=4, min_value=Decimal("1"), max_value=Decimal("2000"))


def test_mapping_default_from_override(tmp_path):
    path = write_config(tmp_path, {"oil_gas_mappings": {
        "yard": {"source_column": "yardcode", "target_column": "yard", "default": "LB"},
    }})
    repo = RuleRepository.load(path, environ={})
    assert repo.column_mapping_for("yard").default == "LB"
    assert repo.column_mapping_for("grade").default is None
    assert repo.column_mapping_for("is_deleted").to_dict()["default"] == "false"


def test_format_rule_alias(tmp_path):
    path = write_config(tmp_path, {"validation_rules": {"business_rules": [
        {"name": "email_shape", "column": "email", "rule_type": "regex", "parameters": {"pattern": "@"}},
    ]}})
    repo = RuleRepository.load(path, environ={})
    assert repo.rules_for("customers", "email")[0].check == FormatRule(pattern="@")


def test_environment_overrides_database_settings():
    repo = RuleRepository.load(environ={"OILGAS_DB_HOST": "pg.example", "OILGAS_DB_PORT": "6543"})
    assert repo.config.database_config.host == "pg.example"
    assert repo.config.database_config.port == 6543

    with pytest.raises(ConfigurationError):
        RuleRepository.load(environ={"OILGAS_DB_PORT": "high"})


def test_column_mapping_lookups():
    repo = RuleRepository()
    assert repo.column_mapping_for("work_order").source_column == "wkorder"
    assert repo.column_mapping_by_source("WKORDER").target_column == "work_order"
    assert repo.required_columns_for("CUSTOMERS") == ["customer_id", "customer_name"]


def test_example_config_loads():
    path = Path(__file__).parent.parent / "examples" / "longbeach_conversion" / "config.json"
    repo = RuleRepository.load(str(path), environ={})

    assert repo.config.company == "Long Beach Pipe & Supply"
    assert repo.is_counter_table("TICKETNO")
    assert repo.column_mapping_by_source("WT").target_column == "weight"
    assert repo.config.processing_options.batch_size == 500
