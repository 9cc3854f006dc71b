from decimal import Decimal

import pytest

from oilgas_migrate.extractors import CSVTableExtractor
from oilgas_migrate.models.config import BusinessRule, EnumRule, FormatRule, RangeRule, RequiredRule, RuleSeverity
from oilgas_migrate.models.job import ErrorType, Severity, ValidationStats
from oilgas_migrate.services.schema_analyzer import SchemaAnalyzer
from oilgas_migrate.services.validator import BusinessRuleValidator, evaluate_rule


def load(repository, source, name):
    table = SchemaAnalyzer(repository).analyze(str(source)).get_table(name)
    return table, CSVTableExtractor(table).extract().records


def test_missing_customer_name_is_one_error(repository, customers_export):
    table, records = load(repository, customers_export, "customers")
    result = BusinessRuleValidator(repository).validate_table(table, records)

    assert result.invalid_rows == 1
    assert len(result.errors) == 1
    error = result.errors[0]
    assert error.error_type == ErrorType.VALIDATION
    assert error.severity == Severity.ERROR
    assert error.column == "customer_name"
    assert error.record_id == "2"
    assert error.suggested_fix
    assert list(result.issues_by_row) == [2]


def test_required_table_warnings(repository, customers_export):
    analysis = SchemaAnalyzer(repository).analyze(str(customers_export))
    warnings = BusinessRuleValidator(repository).check_required_tables(analysis.tables)
    assert [w.table for w in warnings] == ["received"]
    assert warnings[0].severity == Severity.WARNING


def test_required_column_missing_from_table(repository, tmp_path):
    (tmp_path / "customers.csv").write_text("custid,phone\n1,5551234567\n")
    table, records = load(repository, tmp_path, "customers")
    result = BusinessRuleValidator(repository).validate_table(table, records)

    table_errors = [e for e in result.errors if not e.record_id]
    assert len(table_errors) == 1
    assert "customer_name" in table_errors[0].message


def test_rule_severity_controls_validity(repository, customers_export):
    repository.config.validation_rules.business_rules = [
        BusinessRule("name_is_enum", "customers", "customer_name", EnumRule(("Acme",)), RuleSeverity.WARNING),
        BusinessRule("id_small", "customers", "customer_id", RangeRule(max_value=Decimal("2")), RuleSeverity.CRITICAL),
    ]
    table, records = load(repository, customers_export, "customers")
    result = BusinessRuleValidator(repository).validate_table(table, records)

    business = [e for e in result.errors if e.error_type == ErrorType.BUSINESS_RULE]
    assert {e.record_id for e in business} == {"1", "3"}
    assert all(e.severity == Severity.WARNING for e in business)

    critical = [e for e in result.errors if e.error_type == ErrorType.CRITICAL]
    assert [e.record_id for e in critical] == ["3"]
    assert critical[0].is_critical
    # row 2 lacks a name, row 3 breaks the critical rule
    assert result.invalid_rows == 2


def test_required_rule_does_not_double_report(repository, customers_export):
    repository.config.validation_rules.business_rules = [
        BusinessRule("name_required", "*", "customer_name", RequiredRule()),
    ]
    table, records = load(repository, customers_export, "customers")
    result = BusinessRuleValidator(repository).validate_table(table, records)
    assert len([e for e in result.errors if e.column == "customer_name"]) == 1


@pytest.mark.parametrize("check, value, expected", [
    (RequiredRule(), " ", False),
    (EnumRule(("J55", "L80")), "l80", True),
    (EnumRule(("J55", "L80")), "X99", False),
    (FormatRule(r"^\d{5}$"), "90210", True),
    (RangeRule(min_length=2, max_length=4), "abcde", False),
    (RangeRule(min_value=Decimal("0"), max_value=Decimal("10")), "1,000", False),
    (RangeRule(min_value=Decimal("0"), max_value=Decimal("10")), "7.5", True),
    (RangeRule(min_value=Decimal("0")), "many", False),
    (RangeRule(min_value=Decimal("0"), max_value=Decimal("10")), "NaN", False),
    (RangeRule(max_value=Decimal("10")), "-Infinity", False),
    (RangeRule(min_value=Decimal("0")), "inf", False),
])
def test_evaluate_rule(check, value, expected):
    assert evaluate_rule(check, value) is expected


def test_quality_score_bounds_and_penalties():
    stats = ValidationStats()
    assert stats.data_quality_score == 0.0

    for _ in range(9):
        stats.add_validation_result("validation", "customers", True)
    stats.add_validation_result("business_rule", "customers", False, "joints out of range")
    assert stats.data_quality_score == pytest.approx(88.0)

    stats.add_validation_result("critical", "customers", False, "bad id")
    expected = 9 / 11 * 100 - 5 - 2
    assert stats.data_quality_score == pytest.approx(expected)

    for _ in range(30):
        stats.add_validation_result("critical", "received", False)
    assert stats.data_quality_score == 0.0


def test_quality_score_never_rises_on_failure():
    stats = ValidationStats()
    previous = None
    for passed in [True, True, False, True, False, False]:
        stats.add_validation_result("business_rule", "t", passed)
        if not passed and previous is not None:
            assert stats.data_quality_score <= previous
        previous = stats.data_quality_score
        assert 0.0 <= stats.data_quality_score <= 100.0


def test_top_error_types_keep_three_examples():
    stats = ValidationStats()
    for i in range(5):
        stats.add_validation_result("transformation", "received", False, f"bad grade {i}")
    stats.add_validation_result("validation", "received", False, "missing name")

    top = stats.top_error_types()
    assert top[0]["error_type"] == "transformation"
    assert top[0]["count"] == 5
    assert top[0]["examples"] == ["bad grade 0", "bad grade 1", "bad grade 2"]
    assert top[1]["error_type"] == "validation"


def test_column_default_satisfies_required_value(repository, customers_export):
    repository.config.oil_gas_mappings["customer_name"].default = "Unknown Customer"
    table, records = load(repository, customers_export, "customers")
    validator = BusinessRuleValidator(repository)

    assert table.get_column("customer_name").default == "Unknown Customer"
    assert table.get_column("customer_id").default is None
    required = validator.required_columns(table)
    assert required["customer_id"] == "column is not nullable"
    assert required["customer_name"] == "field is required"

    result = validator.validate_table(table, records)
    assert result.errors == []
    assert result.invalid_rows == 0
