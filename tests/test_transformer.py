from datetime import date

from oilgas_migrate.extractors import CSVTableExtractor
from oilgas_migrate.models.job import ErrorType, Severity
from oilgas_migrate.services.schema_analyzer import SchemaAnalyzer
from oilgas_migrate.services.transformer import ColumnMapper, RecordTransformer, normalize_identifier
from oilgas_migrate.services.validator import BusinessRuleValidator

from conftest import write_table


def load(repository, source, name):
    table = SchemaAnalyzer(repository).analyze(str(source)).get_table(name)
    return table, CSVTableExtractor(table).extract().records


def test_identifier_cleanup():
    assert normalize_identifier("Date Recvd") == "date_recvd"
    assert normalize_identifier("  Cust-ID# ") == "cust_id"


def test_column_mapper_precedence(repository):
    mapper = ColumnMapper(repository)
    assert mapper.column_target("RECEIVED", "BILLTOID") == "bill_to_id"
    assert mapper.column_target("unknown_table", "WKORDER") == "work_order"
    assert mapper.column_target("unknown_table", "Ship Via") == "ship_via"
    assert mapper.table_target("WKNUMBER") == ("wknumber", True, "work_order_seq")
    assert mapper.table_target("RECEIVED") == ("received", False, "")


def test_received_records_are_normalized(repository, legacy_export):
    table, records = load(repository, legacy_export, "received")
    result = RecordTransformer(repository).transform_table(table, records)

    first, second, third = result.records
    assert first.data["work_order"] == "LB-001001"
    assert first.data["grade"] == "J55"
    assert first.data["size"] == '5 1/2"'
    assert first.data["connection"] == "BTC"
    assert first.data["joints"] == 120
    assert first.data["date_received"] == date(2023, 1, 15)
    assert first.data["is_complete"] is True

    assert second.data["work_order"] == "LB-001002"
    assert second.data["grade"] == "P110"
    assert second.data["size"] == '9 5/8"'
    assert second.data["is_complete"] is False

    assert not third.is_valid
    assert third.data["grade"] == "X99"
    grade_error = [e for e in third.issues if e.column == "grade"][0]
    assert grade_error.error_type == ErrorType.TRANSFORMATION
    assert grade_error.severity == Severity.ERROR
    assert grade_error.original_value == "X99"

    assert [r.row_number for r in result.valid_records] == [1, 2]
    assert result.invalid_count == 1


def test_warnings_do_not_invalidate(repository, legacy_export):
    table, records = load(repository, legacy_export, "customers")
    result = RecordTransformer(repository).transform_table(table, records)

    acme, basin, unnamed = result.records
    assert acme.data["customer_name"] == "Acme Oil & Gas LLC"
    assert acme.data["phone"] == "(555) 123-4567"
    assert acme.data["email"] == "ops@acme.com"
    assert basin.data["email"] is None

    email_issue = [e for e in unnamed.issues if e.column == "email"][0]
    assert email_issue.severity == Severity.WARNING
    assert unnamed.is_valid


def test_validation_issues_are_carried_onto_records(repository, customers_export):
    table, records = load(repository, customers_export, "customers")
    validation = BusinessRuleValidator(repository).validate_table(table, records)
    result = RecordTransformer(repository).transform_table(table, records, validation.issues_by_row)

    assert len(result.valid_records) == 2
    assert result.invalid_count == 1
    # only newly found issues are reported by the transform step
    assert result.errors == []


def test_unconvertible_optional_value_is_a_warning(repository, tmp_path):
    write_table(tmp_path, "bakeout.csv", [
        ["custid", "datein"], ["1", "someday"], ["2", "02/03/2023"], ["3", ""],
    ])
    table, records = load(repository, tmp_path, "bakeout")
    result = RecordTransformer(repository).transform_table(table, records)

    assert len(result.errors) == 1
    assert result.records[0].is_valid
    assert result.records[0].data["date_in"] is None
    assert result.errors[0].severity == Severity.WARNING
    assert result.errors[0].original_value == "someday"
    assert result.records[1].data["date_in"] == date(2023, 2, 3)


def test_blank_value_takes_column_default(repository, customers_export):
    repository.config.oil_gas_mappings["customer_name"].default = "unknown customer"
    table, records = load(repository, customers_export, "customers")
    result = RecordTransformer(repository).transform_table(table, records)

    assert [r.data["customer_name"] for r in result.records] == [
        "Acme Oil & Gas LLC", "Unknown Customer", "Basin Supply"]
    assert all(r.is_valid for r in result.records)


def test_blank_deleted_flag_defaults_to_false(repository, tmp_path):
    write_table(tmp_path, "bakeout.csv", [["custid", "deleted"], ["1", "yes"], ["2", ""]])
    table, records = load(repository, tmp_path, "bakeout")
    result = RecordTransformer(repository).transform_table(table, records)

    assert [r.data["is_deleted"] for r in result.records] == [True, False]
    assert result.errors == []


def test_counter_table_seeds_sequence_from_max(repository, tmp_path):
    write_table(tmp_path, "RNUMBER.csv", [["RNUMBER"], ["4999"], ["5000"], ["n/a"]])
    table, records = load(repository, tmp_path, "RNUMBER")
    result = RecordTransformer(repository).transform_table(table, records)

    assert result.records == []
    assert result.sequence.name == "r_number_seq"
    assert result.sequence.start_value == 5001
    assert result.sequence.source_table == "RNUMBER"


def test_empty_counter_table_uses_configured_start(repository, tmp_path):
    repository.config.sequence_config.work_order_start = 2500
    write_table(tmp_path, "WKNUMBER.csv", [["WKNUMBER"]])
    table, records = load(repository, tmp_path, "WKNUMBER")
    sequence = RecordTransformer(repository).convert_counter_table(table, records)
    assert sequence.name == "work_order_seq"
    assert sequence.start_value == 2500
