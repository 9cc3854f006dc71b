import csv

import pytest
from sqlalchemy import create_engine, text

from oilgas_migrate.exceptions import ExportError
from oilgas_migrate.exporters import CSVExporter, DatabaseExporter, SQLScriptExporter
from oilgas_migrate.extractors import CSVTableExtractor
from oilgas_migrate.models.job import SequenceDeclaration
from oilgas_migrate.services.schema_analyzer import SchemaAnalyzer
from oilgas_migrate.services.transformer import RecordTransformer

from conftest import write_table


def transformed(repository, source, name):
    table = SchemaAnalyzer(repository).analyze(str(source)).get_table(name)
    records = CSVTableExtractor(table).extract().records
    return table, RecordTransformer(repository).transform_table(table, records).valid_records


@pytest.fixture
def pipe_customers(tmp_path):
    source = tmp_path / "source"
    write_table(source, "customers.csv", [
        ["custid", "customer", "phone"],
        ["1", "o'brien pipe", "5551234567"],
        ["2", "basin supply", ""],
    ])
    return source


def test_csv_export_keeps_column_and_row_order(repository, legacy_export, tmp_path):
    table, records = transformed(repository, legacy_export, "received")
    output = tmp_path / "out"
    result = CSVExporter(str(output), batch_size=1).export_table(table, records)

    assert result.success
    assert result.records_written == 2
    with open(output / "csv" / "received.csv", newline="", encoding="utf-8") as f:
        rows = list(csv.reader(f))
    assert rows[0] == table.column_names
    assert [row[1] for row in rows[1:]] == ["LB-001001", "LB-001002"]
    assert rows[1][4] == "2023-01-15"
    assert rows[1][-1] == "true"


def test_sql_script_uses_copy_when_csv_exists(repository, pipe_customers, tmp_path):
    table, records = transformed(repository, pipe_customers, "customers")
    output = tmp_path / "out"
    CSVExporter(str(output)).export_table(table, records)
    result = SQLScriptExporter(str(output), schema="store").export_table(table, records)

    script = (output / "sql" / "customers.sql").read_text()
    assert result.success
    assert "CREATE SCHEMA IF NOT EXISTS store" in script
    assert "CREATE TABLE IF NOT EXISTS store.customers" in script
    assert "COPY store.customers (customer_id, customer_name, phone) FROM '" in script
    assert str((output / "csv" / "customers.csv").resolve()) in script
    assert "INSERT" not in script


def test_sql_script_falls_back_to_inserts(repository, pipe_customers, tmp_path):
    table, records = transformed(repository, pipe_customers, "customers")
    output = tmp_path / "out"
    SQLScriptExporter(str(output), schema="store", mode="insert").export_table(table, records)

    script = (output / "sql" / "customers.sql").read_text()
    assert "COPY" not in script
    assert "INSERT INTO store.customers" in script
    assert "'O''Brien Pipe'" in script
    assert "NULL" in script


def test_unconvertible_optional_date_is_exported_as_null(repository, tmp_path):
    source = tmp_path / "source"
    write_table(source, "received.csv", [
        ["ID", "WKORDER", "CUSTID", "DATERECVD"],
        ["1", "LB 1", "1", "not a date"],
        ["2", "LB 2", "1", ""],
        ["3", "LB 3", "1", "2023-02-01"],
    ])
    table, records = transformed(repository, source, "received")
    assert len(records) == 3

    output = tmp_path / "out"
    CSVExporter(str(output)).export_table(table, records)
    SQLScriptExporter(str(output), schema="store", mode="insert").export_table(table, records)

    with open(output / "csv" / "received.csv", newline="", encoding="utf-8") as f:
        rows = list(csv.DictReader(f))
    assert [r["date_received"] for r in rows] == ["", "", "2023-02-01"]

    script = (output / "sql" / "received.sql").read_text()
    assert "date_received DATE" in script
    assert "not a date" not in script


def test_sequence_script(tmp_path):
    sequences = [
        SequenceDeclaration("r_number_seq", 5001, "RNUMBER"),
        SequenceDeclaration("work_order_seq", 1000, "WKNUMBER"),
    ]
    result = SQLScriptExporter(str(tmp_path), schema="store").export_sequences(sequences)

    script = (tmp_path / "sql" / "sequences.sql").read_text()
    assert result.output_files == [str(tmp_path / "sql" / "sequences.sql")]
    assert "CREATE SEQUENCE IF NOT EXISTS store.r_number_seq START WITH 5001" in script
    assert "CREATE SEQUENCE IF NOT EXISTS store.work_order_seq START WITH 1000" in script


def test_no_sequences_writes_nothing(tmp_path):
    result = SQLScriptExporter(str(tmp_path)).export_sequences([])
    assert result.success
    assert not (tmp_path / "sql").exists()


def test_database_export_into_sqlite(repository, pipe_customers, tmp_path):
    table, records = transformed(repository, pipe_customers, "customers")
    engine = create_engine(f"sqlite:///{tmp_path / 'store.db'}")
    exporter = DatabaseExporter(engine, schema="store", batch_size=1)

    assert exporter.validate_connection()
    result = exporter.export_table(table, records)
    assert result.success
    assert result.records_written == 2
    assert exporter.peak_connections >= 1

    with engine.connect() as conn:
        rows = conn.execute(text("SELECT customer_id, customer_name, phone FROM customers ORDER BY customer_id")).all()
    assert rows == [("1", "O'Brien Pipe", "(555) 123-4567"), ("2", "Basin Supply", None)]

    # sqlite has no sequences; declarations are skipped without error
    assert exporter.export_sequences([SequenceDeclaration("r_number_seq", 5001)]).success
    engine.dispose()


def test_unreachable_store_is_critical(tmp_path):
    engine = create_engine(f"sqlite:///{tmp_path / 'missing' / 'store.db'}")
    with pytest.raises(ExportError) as excinfo:
        DatabaseExporter(engine).validate_connection()
    assert excinfo.value.critical
