from oilgas_migrate.extractors import CSVTableExtractor, DelimitedFileReader
from oilgas_migrate.services.schema_analyzer import SchemaAnalyzer

from conftest import write_table


def analyze(repository, source, name):
    return SchemaAnalyzer(repository).analyze(str(source)).get_table(name)


def test_records_are_keyed_by_target_column(repository, legacy_export):
    table = analyze(repository, legacy_export, "received")
    result = CSVTableExtractor(table).extract()

    assert result.success
    assert result.total_extracted == 3
    first = result.records[0]
    assert first.record_id == "1"
    assert first.row_number == 1
    assert first.get("work_order") == "LB 1001"
    assert first.get("customer_name") == "Acme Oil & Gas LLC"
    assert [r.row_number for r in result.records] == [1, 2, 3]
    assert result.metadata["encoding"] == "utf-8-sig"


def test_short_and_long_rows_are_padded_or_truncated(repository, tmp_path):
    path = tmp_path / "customers.csv"
    path.write_text("custid,customer,phone\n1,Acme\n2,Basin,5551234567,extra\n\n3,Delta,5550001111\n")
    table = analyze(repository, tmp_path, "customers")
    result = CSVTableExtractor(table).extract()

    assert result.total_extracted == 3
    assert result.records[0].get("phone") == ""
    assert result.records[1].get("phone") == "5551234567"
    assert len(result.warnings) == 2


def test_record_id_falls_back_to_row_number(repository, tmp_path):
    write_table(tmp_path, "customers.csv", [["custid", "customer"], ["", "Acme"], ["7", "Basin"]])
    table = analyze(repository, tmp_path, "customers")
    records = CSVTableExtractor(table).extract().records
    assert [r.record_id for r in records] == ["1", "7"]


def test_latin1_exports_are_decoded(repository, tmp_path):
    (tmp_path / "customers.csv").write_bytes("custid,customer\n1,Société Pétrolière\n".encode("latin-1"))
    table = analyze(repository, tmp_path, "customers")
    result = CSVTableExtractor(table).extract()

    assert result.records[0].get("customer_name") == "Société Pétrolière"
    assert result.metadata["encoding"] == "latin-1"


def test_tab_and_pipe_delimited_exports(tmp_path):
    tsv = tmp_path / "bakeout.tsv"
    tsv.write_text("custid\tdatein\n1\t01/02/2023\n")
    assert list(DelimitedFileReader(tsv).rows())[1][1] == ["1", "01/02/2023"]

    piped = tmp_path / "bakeout.txt"
    piped.write_text("custid|datein\n1|01/02/2023\n2|01/03/2023\n")
    assert DelimitedFileReader(piped).header() == ["custid", "datein"]


def test_stream_batches_preserve_order(repository, legacy_export):
    table = analyze(repository, legacy_export, "customers")
    batches = list(CSVTableExtractor(table).stream(batch_size=2))
    assert [len(b) for b in batches] == [2, 1]
    assert [r.record_id for b in batches for r in b] == ["1", "2", "3"]


def test_extract_reports_each_batch(repository, legacy_export):
    table = analyze(repository, legacy_export, "customers")
    counts = []
    result = CSVTableExtractor(table).extract(batch_size=2, on_batch=counts.append)
    assert counts == [2, 3]
    assert [r.record_id for r in result.records] == ["1", "2", "3"]
    assert result.total_extracted == 3


def test_missing_file_is_reported_not_raised(repository, legacy_export):
    table = analyze(repository, legacy_export, "customers")
    (legacy_export / "customers.csv").unlink()
    result = CSVTableExtractor(table).extract()

    assert not result.success
    assert result.records == []
    assert "Failed to read" in result.errors[0]["message"]
