import csv
from pathlib import Path

import pytest

from oilgas_migrate.services.rule_repository import RuleRepository


def write_table(directory: Path, name: str, rows) -> Path:
    """Write a legacy table export; the first row is the header."""
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / name
    with open(path, "w", encoding="utf-8", newline="") as f:
        csv.writer(f).writerows(rows)
    return path


@pytest.fixture
def repository():
    repo = RuleRepository()
    repo.config.company = "Long Beach Pipe"
    repo.config.processing_options.workers = 2
    return repo


@pytest.fixture
def customers_export(tmp_path):
    """Scenario with three customers, one of them missing a name."""
    source = tmp_path / "source"
    write_table(source, "customers.csv", [
        ["custid", "customer"],
        ["1", "acme oil & gas llc"],
        ["2", ""],
        ["3", "basin supply"],
    ])
    return source


@pytest.fixture
def legacy_export(tmp_path):
    source = tmp_path / "legacy"
    write_table(source, "customers.csv", [
        ["custid", "customer", "phone", "email"],
        ["1", "acme oil & gas llc", "5551234567", "OPS@ACME.COM"],
        ["2", "basin supply", "555-987-6543", ""],
        ["3", "", "(555) 111-2222", "bad-email"],
    ])
    write_table(source, "received.csv", [
        ["ID", "WKORDER", "CUSTID", "CUSTOMER", "DATERECVD", "GRADE", "SIZE", "CONNECTION", "JOINTS", "COMPLETE"],
        ["1", "LB 1001", "1", "Acme Oil & Gas LLC", "01/15/2023", "J-55", "5.5", "Buttress Thread", "120", "yes"],
        ["2", "lb001002", "2", "Basin Supply", "2023-02-01", "p110", "9 5/8", "LTC", "80", "no"],
        ["3", "LB-001003", "1", "Acme Oil & Gas LLC", "03/01/2023", "X99", "7", "VAM", "40", "1"],
    ])
    write_table(source, "RNUMBER.csv", [["RNUMBER"], ["5000"]])
    write_table(source, "WKNUMBER.csv", [["WKNUMBER"]])
    write_table(source, "inventory.csv", [["wkorder", "custid", "grade"]])
    return source
