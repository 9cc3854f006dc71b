import json

from oilgas_migrate import cli
from oilgas_migrate.models.job import ConversionJob, ErrorType, ProcessingError, Severity
from oilgas_migrate.orchestrator import JobOrchestrator
from oilgas_migrate.services import reporter


def make_job(*severities):
    job = ConversionJob(company="Long Beach Pipe", source_path="/exports")
    for severity in severities:
        error_type = ErrorType.CRITICAL if severity == Severity.CRITICAL else ErrorType.VALIDATION
        job.add_error(ProcessingError(error_type=error_type, severity=severity, message="problem", table="customers"))
    job.complete()
    return job


def test_exit_codes():
    assert reporter.exit_code(make_job()) == 0
    assert reporter.exit_code(make_job(Severity.WARNING)) == 1
    assert reporter.exit_code(make_job(Severity.ERROR, Severity.WARNING)) == 1
    assert reporter.exit_code(make_job(Severity.WARNING, Severity.CRITICAL)) == 2


def test_report_file(repository, legacy_export, tmp_path):
    output = tmp_path / "out"
    job = JobOrchestrator(repository, output_dir=str(output)).run(str(legacy_export))
    path = reporter.write_report(job, str(output))

    assert path.parent == output / "reports"
    assert path.name.startswith("report_") and path.suffix == ".json"
    report = json.loads(path.read_text())
    assert report["job_id"] == job.id
    assert report["status"] == "completed_with_warnings"
    assert report["counts"]["records_total"] == 6
    assert report["counts"]["records_exported"] == 4
    assert report["counts"]["errors"] == len(job.errors)
    assert set(report["table_stats"]) == {"customers", "received", "rnumber", "wknumber", "inventory"}
    assert report["validation_stats"]["top_error_types"]
    assert report["sequences"][0]["name"] in ("r_number_seq", "work_order_seq")
    assert "records_per_second" in report["performance_stats"]


def test_critical_errors_are_limited():
    job = make_job(*[Severity.CRITICAL] * 7)
    assert len(reporter.critical_errors(job)) == 5
    assert reporter.critical_errors(job)[0] == "customers: problem"
    assert reporter.errors_by_type(job) == {"critical": 7}


def test_print_summary(repository, legacy_export, tmp_path, capsys):
    output = tmp_path / "out"
    job = JobOrchestrator(repository, output_dir=str(output)).run(str(legacy_export))
    reporter.print_summary(job)

    printed = capsys.readouterr().out
    assert "COMPLETED_WITH_WARNINGS" in printed
    assert "6 total, 4 valid, 2 invalid, 4 exported" in printed
    assert "r_number_seq START WITH 5001" in printed
    assert "customers.csv" in printed
    assert "transformation:" in printed


def test_cli_run(legacy_export, tmp_path, capsys):
    output = tmp_path / "out"
    code = cli.main(["run", "--source", str(legacy_export), "--output", str(output),
                     "--company", "Long Beach Pipe", "--workers", "2", "--sinks", "csv"])

    assert code == 1
    assert (output / "csv" / "received.csv").exists()
    assert not (output / "sql").exists()
    assert len(list((output / "reports").glob("report_*.json"))) == 1
    assert "Long Beach Pipe" in capsys.readouterr().out


def test_cli_dry_run_writes_only_report(legacy_export, tmp_path):
    output = tmp_path / "out"
    cli.main(["run", "--source", str(legacy_export), "--output", str(output), "--dry-run"])
    assert [p.name for p in output.iterdir()] == ["reports"]


def test_cli_rejects_unknown_sink(legacy_export, tmp_path):
    code = cli.main(["run", "--source", str(legacy_export), "--output", str(tmp_path), "--sinks", "xml"])
    assert code == 2


def test_cli_analyze_json(legacy_export, capsys):
    assert cli.main(["analyze", "--source", str(legacy_export), "--json"]) == 0
    analysis = json.loads(capsys.readouterr().out)
    names = [t["name"] for t in analysis["tables"]]
    assert "received" in names
    assert analysis["failures"] == {}


def test_cli_analyze_missing_source(tmp_path):
    assert cli.main(["analyze", "--source", str(tmp_path / "nowhere")]) == 2
