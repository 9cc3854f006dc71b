#!/usr/bin/env python3
"""
Example: Long Beach yard conversion

This script shows how to drive oilgas_migrate from Python instead of the
oilgas-migrate command.

Usage:
    # Demo with generated sample tables (dry run, no database needed)
    python run_conversion.py --demo

    # Convert a real export directory
    python run_conversion.py --source /exports/longbeach

    # Also insert into the tenant database
    python run_conversion.py --source /exports/longbeach --direct
"""

import argparse
import csv
import logging
import sys
import tempfile
from pathlib import Path

from oilgas_migrate.models.job import ProgressUpdate
from oilgas_migrate.orchestrator import JobOrchestrator
from oilgas_migrate.services import reporter
from oilgas_migrate.services.rule_repository import RuleRepository

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[
        logging.StreamHandler(),
        logging.FileHandler('conversion.log')
    ]
)
logger = logging.getLogger(__name__)

CONFIG_PATH = Path(__file__).parent / "config.json"

SAMPLE_TABLES = {
    "customers.csv": [
        ["custid", "customer", "phone", "email"],
        ["1", "pacific drilling llc", "5625550100", "yard@pacificdrilling.com"],
        ["2", "harbor energy", "1-562-555-0111", ""],
        ["3", "signal hill oil co", "555-0199", "office@signalhill"],
    ],
    "RECEIVED.csv": [
        ["ID", "WKORDER", "CUSTID", "CUSTOMER", "DATERECVD", "GRADE", "SIZE", "CONNECTION", "JOINTS", "WT"],
        ["1", "LB 1001", "1", "Pacific Drilling LLC", "01/15/2023", "J-55", "5.5", "Buttress", "120", "17#"],
        ["2", "lb1002", "2", "Harbor Energy", "2023-02-01", "p110", "9 5/8", "LTC", "80", "40 ppf"],
        ["3", "LB-1003", "3", "Signal Hill Oil Co", "03/01/2023", "X99", "7", "VAM", "0", "26"],
    ],
    "RNUMBER.csv": [["RNUMBER"], ["4821"]],
    "WKNUMBER.csv": [["WKNUMBER"], ["1003"]],
    "TICKETNO.csv": [["TICKETNO"]],
}


def write_sample_export(directory: Path) -> Path:
    """Write a small legacy export, one file per table."""
    directory.mkdir(parents=True, exist_ok=True)
    for name, rows in SAMPLE_TABLES.items():
        with open(directory / name, "w", newline="", encoding="utf-8") as f:
            csv.writer(f).writerows(rows)
    logger.info(f"Wrote {len(SAMPLE_TABLES)} sample tables to {directory}")
    return directory


def log_progress(update: ProgressUpdate):
    if update.records_processed == update.total_records:
        logger.debug(f"[{update.phase.value}] {update.table}: {update.message}")


def run_conversion(repository: RuleRepository, source: Path, output_dir: Path, direct: bool = False):
    """Run the conversion."""
    logger.info("=" * 60)
    logger.info("STARTING CONVERSION")
    logger.info("=" * 60)
    logger.info(f"Company: {repository.config.company}")
    logger.info(f"Tenant: {repository.get_target_database_name(repository.config.tenant_id)}")
    logger.info(f"Dry Run: {repository.config.processing_options.dry_run}")

    sinks = ["csv", "sql", "db"] if direct else ["csv", "sql"]
    orchestrator = JobOrchestrator(
        repository,
        output_dir=str(output_dir),
        sinks=sinks,
        progress_listeners=[log_progress],
    )
    job = orchestrator.run(str(source))

    report_path = reporter.write_report(job, str(output_dir))
    reporter.print_summary(job)
    logger.info(f"Report: {report_path}")
    return job


def demo_with_sample_data():
    """
    Demo conversion with generated sample tables.

    Runs as a dry run so nothing is written besides the report.
    """
    logger.info("Running demo with sample data...")
    repository = RuleRepository.load(str(CONFIG_PATH))
    repository.config.processing_options.dry_run = True

    with tempfile.TemporaryDirectory() as tmp:
        source = write_sample_export(Path(tmp) / "export")
        job = run_conversion(repository, source, Path(__file__).parent / "demo_output")

    logger.info("\nDemo complete! Check demo_output/reports for the report.")
    return reporter.exit_code(job)


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Long Beach yard legacy conversion"
    )
    parser.add_argument(
        "--source",
        help="Directory of exported legacy tables"
    )
    parser.add_argument(
        "--output",
        default="output",
        help="Output directory"
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Analyze and validate without writing output"
    )
    parser.add_argument(
        "--direct",
        action="store_true",
        help="Also insert records into the tenant database"
    )
    parser.add_argument(
        "--demo",
        action="store_true",
        help="Run demo with sample data (no export needed)"
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Verbose output"
    )

    args = parser.parse_args()

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    if args.demo:
        sys.exit(demo_with_sample_data())

    if not args.source:
        parser.error("--source is required unless --demo is given")

    repository = RuleRepository.load(str(CONFIG_PATH))
    if args.dry_run:
        repository.config.processing_options.dry_run = True

    job = run_conversion(repository, Path(args.source), Path(args.output), direct=args.direct)
    sys.exit(reporter.exit_code(job))


if __name__ == "__main__":
    main()
