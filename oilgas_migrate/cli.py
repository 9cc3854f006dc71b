"""Command line interface for legacy conversions."""

import argparse
import json
import logging
import sys
from typing import List, Optional

from .exceptions import ConfigurationError, SourceReadError
from .orchestrator import JobOrchestrator
from .services import reporter
from .services.rule_repository import RuleRepository
from .services.schema_analyzer import SchemaAnalyzer

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Oil & Gas Migrate - Convert legacy desktop database exports"
    )
    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # Run conversion
    run_parser = subparsers.add_parser("run", help="Run a conversion")
    run_parser.add_argument("--source", required=True, help="Directory of exported tables")
    run_parser.add_argument("--company", help="Company being converted")
    run_parser.add_argument("--config", help="Path to JSON config overrides")
    run_parser.add_argument("--output", default="output", help="Output directory")
    run_parser.add_argument("--dry-run", action="store_true", help="Analyze and validate without writing output")
    run_parser.add_argument("--workers", type=int, help="Worker pool size")
    run_parser.add_argument("--sinks", help="Comma separated sinks: csv,sql,db")
    run_parser.add_argument("--verbose", "-v", action="store_true", help="Verbose output")

    # Analyze schema
    analyze_parser = subparsers.add_parser("analyze", help="Analyze an export without converting it")
    analyze_parser.add_argument("--source", required=True, help="Directory of exported tables")
    analyze_parser.add_argument("--config", help="Path to JSON config overrides")
    analyze_parser.add_argument("--json", action="store_true", help="Print the analysis as JSON")
    analyze_parser.add_argument("--verbose", "-v", action="store_true", help="Verbose output")

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)

    # Set up logging
    log_level = logging.DEBUG if getattr(args, "verbose", False) else logging.INFO
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

    try:
        if args.command == "run":
            return run_conversion(args)
        if args.command == "analyze":
            return run_analysis(args)
    except ConfigurationError as e:
        logger.error(f"Configuration error: {e}")
        return 2

    parser.print_help()
    return 1


def run_conversion(args) -> int:
    """Run a conversion and report it."""
    repository = RuleRepository.load(args.config)
    options = repository.config.processing_options
    if args.dry_run:
        options.dry_run = True
    if args.workers:
        options.workers = args.workers

    sinks = [s.strip() for s in args.sinks.split(",") if s.strip()] if args.sinks else None
    orchestrator = JobOrchestrator(repository, output_dir=args.output, sinks=sinks)
    job = orchestrator.run(args.source, company=args.company)

    reporter.write_report(job, args.output)
    reporter.print_summary(job)
    return reporter.exit_code(job)


def run_analysis(args) -> int:
    """Print the discovered tables of an export."""
    repository = RuleRepository.load(args.config)
    analyzer = SchemaAnalyzer(repository)
    try:
        analysis = analyzer.analyze(args.source)
    except SourceReadError as e:
        logger.error(str(e))
        return 2

    if args.json:
        print(json.dumps(analysis.to_dict(), indent=2, default=str))
        return 0

    print(f"\n=== {len(analysis.tables)} tables in {analysis.source} ===")
    for table in analysis.tables:
        kind = f" [counter -> {table.sequence_name}]" if table.is_counter_table else ""
        print(f"\n{table.priority}. {table.original_name} -> {table.name}{kind}")
        print(f"   Records: {table.record_count}")
        print(f"   Columns: {', '.join(table.column_names)}")
        for rel in table.relationships:
            print(f"   {rel.from_column} -> {rel.to_table}.{rel.to_column}")
    for name, reason in analysis.failures.items():
        print(f"\n! {name}: {reason}")
    for warning in analysis.warnings:
        print(f"\n! {warning}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
