"""Final job report and console summary."""

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List

from ..models.job import ConversionJob

logger = logging.getLogger(__name__)

MAX_CRITICAL_SHOWN = 5


def build_report(job: ConversionJob) -> Dict[str, Any]:
    """Assemble the JSON report for a completed job."""
    return {
        "job_id": job.id,
        "company": job.company,
        "source_file": job.source_path,
        "status": job.status.value,
        "dry_run": job.dry_run,
        "started_at": job.started_at.isoformat() if job.started_at else None,
        "completed_at": job.completed_at.isoformat() if job.completed_at else None,
        "duration_seconds": job.duration_seconds,
        "counts": {
            "records_total": job.records_total,
            "records_valid": job.records_valid,
            "records_invalid": job.records_invalid,
            "records_exported": job.records_exported,
            "errors": len(job.errors),
        },
        "success_rate": round(job.success_rate(), 2),
        "table_stats": {name: stats.to_dict() for name, stats in job.table_stats.items()},
        "validation_stats": dict(
            job.validation_stats.to_dict(),
            top_error_types=job.validation_stats.top_error_types(),
        ),
        "errors": [e.to_dict() for e in job.errors],
        "performance_stats": job.performance_stats.to_dict(),
        "output_files": list(job.output_files),
        "sequences": [s.to_dict() for s in job.sequences],
    }


def write_report(job: ConversionJob, output_dir: str) -> Path:
    """
    Write the JSON report to <output_dir>/reports.

    Args:
        job: Completed job
        output_dir: Root output directory

    Returns:
        Path of the report file
    """
    reports_dir = Path(output_dir) / "reports"
    reports_dir.mkdir(parents=True, exist_ok=True)
    filepath = reports_dir / f"report_{datetime.utcnow().strftime('%Y%m%d_%H%M%S')}.json"
    with open(filepath, "w", encoding="utf-8") as f:
        json.dump(build_report(job), f, indent=2, default=str)
    logger.info(f"Saved conversion report to {filepath}")
    return filepath


def errors_by_type(job: ConversionJob) -> Dict[str, int]:
    counts: Dict[str, int] = {}
    for error in job.errors:
        counts[error.error_type.value] = counts.get(error.error_type.value, 0) + 1
    return dict(sorted(counts.items(), key=lambda item: (-item[1], item[0])))


def critical_errors(job: ConversionJob, limit: int = MAX_CRITICAL_SHOWN) -> List[str]:
    """Descriptions of the first few critical errors."""
    lines = []
    for error in job.errors:
        if not error.is_critical:
            continue
        where = f"{error.table}: " if error.table else ""
        lines.append(f"{where}{error.message}")
        if len(lines) >= limit:
            break
    return lines


def _file_size(path: str) -> str:
    try:
        size = Path(path).stat().st_size
    except OSError:
        return "missing"
    for unit in ("B", "KB", "MB"):
        if size < 1024:
            return f"{size:.0f} {unit}" if unit == "B" else f"{size:.1f} {unit}"
        size /= 1024
    return f"{size:.1f} GB"


def print_summary(job: ConversionJob) -> None:
    """Print the console summary for a completed job."""
    print("\n" + "=" * 60)
    print(f"  Conversion {job.status.value.upper()}: {job.company}")
    print("=" * 60)
    if job.dry_run:
        print("  (dry run, nothing exported)")
    print(f"Job:        {job.id}")
    print(f"Source:     {job.source_path}")
    if job.duration_seconds is not None:
        print(f"Duration:   {job.duration_seconds:.2f}s")
    print(f"Records:    {job.records_total} total, {job.records_valid} valid, "
          f"{job.records_invalid} invalid, {job.records_exported} exported")
    print(f"Success:    {job.success_rate():.1f}%")
    print(f"Quality:    {job.validation_stats.data_quality_score:.1f}/100")

    if job.sequences:
        print("\nSequences:")
        for sequence in job.sequences:
            print(f"  {sequence.name} START WITH {sequence.start_value} (from {sequence.source_table})")

    if job.errors:
        print(f"\nErrors ({len(job.errors)}):")
        for error_type, count in errors_by_type(job).items():
            print(f"  {error_type}: {count}")

        critical = critical_errors(job)
        if critical:
            print("\nCritical errors:")
            for line in critical:
                print(f"  - {line}")

    if job.output_files:
        print("\nOutput files:")
        for path in job.output_files:
            print(f"  {path} ({_file_size(path)})")
    print("-" * 60)


def exit_code(job: ConversionJob) -> int:
    """0 when the job recorded no error at all, 2 when it failed, 1 otherwise."""
    if not job.errors:
        return 0
    if job.has_critical_errors():
        return 2
    return 1
