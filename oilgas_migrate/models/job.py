"""Conversion job models: status, errors, statistics and worker messages."""

from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional, Tuple
from enum import Enum, IntEnum
from datetime import datetime
import uuid


class JobStatus(str, Enum):
    """Status of a conversion job."""
    INITIALIZING = "initializing"
    ANALYZING = "analyzing"
    EXTRACTING = "extracting"
    VALIDATING = "validating"
    TRANSFORMING = "transforming"
    EXPORTING = "exporting"
    COMPLETED = "completed"
    COMPLETED_WITH_WARNINGS = "completed_with_warnings"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.COMPLETED_WITH_WARNINGS, JobStatus.FAILED)


_STATUS_ORDER = [
    JobStatus.INITIALIZING,
    JobStatus.ANALYZING,
    JobStatus.EXTRACTING,
    JobStatus.VALIDATING,
    JobStatus.TRANSFORMING,
    JobStatus.EXPORTING,
]


class Phase(str, Enum):
    """Pipeline phases dispatched to the worker pool."""
    ANALYZING = "analyzing"
    EXTRACTING = "extracting"
    VALIDATING = "validating"
    TRANSFORMING = "transforming"
    EXPORTING = "exporting"

    @property
    def status(self) -> JobStatus:
        return JobStatus(self.value)


class ErrorType(str, Enum):
    """Classification of processing errors."""
    EXTRACTION = "extraction"
    VALIDATION = "validation"
    TRANSFORMATION = "transformation"
    EXPORT = "export"
    BUSINESS_RULE = "business_rule"
    CRITICAL = "critical"


class Severity(IntEnum):
    """Error severity. Lower is worse; ERROR or worse invalidates a record."""
    CRITICAL = 1
    ERROR = 2
    WARNING = 3


@dataclass(frozen=True)
class ProcessingError:
    """A single problem found while converting data."""
    error_type: ErrorType
    severity: Severity
    message: str
    table: str = ""
    record_id: str = ""
    column: str = ""
    original_value: Optional[str] = None
    suggested_fix: Optional[str] = None
    job_id: str = ""
    timestamp: datetime = field(default_factory=datetime.utcnow)

    @property
    def is_critical(self) -> bool:
        return self.severity == Severity.CRITICAL or self.error_type == ErrorType.CRITICAL

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "job_id": self.job_id,
            "table": self.table,
            "record_id": self.record_id,
            "column": self.column,
            "error_type": self.error_type.value,
            "severity": int(self.severity),
            "message": self.message,
            "original_value": self.original_value,
            "suggested_fix": self.suggested_fix,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass(frozen=True)
class SequenceDeclaration:
    """A sequence seeded from a legacy counter table."""
    name: str
    start_value: int
    source_table: str = ""

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {"name": self.name, "start_value": self.start_value, "source_table": self.source_table}


@dataclass
class TableStats:
    """Per-table counters for a conversion job."""
    table_name: str
    records_total: int = 0
    records_valid: int = 0
    records_invalid: int = 0
    records_exported: int = 0
    extraction_errors: int = 0  # Rows skipped as unparseable
    validation_errors: int = 0
    transformation_errors: int = 0
    business_rule_errors: int = 0
    processing_seconds: float = 0.0
    output_files: List[str] = field(default_factory=list)
    is_counter_table: bool = False
    degraded: bool = False
    skipped: bool = False
    skip_reason: str = ""
    sequence: Optional[SequenceDeclaration] = None

    def count_error(self, error: ProcessingError) -> None:
        if error.error_type == ErrorType.VALIDATION:
            self.validation_errors += 1
        elif error.error_type == ErrorType.TRANSFORMATION:
            self.transformation_errors += 1
        elif error.error_type == ErrorType.BUSINESS_RULE:
            self.business_rule_errors += 1

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "table_name": self.table_name,
            "records_total": self.records_total,
            "records_valid": self.records_valid,
            "records_invalid": self.records_invalid,
            "records_exported": self.records_exported,
            "extraction_errors": self.extraction_errors,
            "validation_errors": self.validation_errors,
            "transformation_errors": self.transformation_errors,
            "business_rule_errors": self.business_rule_errors,
            "processing_seconds": round(self.processing_seconds, 3),
            "output_files": self.output_files,
            "is_counter_table": self.is_counter_table,
            "degraded": self.degraded,
            "skipped": self.skipped,
            "skip_reason": self.skip_reason,
            "sequence": self.sequence.to_dict() if self.sequence else None,
        }


@dataclass
class ValidationStats:
    """Rule evaluation counters and the derived data quality score."""
    total_validations: int = 0
    passed_validations: int = 0
    failed_validations: int = 0
    errors_by_type: Dict[str, int] = field(default_factory=dict)
    errors_by_table: Dict[str, int] = field(default_factory=dict)
    critical_errors: int = 0
    business_rule_violations: int = 0
    data_quality_score: float = 0.0
    error_examples: Dict[str, List[str]] = field(default_factory=dict)

    def add_validation_result(self, error_type: str, table: str, passed: bool,
                              description: str = "") -> None:
        """Record one rule evaluation and refresh the quality score.

        Args:
            error_type: Error type the rule reports when it fails
            table: Table the evaluation belongs to
            passed: Whether the value satisfied the rule
            description: Failure description kept as an example
        """
        error_type = getattr(error_type, "value", error_type)
        self.total_validations += 1
        if passed:
            self.passed_validations += 1
        else:
            self.failed_validations += 1
            self.errors_by_type[error_type] = self.errors_by_type.get(error_type, 0) + 1
            self.errors_by_table[table] = self.errors_by_table.get(table, 0) + 1
            examples = self.error_examples.setdefault(error_type, [])
            if description and len(examples) < 3:
                examples.append(description)
            if error_type == ErrorType.CRITICAL.value:
                self.critical_errors += 1
            elif error_type == ErrorType.BUSINESS_RULE.value:
                self.business_rule_violations += 1
        self.calculate_quality_score()

    def calculate_quality_score(self) -> float:
        """Pass rate minus 5 per critical and 2 per business-rule failure, clamped to [0, 100]."""
        if self.total_validations == 0:
            self.data_quality_score = 0.0
            return self.data_quality_score

        score = self.passed_validations / self.total_validations * 100.0
        score -= self.critical_errors * 5.0
        score -= self.business_rule_violations * 2.0
        self.data_quality_score = max(0.0, min(100.0, score))
        return self.data_quality_score

    def top_error_types(self, limit: int = 5) -> List[Dict[str, Any]]:
        """Most frequent failure types, highest count first, with up to three examples each."""
        ranked = sorted(self.errors_by_type.items(), key=lambda item: (-item[1], item[0]))
        return [
            {"error_type": error_type, "count": count,
             "examples": list(self.error_examples.get(error_type, []))}
            for error_type, count in ranked[:limit]
        ]

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "total_validations": self.total_validations,
            "passed_validations": self.passed_validations,
            "failed_validations": self.failed_validations,
            "errors_by_type": self.errors_by_type,
            "errors_by_table": self.errors_by_table,
            "critical_errors": self.critical_errors,
            "business_rule_violations": self.business_rule_violations,
            "data_quality_score": round(self.data_quality_score, 2),
        }


@dataclass
class PerformanceStats:
    """Timing and throughput for a finished job."""
    total_seconds: float = 0.0
    phase_seconds: Dict[str, float] = field(default_factory=dict)
    records_per_second: float = 0.0
    table_throughput: Dict[str, float] = field(default_factory=dict)  # records/second
    peak_workers: int = 0
    db_connections_used: int = 0

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "total_seconds": round(self.total_seconds, 3),
            "records_per_second": round(self.records_per_second, 1),
            "phase_seconds": {k: round(v, 3) for k, v in self.phase_seconds.items()},
            "table_throughput": {k: round(v, 1) for k, v in self.table_throughput.items()},
            "peak_workers": self.peak_workers,
            "db_connections_used": self.db_connections_used,
        }


@dataclass
class ConversionJob:
    """A single company conversion run.

    The job is mutated only by the aggregator while the pipeline runs and
    becomes read-only once complete() has been called.
    """
    company: str
    source_path: str
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    status: JobStatus = JobStatus.INITIALIZING
    dry_run: bool = False

    created_at: datetime = field(default_factory=datetime.utcnow)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    records_total: int = 0
    records_valid: int = 0
    records_invalid: int = 0
    records_exported: int = 0

    table_stats: Dict[str, TableStats] = field(default_factory=dict)
    validation_stats: ValidationStats = field(default_factory=ValidationStats)
    performance_stats: PerformanceStats = field(default_factory=PerformanceStats)
    errors: List[ProcessingError] = field(default_factory=list)
    output_files: List[str] = field(default_factory=list)
    sequences: List[SequenceDeclaration] = field(default_factory=list)

    _finalized: bool = field(default=False, repr=False)

    def _ensure_mutable(self) -> None:
        if self._finalized:
            raise RuntimeError(f"Job {self.id} is complete and read-only")

    def set_status(self, status: JobStatus) -> None:
        """Advance the job status. Non-terminal statuses only move forward."""
        self._ensure_mutable()
        if status.is_terminal:
            raise ValueError("Terminal statuses are set by complete()")
        if _STATUS_ORDER.index(status) < _STATUS_ORDER.index(self.status):
            raise ValueError(f"Cannot move job from {self.status.value} back to {status.value}")
        if self.started_at is None and status != JobStatus.INITIALIZING:
            self.started_at = datetime.utcnow()
        self.status = status

    def add_error(self, error: ProcessingError) -> ProcessingError:
        """Append an error stamped with this job's id."""
        self._ensure_mutable()
        if error.job_id != self.id:
            error = replace(error, job_id=self.id)
        self.errors.append(error)
        return error

    def add_output_file(self, path: str) -> None:
        self._ensure_mutable()
        if path not in self.output_files:
            self.output_files.append(path)

    def add_sequence(self, sequence: SequenceDeclaration) -> None:
        self._ensure_mutable()
        self.sequences.append(sequence)

    def record_validation(self, error_type: str, table: str, passed: bool, description: str = "") -> None:
        self._ensure_mutable()
        self.validation_stats.add_validation_result(error_type, table, passed, description)

    def get_table_stats(self, table: str) -> TableStats:
        """Get stats for a table, creating an empty entry on first use."""
        if table not in self.table_stats:
            self._ensure_mutable()
            self.table_stats[table] = TableStats(table_name=table)
        return self.table_stats[table]

    def update_table_stats(self, stats: TableStats) -> None:
        """Replace a table's stats and recompute job totals."""
        self._ensure_mutable()
        self.table_stats[stats.table_name] = stats
        self.update_totals()

    def update_totals(self) -> None:
        """Update totals from table stats. Counter tables carry no records."""
        data_tables = [s for s in self.table_stats.values() if not s.is_counter_table]
        self.records_total = sum(s.records_total for s in data_tables)
        self.records_valid = sum(s.records_valid for s in data_tables)
        self.records_invalid = sum(s.records_invalid for s in data_tables)
        self.records_exported = sum(s.records_exported for s in data_tables)

    def has_errors(self) -> bool:
        return bool(self.errors)

    def has_critical_errors(self) -> bool:
        return any(e.is_critical for e in self.errors)

    def success_rate(self) -> float:
        """Share of records that are valid, as a percentage."""
        if self.records_total == 0:
            return 0.0
        return self.records_valid / self.records_total * 100.0

    @property
    def duration_seconds(self) -> Optional[float]:
        """Get duration in seconds."""
        if self.started_at and self.completed_at:
            return (self.completed_at - self.started_at).total_seconds()
        return None

    @property
    def is_complete(self) -> bool:
        return self._finalized

    def complete(self) -> JobStatus:
        """Pick the terminal status and freeze the job."""
        self._ensure_mutable()
        self.update_totals()
        if self.has_critical_errors():
            self.status = JobStatus.FAILED
        elif self.has_errors():
            self.status = JobStatus.COMPLETED_WITH_WARNINGS
        else:
            self.status = JobStatus.COMPLETED
        if self.started_at is None:
            self.started_at = self.created_at
        self.completed_at = datetime.utcnow()
        self._finalized = True
        return self.status

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "id": self.id,
            "company": self.company,
            "source_path": self.source_path,
            "status": self.status.value,
            "dry_run": self.dry_run,
            "created_at": self.created_at.isoformat(),
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "duration_seconds": self.duration_seconds,
            "records_total": self.records_total,
            "records_valid": self.records_valid,
            "records_invalid": self.records_invalid,
            "records_exported": self.records_exported,
            "success_rate": round(self.success_rate(), 2),
            "table_stats": {k: v.to_dict() for k, v in self.table_stats.items()},
            "validation_stats": self.validation_stats.to_dict(),
            "performance_stats": self.performance_stats.to_dict(),
            "errors": [e.to_dict() for e in self.errors],
            "output_files": self.output_files,
            "sequences": [s.to_dict() for s in self.sequences],
        }


@dataclass(frozen=True)
class ProgressUpdate:
    """Progress notification for one table within a phase."""
    job_id: str
    table: str
    phase: Phase
    records_processed: int
    total_records: int
    message: str = ""
    timestamp: datetime = field(default_factory=datetime.utcnow)

    @property
    def percentage(self) -> float:
        if self.total_records <= 0:
            return 100.0
        return min(100.0, self.records_processed / self.total_records * 100.0)


@dataclass(frozen=True)
class WorkerJob:
    """One unit of work: a table in a given phase."""
    job_id: str
    table: str
    phase: Phase
    priority: int = 0


@dataclass(frozen=True)
class ValidationOutcome:
    """A single rule evaluation reported by a worker."""
    error_type: str
    passed: bool
    description: str = ""


@dataclass(frozen=True)
class WorkerResult:
    """Immutable outcome of a worker job, consumed by the aggregator."""
    job: WorkerJob
    success: bool
    records_read: int = 0
    records_valid: int = 0
    records_invalid: int = 0
    records_exported: int = 0
    row_errors: int = 0
    errors: Tuple[ProcessingError, ...] = ()
    validations: Tuple[ValidationOutcome, ...] = ()
    output_files: Tuple[str, ...] = ()
    sequence: Optional[SequenceDeclaration] = None
    degraded: bool = False
    duration_seconds: float = 0.0
    message: str = ""
