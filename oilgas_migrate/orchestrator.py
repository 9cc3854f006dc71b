"""Job orchestrator - coordinates a complete legacy conversion."""

import logging
import queue
import threading
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, replace
from itertools import groupby
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence, Set, Tuple

from .exceptions import ConfigurationError, ExportError, SourceReadError
from .exporters import BaseExporter, CSVExporter, DatabaseExporter, SQLScriptExporter
from .extractors import CSVTableExtractor, ExtractionResult
from .models.job import (
    ConversionJob,
    ErrorType,
    JobStatus,
    PerformanceStats,
    Phase,
    ProcessingError,
    ProgressUpdate,
    SequenceDeclaration,
    Severity,
    WorkerJob,
    WorkerResult,
)
from .models.record import SourceRecord
from .models.table import TableInfo
from .services.connection_registry import ConnectionRegistry
from .services.rule_repository import RuleRepository
from .services.schema_analyzer import AnalysisResult, SchemaAnalyzer
from .services.transformer import RecordTransformer, TableTransformation
from .services.validator import BusinessRuleValidator, TableValidation

logger = logging.getLogger(__name__)

ProgressListener = Callable[[ProgressUpdate], None]

SINK_ORDER = ("csv", "sql", "db")

PHASE_ERROR_TYPES = {
    Phase.ANALYZING: ErrorType.EXTRACTION,
    Phase.EXTRACTING: ErrorType.EXTRACTION,
    Phase.VALIDATING: ErrorType.VALIDATION,
    Phase.TRANSFORMING: ErrorType.TRANSFORMATION,
    Phase.EXPORTING: ErrorType.EXPORT,
}


@dataclass(frozen=True)
class StatusChange:
    status: JobStatus


@dataclass(frozen=True)
class TableRegistered:
    table: str
    is_counter_table: bool = False
    skipped: bool = False
    skip_reason: str = ""
    degraded: bool = False


@dataclass(frozen=True)
class OutputFilesWritten:
    paths: Tuple[str, ...]


@dataclass(frozen=True)
class JobFinished:
    performance: PerformanceStats


_STOP = object()


class JobAggregator(threading.Thread):
    """
    Consumes pipeline events and applies them to the job.

    This thread is the only code that mutates the job while the pipeline
    runs. Workers and the orchestrator communicate with it through the
    event queue.
    """

    def __init__(
        self,
        job: ConversionJob,
        events: "queue.Queue",
        listeners: Optional[Sequence[ProgressListener]] = None,
    ):
        super().__init__(name=f"aggregator-{job.id[:8]}", daemon=True)
        self.job = job
        self.events = events
        self.listeners = list(listeners or [])

    def run(self) -> None:
        while True:
            event = self.events.get()
            try:
                if event is _STOP:
                    return
                self.handle(event)
            except Exception as e:
                logger.error(f"Failed to apply {type(event).__name__} to job {self.job.id}: {e}")
            finally:
                self.events.task_done()

    def handle(self, event) -> None:
        """Apply one event to the job."""
        job = self.job
        if isinstance(event, WorkerResult):
            self._apply_result(event)
        elif isinstance(event, ProgressUpdate):
            for listener in self.listeners:
                try:
                    listener(event)
                except Exception as e:
                    logger.warning(f"Progress listener failed: {e}")
        elif isinstance(event, ProcessingError):
            error = job.add_error(event)
            if error.table in job.table_stats:
                job.table_stats[error.table].count_error(error)
        elif isinstance(event, StatusChange):
            job.set_status(event.status)
            logger.debug(f"Job {job.id} is {event.status.value}")
        elif isinstance(event, TableRegistered):
            stats = job.get_table_stats(event.table)
            stats.is_counter_table = event.is_counter_table
            stats.skipped = event.skipped
            stats.skip_reason = event.skip_reason
            stats.degraded = stats.degraded or event.degraded
        elif isinstance(event, OutputFilesWritten):
            for path in event.paths:
                job.add_output_file(path)
        elif isinstance(event, JobFinished):
            self._finish(event.performance)
        else:
            raise TypeError(f"Unknown event {event!r}")

    def _apply_result(self, result: WorkerResult) -> None:
        job = self.job
        table = result.job.table
        stats = job.get_table_stats(table)
        phase = result.job.phase

        if phase == Phase.EXTRACTING:
            stats.records_total = result.records_read
            stats.extraction_errors = result.row_errors
        elif phase == Phase.TRANSFORMING:
            stats.records_valid = result.records_valid
            stats.records_invalid = result.records_invalid
            if result.sequence is not None:
                stats.sequence = result.sequence
                job.add_sequence(result.sequence)
        elif phase == Phase.EXPORTING:
            stats.records_exported = result.records_exported

        for error in result.errors:
            job.add_error(error)
            stats.count_error(error)
        for outcome in result.validations:
            job.record_validation(outcome.error_type, table, outcome.passed, outcome.description)
        for path in result.output_files:
            if path not in stats.output_files:
                stats.output_files.append(path)
            job.add_output_file(path)

        stats.degraded = stats.degraded or result.degraded
        stats.processing_seconds += result.duration_seconds
        job.update_totals()

    def _finish(self, performance: PerformanceStats) -> None:
        job = self.job
        for name, stats in job.table_stats.items():
            if stats.processing_seconds > 0 and stats.records_total:
                performance.table_throughput[name] = stats.records_total / stats.processing_seconds
        if performance.total_seconds > 0:
            performance.records_per_second = job.records_total / performance.total_seconds
        job.performance_stats = performance
        status = job.complete()
        logger.info(f"Job {job.id} finished: {status.value}")


class JobOrchestrator:
    """
    Orchestrates a complete conversion of one legacy export.

    Handles:
    - Schema analysis and dependency ordering
    - Extraction, validation and transformation per table
    - Export to the CSV, SQL-script and direct-database sinks
    - Worker pool dispatch by dependency level
    - Progress and error streaming to a single aggregator
    """

    def __init__(
        self,
        repository: RuleRepository,
        output_dir: str = "output",
        connection_registry: Optional[ConnectionRegistry] = None,
        sinks: Optional[Sequence[str]] = None,
        progress_listeners: Optional[Sequence[ProgressListener]] = None,
    ):
        """
        Initialize the orchestrator.

        Args:
            repository: Active rules, mappings and options
            output_dir: Root directory for csv/, sql/ and reports/
            connection_registry: Shared engines for the direct exporter
            sinks: Sinks to run ("csv", "sql", "db"); output settings when omitted
            progress_listeners: Callables invoked with every ProgressUpdate
        """
        self.repository = repository
        self.config = repository.config
        self.options = repository.config.processing_options
        self.output_dir = output_dir
        self.progress_listeners = list(progress_listeners or [])
        self.sinks = self._resolve_sinks(sinks)

        self._owns_registry = connection_registry is None and "db" in self.sinks
        self.connection_registry = connection_registry
        if self._owns_registry:
            self.connection_registry = ConnectionRegistry(repository)

        self.analyzer = SchemaAnalyzer(repository)
        self.validator = BusinessRuleValidator(repository)
        self.transformer = RecordTransformer(repository)

        # Per-table working data; each worker writes only its own table key
        self.job: Optional[ConversionJob] = None
        self._events: "queue.Queue" = queue.Queue()
        self._extracted: Dict[str, List[SourceRecord]] = {}
        self._validated: Dict[str, TableValidation] = {}
        self._transformed: Dict[str, TableTransformation] = {}
        self._failed_tables: Set[str] = set()
        self._peak_workers = 0
        self._exporters: List[BaseExporter] = []

    def _resolve_sinks(self, sinks: Optional[Sequence[str]]) -> List[str]:
        if sinks is None:
            output = self.config.output_settings
            sinks = [name for name, enabled in (("csv", output.csv), ("sql", output.sql), ("db", output.direct))
                     if enabled]
        unknown = [s for s in sinks if s not in SINK_ORDER]
        if unknown:
            raise ConfigurationError(f"Unknown sink(s): {', '.join(unknown)}")
        return [s for s in SINK_ORDER if s in sinks]

    def run(self, source: str, company: Optional[str] = None) -> ConversionJob:
        """
        Run the complete conversion.

        Args:
            source: Directory of legacy table exports
            company: Company being converted (config company when omitted)

        Returns:
            The completed, read-only ConversionJob
        """
        self.job = ConversionJob(
            company=company or self.config.company,
            source_path=str(source),
            dry_run=self.options.dry_run,
        )
        self._events = queue.Queue()
        aggregator = JobAggregator(self.job, self._events, self.progress_listeners)
        aggregator.start()

        performance = PerformanceStats()
        started = time.perf_counter()
        logger.info(f"Starting conversion {self.job.id} for {self.job.company} from {source}")

        try:
            self._execute(source, performance)
        except Exception as e:
            logger.exception(f"Conversion failed: {e}")
            self._post_error(ErrorType.CRITICAL, Severity.CRITICAL, f"Conversion failed: {e}")
        finally:
            for exporter in self._exporters:
                exporter.close()
            if self._owns_registry:
                self.connection_registry.dispose_all()

            performance.total_seconds = time.perf_counter() - started
            performance.peak_workers = self._peak_workers
            performance.db_connections_used = max(
                (e.peak_connections for e in self._exporters if isinstance(e, DatabaseExporter)), default=0)
            self._events.put(JobFinished(performance))
            self._events.put(_STOP)
            aggregator.join()

        return self.job

    def _execute(self, source: str, performance: PerformanceStats) -> None:
        # Phase 1: Analysis
        logger.info("=== PHASE 1: ANALYSIS ===")
        self._set_status(JobStatus.ANALYZING)
        phase_started = time.perf_counter()
        try:
            analysis = self.analyzer.analyze(source)
        except SourceReadError as e:
            self._post_error(ErrorType.CRITICAL, Severity.CRITICAL, str(e))
            return
        tables = self._register_tables(analysis)
        performance.phase_seconds[Phase.ANALYZING.value] = time.perf_counter() - phase_started

        data_tables = [t for t in tables if not t.is_counter_table]

        phases = [
            ("=== PHASE 2: EXTRACTION ===", Phase.EXTRACTING, tables, self._extract_table),
            ("=== PHASE 3: VALIDATION ===", Phase.VALIDATING, data_tables, self._validate_table),
            ("=== PHASE 4: TRANSFORMATION ===", Phase.TRANSFORMING, tables, self._transform_table),
        ]
        for banner, phase, phase_tables, worker in phases:
            logger.info(banner)
            self._set_status(phase.status)
            phase_started = time.perf_counter()
            if phase == Phase.VALIDATING:
                for warning in self.validator.check_required_tables(analysis.tables):
                    self._events.put(warning)
            aborted = not self._run_phase(phase, phase_tables, worker)
            performance.phase_seconds[phase.value] = time.perf_counter() - phase_started
            if aborted:
                return

        # Phase 5: Export
        if self.options.dry_run:
            logger.info("=== PHASE 5: EXPORT (skipped, dry run) ===")
            return
        logger.info("=== PHASE 5: EXPORT ===")
        self._set_status(JobStatus.EXPORTING)
        phase_started = time.perf_counter()
        try:
            self._exporters = self._create_exporters()
        except ExportError as e:
            self._post_error(ErrorType.CRITICAL, Severity.CRITICAL, str(e))
            return
        if self._run_phase(Phase.EXPORTING, data_tables, self._export_table):
            self._export_sequences()
        performance.phase_seconds[Phase.EXPORTING.value] = time.perf_counter() - phase_started

    def _register_tables(self, analysis: AnalysisResult) -> List[TableInfo]:
        for name, reason in analysis.failures.items():
            self._events.put(TableRegistered(table=name, degraded=True))
            self._post_error(ErrorType.EXTRACTION, Severity.ERROR, f"Cannot read table {name}: {reason}", table=name)
        for warning in analysis.warnings:
            self._post_error(ErrorType.VALIDATION, Severity.WARNING, warning)

        tables = []
        for table in analysis.tables:
            skipped = table.is_empty and not table.is_counter_table
            self._events.put(TableRegistered(
                table=table.name,
                is_counter_table=table.is_counter_table,
                skipped=skipped,
                skip_reason="empty" if skipped else "",
            ))
            if skipped:
                logger.info(f"Skipping empty table {table.original_name}")
                continue
            tables.append(table)
        return tables

    def _run_phase(
        self,
        phase: Phase,
        tables: List[TableInfo],
        worker: Callable[[WorkerJob, TableInfo], WorkerResult],
    ) -> bool:
        """
        Dispatch one phase through the worker pool, one dependency level at a time.

        Returns:
            False when the job must abort
        """
        pending = [t for t in tables if t.name not in self._failed_tables]
        for priority, level in groupby(sorted(pending, key=lambda t: t.priority), key=lambda t: t.priority):
            level = list(level)
            workers = max(1, min(self.options.workers, len(level)))
            self._peak_workers = max(self._peak_workers, workers)

            failures = []
            with ThreadPoolExecutor(max_workers=workers, thread_name_prefix=phase.value) as executor:
                futures = {
                    executor.submit(self._run_worker, worker, WorkerJob(self.job.id, t.name, phase, priority), t): t
                    for t in level
                }
                for future in as_completed(futures):
                    result = future.result()
                    if not result.success:
                        self._failed_tables.add(result.job.table)
                        failures.append(result.job.table)

            if failures and not self.options.continue_on_error:
                self._post_error(
                    ErrorType.CRITICAL,
                    Severity.CRITICAL,
                    f"Aborting after {phase.value} failed for {', '.join(sorted(failures))}",
                )
                return False
        return True

    def _run_worker(
        self,
        worker: Callable[[WorkerJob, TableInfo], WorkerResult],
        job: WorkerJob,
        table: TableInfo,
    ) -> WorkerResult:
        """Run one table through one phase and hand the result to the aggregator."""
        started = time.perf_counter()
        self._progress(job, 0, table.record_count, f"{job.phase.value} {table.name}")
        try:
            result = worker(job, table)
        except Exception as e:
            logger.error(f"{job.phase.value} failed for {table.name}: {e}")
            result = WorkerResult(
                job=job,
                success=False,
                degraded=True,
                errors=(ProcessingError(
                    error_type=PHASE_ERROR_TYPES[job.phase],
                    severity=Severity.ERROR,
                    message=f"{job.phase.value} failed for {table.name}: {e}",
                    table=table.name,
                    job_id=job.job_id,
                ),),
                message=str(e),
            )
        result = replace(result, duration_seconds=time.perf_counter() - started)
        self._events.put(result)
        self._progress(job, table.record_count, table.record_count, result.message)
        return result

    def _extract_table(self, job: WorkerJob, table: TableInfo) -> WorkerResult:
        extractor = CSVTableExtractor(table, encoding=self.analyzer.encoding, delimiter=self.analyzer.delimiter)
        extraction = extractor.extract(
            batch_size=self.options.batch_size,
            on_batch=lambda count: self._progress(job, count, table.record_count, f"read {count} records"),
        )
        self._extracted[table.name] = extraction.records
        errors = list(_extraction_errors(job, extraction))
        return WorkerResult(
            job=job,
            success=extraction.success,
            records_read=extraction.total_extracted,
            row_errors=extraction.row_errors,
            errors=tuple(errors),
            degraded=not extraction.success,
            message=f"extracted {extraction.total_extracted} records",
        )

    def _validate_table(self, job: WorkerJob, table: TableInfo) -> WorkerResult:
        validation = self.validator.validate_table(table, self._extracted.get(table.name, []))
        self._validated[table.name] = validation
        return WorkerResult(
            job=job,
            success=True,
            records_read=len(self._extracted.get(table.name, [])),
            records_invalid=validation.invalid_rows,
            errors=tuple(validation.errors),
            validations=tuple(validation.validations),
            message=f"{validation.invalid_rows} invalid records",
        )

    def _transform_table(self, job: WorkerJob, table: TableInfo) -> WorkerResult:
        validation = self._validated.get(table.name)
        transformation = self.transformer.transform_table(
            table,
            self._extracted.get(table.name, []),
            validation.issues_by_row if validation else None,
        )
        self._transformed[table.name] = transformation
        valid = len(transformation.valid_records)
        return WorkerResult(
            job=job,
            success=True,
            records_read=len(transformation.records),
            records_valid=valid,
            records_invalid=transformation.invalid_count,
            errors=tuple(transformation.errors),
            validations=tuple(transformation.validations),
            sequence=transformation.sequence,
            message=(f"sequence {transformation.sequence.name} starts at {transformation.sequence.start_value}"
                     if transformation.sequence else f"{valid} valid records"),
        )

    def _export_table(self, job: WorkerJob, table: TableInfo) -> WorkerResult:
        transformation = self._transformed.get(table.name)
        records = transformation.valid_records if transformation else []
        errors: List[ProcessingError] = []
        output_files: List[str] = []
        written: List[int] = []

        for exporter in self._exporters:
            try:
                result = exporter.export_table(table, records)
            except Exception as e:
                logger.error(f"{exporter.name} export failed for {table.name}: {e}")
                errors.append(_export_error(job, table.name, f"{exporter.name} export failed: {e}"))
                if not self.options.continue_on_error:
                    break
                continue

            output_files.extend(result.output_files)
            written.append(result.records_written)
            for error in result.errors:
                errors.append(_export_error(job, table.name, error["message"]))
            if result.errors and not self.options.continue_on_error:
                break

        # Records that reached every sink
        exported = min(written) if written and len(written) == len(self._exporters) else 0
        return WorkerResult(
            job=job,
            success=not errors,
            records_exported=exported,
            errors=tuple(errors),
            output_files=tuple(output_files),
            degraded=bool(errors),
            message=f"exported {exported} records",
        )

    def _export_sequences(self) -> None:
        sequences: List[SequenceDeclaration] = sorted(
            (t.sequence for t in self._transformed.values() if t.sequence is not None),
            key=lambda s: s.name,
        )
        if not sequences:
            return
        paths: List[str] = []
        for exporter in self._exporters:
            try:
                result = exporter.export_sequences(sequences)
            except Exception as e:
                self._post_error(ErrorType.EXPORT, Severity.ERROR, f"{exporter.name} sequence export failed: {e}")
                continue
            paths.extend(result.output_files)
            for error in result.errors:
                self._post_error(ErrorType.EXPORT, Severity.ERROR, error["message"])
        if paths:
            self._events.put(OutputFilesWritten(tuple(paths)))

    def _create_exporters(self) -> List[BaseExporter]:
        """
        Build the configured sinks.

        Raises:
            ExportError: If the target store is unreachable
        """
        output = self.config.output_settings
        batch_size = self.options.batch_size
        exporters: List[BaseExporter] = []
        for sink in self.sinks:
            if sink == "csv":
                exporters.append(CSVExporter(self.output_dir, batch_size=batch_size))
            elif sink == "sql":
                exporters.append(SQLScriptExporter(
                    self.output_dir, schema=output.schema, mode=output.sql_mode, batch_size=batch_size))
            elif sink == "db":
                engine = self.connection_registry.engine_for(self.config.tenant_id or None)
                exporters.append(DatabaseExporter(engine, schema=output.schema, batch_size=batch_size))

        for exporter in exporters:
            exporter.validate_connection()
        Path(self.output_dir).mkdir(parents=True, exist_ok=True)
        logger.info(f"Exporting to: {', '.join(e.name for e in exporters)}")
        return exporters

    def _set_status(self, status: JobStatus) -> None:
        self._events.put(StatusChange(status))

    def _post_error(self, error_type: ErrorType, severity: Severity, message: str, table: str = "") -> None:
        if severity == Severity.CRITICAL:
            logger.error(message)
        self._events.put(ProcessingError(
            error_type=error_type,
            severity=severity,
            message=message,
            table=table,
            job_id=self.job.id,
        ))

    def _progress(self, job: WorkerJob, processed: int, total: int, message: str = "") -> None:
        self._events.put(ProgressUpdate(
            job_id=job.job_id,
            table=job.table,
            phase=job.phase,
            records_processed=processed,
            total_records=total,
            message=message,
        ))


def _extraction_errors(job: WorkerJob, extraction: ExtractionResult):
    table = extraction.table.name
    for error in extraction.errors:
        yield ProcessingError(
            error_type=ErrorType.EXTRACTION,
            severity=Severity.ERROR,
            message=error["message"],
            table=table,
            job_id=job.job_id,
            suggested_fix="Check the export file exists and is readable",
        )
    if extraction.row_errors:
        yield ProcessingError(
            error_type=ErrorType.EXTRACTION,
            severity=Severity.WARNING,
            message=f"Skipped {extraction.row_errors} unparseable row(s)",
            table=table,
            job_id=job.job_id,
        )
    for warning in extraction.warnings:
        yield ProcessingError(
            error_type=ErrorType.EXTRACTION,
            severity=Severity.WARNING,
            message=warning,
            table=table,
            job_id=job.job_id,
        )


def _export_error(job: WorkerJob, table: str, message: str) -> ProcessingError:
    return ProcessingError(
        error_type=ErrorType.EXPORT,
        severity=Severity.ERROR,
        message=message,
        table=table,
        job_id=job.job_id,
    )
