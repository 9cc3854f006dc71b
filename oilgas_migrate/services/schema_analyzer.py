"""Schema discovery for legacy table exports."""

import logging
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Dict, List, Optional, Set

from ..exceptions import SourceReadError
from ..extractors.csv_extractor import DelimitedFileReader
from ..models.table import ColumnInfo, RelationshipInfo, TableInfo
from .rule_repository import RuleRepository
from .transformer import ColumnMapper

logger = logging.getLogger(__name__)


@dataclass
class AnalysisResult:
    """Tables discovered in a legacy export location."""
    source: str
    tables: List[TableInfo] = field(default_factory=list)
    failures: Dict[str, str] = field(default_factory=dict)  # table -> reason
    warnings: List[str] = field(default_factory=list)

    def get_table(self, name: str) -> Optional[TableInfo]:
        lowered = name.lower()
        for table in self.tables:
            if table.name.lower() == lowered or table.original_name.lower() == lowered:
                return table
        return None

    def to_dict(self):
        """Convert to dictionary representation."""
        return {
            "source": self.source,
            "tables": [t.to_dict() for t in self.tables],
            "failures": self.failures,
            "warnings": self.warnings,
        }


class SchemaAnalyzer:
    """
    Discovers tables, columns and relationships in a legacy export.

    Supports:
    - A directory of per-table .csv/.txt/.tsv files, or a single file
    - Column renaming through the rule repository
    - Relationship inference from *_id / *id columns
    - Dependency ordering (parents before children)
    """

    SUPPORTED_SUFFIXES = (".csv", ".txt", ".tsv")

    def __init__(
        self,
        repository: RuleRepository,
        sample_size: int = 5,
        encoding: str = "utf-8-sig",
        delimiter: Optional[str] = None,
    ):
        """
        Initialize the analyzer.

        Args:
            repository: Rule repository used for naming and rules
            sample_size: Distinct sample values kept per column
            encoding: Preferred file encoding
            delimiter: Delimiter used when sniffing fails
        """
        self.repository = repository
        self.mapper = ColumnMapper(repository)
        self.sample_size = sample_size
        self.encoding = encoding
        self.delimiter = delimiter

    def discover_files(self, source: str) -> List[Path]:
        """List table files at a source location."""
        path = Path(source)
        if path.is_file():
            if path.suffix.lower() not in self.SUPPORTED_SUFFIXES:
                raise SourceReadError(f"Unsupported source file type: {path.suffix}")
            return [path]
        if not path.is_dir():
            raise SourceReadError(f"Source not found or unreadable: {source}")
        try:
            return sorted(
                p for p in path.iterdir()
                if p.is_file() and p.suffix.lower() in self.SUPPORTED_SUFFIXES
            )
        except OSError as e:
            raise SourceReadError(f"Cannot list source directory {source}: {e}") from e

    def analyze(self, source: str) -> AnalysisResult:
        """
        Analyze every table in a source location.

        Args:
            source: Directory of exports, or one export file

        Returns:
            AnalysisResult with tables ordered by priority

        Raises:
            SourceReadError: If the source cannot be read or holds no tables
        """
        result = AnalysisResult(source=str(source))
        seen: Set[str] = set()

        for path in self.discover_files(source):
            try:
                table = self.analyze_table(path)
            except OSError as e:
                logger.error(f"Failed to analyze {path}: {e}")
                result.failures[path.stem] = str(e)
                continue

            if table.name in seen:
                message = f"Duplicate table {table.name} from {path.name} ignored"
                logger.warning(message)
                result.warnings.append(message)
                continue
            seen.add(table.name)
            result.tables.append(table)

        if not result.tables:
            if result.failures:
                raise SourceReadError(
                    f"No readable tables in {source}: {'; '.join(result.failures.values())}")
            raise SourceReadError(f"No tables found in {source}")

        self.infer_relationships(result.tables)
        result.warnings.extend(self.assign_priorities(result.tables))
        result.tables.sort(key=lambda t: (t.priority, t.name))

        logger.info(f"Discovered {len(result.tables)} tables in {source}")
        return result

    def analyze_table(self, path: Path) -> TableInfo:
        """
        Build TableInfo for one export file.

        Args:
            path: Table file

        Returns:
            TableInfo with column statistics
        """
        original_name = path.stem
        name, is_counter, sequence_name = self.mapper.table_target(original_name)
        table = TableInfo(
            name=name,
            original_name=original_name,
            source_path=str(path),
            is_counter_table=is_counter,
            sequence_name=sequence_name,
        )

        reader = DelimitedFileReader(path, encoding=self.encoding, delimiter=self.delimiter)
        header: Optional[List[str]] = None
        uniques: List[Set[str]] = []

        for _, row in reader.rows():
            if not any(cell.strip() for cell in row):
                continue
            if header is None:
                header = row
                table.columns = self._build_columns(table, header)
                uniques = [set() for _ in table.columns]
                continue

            table.record_count += 1
            for index, column in enumerate(table.columns):
                value = row[index].strip() if index < len(row) else ""
                if not value:
                    column.null_value_count += 1
                    continue
                column.max_length = max(column.max_length, len(value))
                uniques[index].add(value)
                if len(column.sample_values) < self.sample_size and value not in column.sample_values:
                    column.sample_values.append(value)

        for column, values in zip(table.columns, uniques):
            column.unique_value_count = len(values)
            column.nullable = column.null_value_count > 0 or table.record_count == 0
            column.data_type = _infer_type(column.sample_values)

        if table.is_empty:
            logger.info(f"Table {original_name} has no records")
        else:
            logger.debug(f"Analyzed {original_name}: {table.record_count} records, {len(table.columns)} columns")
        return table

    def _build_columns(self, table: TableInfo, header: List[str]) -> List[ColumnInfo]:
        columns = []
        used: Set[str] = set()
        for position, raw in enumerate(header, start=1):
            original = raw.strip() or f"column_{position}"
            target = self.mapper.column_target(table.original_name, original) or f"column_{position}"
            if target in used:
                target = f"{target}_{position}"
            used.add(target)

            mapping = self.repository.column_mapping_for(target)
            rule_names = [r.name for r in self.repository.rules_for(table.name, target)]
            if mapping:
                rule_names.extend(r.normalizer.value for r in mapping.rules)
            columns.append(ColumnInfo(
                name=target,
                original_name=original,
                target_type=mapping.data_type.value if mapping else "string",
                default=mapping.default if mapping else None,
                business_rules=rule_names,
            ))
        return columns

    def infer_relationships(self, tables: List[TableInfo]) -> None:
        """Link *_id / *id columns to the table they name."""
        by_name = {t.name: t for t in tables}
        for table in tables:
            table.relationships = []
            for column in table.columns:
                target = self._referenced_table(column.name, by_name)
                if target is None or target.name == table.name:
                    continue
                to_column = column.name if target.get_column(column.name) else (
                    target.primary_key_column().name if target.primary_key_column() else "id")
                table.relationships.append(RelationshipInfo(
                    from_table=table.name,
                    from_column=column.name,
                    to_table=target.name,
                    to_column=to_column,
                    required=not column.nullable,
                ))
            table.dependencies = sorted({r.to_table for r in table.relationships})

    @staticmethod
    def _referenced_table(column: str, by_name: Dict[str, TableInfo]) -> Optional[TableInfo]:
        if column.endswith("_id"):
            stem = column[:-3]
        elif column.endswith("id"):
            stem = column[:-2]
        else:
            return None
        stem = stem.rstrip("_")
        if not stem:
            return None

        for candidate in (stem, f"{stem}s", f"{stem}es"):
            if candidate in by_name:
                return by_name[candidate]
        if len(stem) >= 3:
            prefixed = sorted(n for n in by_name if n.startswith(stem))
            if prefixed:
                return by_name[prefixed[0]]
        return None

    def assign_priorities(self, tables: List[TableInfo]) -> List[str]:
        """
        Kahn's algorithm by level: a table's priority is one more than its deepest parent.

        Returns:
            Warnings for dependency cycles that had to be broken
        """
        names = {t.name for t in tables}
        remaining = {t.name: set(t.dependencies) & names - {t.name} for t in tables}
        priorities: Dict[str, int] = {}
        warnings = []
        level = 0

        while remaining:
            ready = sorted(name for name, deps in remaining.items() if not deps)
            if not ready:
                victim = sorted(remaining)[0]
                message = f"Dependency cycle involving {', '.join(sorted(remaining))}; breaking at {victim}"
                logger.warning(message)
                warnings.append(message)
                ready = [victim]
            for name in ready:
                priorities[name] = level
                del remaining[name]
            for deps in remaining.values():
                deps.difference_update(ready)
            level += 1

        for table in tables:
            table.priority = priorities[table.name]
        return warnings


def _infer_type(samples: List[str]) -> str:
    if not samples:
        return "text"
    try:
        numbers = [Decimal(s.replace(",", "")) for s in samples]
    except InvalidOperation:
        return "text"
    if not all(n.is_finite() for n in numbers):
        return "text"
    if all(n == n.to_integral_value() and "." not in s for n, s in zip(numbers, samples)):
        return "integer"
    return "decimal"
