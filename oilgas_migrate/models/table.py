"""Table and column metadata discovered from a legacy source."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass
class ColumnInfo:
    """Metadata for one column of a legacy table."""
    name: str  # Target (normalized) column name
    original_name: str  # Header as it appears in the source file
    data_type: str = "text"
    target_type: str = "string"
    nullable: bool = True
    default: Optional[str] = None  # Value used when the source cell is blank
    max_length: int = 0
    null_value_count: int = 0
    unique_value_count: int = 0
    sample_values: List[str] = field(default_factory=list)
    business_rules: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "name": self.name,
            "original_name": self.original_name,
            "data_type": self.data_type,
            "target_type": self.target_type,
            "nullable": self.nullable,
            "default": self.default,
            "max_length": self.max_length,
            "null_value_count": self.null_value_count,
            "unique_value_count": self.unique_value_count,
            "sample_values": self.sample_values,
            "business_rules": self.business_rules,
        }


@dataclass
class RelationshipInfo:
    """An inferred foreign-key style link between two tables."""
    from_table: str
    from_column: str
    to_table: str
    to_column: str
    relationship: str = "many_to_one"
    required: bool = False

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "from_table": self.from_table,
            "from_column": self.from_column,
            "to_table": self.to_table,
            "to_column": self.to_column,
            "relationship": self.relationship,
            "required": self.required,
        }


@dataclass
class TableInfo:
    """Metadata for a discovered legacy table."""
    name: str  # Target (normalized) table name
    original_name: str
    source_path: str = ""
    columns: List[ColumnInfo] = field(default_factory=list)
    record_count: int = 0
    is_counter_table: bool = False
    sequence_name: str = ""
    relationships: List[RelationshipInfo] = field(default_factory=list)
    dependencies: List[str] = field(default_factory=list)
    priority: int = 0

    @property
    def is_empty(self) -> bool:
        return self.record_count == 0

    @property
    def column_names(self) -> List[str]:
        return [c.name for c in self.columns]

    def get_column(self, name: str) -> Optional[ColumnInfo]:
        """Get a column by target or original name, ignoring case."""
        lowered = name.lower()
        for column in self.columns:
            if column.name.lower() == lowered or column.original_name.lower() == lowered:
                return column
        return None

    def primary_key_column(self) -> Optional[ColumnInfo]:
        """Guess the identifying column: ``id`` or ``<singular table>_id``."""
        candidates = ["id", f"{self.name}_id"]
        if self.name.endswith("s"):
            candidates.append(f"{self.name[:-1]}_id")
        for candidate in candidates:
            for column in self.columns:
                if column.name == candidate:
                    return column
        return None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "name": self.name,
            "original_name": self.original_name,
            "source_path": self.source_path,
            "columns": [c.to_dict() for c in self.columns],
            "record_count": self.record_count,
            "is_counter_table": self.is_counter_table,
            "sequence_name": self.sequence_name,
            "relationships": [r.to_dict() for r in self.relationships],
            "dependencies": self.dependencies,
            "priority": self.priority,
        }
