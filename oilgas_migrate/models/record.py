"""Record models for conversion data."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
from datetime import date, datetime
from decimal import Decimal

from .job import ProcessingError, Severity


@dataclass
class SourceRecord:
    """A row extracted from a legacy table, keyed by target column name."""
    table: str
    record_id: str
    row_number: int
    data: Dict[str, str]

    def get(self, column: str, default: str = "") -> str:
        value = self.data.get(column)
        return default if value is None else value


@dataclass
class NormalizedRecord:
    """A row after renaming, normalization and type coercion."""
    table: str
    record_id: str
    row_number: int
    data: Dict[str, Any] = field(default_factory=dict)
    issues: List[ProcessingError] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        """A record is valid while it carries no error-or-worse issue."""
        return not any(issue.severity <= Severity.ERROR for issue in self.issues)

    def as_text(self, columns: List[str]) -> List[str]:
        """Render values in column order for text sinks."""
        return [format_value(self.data.get(column)) for column in columns]

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "table": self.table,
            "record_id": self.record_id,
            "row_number": self.row_number,
            "data": {k: format_value(v) for k, v in self.data.items()},
            "issues": [i.to_dict() for i in self.issues],
        }


def format_value(value: Optional[Any]) -> str:
    """Render a coerced value the way the text sinks write it."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return format(value, "f")
    return str(value)
