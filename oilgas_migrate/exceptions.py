"""Exceptions raised by the conversion pipeline."""

from typing import Optional


class ConfigurationError(ValueError):
    """Configuration file could not be parsed or is structurally invalid."""


class SourceReadError(RuntimeError):
    """Legacy export location unreadable, or no tables discovered."""


class ExportError(RuntimeError):
    """A sink failed to write its output."""

    def __init__(self, message: str, critical: bool = False):
        super().__init__(message)
        self.critical = critical


class NormalizationError(ValueError):
    """A value could not be brought into canonical form."""

    def __init__(self, field: str, value: str, message: str, suggested_fix: Optional[str] = None):
        super().__init__(message)
        self.field = field
        self.value = value
        self.message = message
        self.suggested_fix = suggested_fix
