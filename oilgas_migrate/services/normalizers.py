"""Value normalizers for oil & gas fields and target type coercion."""

import re
import logging
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Dict, Optional, Tuple
from dateutil import parser as date_parser

from ..exceptions import NormalizationError
from ..models.config import FieldType, NormalizerType, ReferenceData, RuleSeverity
from .defaults import default_reference_data

logger = logging.getLogger(__name__)


# Failures on these fields are recorded but do not invalidate the record
DEFAULT_SEVERITIES = {
    NormalizerType.CONNECTION: RuleSeverity.WARNING,
    NormalizerType.PHONE: RuleSeverity.WARNING,
    NormalizerType.EMAIL: RuleSeverity.WARNING,
}

EMAIL_PATTERN = re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")

_SIZE_SUFFIX = re.compile(r'\s*(inches|inch|in\.?|")\s*$', re.IGNORECASE)
_SIZE_FRACTION = re.compile(r"(\d+)(?:[\s\-]+(\d+)/(\d+))?")
_SIZE_DECIMAL = re.compile(r"\d*\.?\d+")
_WEIGHT_UNITS = re.compile(r"(lbs?/ft|ppf|#)", re.IGNORECASE)
_NAME_DISALLOWED = re.compile(r"[^A-Za-z0-9 &.,'\-/()#]")
_NAME_WORD = re.compile(r"[A-Za-z]+")
_WORK_ORDER = re.compile(r"([A-Z]{1,4})[\s\-_./#]*(\d+)")

# Tokens kept uppercase when a customer name is title-cased
UPPERCASE_TOKENS = {"LLC", "LLP", "LP", "USA", "II", "III", "IV", "JV"}

TRUE_TOKENS = {"true", "t", "yes", "y", "1", "-1", "on", "x"}
FALSE_TOKENS = {"false", "f", "no", "n", "0", "off"}

DATE_FORMATS = (
    "%Y-%m-%d",
    "%m/%d/%Y",
    "%m/%d/%y",
    "%m-%d-%Y",
    "%d-%b-%Y",
    "%Y%m%d",
)

TIMESTAMP_FORMATS = (
    "%Y-%m-%d %H:%M:%S",
    "%m/%d/%Y %H:%M:%S",
    "%m/%d/%Y %I:%M:%S %p",
    "%m/%d/%Y %H:%M",
    "%m/%d/%y %H:%M:%S",
)


class ValueNormalizer:
    """
    Brings legacy field values into their canonical form.

    Every normalizer is idempotent: feeding a canonical value back in
    returns it unchanged. Failures raise NormalizationError.
    """

    def __init__(self, reference: Optional[ReferenceData] = None, work_order_width: int = 6):
        self.reference = reference or default_reference_data()
        self.work_order_width = work_order_width
        self._grades = {g.upper() for g in self.reference.grades}
        self._deprecated = {g.upper() for g in self.reference.deprecated_grades}
        self._canonical_sizes = set(self.reference.size_fractions.values())
        self._connection_codes = {c.upper() for c in self.reference.connection_codes}
        self._builtin_normalizers = self._register_builtin_normalizers()

    def _register_builtin_normalizers(self) -> Dict[str, Callable[[str, Dict], str]]:
        """Register all built-in normalizers."""
        return {
            NormalizerType.GRADE.value: lambda v, c: self.normalize_grade(v),
            NormalizerType.SIZE.value: lambda v, c: self.normalize_size(v),
            NormalizerType.CONNECTION.value: lambda v, c: self.normalize_connection(v),
            NormalizerType.CUSTOMER_NAME.value: lambda v, c: self.normalize_customer_name(
                v, c.get("case", "title")),
            NormalizerType.WORK_ORDER.value: lambda v, c: self.normalize_work_order(
                v, int(c.get("width", self.work_order_width)), c.get("prefixes")),
            NormalizerType.PHONE.value: lambda v, c: self.normalize_phone(v),
            NormalizerType.EMAIL.value: lambda v, c: self.normalize_email(v),
            NormalizerType.WEIGHT.value: lambda v, c: self.normalize_weight(v),
        }

    def apply(self, normalizer: NormalizerType, value: str, config: Optional[Dict] = None) -> Tuple[str, Optional[str]]:
        """
        Run one normalizer over a value.

        Args:
            normalizer: Which normalizer to run
            value: Raw value
            config: Normalizer options (case policy, work order width)

        Returns:
            Tuple of (normalized value, warning message or None)
        """
        func = self._builtin_normalizers[NormalizerType(normalizer).value]
        result = func(value, config or {})
        if normalizer == NormalizerType.CONNECTION and not self.is_known_connection(result):
            return result, f"Unknown connection type '{value}' kept as-is"
        return result, None

    def normalize_grade(self, value: str) -> str:
        """Canonical pipe grade: J-55, j 55 and J55 all become J55."""
        grade = re.sub(r"[\s\-_]", "", value).upper()
        if grade in self._deprecated:
            raise NormalizationError(
                "grade", value, f"Grade '{value}' is deprecated",
                suggested_fix="Re-grade against current API 5CT grades",
            )
        if grade not in self._grades:
            raise NormalizationError(
                "grade", value, f"Unknown grade '{value}'",
                suggested_fix=f"Use one of: {', '.join(sorted(self._grades))}",
            )
        return grade

    def normalize_size(self, value: str) -> str:
        """Canonical pipe size, e.g. 5.5 or 5-1/2 in become 5 1/2"."""
        text = value.strip()
        if text in self._canonical_sizes:
            return text

        text = _SIZE_SUFFIX.sub("", text).strip()
        number = None
        match = _SIZE_FRACTION.fullmatch(text)
        if match and match.group(2):
            denominator = Decimal(match.group(3))
            if denominator != 0:
                number = Decimal(match.group(1)) + Decimal(match.group(2)) / denominator
        elif _SIZE_DECIMAL.fullmatch(text):
            number = Decimal(text)

        canonical = self.reference.size_fractions.get(number) if number is not None else None
        if canonical is None:
            raise NormalizationError(
                "size", value, f"Unknown pipe size '{value}'",
                suggested_fix="Use a standard OD such as 5.5 or 9 5/8",
            )
        return canonical

    def normalize_connection(self, value: str) -> str:
        """Map connection descriptions to short codes; unknown values pass through."""
        text = " ".join(value.replace("-", " ").split()).upper()
        if text in self._connection_codes:
            return text
        alias = self.reference.connection_aliases.get(text)
        if alias:
            return alias
        return value.strip()

    def is_known_connection(self, value: str) -> bool:
        return value.upper() in self._connection_codes

    def normalize_customer_name(self, value: str, case: str = "title") -> str:
        """Clean a customer name and apply a case policy (title, upper, lower, first)."""
        text = _NAME_DISALLOWED.sub("", value)
        text = " ".join(text.split())
        if not text:
            raise NormalizationError(
                "customer_name", value, "Customer name is empty after cleaning",
                suggested_fix="Provide a customer name",
            )

        if case == "upper":
            return text.upper()
        if case == "lower":
            return text.lower()
        if case == "first":
            return text[0].upper() + text[1:].lower()
        if case != "title":
            raise NormalizationError("customer_name", value, f"Unknown case policy '{case}'")

        def _title(match):
            word = match.group(0)
            if word.upper() in UPPERCASE_TOKENS:
                return word.upper()
            return word.capitalize()

        return _NAME_WORD.sub(_title, text)

    def normalize_work_order(self, value: str, width: Optional[int] = None, prefixes=None) -> str:
        """Canonical work order LETTERS-NNNNNN, e.g. 'lb 1001' becomes 'LB-001001'."""
        width = width or self.work_order_width
        text = value.strip().upper()
        match = _WORK_ORDER.fullmatch(text)
        if not match:
            raise NormalizationError(
                "work_order", value, f"Work order '{value}' is not letters followed by a number",
                suggested_fix=f"Use the form AB-{'0' * width}",
            )

        letters, digits = match.group(1), match.group(2)
        if prefixes and letters not in {p.upper() for p in prefixes}:
            raise NormalizationError(
                "work_order", value, f"Work order prefix '{letters}' is not allowed",
                suggested_fix=f"Use one of: {', '.join(prefixes)}",
            )

        number = str(int(digits)).zfill(width)
        result = f"{letters}-{number}"
        if not re.fullmatch(rf"[A-Z]{{1,4}}-\d{{{width}}}", result):
            raise NormalizationError(
                "work_order", value, f"Work order number in '{value}' exceeds {width} digits",
            )
        return result

    def normalize_phone(self, value: str) -> str:
        """(XXX) XXX-XXXX for 10 digits, +1 (XXX) XXX-XXXX for 11 digits starting with 1."""
        digits = re.sub(r"\D", "", value)
        if len(digits) == 11 and digits.startswith("1"):
            return f"+1 ({digits[1:4]}) {digits[4:7]}-{digits[7:]}"
        if len(digits) == 10:
            return f"({digits[:3]}) {digits[3:6]}-{digits[6:]}"
        raise NormalizationError(
            "phone", value, f"Phone number '{value}' does not have 10 digits",
            suggested_fix="Include the area code",
        )

    def normalize_email(self, value: str) -> str:
        email = value.strip().lower()
        if not EMAIL_PATTERN.match(email):
            raise NormalizationError("email", value, f"Invalid email address '{value}'")
        return email

    def normalize_weight(self, value: str) -> str:
        """Pipe weight in lb/ft with one decimal, between 4 and 200."""
        text = _WEIGHT_UNITS.sub("", value).strip()
        try:
            weight = Decimal(text)
            if not weight.is_finite():
                raise InvalidOperation(text)
        except InvalidOperation:
            raise NormalizationError(
                "weight", value, f"Weight '{value}' is not a number",
                suggested_fix="Use pounds per foot, e.g. 17.0",
            )
        if weight < Decimal("4") or weight > Decimal("200"):
            raise NormalizationError(
                "weight", value, f"Weight {weight} lb/ft outside the 4.0-200.0 range",
            )
        return f"{weight:.1f}"


class TypeCoercer:
    """Converts cleaned text into the target column type."""

    def coerce(self, value: str, field_type: FieldType) -> Any:
        """
        Coerce a text value.

        Args:
            value: Text value (empty means NULL)
            field_type: Target type

        Returns:
            Typed value, or None for empty input
        """
        text = value.strip()
        if not text:
            return None

        field_type = FieldType(field_type)
        if field_type == FieldType.STRING:
            return text
        if field_type == FieldType.INTEGER:
            return self.to_integer(text)
        if field_type == FieldType.DECIMAL:
            return self.to_decimal(text)
        if field_type == FieldType.BOOLEAN:
            return self.to_boolean(text)
        if field_type == FieldType.DATE:
            parsed = self.to_datetime(text, DATE_FORMATS + TIMESTAMP_FORMATS)
            return parsed.date()
        return self.to_datetime(text, TIMESTAMP_FORMATS + DATE_FORMATS)

    def to_integer(self, text: str) -> int:
        number = self.to_decimal(text)
        if number != number.to_integral_value():
            raise NormalizationError("", text, f"'{text}' is not a whole number")
        return int(number)

    def to_decimal(self, text: str) -> Decimal:
        cleaned = text.replace(",", "").replace("$", "").strip()
        try:
            number = Decimal(cleaned)
        except InvalidOperation:
            raise NormalizationError("", text, f"'{text}' is not a number")
        if not number.is_finite():
            raise NormalizationError("", text, f"'{text}' is not a finite number")
        return number

    def to_boolean(self, text: str) -> bool:
        token = text.lower()
        if token in TRUE_TOKENS:
            return True
        if token in FALSE_TOKENS:
            return False
        raise NormalizationError(
            "", text, f"'{text}' is not a recognized boolean",
            suggested_fix="Use yes/no, true/false or 1/0",
        )

    def to_datetime(self, text: str, formats) -> datetime:
        """Try each legacy format in order, then ISO-8601."""
        for fmt in formats:
            try:
                return datetime.strptime(text, fmt)
            except ValueError:
                continue
        try:
            return date_parser.isoparse(text)
        except ValueError:
            raise NormalizationError(
                "", text, f"'{text}' is not a recognized date",
                suggested_fix="Use YYYY-MM-DD or MM/DD/YYYY",
            )


def default_severity(normalizer: NormalizerType) -> RuleSeverity:
    return DEFAULT_SEVERITIES.get(normalizer, RuleSeverity.ERROR)
