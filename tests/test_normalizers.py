from datetime import date, datetime
from decimal import Decimal

import pytest

from oilgas_migrate.exceptions import NormalizationError
from oilgas_migrate.models.config import FieldType, NormalizerType
from oilgas_migrate.services.defaults import GRADES
from oilgas_migrate.services.normalizers import TypeCoercer, ValueNormalizer


@pytest.fixture
def normalizer():
    return ValueNormalizer()


@pytest.mark.parametrize("raw", ["J55", "J-55", "j 55", " j_55 "])
def test_grade_variants_collapse_to_canonical(normalizer, raw):
    assert normalizer.normalize_grade(raw) == "J55"


@pytest.mark.parametrize("grade", GRADES)
def test_grade_is_idempotent(normalizer, grade):
    once = normalizer.normalize_grade(grade)
    assert once == grade
    assert normalizer.normalize_grade(once) == once


@pytest.mark.parametrize("raw", ["X99", "x99", "X-99", "x-99", "x 99", "X_99", " x99 "])
def test_unknown_grade_is_rejected(normalizer, raw):
    with pytest.raises(NormalizationError) as exc:
        normalizer.normalize_grade(raw)
    assert exc.value.field == "grade"
    assert exc.value.suggested_fix


def test_deprecated_grade_is_rejected(normalizer):
    with pytest.raises(NormalizationError, match="deprecated"):
        normalizer.normalize_grade("P-105")


@pytest.mark.parametrize("raw, expected", [
    ("5.5", '5 1/2"'),
    ("8.625", '8 5/8"'),
    ("9.625", '9 5/8"'),
    ("5-1/2", '5 1/2"'),
    ("9 5/8 in", '9 5/8"'),
    ('7"', '7"'),
    ("13.375", '13 3/8"'),
])
def test_size_canonical_forms(normalizer, raw, expected):
    assert normalizer.normalize_size(raw) == expected


def test_size_is_idempotent(normalizer):
    assert normalizer.normalize_size('5 1/2"') == '5 1/2"'


@pytest.mark.parametrize("raw", ["5.4", "abc", "1/0", ""])
def test_unknown_size_is_rejected(normalizer, raw):
    with pytest.raises(NormalizationError):
        normalizer.normalize_size(raw)


@pytest.mark.parametrize("raw, expected", [
    ("LB-001001", "LB-001001"),
    ("LB 001001", "LB-001001"),
    ("lb001001", "LB-001001"),
    ("lb 1001", "LB-001001"),
    ("WO#42", "WO-000042"),
])
def test_work_order_canonical_forms(normalizer, raw, expected):
    assert normalizer.normalize_work_order(raw) == expected


@pytest.mark.parametrize("raw", ["001001", "LONGB-1", "LB-", "LB-1234567"])
def test_bad_work_orders_are_rejected(normalizer, raw):
    with pytest.raises(NormalizationError):
        normalizer.normalize_work_order(raw)


def test_work_order_prefix_allow_list(normalizer):
    assert normalizer.normalize_work_order("LB 7", prefixes=["LB", "LV"]) == "LB-000007"
    with pytest.raises(NormalizationError, match="prefix"):
        normalizer.normalize_work_order("CO 7", prefixes=["LB", "LV"])


def test_connection_aliases_and_unknown_values(normalizer):
    assert normalizer.normalize_connection("Buttress Thread") == "BTC"
    assert normalizer.normalize_connection("8rd-eue") == "EUE"
    assert normalizer.normalize_connection("ltc") == "LTC"

    value, warning = normalizer.apply(NormalizerType.CONNECTION, "Hydril 563")
    assert value == "Hydril 563"
    assert "Unknown connection" in warning


@pytest.mark.parametrize("case, expected", [
    ("title", "Acme Oil & Gas LLC"),
    ("upper", "ACME OIL & GAS LLC"),
    ("lower", "acme oil & gas llc"),
    ("first", "Acme oil & gas llc"),
])
def test_customer_name_case_policies(normalizer, case, expected):
    assert normalizer.normalize_customer_name("  acme   oil & gas llc ", case) == expected


def test_customer_name_strips_disallowed_characters(normalizer):
    assert normalizer.normalize_customer_name("Basin*Supply!") == "Basinsupply"
    with pytest.raises(NormalizationError):
        normalizer.normalize_customer_name("***")


def test_phone_and_email(normalizer):
    assert normalizer.normalize_phone("555.123.4567") == "(555) 123-4567"
    assert normalizer.normalize_phone("1-555-123-4567") == "+1 (555) 123-4567"
    with pytest.raises(NormalizationError):
        normalizer.normalize_phone("12345")

    assert normalizer.normalize_email(" OPS@Acme.COM ") == "ops@acme.com"
    with pytest.raises(NormalizationError):
        normalizer.normalize_email("not-an-email")


def test_weight_range(normalizer):
    assert normalizer.normalize_weight("17 lb/ft") == "17.0"
    assert normalizer.normalize_weight("23#") == "23.0"
    with pytest.raises(NormalizationError):
        normalizer.normalize_weight("2.5")
    with pytest.raises(NormalizationError):
        normalizer.normalize_weight("heavy")


@pytest.mark.parametrize("raw", ["nan", "NaN#", "Infinity", "-inf ppf", "sNaN"])
def test_weight_must_be_finite(normalizer, raw):
    with pytest.raises(NormalizationError, match="not a number"):
        normalizer.normalize_weight(raw)


def test_apply_uses_rule_config(normalizer):
    value, warning = normalizer.apply(NormalizerType.WORK_ORDER, "lb 12", {"width": 4})
    assert value == "LB-0012"
    assert warning is None


def test_type_coercion():
    coercer = TypeCoercer()
    assert coercer.coerce("", FieldType.INTEGER) is None
    assert coercer.coerce(" text ", FieldType.STRING) == "text"
    assert coercer.coerce("1,200", FieldType.INTEGER) == 1200
    assert coercer.coerce("$12.50", FieldType.DECIMAL) == Decimal("12.50")
    assert coercer.coerce("-1", FieldType.BOOLEAN) is True
    assert coercer.coerce("No", FieldType.BOOLEAN) is False
    assert coercer.coerce("01/15/2023", FieldType.DATE) == date(2023, 1, 15)
    assert coercer.coerce("2023-01-15T08:30:00", FieldType.TIMESTAMP) == datetime(2023, 1, 15, 8, 30)
    assert coercer.coerce("1/15/2023 2:05:00 PM", FieldType.TIMESTAMP) == datetime(2023, 1, 15, 14, 5)


@pytest.mark.parametrize("value, field_type", [
    ("12.5", FieldType.INTEGER),
    ("maybe", FieldType.BOOLEAN),
    ("31/31/2023", FieldType.DATE),
    ("NaN", FieldType.DECIMAL),
])
def test_type_coercion_failures(value, field_type):
    with pytest.raises(NormalizationError):
        TypeCoercer().coerce(value, field_type)
