"""Built-in oil & gas mappings, reference dictionaries and rules."""

from decimal import Decimal
from typing import Dict

from ..models.config import (
    BusinessRule,
    ColumnMapping,
    ConversionConfig,
    DatabaseConfig,
    FieldType,
    FormatRule,
    NormalizationRule,
    NormalizerType,
    OutputSettings,
    ProcessingOptions,
    RangeRule,
    ReferenceData,
    RuleSeverity,
    SequenceConfig,
    TableMapping,
    TenantSettings,
    ValidationRules,
)


# API 5CT grades in current use
GRADES = (
    "H40", "J55", "JZ55", "K55", "N80", "L80", "C90", "C95",
    "T95", "P110", "Q125", "S135",
)

# Retired grades that must be re-graded by hand
DEPRECATED_GRADES = ("P105", "C75")

SIZE_FRACTIONS: Dict[Decimal, str] = {
    Decimal("2.375"): '2 3/8"',
    Decimal("2.875"): '2 7/8"',
    Decimal("3.5"): '3 1/2"',
    Decimal("4"): '4"',
    Decimal("4.5"): '4 1/2"',
    Decimal("5"): '5"',
    Decimal("5.5"): '5 1/2"',
    Decimal("6.625"): '6 5/8"',
    Decimal("7"): '7"',
    Decimal("7.625"): '7 5/8"',
    Decimal("8.625"): '8 5/8"',
    Decimal("9.625"): '9 5/8"',
    Decimal("10.75"): '10 3/4"',
    Decimal("11.75"): '11 3/4"',
    Decimal("13.375"): '13 3/8"',
    Decimal("16"): '16"',
    Decimal("18.625"): '18 5/8"',
    Decimal("20"): '20"',
}

CONNECTION_CODES = ("LTC", "STC", "BTC", "EUE", "NUE", "PREMIUM", "VAM", "NEW VAM", "TENARIS")

CONNECTION_ALIASES = {
    "BUTTRESS": "BTC",
    "BUTTRESS THREAD": "BTC",
    "BUTTRESS THREAD CASING": "BTC",
    "LONG THREAD": "LTC",
    "LONG THREAD CASING": "LTC",
    "LONG THREAD COUPLED": "LTC",
    "SHORT THREAD": "STC",
    "SHORT THREAD CASING": "STC",
    "SHORT THREAD COUPLED": "STC",
    "EXTERNAL UPSET": "EUE",
    "EXTERNAL UPSET END": "EUE",
    "8RD EUE": "EUE",
    "NON UPSET": "NUE",
    "NON UPSET END": "NUE",
    "8RD NUE": "NUE",
    "NEWVAM": "NEW VAM",
}

DEFAULT_TENANT_DATABASES = {
    "location_longbeach": "oilgas_location_longbeach",
    "location_lasvegas": "oilgas_location_lasvegas",
    "location_colorado": "oilgas_location_colorado",
}


def _mapping(source, target, data_type=FieldType.STRING, required=False, rules=None, default=None):
    return ColumnMapping(
        source_column=source,
        target_column=target,
        data_type=data_type,
        required=required,
        rules=rules or [],
        default=default,
    )


def default_column_mappings() -> Dict[str, ColumnMapping]:
    """Industry field mappings keyed by logical field name."""
    return {
        "customer_id": _mapping("custid", "customer_id", FieldType.INTEGER),
        "customer_name": _mapping(
            "customer", "customer_name", required=True,
            rules=[NormalizationRule(NormalizerType.CUSTOMER_NAME, {"case": "title"})],
        ),
        "grade": _mapping("grade", "grade", rules=[NormalizationRule(NormalizerType.GRADE)]),
        "size": _mapping("size", "size", rules=[NormalizationRule(NormalizerType.SIZE)]),
        "connection": _mapping(
            "connection", "connection", rules=[NormalizationRule(NormalizerType.CONNECTION)],
        ),
        "weight": _mapping("weight", "weight", rules=[NormalizationRule(NormalizerType.WEIGHT)]),
        "work_order": _mapping(
            "wkorder", "work_order",
            rules=[NormalizationRule(NormalizerType.WORK_ORDER, {"width": 6})],
        ),
        "phone": _mapping("phone", "phone", rules=[NormalizationRule(NormalizerType.PHONE)]),
        "email": _mapping("email", "email", rules=[NormalizationRule(NormalizerType.EMAIL)]),
        "joints": _mapping("joints", "joints", FieldType.INTEGER),
        "date_received": _mapping("daterecvd", "date_received", FieldType.DATE),
        "date_in": _mapping("datein", "date_in", FieldType.DATE),
        "when_entered": _mapping("when1", "when_entered", FieldType.TIMESTAMP),
        "when_updated": _mapping("when2", "when_updated", FieldType.TIMESTAMP),
        "is_complete": _mapping("complete", "is_complete", FieldType.BOOLEAN),
        "is_deleted": _mapping("deleted", "is_deleted", FieldType.BOOLEAN, default="false"),
    }


def default_table_mappings() -> Dict[str, TableMapping]:
    """Renames for the tables every legacy export carries."""
    return {
        "RECEIVED": TableMapping(
            source_name="RECEIVED",
            target_name="received",
            column_mappings={
                "ID": "id",
                "WKORDER": "work_order",
                "CUSTID": "customer_id",
                "CUSTOMER": "customer_name",
                "DATERECVD": "date_received",
                "BILLTOID": "bill_to_id",
                "WHEN1": "when_entered",
                "WHEN2": "when_updated",
                "COMPLETE": "is_complete",
                "DELETED": "is_deleted",
            },
        ),
        "RNUMBER": TableMapping(source_name="RNUMBER", is_counter_table=True, sequence_name="r_number_seq"),
        "WKNUMBER": TableMapping(source_name="WKNUMBER", is_counter_table=True, sequence_name="work_order_seq"),
        "customers": TableMapping(
            source_name="customers",
            target_name="customers",
            column_mappings={
                "custid": "customer_id",
                "customer": "customer_name",
                "deleted": "is_deleted",
            },
        ),
        "fletcher": TableMapping(
            source_name="fletcher",
            target_name="fletcher",
            column_mappings={
                "custid": "customer_id",
                "customer": "customer_name",
                "orderedby": "ordered_by",
                "location": "location_code",
                "complete": "is_complete",
                "deleted": "is_deleted",
            },
        ),
        "inventory": TableMapping(
            source_name="inventory",
            target_name="inventory",
            column_mappings={
                "wkorder": "work_order",
                "custid": "customer_id",
                "customer": "customer_name",
                "orderedby": "ordered_by",
                "location": "location_code",
                "deleted": "is_deleted",
            },
        ),
        "bakeout": TableMapping(
            source_name="bakeout",
            target_name="bakeout",
            column_mappings={"custid": "customer_id", "datein": "date_in"},
        ),
        "inspected": TableMapping(
            source_name="inspected",
            target_name="inspected",
            column_mappings={
                "wkorder": "work_order",
                "complete": "is_complete",
                "deleted": "is_deleted",
            },
        ),
    }


def default_validation_rules() -> ValidationRules:
    return ValidationRules(
        required_tables=["customers", "received"],
        required_columns={
            "customers": ["customer_id", "customer_name"],
            "received": ["work_order", "customer_id"],
        },
        business_rules=[
            BusinessRule(
                name="customer_name_length",
                table="customers",
                column="customer_name",
                check=RangeRule(min_length=1, max_length=255),
                severity=RuleSeverity.ERROR,
                error_message="Customer name must be between 1 and 255 characters",
            ),
            BusinessRule(
                name="work_order_shape",
                table="*",
                column="work_order",
                check=FormatRule(pattern=r"^[A-Za-z]{1,4}[\s\-_./#]*\d{1,8}$"),
                severity=RuleSeverity.WARNING,
                error_message="Work order should be letters followed by a number",
            ),
            BusinessRule(
                name="joints_range",
                table="*",
                column="joints",
                check=RangeRule(min_value=Decimal("0"), max_value=Decimal("10000")),
                severity=RuleSeverity.WARNING,
                error_message="Joint count outside the expected range",
            ),
        ],
    )


def default_reference_data() -> ReferenceData:
    return ReferenceData(
        grades=GRADES,
        deprecated_grades=DEPRECATED_GRADES,
        size_fractions=dict(SIZE_FRACTIONS),
        connection_codes=CONNECTION_CODES,
        connection_aliases=dict(CONNECTION_ALIASES),
    )


def default_config() -> ConversionConfig:
    """Build a fresh configuration populated with the built-in defaults."""
    return ConversionConfig(
        oil_gas_mappings=default_column_mappings(),
        table_mappings=default_table_mappings(),
        validation_rules=default_validation_rules(),
        processing_options=ProcessingOptions(workers=4, batch_size=1000, continue_on_error=True),
        database_config=DatabaseConfig(),
        tenant_settings=TenantSettings(tenant_databases=dict(DEFAULT_TENANT_DATABASES)),
        sequence_config=SequenceConfig(),
        output_settings=OutputSettings(),
        reference=default_reference_data(),
    )
