"""
Intake attribute schema.

Entity attributes are an open key-value store: any extra field is kept and
may feed the policy engine's keyword scan. Fields declared here for an
entity type are validated (picklist membership) and the required ones gate
submission for screening.
"""

from dataclasses import dataclass
from typing import Optional

from models import EntityType, GateResult, Region, TaxInfo
from utilities.policy_rules import normalise_sector
from utilities.reference_data import COUNTRIES, NACE_CODES, FINANCIAL_PRODUCTS, TAX_REQUIREMENTS


@dataclass(frozen=True)
class AttributeField:
    """Declared intake field."""
    key: str
    label: str
    required: bool = False
    choices: Optional[tuple[str, ...]] = None
    sector_choice: bool = False  # NACE picklist, matched with or without the letter prefix


_NACE_SECTORS = tuple(normalise_sector(c) for c in NACE_CODES)

_COMMON_FIELDS = [
    AttributeField("name", "Name", required=True),
    AttributeField("email", "Email Address", required=True),
    AttributeField("phone", "Phone Number"),
    AttributeField("address_line1", "Address"),
    AttributeField("city", "City"),
    AttributeField("zip", "Postal / Zip Code"),
    AttributeField("product", "Requested Financial Service / Product", required=True,
                   choices=tuple(FINANCIAL_PRODUCTS)),
    AttributeField("business_activity", "Business Activity"),
    AttributeField("source_of_funds", "Source of Funds / Wealth"),
    AttributeField("volume", "Expected Monthly Volume (USD)"),
]

_INDIVIDUAL_FIELDS = [
    AttributeField("dob", "Date of Birth"),
    AttributeField("nationality", "Nationality", required=True, choices=tuple(COUNTRIES)),
    AttributeField("occupation", "Occupation (NACE Code)", sector_choice=True),
]

_ORGANISATION_FIELDS = [
    AttributeField("reg_number", "Registration Number"),
    AttributeField("doi", "Date of Incorporation"),
    AttributeField("industry", "Industry (NACE Code)", required=True, sector_choice=True),
    AttributeField("country", "Country of Incorporation", choices=tuple(COUNTRIES)),
    AttributeField("chairman", "Chairman"),
    AttributeField("ubos", "Ultimate Beneficial Owners"),
]


def schema_for(entity_type: EntityType) -> dict[str, AttributeField]:
    """Declared fields for an entity type, keyed by attribute name."""
    specific = _INDIVIDUAL_FIELDS if entity_type == EntityType.INDIVIDUAL else _ORGANISATION_FIELDS
    return {f.key: f for f in _COMMON_FIELDS + specific}


def validate_attribute(entity_type: EntityType, key: str, value) -> str:
    """
    Validate one attribute value against the declared schema.

    Undeclared keys are accepted as-is. An empty value clears the field and
    is always valid.

    Returns:
        The value as a string with surrounding whitespace stripped

    Raises:
        ValueError: value is not one of the field's declared choices
    """
    value = "" if value is None else str(value).strip()
    declared = schema_for(entity_type).get(key)
    if not value or declared is None:
        return value

    if declared.sector_choice:
        if normalise_sector(value) not in _NACE_SECTORS:
            raise ValueError(f"{declared.label}: '{value}' is not a recognised NACE sector")
    elif declared.choices is not None and value not in declared.choices:
        raise ValueError(f"{declared.label}: '{value}' is not an accepted value")
    return value


def missing_required_fields(entity_type: EntityType, attributes: dict[str, str]) -> list[str]:
    """Labels of required fields that are empty."""
    return [
        f.label for f in schema_for(entity_type).values()
        if f.required and not (attributes.get(f.key) or "").strip()
    ]


def missing_tax_fields(region: Optional[Region], tax_info: Optional[TaxInfo]) -> list[str]:
    """Labels of the region's mandatory tax identifiers that were not supplied."""
    if region is None:
        return []
    info = tax_info or TaxInfo()
    return [
        label for field_name, label, required in TAX_REQUIREMENTS[region.value]
        if required and not (getattr(info, field_name) or "").strip()
    ]


def check_intake(
    entity_type: EntityType,
    attributes: dict[str, str],
    region: Optional[Region] = None,
    tax_info: Optional[TaxInfo] = None,
) -> GateResult:
    """Intake completeness guard for leaving the form step."""
    blocking = missing_required_fields(entity_type, attributes) + missing_tax_fields(region, tax_info)
    if blocking:
        return GateResult(
            allowed=False,
            reason=f"Complete the required intake fields: {', '.join(blocking)}",
            blocking=blocking,
        )
    return GateResult(allowed=True)
