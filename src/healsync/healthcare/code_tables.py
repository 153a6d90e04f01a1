"""Code Mapping Tables.

Static lookups from legacy free-text values to FHIR / SNOMED CT / LOINC
codes. Tables are immutable and handed to the resource builders, so tests
can substitute alternate tables without touching module state.

Every lookup is total: input outside a table resolves to the documented
fallback code instead of raising.
"""

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping, NamedTuple, Optional

# Code systems
V2_IDENTIFIER_TYPE_SYSTEM = "http://terminology.hl7.org/CodeSystem/v2-0203"
BLOOD_GROUP_SYSTEM = "http://hl7.org/fhir/sid/blood-group-rh"
ORGANIZATION_TYPE_SYSTEM = "http://terminology.hl7.org/CodeSystem/organization-type"
SNOMED_SYSTEM = "http://snomed.info/sct"
LOINC_SYSTEM = "http://loinc.org"
UCUM_SYSTEM = "http://unitsofmeasure.org"

# Documented fallbacks
GENDER_FALLBACK = "unknown"
BLOOD_GROUP_FALLBACK = "unknown"
ORGANIZATION_TYPE_FALLBACK = "prov"
GENERAL_MEDICAL_SERVICE = "394807001"


class UnitCode(NamedTuple):
    """Display unit and UCUM code for a measurement."""

    unit: str
    code: str


class VitalSign(NamedTuple):
    """LOINC coding for a vital-sign observation."""

    code: str
    display: str


def _frozen(mapping: Mapping) -> Mapping:
    return MappingProxyType(dict(mapping))


GENDER_CODES = _frozen(
    {
        "male": "male",
        "female": "female",
        "non-binary": "other",
        "prefer-not-to-say": "unknown",
    }
)

BLOOD_GROUP_CODES = _frozen(
    {
        "A+": "Aplus",
        "A-": "Aminus",
        "B+": "Bplus",
        "B-": "Bminus",
        "O+": "Oplus",
        "O-": "Ominus",
        "AB+": "ABplus",
        "AB-": "ABminus",
    }
)

ORGANIZATION_TYPE_CODES = _frozen(
    {
        "hospital": "prov",
        "clinic": "prov",
        "lab": "dept",
        "pharmacy": "prov",
        "insurance": "pay",
        "government": "govt",
    }
)

CAPABILITY_CODES = _frozen(
    {
        "emergency": "310000008",
        "surgery": "394910002",
        "pediatrics": "408444004",
        "cardiology": "394579002",
        "radiology": "394914008",
        "laboratory": "394580004",
        "pharmacy": "394802001",
        "mental_health": "394587001",
        "obstetrics": "394577000",
        "oncology": "394578006",
    }
)

SPECIALTY_CODES = _frozen(
    {
        "Emergency Medicine": "394820001",
        "Surgery": "394910002",
        "Pediatrics": "408444004",
        "Cardiology": "394579002",
        "Radiology": "394914008",
        "Pathology": "394600006",
        "Anesthesiology": "394588006",
        "Dermatology": "394584008",
        "Neurology": "394592004",
        "Oncology": "394578006",
        "Psychiatry": "394587001",
        "Orthopedics": "394665006",
        "Gynecology": "394593002",
        "Internal Medicine": "394584008",
    }
)

HEIGHT_UNIT_FALLBACK = UnitCode("in", "[in_i]")
WEIGHT_UNIT_FALLBACK = UnitCode("lb", "[lb_av]")

HEIGHT_UNITS = _frozen(
    {
        "cm": UnitCode("cm", "cm"),
        "in": UnitCode("in", "[in_i]"),
    }
)

WEIGHT_UNITS = _frozen(
    {
        "kg": UnitCode("kg", "kg"),
        "lb": UnitCode("lb", "[lb_av]"),
    }
)

VITAL_SIGNS = _frozen(
    {
        "height": VitalSign("8302-2", "Body height"),
        "weight": VitalSign("29463-7", "Body weight"),
        "blood_group": VitalSign("882-1", "ABO + Rh group [Type] in Blood"),
    }
)


@dataclass(frozen=True)
class CodeTables:
    """Immutable bundle of every lookup the builders use."""

    gender: Mapping[str, str] = field(default_factory=lambda: GENDER_CODES)
    blood_group: Mapping[str, str] = field(
        default_factory=lambda: BLOOD_GROUP_CODES
    )
    organization_type: Mapping[str, str] = field(
        default_factory=lambda: ORGANIZATION_TYPE_CODES
    )
    capability: Mapping[str, str] = field(default_factory=lambda: CAPABILITY_CODES)
    specialty: Mapping[str, str] = field(default_factory=lambda: SPECIALTY_CODES)
    height_units: Mapping[str, UnitCode] = field(default_factory=lambda: HEIGHT_UNITS)
    weight_units: Mapping[str, UnitCode] = field(default_factory=lambda: WEIGHT_UNITS)
    vital_signs: Mapping[str, VitalSign] = field(default_factory=lambda: VITAL_SIGNS)

    def gender_code(self, value: Optional[str]) -> str:
        """Map a legacy gender string; unmapped input becomes ``unknown``."""
        if not value:
            return GENDER_FALLBACK
        return self.gender.get(value.strip().lower(), GENDER_FALLBACK)

    def blood_group_code(self, value: Optional[str]) -> str:
        """Map an ABO/Rh label; unmapped input becomes ``unknown``."""
        if not value:
            return BLOOD_GROUP_FALLBACK
        return self.blood_group.get(value.strip().upper(), BLOOD_GROUP_FALLBACK)

    def organization_type_code(self, value: Optional[str]) -> str:
        """Map an institution type; unmapped input becomes ``prov``."""
        if not value:
            return ORGANIZATION_TYPE_FALLBACK
        return self.organization_type.get(
            value.strip().lower(), ORGANIZATION_TYPE_FALLBACK
        )

    def capability_code(self, value: Optional[str]) -> str:
        """Map a service capability to SNOMED CT (general medical service fallback)."""
        if not value:
            return GENERAL_MEDICAL_SERVICE
        return self.capability.get(value.strip().lower(), GENERAL_MEDICAL_SERVICE)

    def specialty_code(self, value: Optional[str]) -> str:
        """Map a medical specialty to SNOMED CT (general medical service fallback)."""
        if not value:
            return GENERAL_MEDICAL_SERVICE
        return self.specialty.get(value.strip(), GENERAL_MEDICAL_SERVICE)

    def height_unit(self, value: Optional[str]) -> UnitCode:
        """Anything other than ``cm`` is recorded in inches."""
        return self.height_units.get((value or "").lower(), HEIGHT_UNIT_FALLBACK)

    def weight_unit(self, value: Optional[str]) -> UnitCode:
        """Anything other than ``kg`` is recorded in pounds."""
        return self.weight_units.get((value or "").lower(), WEIGHT_UNIT_FALLBACK)


DEFAULT_CODE_TABLES = CodeTables()
