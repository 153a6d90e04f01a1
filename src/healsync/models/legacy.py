"""Legacy document models.

These mirror the documents the existing application writes to the
``users``, ``userProfile``, ``medicalRecords`` and ``organizations``
collections. Field names follow the stored camelCase keys; unknown keys are
ignored so schema drift on the legacy side never breaks the mapping.
"""

from typing import List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


class LegacyModel(BaseModel):
    """Base for legacy documents."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class Measurement(LegacyModel):
    """A value with its unit, e.g. height or weight."""

    value: Optional[Union[int, float]] = None
    unit: Optional[str] = None


class EmergencyContact(LegacyModel):
    """Next-of-kin contact."""

    name: Optional[str] = None
    number: Optional[str] = None


class BasicProfile(LegacyModel):
    """The "basic" section of a user profile."""

    full_name: Optional[str] = Field(default=None, alias="fullName")
    gender: Optional[str] = None
    dob: Optional[str] = None
    contact_number: Optional[str] = Field(default=None, alias="contactNumber")
    height: Optional[Measurement] = None
    weight: Optional[Measurement] = None
    blood_group: Optional[str] = Field(default=None, alias="bloodGroup")
    emergency_contact: Optional[EmergencyContact] = Field(
        default=None, alias="emergencyContact"
    )


class MedicalProfile(LegacyModel):
    """The "medical" section of a user profile."""

    chronic_conditions: List[Optional[str]] = Field(
        default_factory=list, alias="chronicConditions"
    )
    custom_chronic_condition: Optional[str] = Field(
        default=None, alias="customChronicCondition"
    )
    allergies: List[Optional[str]] = Field(default_factory=list)
    custom_allergy: Optional[str] = Field(default=None, alias="customAllergy")

    @field_validator("chronic_conditions", "allergies", mode="before")
    @classmethod
    def none_to_list(cls, v: Optional[list]) -> list:
        """Treat a stored null list as empty."""
        return v or []


class UserProfile(LegacyModel):
    """A patient's profile document."""

    basic: Optional[BasicProfile] = None
    medical: Optional[MedicalProfile] = None


class UserRecord(LegacyModel):
    """An account document from the ``users`` collection."""

    uid: str
    name: Optional[str] = None
    email: Optional[str] = None
    role: Optional[str] = None
    doctor_id: Optional[str] = Field(default=None, alias="doctorId")


class MedicalRecord(LegacyModel):
    """A visit filed by a doctor."""

    id: str
    patient_id: str = Field(alias="patientId")
    doctor_id: str = Field(alias="doctorId")
    doctor_name: Optional[str] = Field(default=None, alias="doctorName")
    visit_date: Optional[str] = Field(default=None, alias="visitDate")
    symptoms: List[str] = Field(default_factory=list)
    diagnosis: Optional[str] = None

    @field_validator("symptoms", mode="before")
    @classmethod
    def normalize_symptoms(cls, v: Union[None, str, list]) -> list:
        """Accept a single symptom string or a null list."""
        if v is None:
            return []
        if isinstance(v, str):
            return [v]
        return v


class OrganizationAddress(LegacyModel):
    """Postal address of an institution."""

    line: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    postal_code: Optional[str] = Field(default=None, alias="postalCode")
    country: Optional[str] = None


class OrganizationContact(LegacyModel):
    """Contact channels of an institution."""

    phone: Optional[str] = None
    email: Optional[str] = None
    website: Optional[str] = None


class OrganizationIdentifiers(LegacyModel):
    """Registry identifiers of an institution."""

    npi: Optional[str] = None
    tax_id: Optional[str] = Field(default=None, alias="taxId")
    license_number: Optional[str] = Field(default=None, alias="licenseNumber")


class OrganizationRecord(LegacyModel):
    """A hospital, clinic, lab or other institution."""

    id: str
    name: str
    type: Optional[str] = None
    active: bool = True
    address: OrganizationAddress = Field(default_factory=OrganizationAddress)
    contact: OrganizationContact = Field(default_factory=OrganizationContact)
    identifiers: OrganizationIdentifiers = Field(
        default_factory=OrganizationIdentifiers
    )
    capabilities: List[str] = Field(default_factory=list)
    specialties: List[str] = Field(default_factory=list)
