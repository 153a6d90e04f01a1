"""FHIR R4 resource builders, bundle assembly and validation."""

from healsync.healthcare.allergy_resource import AllergyIntoleranceResource
from healsync.healthcare.audit_event_resource import (
    AuditAction,
    AuditEventResource,
    AuditOutcome,
    AuthEventKind,
)
from healsync.healthcare.bundle import assemble_bundle
from healsync.healthcare.code_tables import DEFAULT_CODE_TABLES, CodeTables
from healsync.healthcare.condition_resource import ConditionResource
from healsync.healthcare.encounter_resource import EncounterResource
from healsync.healthcare.fhir_base import BaseFHIRResource, FHIRJson
from healsync.healthcare.fhir_validator import FHIRValidator, ValidationResult
from healsync.healthcare.observation_resource import ObservationResource
from healsync.healthcare.organization_resource import (
    HealthcareServiceResource,
    OrganizationResource,
    build_organization_bundle,
)
from healsync.healthcare.patient_resource import PatientResource
from healsync.healthcare.practitioner_resource import PractitionerResource

__all__ = [
    "AllergyIntoleranceResource",
    "AuditAction",
    "AuditEventResource",
    "AuditOutcome",
    "AuthEventKind",
    "BaseFHIRResource",
    "CodeTables",
    "ConditionResource",
    "DEFAULT_CODE_TABLES",
    "EncounterResource",
    "FHIRJson",
    "FHIRValidator",
    "HealthcareServiceResource",
    "ObservationResource",
    "OrganizationResource",
    "PatientResource",
    "PractitionerResource",
    "ValidationResult",
    "assemble_bundle",
    "build_organization_bundle",
]
