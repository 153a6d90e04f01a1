"""Domain models consumed and produced by the engine."""

from healsync.models.audit_views import AuditConcern, AuditSummary, LogEntry
from healsync.models.identity import Actor, IdentityProvider, StaticIdentityProvider
from healsync.models.legacy import (
    BasicProfile,
    EmergencyContact,
    MedicalProfile,
    MedicalRecord,
    Measurement,
    OrganizationAddress,
    OrganizationContact,
    OrganizationIdentifiers,
    OrganizationRecord,
    UserProfile,
    UserRecord,
)

__all__ = [
    "Actor",
    "AuditConcern",
    "AuditSummary",
    "BasicProfile",
    "EmergencyContact",
    "IdentityProvider",
    "LogEntry",
    "MedicalProfile",
    "MedicalRecord",
    "Measurement",
    "OrganizationAddress",
    "OrganizationContact",
    "OrganizationIdentifiers",
    "OrganizationRecord",
    "StaticIdentityProvider",
    "UserProfile",
    "UserRecord",
]
