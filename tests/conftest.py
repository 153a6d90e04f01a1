"""Test configuration for HealSync FHIR.

Fixtures build every component on top of the in-memory document store with a
fixed clock and a deterministic id factory, so mapped resources are stable
across runs.
"""

import itertools
from datetime import datetime, timezone
from typing import Any, Callable, Dict

import pytest

from healsync.audit import AuditDisplayService, AuditQueryService, AuditRecorder
from healsync.config import Settings
from healsync.healthcare import AuditEventResource, FHIRValidator
from healsync.models.identity import Actor
from healsync.models.legacy import UserProfile, UserRecord
from healsync.services import (
    ExportPipeline,
    MemoryDownloadSink,
    MigrationDriver,
    PatientRecordService,
)
from healsync.storage import InMemoryDocumentStore

FIXED_NOW = datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "fhir_compliance: mark test as checking FHIR R4 conformance"
    )
    config.addinivalue_line(
        "markers", "audit_trail: mark test as exercising the audit trail"
    )


def sequential_ids(prefix: str = "id") -> Callable[[], str]:
    """Id factory yielding ``id-1``, ``id-2``, ..."""
    counter = itertools.count(1)
    return lambda: f"{prefix}-{next(counter)}"


@pytest.fixture
def now() -> datetime:
    """Fixed reference time (noon UTC)."""
    return FIXED_NOW


@pytest.fixture
def clock(now):
    """Clock returning the fixed reference time."""
    return lambda: now


@pytest.fixture
def id_factory():
    """Deterministic id factory."""
    return sequential_ids()


@pytest.fixture
def settings() -> Settings:
    """Settings isolated from the environment and any .env file."""
    return Settings(_env_file=None, migration_retry_delay=0)


@pytest.fixture
def store() -> InMemoryDocumentStore:
    """Empty in-memory document store."""
    return InMemoryDocumentStore()


@pytest.fixture
def validator() -> FHIRValidator:
    """Structural validator."""
    return FHIRValidator()


@pytest.fixture
def doctor() -> Actor:
    """Acting doctor."""
    return Actor(id="doc-1", name="Dr. Ada Okafor")


@pytest.fixture
def audit_builder(settings, id_factory, clock) -> AuditEventResource:
    """AuditEvent builder with fixed ids and clock."""
    return AuditEventResource(
        settings=settings, id_factory=sequential_ids("audit"), clock=clock
    )


@pytest.fixture
def recorder(store, audit_builder, validator, settings) -> AuditRecorder:
    """Audit recorder writing to the in-memory store."""
    return AuditRecorder(
        store, builder=audit_builder, validator=validator, settings=settings
    )


@pytest.fixture
def query_service(store, settings) -> AuditQueryService:
    """Audit query layer."""
    return AuditQueryService(store, settings)


@pytest.fixture
def display_service(query_service, settings) -> AuditDisplayService:
    """Patient-facing audit view."""
    return AuditDisplayService(query_service, settings)


@pytest.fixture
def record_service(store, validator, id_factory, clock) -> PatientRecordService:
    """Dual-write record service with fixed ids and clock."""
    return PatientRecordService(
        store, validator=validator, id_factory=id_factory, clock=clock
    )


@pytest.fixture
def sink() -> MemoryDownloadSink:
    """Download sink keeping files in memory."""
    return MemoryDownloadSink()


@pytest.fixture
def export_pipeline(store, recorder, sink, validator, settings, clock):
    """Export pipeline delivering to the memory sink."""
    return ExportPipeline(
        store,
        recorder,
        sink=sink,
        validator=validator,
        settings=settings,
        clock=clock,
    )


@pytest.fixture
def migration_driver(store, record_service, validator, settings):
    """Migration driver over the in-memory store."""
    return MigrationDriver(
        store, records=record_service, validator=validator, settings=settings
    )


@pytest.fixture
def patient_user() -> UserRecord:
    """Patient account document."""
    return UserRecord(uid="pat-1", name="Amara Nwosu", email="amara@example.com")


@pytest.fixture
def profile_document() -> Dict[str, Any]:
    """Complete legacy profile document as stored."""
    return {
        "basic": {
            "fullName": "Amara Chioma Nwosu",
            "gender": "Female",
            "dob": "1990-04-12",
            "contactNumber": "+234 800 000 0000",
            "height": {"value": 170, "unit": "cm"},
            "weight": {"value": 65, "unit": "kg"},
            "bloodGroup": "O+",
            "emergencyContact": {"name": "Chidi Nwosu", "number": "+234 800 111 1111"},
        },
        "medical": {
            "chronicConditions": ["Asthma", "Hypertension"],
            "customChronicCondition": "",
            "allergies": ["Penicillin"],
            "customAllergy": "Peanuts",
        },
    }


@pytest.fixture
def profile(profile_document) -> UserProfile:
    """Complete profile model."""
    return UserProfile.model_validate(profile_document)
