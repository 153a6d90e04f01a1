"""Tests for the legacy to FHIR migration driver."""

import pytest

from healsync.config import Settings
from healsync.core.exceptions import StorageError
from healsync.services import MigrationDriver
from healsync.storage import InMemoryDocumentStore
from healsync.storage.base import (
    FHIR_ENCOUNTERS,
    FHIR_PATIENTS,
    FHIR_PRACTITIONERS,
    MEDICAL_RECORDS,
    USER_PROFILES,
    USERS,
    patient_resources,
)


class FlakyStore(InMemoryDocumentStore):
    """Store whose first ``failures`` batch commits fail."""

    def __init__(self, failures: int, **kwargs):
        super().__init__(**kwargs)
        self.failures = failures
        self.attempts = 0

    async def commit_batch(self, operations):
        self.attempts += 1
        if self.failures > 0:
            self.failures -= 1
            raise StorageError("transient write failure")
        return await super().commit_batch(operations)


async def seed(store, profile_document=None):
    """Legacy data: three patients, two doctors, one admin, two visits."""
    for uid, role in (("p1", "user"), ("p2", "patient"), ("p3", "user")):
        await store.set(USERS, uid, {"name": f"Patient {uid}", "role": role})
    await store.set(USERS, "d1", {"name": "Dr. One", "role": "doctor"})
    await store.set(USERS, "d2", {"name": "Dr. Two", "role": "doctor"})
    await store.set(USERS, "a1", {"name": "Admin", "role": "admin"})
    if profile_document is not None:
        await store.set(USER_PROFILES, "p1", profile_document)

    await store.set(
        MEDICAL_RECORDS,
        "v1",
        {"patientId": "p1", "doctorId": "d1", "visitDate": "2024-04-01"},
    )
    await store.set(
        MEDICAL_RECORDS,
        "v2",
        {"patientId": "p2", "doctorId": "d2", "diagnosis": "Malaria"},
    )


@pytest.fixture
def small_batches() -> Settings:
    """Settings with tiny batches and no retry delay."""
    return Settings(_env_file=None, migration_batch_size=2, migration_retry_delay=0)


class TestMigrateAll:
    """Full migration runs."""

    @pytest.mark.asyncio
    async def test_counts(self, migration_driver, store, profile_document):
        """Every legacy document is converted."""
        await seed(store, profile_document)

        summary = await migration_driver.migrate_all()

        assert summary.to_dict()["patientsConverted"] == 3
        assert summary.practitioners.converted == 2
        assert summary.encounters.converted == 2
        assert summary.total_found == 7
        assert summary.total_converted == 7
        assert all(report.complete for report in summary.reports)

        assert await migration_driver.verify_migration() == {
            "patients": 3,
            "practitioners": 2,
            "encounters": 2,
        }
        assert await store.get(FHIR_PRACTITIONERS, "a1") is None
        assert len(await store.query(patient_resources("p1"))) == 7

    @pytest.mark.asyncio
    async def test_legacy_untouched(self, migration_driver, store, profile_document):
        """Legacy collections are read only."""
        await seed(store, profile_document)
        before = await store.query(USERS)

        await migration_driver.migrate_all()

        assert await store.query(USERS) == before
        assert len(await store.list_ids(MEDICAL_RECORDS)) == 2

    @pytest.mark.asyncio
    async def test_rerun_is_idempotent(
        self, migration_driver, store, profile_document
    ):
        """Running twice leaves one set of derived resources."""
        await seed(store, profile_document)

        await migration_driver.migrate_all()
        await migration_driver.migrate_all()

        assert len(await store.query(patient_resources("p1"))) == 7
        assert len(await store.list_ids(FHIR_ENCOUNTERS)) == 2

    @pytest.mark.asyncio
    async def test_visit_diagnosis_written(self, migration_driver, store):
        """Visits with a diagnosis also get their Condition."""
        await seed(store)

        await migration_driver.migrate_encounters()

        conditions = await store.query(patient_resources("p2"))
        assert [c["code"]["text"] for c in conditions] == ["Malaria"]
        assert await store.query(patient_resources("p1")) == []


class TestBatching:
    """Batch sizing and failure handling."""

    @pytest.mark.asyncio
    async def test_batch_size(self, small_batches):
        """Units are committed in batches no larger than configured."""
        store = InMemoryDocumentStore()
        await seed(store)
        driver = MigrationDriver(store, settings=small_batches)

        report = await driver.migrate_patients()

        assert driver.batch_size == 2
        assert report.converted == 3
        assert report.batches == 2
        assert sorted(await store.list_ids(FHIR_PATIENTS)) == ["p1", "p2", "p3"]

    def test_store_limit_caps_batch_size(self, settings):
        """The store's own limit wins over a larger setting."""
        store = InMemoryDocumentStore(max_batch_size=3)
        driver = MigrationDriver(store, settings=settings)
        assert driver.batch_size == 3

    @pytest.mark.asyncio
    async def test_transient_failure_retried(self, small_batches):
        """A batch that fails once is retried."""
        store = FlakyStore(failures=1)
        await seed(store)
        driver = MigrationDriver(store, settings=small_batches)

        report = await driver.migrate_practitioners()

        assert report.converted == 2
        assert report.failed == 0
        assert store.attempts == 2

    @pytest.mark.asyncio
    async def test_persistent_failure_counted(self, small_batches):
        """Batches failing after every retry count their units as failed."""
        store = FlakyStore(failures=100)
        await seed(store)
        driver = MigrationDriver(store, settings=small_batches)

        report = await driver.migrate_practitioners()

        assert report.found == 2
        assert report.converted == 0
        assert report.failed == 2
        assert not report.complete
        assert store.attempts == small_batches.migration_max_retries + 1
        assert all("batch write failed" in error for error in report.errors)

    @pytest.mark.asyncio
    async def test_unreadable_record(self, migration_driver, store):
        """Malformed visit records are reported and skipped."""
        await seed(store)
        await store.set(MEDICAL_RECORDS, "broken", {"doctorId": "d1"})

        report = await migration_driver.migrate_encounters()

        assert report.found == 3
        assert report.converted == 2
        assert report.failed == 1
        assert report.errors[0].startswith("broken: unreadable visit record")

    @pytest.mark.asyncio
    async def test_unreadable_account(self, migration_driver, store):
        """Malformed accounts count as found and failed."""
        await seed(store)
        await store.set(USERS, "bad", {"name": {"first": "X"}, "role": "user"})

        report = await migration_driver.migrate_patients()

        assert report.found == 4
        assert report.converted == 3
        assert report.failed == 1
        assert not report.complete
        assert report.errors[0].startswith("bad: unreadable account")
        assert await store.get(FHIR_PATIENTS, "bad") is None

    @pytest.mark.asyncio
    async def test_impossible_birth_date_still_converts(
        self, migration_driver, store
    ):
        """A bad date of birth loses only that element."""
        await seed(store, {"basic": {"dob": "1990-02-31", "gender": "female"}})

        report = await migration_driver.migrate_patients()

        assert report.converted == 3
        patient = await store.get(FHIR_PATIENTS, "p1")
        assert patient["gender"] == "female"
        assert "birthDate" not in patient
