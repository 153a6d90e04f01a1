"""
Legacy to FHIR Migration.

Walks the legacy collections once and writes the FHIR twin of every
document, leaving the legacy documents untouched. Writes go out in batches no
larger than the store accepts; a batch that still fails after retries is
counted as failed and the walk continues, so the report always tells how
much of what was found got converted.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from pydantic import ValidationError as ModelValidationError

from healsync.config import Settings, get_settings
from healsync.core.exceptions import StorageError, ValidationError
from healsync.healthcare import FHIRValidator
from healsync.models.legacy import MedicalRecord, UserProfile, UserRecord
from healsync.services.record_service import (
    PatientRecordService,
    is_profile_derived,
)
from healsync.storage.base import (
    FHIR_ENCOUNTERS,
    FHIR_PATIENTS,
    FHIR_PRACTITIONERS,
    MEDICAL_RECORDS,
    USER_PROFILES,
    USERS,
    DocumentStore,
    WriteKind,
    WriteOperation,
    chunked,
    patient_resources,
)
from healsync.utils.logging import get_logger
from healsync.utils.retry import retry_with_backoff

logger = get_logger(__name__)

PATIENT_ROLES = ("user", "patient")
DOCTOR_ROLE = "doctor"

# One converted legacy document: its id and the writes that convert it
Unit = Tuple[str, List[WriteOperation]]


@dataclass
class MigrationReport:
    """Progress of one entity type."""

    entity: str
    found: int = 0
    converted: int = 0
    failed: int = 0
    batches: int = 0
    errors: List[str] = field(default_factory=list)

    @property
    def complete(self) -> bool:
        """True when every document found was converted."""
        return self.converted == self.found

    def to_dict(self) -> Dict[str, Any]:
        """Convert report to dictionary."""
        return {
            "entity": self.entity,
            "found": self.found,
            "converted": self.converted,
            "failed": self.failed,
            "batches": self.batches,
            "errors": list(self.errors),
        }


@dataclass
class MigrationSummary:
    """Reports of a full migration run."""

    patients: MigrationReport
    practitioners: MigrationReport
    encounters: MigrationReport

    @property
    def reports(self) -> List[MigrationReport]:
        """All reports."""
        return [self.patients, self.practitioners, self.encounters]

    @property
    def total_found(self) -> int:
        """Documents found across all entity types."""
        return sum(report.found for report in self.reports)

    @property
    def total_converted(self) -> int:
        """Documents converted across all entity types."""
        return sum(report.converted for report in self.reports)

    def to_dict(self) -> Dict[str, Any]:
        """Convert summary to dictionary."""
        return {
            "patientsConverted": self.patients.converted,
            "practitionersConverted": self.practitioners.converted,
            "encountersConverted": self.encounters.converted,
            "totalFound": self.total_found,
            "totalConverted": self.total_converted,
            "reports": [report.to_dict() for report in self.reports],
        }


class MigrationDriver:
    """Converts the legacy collections into their FHIR twins."""

    def __init__(
        self,
        store: DocumentStore,
        records: Optional[PatientRecordService] = None,
        validator: Optional[FHIRValidator] = None,
        settings: Optional[Settings] = None,
    ):
        """Initialize the driver.

        Args:
            store: Document store holding legacy and FHIR collections
            records: Record service whose builders produce the FHIR twins
            validator: Structural validator
            settings: Application settings (batch size, retries)
        """
        self.store = store
        self.settings = settings or get_settings()
        self.validator = validator or FHIRValidator()
        self.records = records or PatientRecordService(store, self.validator)
        self.batch_size = min(
            self.settings.migration_batch_size, store.max_batch_size
        )
        self._commit = retry_with_backoff(
            max_retries=self.settings.migration_max_retries,
            initial_delay=self.settings.migration_retry_delay,
            exceptions=(StorageError,),
        )(self.store.commit_batch)

    async def migrate_all(self) -> MigrationSummary:
        """Migrate patients, practitioners and encounters concurrently."""
        logger.info("migration_started", batch_size=self.batch_size)
        patients, practitioners, encounters = await asyncio.gather(
            self.migrate_patients(),
            self.migrate_practitioners(),
            self.migrate_encounters(),
        )
        summary = MigrationSummary(patients, practitioners, encounters)
        logger.info(
            "migration_finished",
            found=summary.total_found,
            converted=summary.total_converted,
        )
        return summary

    async def migrate_patients(self) -> MigrationReport:
        """Patients with their Observations, Conditions and allergies."""
        return await self._guard(MigrationReport("Patient"), self._migrate_patients)

    async def migrate_practitioners(self) -> MigrationReport:
        """Practitioners from doctor accounts."""
        return await self._guard(
            MigrationReport("Practitioner"), self._migrate_practitioners
        )

    async def migrate_encounters(self) -> MigrationReport:
        """Encounters from visit records."""
        return await self._guard(MigrationReport("Encounter"), self._migrate_encounters)

    async def _guard(
        self,
        report: MigrationReport,
        migrate: Callable[[MigrationReport], Awaitable[None]],
    ) -> MigrationReport:
        try:
            await migrate(report)
        except StorageError as e:
            report.errors.append(f"read failed: {e}")
            logger.error("migration_read_failed", entity=report.entity, error=str(e))
        return report

    async def _migrate_patients(self, report: MigrationReport) -> None:
        users = await self._load_users(PATIENT_ROLES, report)

        units: List[Unit] = []
        for user in users:
            unit = await self._patient_unit(user, report)
            if unit is not None:
                units.append(unit)

        await self._write_units(units, report)

    async def _migrate_practitioners(self, report: MigrationReport) -> None:
        doctors = await self._load_users((DOCTOR_ROLE,), report)

        units = [
            unit
            for unit in (
                self._single_unit(
                    report,
                    doctor.uid,
                    FHIR_PRACTITIONERS,
                    lambda d=doctor: self.records.practitioners.build(d),
                )
                for doctor in doctors
            )
            if unit is not None
        ]

        await self._write_units(units, report)

    async def _migrate_encounters(self, report: MigrationReport) -> None:
        units: List[Unit] = []

        for doc_id in await self.store.list_ids(MEDICAL_RECORDS):
            report.found += 1
            document = await self.store.get(MEDICAL_RECORDS, doc_id) or {}
            try:
                record = MedicalRecord.model_validate({"id": doc_id, **document})
            except ModelValidationError as e:
                self._fail(report, doc_id, f"unreadable visit record: {e}")
                continue

            unit = self._single_unit(
                report,
                record.id,
                FHIR_ENCOUNTERS,
                lambda r=record: self.records.encounters.build(r),
            )
            if unit is None:
                continue

            diagnosis = self._diagnosis(record)
            if diagnosis is not None:
                unit[1].append(
                    WriteOperation(
                        patient_resources(record.patient_id),
                        diagnosis["id"],
                        diagnosis,
                    )
                )
            units.append(unit)

        await self._write_units(units, report)

    async def verify_migration(self) -> Dict[str, int]:
        """Count the documents in each FHIR collection."""
        counts = {
            "patients": len(await self.store.list_ids(FHIR_PATIENTS)),
            "practitioners": len(await self.store.list_ids(FHIR_PRACTITIONERS)),
            "encounters": len(await self.store.list_ids(FHIR_ENCOUNTERS)),
        }
        logger.info("migration_verified", **counts)
        return counts

    def _diagnosis(self, record: MedicalRecord) -> Optional[Dict[str, Any]]:
        try:
            diagnosis = self.records.conditions.build_diagnosis(record)
        except ValidationError as e:
            logger.warning(
                "diagnosis_mapping_skipped", record_id=record.id, errors=e.errors
            )
            return None
        if diagnosis is None or not self.validator.validate(diagnosis):
            return None
        return diagnosis

    async def _load_users(
        self, roles: Tuple[str, ...], report: MigrationReport
    ) -> List[UserRecord]:
        """Read accounts with one of ``roles``; unreadable ones count as failed."""
        users = []
        for uid in await self.store.list_ids(USERS):
            document = await self.store.get(USERS, uid) or {}
            if document.get("role") not in roles:
                continue
            report.found += 1
            try:
                users.append(UserRecord.model_validate({"uid": uid, **document}))
            except ModelValidationError as e:
                self._fail(report, uid, f"unreadable account: {e}")
        return users

    async def _patient_unit(
        self, user: UserRecord, report: MigrationReport
    ) -> Optional[Unit]:
        document = await self.store.get(USER_PROFILES, user.uid)
        try:
            profile = UserProfile.model_validate(document or {})
            patient = self.records.patients.build(user, profile)
            derived = (
                self.records.observations.build_vitals(profile, user.uid)
                + self.records.conditions.build_conditions(profile, user.uid)
                + self.records.allergies.build_allergies(profile, user.uid)
            )
        except (ModelValidationError, ValidationError) as e:
            self._fail(report, user.uid, str(e))
            return None

        if not self.validator.validate(patient):
            self._fail(report, user.uid, "Patient failed validation")
            return None

        collection = patient_resources(user.uid)
        stale = [
            doc["id"]
            for doc in await self.store.query(collection)
            if "id" in doc and is_profile_derived(doc)
        ]
        operations = [
            WriteOperation(collection, doc_id, kind=WriteKind.DELETE)
            for doc_id in stale
        ]
        operations.extend(
            WriteOperation(collection, resource["id"], resource)
            for resource in derived
            if self.validator.validate(resource)
        )
        operations.append(WriteOperation(FHIR_PATIENTS, user.uid, patient))
        return user.uid, operations

    def _single_unit(
        self,
        report: MigrationReport,
        doc_id: str,
        collection: str,
        build: Callable[[], Dict[str, Any]],
    ) -> Optional[Unit]:
        try:
            resource = build()
        except ValidationError as e:
            self._fail(report, doc_id, str(e))
            return None
        if not self.validator.validate(resource):
            resource_type = resource.get("resourceType")
            self._fail(report, doc_id, f"{resource_type} failed validation")
            return None
        return doc_id, [WriteOperation(collection, resource["id"], resource)]

    async def _write_units(
        self, units: List[Unit], report: MigrationReport
    ) -> None:
        """Commit units in batches, each batch awaited before the next."""
        pending: List[Unit] = []
        pending_ops = 0

        for unit in units:
            size = len(unit[1])
            if pending and pending_ops + size > self.batch_size:
                await self._flush(pending, report)
                pending, pending_ops = [], 0
            pending.append(unit)
            pending_ops += size
        if pending:
            await self._flush(pending, report)

    async def _flush(self, units: List[Unit], report: MigrationReport) -> None:
        operations = [op for _, ops in units for op in ops]
        try:
            for batch in chunked(operations, self.batch_size):
                await self._commit(batch)
                report.batches += 1
        except StorageError as e:
            for doc_id, _ in units:
                self._fail(report, doc_id, f"batch write failed: {e}")
            return

        report.converted += len(units)
        logger.info(
            "migration_batch_committed",
            entity=report.entity,
            documents=len(units),
            converted=report.converted,
            found=report.found,
        )

    @staticmethod
    def _fail(report: MigrationReport, doc_id: str, reason: str) -> None:
        report.failed += 1
        report.errors.append(f"{doc_id}: {reason}")
        logger.warning(
            "migration_document_failed",
            entity=report.entity,
            doc_id=doc_id,
            error=reason,
        )
