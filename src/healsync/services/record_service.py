"""
Patient Record Service.

Dual-writes domain events: the legacy collections stay the system of record,
and a FHIR twin of each document is written alongside on a best-effort
basis. A failed FHIR write is logged and reported, never raised.
"""

from typing import Any, Callable, Dict, List, Optional, Union

from healsync.core.exceptions import StorageError, ValidationError
from healsync.core.results import OperationResult
from healsync.healthcare import (
    AllergyIntoleranceResource,
    CodeTables,
    ConditionResource,
    EncounterResource,
    FHIRValidator,
    HealthcareServiceResource,
    ObservationResource,
    OrganizationResource,
    PatientResource,
    PractitionerResource,
)
from healsync.healthcare.condition_resource import PROBLEM_LIST_ITEM
from healsync.healthcare.fhir_base import FHIRJson
from healsync.models.legacy import (
    MedicalRecord,
    OrganizationRecord,
    UserProfile,
    UserRecord,
)
from healsync.storage.base import (
    FHIR_ENCOUNTERS,
    FHIR_HEALTHCARE_SERVICES,
    FHIR_ORGANIZATIONS,
    FHIR_PATIENTS,
    FHIR_PRACTITIONERS,
    MEDICAL_RECORDS,
    ORGANIZATIONS,
    USER_PROFILES,
    USERS,
    DocumentStore,
    FieldFilter,
    WriteKind,
    WriteOperation,
    chunked,
    iter_path,
    patient_resources,
)
from healsync.utils.logging import get_logger

logger = get_logger(__name__)

# Resource kinds regenerated from the profile on every save
PROFILE_DERIVED_TYPES = ("Observation", "Condition", "AllergyIntolerance")


def is_profile_derived(resource: Dict[str, Any]) -> bool:
    """True for resources that a profile save replaces.

    Encounter-diagnosis Conditions share the patient's collection but belong
    to their visit, so they survive a profile save.
    """
    resource_type = resource.get("resourceType")
    if resource_type not in PROFILE_DERIVED_TYPES:
        return False
    if resource_type == "Condition":
        return PROBLEM_LIST_ITEM in iter_path(resource, "category.coding.code")
    return True


class PatientRecordService:
    """Writes patient, practitioner, visit and institution documents."""

    def __init__(
        self,
        store: DocumentStore,
        validator: Optional[FHIRValidator] = None,
        code_tables: Optional[CodeTables] = None,
        id_factory: Optional[Callable[[], str]] = None,
        clock: Optional[Callable[[], Any]] = None,
    ):
        """Initialize the service.

        Args:
            store: Document store holding both legacy and FHIR collections
            validator: Structural validator for FHIR resources
            code_tables: Code tables injected into every builder
            id_factory: Id factory injected into every builder
            clock: Clock injected into every builder
        """
        self.store = store
        self.validator = validator or FHIRValidator()
        builder_args: Dict[str, Any] = {
            "code_tables": code_tables,
            "id_factory": id_factory,
            "clock": clock,
        }
        self.patients = PatientResource(**builder_args)
        self.observations = ObservationResource(**builder_args)
        self.conditions = ConditionResource(**builder_args)
        self.allergies = AllergyIntoleranceResource(**builder_args)
        self.encounters = EncounterResource(**builder_args)
        self.practitioners = PractitionerResource(**builder_args)
        self.organizations = OrganizationResource(**builder_args)
        self.services = HealthcareServiceResource(**builder_args)

    async def save_profile(
        self, user: UserRecord, profile: Union[UserProfile, Dict[str, Any]]
    ) -> OperationResult[Dict[str, Any]]:
        """Save a patient profile and refresh its FHIR twin.

        The legacy write decides success. The FHIR Patient is then rewritten
        and the derived Observations, Conditions and AllergyIntolerances are
        replaced as one set.

        Args:
            user: Account document of the patient
            profile: Profile document (model or raw legacy dict)

        Returns:
            Result whose data counts the FHIR resources written
        """
        if not isinstance(profile, UserProfile):
            profile = UserProfile.model_validate(profile)

        try:
            await self.store.set(
                USER_PROFILES,
                user.uid,
                profile.model_dump(by_alias=True, exclude_none=True),
                merge=True,
            )
        except StorageError as e:
            logger.error("profile_save_failed", patient_id=user.uid, error=str(e))
            return OperationResult.fail(str(e))

        try:
            summary = await self._sync_patient(user, profile)
        except StorageError as e:
            logger.error(
                "fhir_patient_sync_failed", patient_id=user.uid, error=str(e)
            )
            return OperationResult.ok(None, fhir_synced=False, fhir_error=str(e))

        logger.info("profile_saved", patient_id=user.uid, **summary)
        return OperationResult.ok(summary, fhir_synced=summary["patient"])

    async def get_patient(self, patient_id: str) -> OperationResult[FHIRJson]:
        """Return a patient's FHIR Patient, converting from legacy if needed.

        A patient that exists nowhere is a successful result with no data.
        """
        try:
            patient = await self.store.get(FHIR_PATIENTS, patient_id)
            if patient is not None:
                return OperationResult.ok(patient)

            user = await self.store.get(USERS, patient_id)
            if user is None:
                return OperationResult.ok(None)
            profile = await self.store.get(USER_PROFILES, patient_id)
        except StorageError as e:
            logger.error("patient_read_failed", patient_id=patient_id, error=str(e))
            return OperationResult.fail(str(e))

        record = UserRecord.model_validate({"uid": patient_id, **user})
        try:
            patient = self.patients.build(
                record, UserProfile.model_validate(profile) if profile else None
            )
        except ValidationError as e:
            logger.warning(
                "patient_conversion_failed", patient_id=patient_id, errors=e.errors
            )
            return OperationResult.fail(str(e), errors=e.errors)
        return OperationResult.ok(patient, converted=True)

    async def save_medical_record(
        self, record: MedicalRecord, doctor_name: Optional[str] = None
    ) -> OperationResult[FHIRJson]:
        """Save a visit and write its Encounter (and diagnosis) twin."""
        try:
            await self.store.set(
                MEDICAL_RECORDS,
                record.id,
                record.model_dump(by_alias=True, exclude_none=True),
            )
        except StorageError as e:
            logger.error(
                "medical_record_save_failed", record_id=record.id, error=str(e)
            )
            return OperationResult.fail(str(e))

        try:
            encounter = self.encounters.build(record, doctor_name)
            diagnosis = self.conditions.build_diagnosis(record)
        except ValidationError as e:
            logger.warning(
                "encounter_mapping_skipped", record_id=record.id, errors=e.errors
            )
            return OperationResult.ok(None, fhir_synced=False)

        operations = []
        if self.validator.validate(encounter):
            operations.append(
                WriteOperation(FHIR_ENCOUNTERS, encounter["id"], encounter)
            )
        if diagnosis is not None and self.validator.validate(diagnosis):
            operations.append(
                WriteOperation(
                    patient_resources(record.patient_id), diagnosis["id"], diagnosis
                )
            )

        try:
            for batch in chunked(operations, self.store.max_batch_size):
                await self.store.commit_batch(batch)
        except StorageError as e:
            logger.error(
                "fhir_encounter_write_failed", record_id=record.id, error=str(e)
            )
            return OperationResult.ok(None, fhir_synced=False, fhir_error=str(e))

        logger.info("medical_record_saved", record_id=record.id)
        return OperationResult.ok(encounter, fhir_synced=True)

    async def get_patient_encounters(
        self, patient_id: str
    ) -> OperationResult[List[FHIRJson]]:
        """Encounters of a patient, most recent visit first."""
        try:
            encounters = await self.store.query(
                FHIR_ENCOUNTERS,
                [FieldFilter("subject.reference", f"Patient/{patient_id}")],
                order_by="period.start",
                descending=True,
            )
        except StorageError as e:
            logger.error("encounter_read_failed", patient_id=patient_id, error=str(e))
            return OperationResult.fail(str(e))
        return OperationResult.ok(encounters, total=len(encounters))

    async def register_practitioner(
        self, doctor: UserRecord
    ) -> OperationResult[FHIRJson]:
        """Save a doctor account and its Practitioner twin."""
        try:
            await self.store.set(
                USERS,
                doctor.uid,
                doctor.model_dump(by_alias=True, exclude_none=True),
                merge=True,
            )
        except StorageError as e:
            logger.error(
                "practitioner_save_failed", doctor_id=doctor.uid, error=str(e)
            )
            return OperationResult.fail(str(e))

        return await self._write_twin(
            FHIR_PRACTITIONERS, lambda: [self.practitioners.build(doctor)]
        )

    async def register_organization(
        self, org: OrganizationRecord
    ) -> OperationResult[FHIRJson]:
        """Save an institution, its Organization and its HealthcareServices."""
        try:
            await self.store.set(
                ORGANIZATIONS, org.id, org.model_dump(by_alias=True, exclude_none=True)
            )
        except StorageError as e:
            logger.error("organization_save_failed", org_id=org.id, error=str(e))
            return OperationResult.fail(str(e))

        return await self._write_twin(
            FHIR_ORGANIZATIONS,
            lambda: [self.organizations.build(org)],
            companions=lambda: self.services.build_services(org),
            companion_collection=FHIR_HEALTHCARE_SERVICES,
        )

    async def _write_twin(
        self,
        collection: str,
        build: Callable[[], List[FHIRJson]],
        companions: Optional[Callable[[], List[FHIRJson]]] = None,
        companion_collection: Optional[str] = None,
    ) -> OperationResult[FHIRJson]:
        try:
            resources = build()
            extra = companions() if companions else []
        except ValidationError as e:
            logger.warning(
                "fhir_mapping_skipped", collection=collection, errors=e.errors
            )
            return OperationResult.ok(None, fhir_synced=False)

        primary = resources[0]
        if not self.validator.validate(primary):
            return OperationResult.ok(None, fhir_synced=False)

        operations = [WriteOperation(collection, primary["id"], primary)]
        operations.extend(
            WriteOperation(companion_collection or collection, res["id"], res)
            for res in extra
            if self.validator.validate(res)
        )

        try:
            for batch in chunked(operations, self.store.max_batch_size):
                await self.store.commit_batch(batch)
        except StorageError as e:
            logger.error("fhir_twin_write_failed", collection=collection, error=str(e))
            return OperationResult.ok(None, fhir_synced=False, fhir_error=str(e))

        return OperationResult.ok(primary, fhir_synced=True)

    async def _sync_patient(
        self, user: UserRecord, profile: UserProfile
    ) -> Dict[str, Any]:
        patient_id = user.uid
        collection = patient_resources(patient_id)

        patient = self._build_valid(
            "Patient", lambda: [self.patients.build(user, profile)]
        )
        derived = (
            self._build_valid(
                "Observation",
                lambda: self.observations.build_vitals(profile, patient_id),
            )
            + self._build_valid(
                "Condition",
                lambda: self.conditions.build_conditions(profile, patient_id),
            )
            + self._build_valid(
                "AllergyIntolerance",
                lambda: self.allergies.build_allergies(profile, patient_id),
            )
        )

        stale = [
            doc["id"]
            for doc in await self.store.query(collection)
            if "id" in doc and is_profile_derived(doc)
        ]

        operations = [
            WriteOperation(collection, doc_id, kind=WriteKind.DELETE)
            for doc_id in stale
        ]
        operations.extend(WriteOperation(collection, r["id"], r) for r in derived)
        if patient:
            operations.append(WriteOperation(FHIR_PATIENTS, patient_id, patient[0]))

        for batch in chunked(operations, self.store.max_batch_size):
            await self.store.commit_batch(batch)

        return {
            "patient": bool(patient),
            "derived_written": len(derived),
            "stale_removed": len(stale),
        }

    def _build_valid(
        self, resource_type: str, build: Callable[[], List[FHIRJson]]
    ) -> List[FHIRJson]:
        try:
            resources = build()
        except ValidationError as e:
            logger.warning(
                "fhir_mapping_skipped", resource_type=resource_type, errors=e.errors
            )
            return []
        return [resource for resource in resources if self.validator.validate(resource)]
