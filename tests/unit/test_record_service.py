"""Tests for the dual-write patient record service."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from healsync.core.exceptions import StorageError, ValidationError
from healsync.models.legacy import MedicalRecord, OrganizationRecord, UserRecord
from healsync.services.record_service import is_profile_derived
from healsync.storage.base import (
    FHIR_ENCOUNTERS,
    FHIR_HEALTHCARE_SERVICES,
    FHIR_ORGANIZATIONS,
    FHIR_PATIENTS,
    FHIR_PRACTITIONERS,
    MEDICAL_RECORDS,
    USER_PROFILES,
    USERS,
    FieldFilter,
    patient_resources,
)
from healsync.utils.id_generator import derive_id


def _by_type(resources, resource_type):
    return [r for r in resources if r["resourceType"] == resource_type]


@pytest.fixture
def visit() -> MedicalRecord:
    """Visit filed for the test patient."""
    return MedicalRecord.model_validate(
        {
            "id": "visit-1",
            "patientId": "pat-1",
            "doctorId": "doc-1",
            "visitDate": "2024-04-30",
            "symptoms": "Headache",
            "diagnosis": "Migraine",
        }
    )


class TestIsProfileDerived:
    """Which resources a profile save replaces."""

    @pytest.mark.parametrize(
        "resource,expected",
        [
            ({"resourceType": "Observation"}, True),
            ({"resourceType": "AllergyIntolerance"}, True),
            (
                {
                    "resourceType": "Condition",
                    "category": [{"coding": [{"code": "problem-list-item"}]}],
                },
                True,
            ),
            (
                {
                    "resourceType": "Condition",
                    "category": [{"coding": [{"code": "encounter-diagnosis"}]}],
                },
                False,
            ),
            ({"resourceType": "Encounter"}, False),
        ],
    )
    def test_kinds(self, resource, expected):
        """Encounter diagnoses survive profile saves."""
        assert is_profile_derived(resource) is expected


class TestSaveProfile:
    """Profile saves."""

    @pytest.mark.asyncio
    async def test_writes_legacy_and_fhir(
        self, record_service, store, patient_user, profile_document
    ):
        """The legacy profile and the FHIR twin are both written."""
        profile_document["basic"]["gender"] = "non-binary"

        result = await record_service.save_profile(patient_user, profile_document)

        assert result.success
        assert result.details["fhir_synced"] is True
        assert result.data == {
            "patient": True,
            "derived_written": 7,
            "stale_removed": 0,
        }

        legacy = await store.get(USER_PROFILES, "pat-1")
        assert legacy["basic"]["fullName"] == "Amara Chioma Nwosu"

        patient = await store.get(FHIR_PATIENTS, "pat-1")
        assert patient["gender"] == "other"

        resources = await store.query(patient_resources("pat-1"))
        assert len(_by_type(resources, "Observation")) == 3
        assert len(_by_type(resources, "Condition")) == 2
        assert len(_by_type(resources, "AllergyIntolerance")) == 2

        height = await store.query(
            patient_resources("pat-1"),
            [FieldFilter("code.coding.code", "8302-2")],
        )
        assert height[0]["valueQuantity"] == {
            "value": 170,
            "unit": "cm",
            "system": "http://unitsofmeasure.org",
            "code": "cm",
        }

    @pytest.mark.asyncio
    async def test_resave_replaces_derived_resources(
        self, record_service, store, patient_user, profile_document
    ):
        """A second save removes entries dropped from the profile."""
        await record_service.save_profile(patient_user, profile_document)

        profile_document["medical"] = {"chronicConditions": ["Asthma"]}
        profile_document["basic"].pop("bloodGroup")
        result = await record_service.save_profile(patient_user, profile_document)

        assert result.data["stale_removed"] == 7
        assert result.data["derived_written"] == 3
        resources = await store.query(patient_resources("pat-1"))
        assert [c["code"]["text"] for c in _by_type(resources, "Condition")] == [
            "Asthma"
        ]
        assert _by_type(resources, "AllergyIntolerance") == []
        assert len(_by_type(resources, "Observation")) == 2

    @pytest.mark.asyncio
    async def test_resave_keeps_encounter_diagnosis(
        self, record_service, store, patient_user, profile_document, visit
    ):
        """Visit diagnoses are not touched by profile saves."""
        await record_service.save_medical_record(visit)
        await record_service.save_profile(patient_user, profile_document)
        await record_service.save_profile(patient_user, profile_document)

        diagnosis = await store.get(
            patient_resources("pat-1"), derive_id("visit-1", "diagnosis")
        )
        assert diagnosis["code"]["text"] == "Migraine"

    @pytest.mark.asyncio
    async def test_legacy_failure_fails(self, record_service, patient_user, store):
        """Without the legacy write there is no success."""
        store.set = AsyncMock(side_effect=StorageError("offline"))

        result = await record_service.save_profile(patient_user, {})

        assert not result.success
        assert result.error == "offline"

    @pytest.mark.asyncio
    async def test_fhir_failure_is_reported_not_raised(
        self, record_service, patient_user, profile_document, store
    ):
        """A failed FHIR write leaves the save successful."""
        store.commit_batch = AsyncMock(side_effect=StorageError("quota"))

        result = await record_service.save_profile(patient_user, profile_document)

        assert result.success
        assert result.details == {"fhir_synced": False, "fhir_error": "quota"}
        assert await store.get(USER_PROFILES, "pat-1") is not None
        assert await store.get(FHIR_PATIENTS, "pat-1") is None

    @pytest.mark.asyncio
    async def test_empty_profile(self, record_service, store, patient_user):
        """An empty profile still yields a Patient."""
        result = await record_service.save_profile(patient_user, {})

        assert result.data["derived_written"] == 0
        patient = await store.get(FHIR_PATIENTS, "pat-1")
        assert patient["gender"] == "unknown"

    @pytest.mark.asyncio
    async def test_impossible_birth_date(self, record_service, store, patient_user):
        """An impossible date of birth only drops birthDate from the Patient."""
        result = await record_service.save_profile(
            patient_user, {"basic": {"dob": "1990-02-31", "gender": "Male"}}
        )

        assert result.details == {"fhir_synced": True}
        patient = await store.get(FHIR_PATIENTS, "pat-1")
        assert patient["gender"] == "male"
        assert "birthDate" not in patient

    @pytest.mark.asyncio
    async def test_unmappable_patient_not_synced(
        self, record_service, store, patient_user, profile
    ):
        """A Patient that fails validation is reported as not synced."""
        record_service.patients.build = MagicMock(
            side_effect=ValidationError("invalid", errors=["gender: bad code"])
        )

        result = await record_service.save_profile(patient_user, profile)

        assert result.success
        assert result.data["patient"] is False
        assert result.details == {"fhir_synced": False}
        assert await store.get(FHIR_PATIENTS, "pat-1") is None


class TestGetPatient:
    """Patient reads."""

    @pytest.mark.asyncio
    async def test_fhir_first(self, record_service, patient_user, profile_document):
        """A stored Patient is returned as is."""
        await record_service.save_profile(patient_user, profile_document)

        result = await record_service.get_patient("pat-1")

        assert result.data["id"] == "pat-1"
        assert "converted" not in result.details

    @pytest.mark.asyncio
    async def test_legacy_fallback(self, record_service, store, profile_document):
        """Legacy-only patients are converted on the fly."""
        await store.set(USERS, "pat-7", {"name": "Legacy Only", "role": "user"})
        await store.set(USER_PROFILES, "pat-7", profile_document)

        result = await record_service.get_patient("pat-7")

        assert result.details["converted"] is True
        assert result.data["gender"] == "female"
        assert await store.get(FHIR_PATIENTS, "pat-7") is None

    @pytest.mark.asyncio
    async def test_legacy_fallback_with_impossible_date(self, record_service, store):
        """Conversion on the fly drops a date that is not on the calendar."""
        await store.set(USERS, "pat-9", {"name": "Legacy Only", "role": "user"})
        await store.set(USER_PROFILES, "pat-9", {"basic": {"dob": "1990-02-31"}})

        result = await record_service.get_patient("pat-9")

        assert result.success
        assert result.data["id"] == "pat-9"
        assert "birthDate" not in result.data

    @pytest.mark.asyncio
    async def test_legacy_conversion_failure(self, record_service, store):
        """Conversion failures are failed results, not exceptions."""
        await store.set(USERS, "pat-9", {"name": "Legacy Only", "role": "user"})
        record_service.patients.build = MagicMock(
            side_effect=ValidationError("invalid", errors=["gender: bad code"])
        )

        result = await record_service.get_patient("pat-9")

        assert not result.success
        assert result.details["errors"] == ["gender: bad code"]

    @pytest.mark.asyncio
    async def test_unknown_patient(self, record_service):
        """Unknown ids are an empty success."""
        result = await record_service.get_patient("ghost")
        assert result.success
        assert result.data is None


class TestMedicalRecords:
    """Visits and their Encounters."""

    @pytest.mark.asyncio
    async def test_save_medical_record(self, record_service, store, visit):
        """The visit, its Encounter and its diagnosis are written."""
        result = await record_service.save_medical_record(visit, "Dr. Ada Okafor")

        assert result.success
        assert result.details["fhir_synced"] is True
        assert await store.get(MEDICAL_RECORDS, "visit-1") is not None
        encounter = await store.get(FHIR_ENCOUNTERS, "visit-1")
        assert encounter["reasonCode"] == [{"text": "Headache"}]
        diagnosis_ref = encounter["diagnosis"][0]["condition"]["reference"]
        diagnosis_id = diagnosis_ref.split("/", 1)[1]
        assert await store.get(patient_resources("pat-1"), diagnosis_id) is not None

    @pytest.mark.asyncio
    async def test_encounters_newest_first(self, record_service, visit):
        """Encounters are listed by visit date, newest first."""
        later = visit.model_copy(update={"id": "visit-2", "visit_date": "2024-05-01"})
        other = visit.model_copy(update={"id": "visit-3", "patient_id": "pat-2"})
        for record in (visit, later, other):
            await record_service.save_medical_record(record)

        result = await record_service.get_patient_encounters("pat-1")

        assert [e["id"] for e in result.data] == ["visit-2", "visit-1"]
        assert result.details["total"] == 2


class TestRegistration:
    """Practitioners and institutions."""

    @pytest.mark.asyncio
    async def test_register_practitioner(self, record_service, store):
        """Doctor accounts get a Practitioner twin."""
        doctor = UserRecord.model_validate(
            {"uid": "doc-1", "name": "Dr. Ada Okafor", "role": "doctor"}
        )

        result = await record_service.register_practitioner(doctor)

        assert result.success
        assert (await store.get(USERS, "doc-1"))["role"] == "doctor"
        assert (await store.get(FHIR_PRACTITIONERS, "doc-1"))["active"] is True

    @pytest.mark.asyncio
    async def test_register_organization(self, record_service, store):
        """Institutions get an Organization and one service per capability."""
        org = OrganizationRecord(
            id="org-1", name="Ikeja Clinic", type="clinic", capabilities=["surgery"]
        )

        result = await record_service.register_organization(org)

        assert result.data["name"] == "Ikeja Clinic"
        assert await store.list_ids(FHIR_ORGANIZATIONS) == ["org-1"]
        assert await store.list_ids(FHIR_HEALTHCARE_SERVICES) == ["org-1-surgery"]
