"""Condition FHIR Resource Implementation.

This module promotes the free-text chronic conditions of a patient profile
into Condition resources with a fixed active / confirmed status, and records
the diagnosis of a visit as an encounter-diagnosis Condition.
"""

import logging
from typing import List, Optional

from fhirclient.models.condition import Condition

from ..models.legacy import MedicalRecord, UserProfile
from ..utils.datetime_utils import to_fhir_datetime
from ..utils.id_generator import derive_id
from .fhir_base import BaseFHIRResource, FHIRJson

logger = logging.getLogger(__name__)

# FHIR resource type for this module
__fhir_resource__ = "Condition"

CLINICAL_STATUS_SYSTEM = "http://terminology.hl7.org/CodeSystem/condition-clinical"
VERIFICATION_STATUS_SYSTEM = (
    "http://terminology.hl7.org/CodeSystem/condition-ver-status"
)
CATEGORY_SYSTEM = "http://terminology.hl7.org/CodeSystem/condition-category"
PROBLEM_LIST_ITEM = "problem-list-item"
ENCOUNTER_DIAGNOSIS = "encounter-diagnosis"


class ConditionResource(BaseFHIRResource):
    """Builds problem-list and encounter-diagnosis Conditions."""

    resource_type = Condition

    def build_conditions(
        self, profile: Optional[UserProfile], patient_id: str
    ) -> List[FHIRJson]:
        """Create one Condition per non-blank chronic condition entry.

        Args:
            profile: Profile document
            patient_id: Id of the patient the conditions belong to

        Returns:
            Conditions in list order, followed by the custom entry if any
        """
        medical = profile.medical if profile else None
        if medical is None:
            return []

        entries = self.free_text_entries(
            medical.chronic_conditions, medical.custom_chronic_condition
        )
        return [self.build(text, patient_id) for text in entries]

    def build(self, text: str, patient_id: str) -> FHIRJson:
        """Create a single Condition from free text."""
        return self.finalize(
            {
                "id": self.new_id(),
                "clinicalStatus": self.codeable_concept(
                    CLINICAL_STATUS_SYSTEM, "active", "Active"
                ),
                "verificationStatus": self.codeable_concept(
                    VERIFICATION_STATUS_SYSTEM, "confirmed", "Confirmed"
                ),
                "category": [
                    self.codeable_concept(
                        CATEGORY_SYSTEM, PROBLEM_LIST_ITEM, "Problem List Item"
                    )
                ],
                "code": {"text": text},
                "subject": self.reference("Patient", patient_id),
                "recordedDate": self.now(),
            }
        )

    def build_diagnosis(self, record: MedicalRecord) -> Optional[FHIRJson]:
        """Create the encounter-diagnosis Condition of a visit, if any.

        The id is derived from the visit id and matches the reference the
        visit's Encounter carries.
        """
        diagnosis = self.clean_text(record.diagnosis)
        if not diagnosis:
            return None

        return self.finalize(
            {
                "id": derive_id(record.id, "diagnosis"),
                "clinicalStatus": self.codeable_concept(
                    CLINICAL_STATUS_SYSTEM, "active", "Active"
                ),
                "verificationStatus": self.codeable_concept(
                    VERIFICATION_STATUS_SYSTEM, "confirmed", "Confirmed"
                ),
                "category": [
                    self.codeable_concept(
                        CATEGORY_SYSTEM, ENCOUNTER_DIAGNOSIS, "Encounter Diagnosis"
                    )
                ],
                "code": {"text": diagnosis},
                "subject": self.reference("Patient", record.patient_id),
                "encounter": self.reference("Encounter", record.id),
                "recordedDate": to_fhir_datetime(record.visit_date) or self.now(),
            }
        )
