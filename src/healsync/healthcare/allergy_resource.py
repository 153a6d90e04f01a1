"""AllergyIntolerance FHIR Resource Implementation."""

import logging
from typing import List, Optional

from fhirclient.models.allergyintolerance import AllergyIntolerance

from ..models.legacy import UserProfile
from .fhir_base import BaseFHIRResource, FHIRJson

logger = logging.getLogger(__name__)

# FHIR resource type for this module
__fhir_resource__ = "AllergyIntolerance"

CLINICAL_STATUS_SYSTEM = (
    "http://terminology.hl7.org/CodeSystem/allergyintolerance-clinical"
)
VERIFICATION_STATUS_SYSTEM = (
    "http://terminology.hl7.org/CodeSystem/allergyintolerance-verification"
)


class AllergyIntoleranceResource(BaseFHIRResource):
    """Builds AllergyIntolerance resources from profile allergies."""

    resource_type = AllergyIntolerance

    def build_allergies(
        self, profile: Optional[UserProfile], patient_id: str
    ) -> List[FHIRJson]:
        """Create one AllergyIntolerance per non-blank allergy entry."""
        medical = profile.medical if profile else None
        if medical is None:
            return []

        entries = self.free_text_entries(medical.allergies, medical.custom_allergy)
        return [self.build(text, patient_id) for text in entries]

    def build(self, text: str, patient_id: str) -> FHIRJson:
        """Create a single AllergyIntolerance from free text."""
        return self.finalize(
            {
                "id": self.new_id(),
                "clinicalStatus": self.codeable_concept(
                    CLINICAL_STATUS_SYSTEM, "active", "Active"
                ),
                "verificationStatus": self.codeable_concept(
                    VERIFICATION_STATUS_SYSTEM, "confirmed", "Confirmed"
                ),
                "type": "allergy",
                "category": ["medication"],
                "criticality": "unknown",
                "code": {"text": text},
                "patient": self.reference("Patient", patient_id),
                "recordedDate": self.now(),
            }
        )
