"""Encounter FHIR Resource Implementation.

One Encounter per visit record. The Encounter reuses the visit record's id,
and the diagnosis Condition reference is derived from that id, so building
the same record twice yields the same resource.
"""

import logging
from typing import Any, Dict, Optional

from fhirclient.models.encounter import Encounter

from ..models.legacy import MedicalRecord
from ..utils.datetime_utils import to_fhir_datetime
from ..utils.id_generator import derive_id
from .fhir_base import BaseFHIRResource, FHIRJson

logger = logging.getLogger(__name__)

# FHIR resource type for this module
__fhir_resource__ = "Encounter"

ACT_CODE_SYSTEM = "http://terminology.hl7.org/CodeSystem/v3-ActCode"
PARTICIPATION_TYPE_SYSTEM = (
    "http://terminology.hl7.org/CodeSystem/v3-ParticipationType"
)
DIAGNOSIS_ROLE_SYSTEM = "http://terminology.hl7.org/CodeSystem/diagnosis-role"


class EncounterResource(BaseFHIRResource):
    """Builds Encounter resources from visit records."""

    resource_type = Encounter

    def build(
        self, record: MedicalRecord, doctor_name: Optional[str] = None
    ) -> FHIRJson:
        """Create an Encounter for a visit.

        Args:
            record: Visit record filed by a doctor
            doctor_name: Display name of the practitioner; falls back to the
                name stored on the record

        Returns:
            Encounter resource JSON
        """
        display = self.clean_text(doctor_name) or self.clean_text(record.doctor_name)

        data: Dict[str, Any] = {
            "id": record.id,
            "status": "finished",
            "class": self.coding(ACT_CODE_SYSTEM, "AMB", "ambulatory"),
            "subject": self.reference("Patient", record.patient_id),
            "participant": [
                {
                    "type": [
                        self.codeable_concept(
                            PARTICIPATION_TYPE_SYSTEM, "PPRF", "primary performer"
                        )
                    ],
                    "individual": self.reference(
                        "Practitioner", record.doctor_id, display
                    ),
                }
            ],
            "period": {"start": to_fhir_datetime(record.visit_date) or self.now()},
        }

        reasons = [{"text": text} for text in self.free_text_entries(record.symptoms)]
        if reasons:
            data["reasonCode"] = reasons

        diagnosis = self.clean_text(record.diagnosis)
        if diagnosis:
            data["diagnosis"] = [
                {
                    "condition": {
                        "reference": f"Condition/{derive_id(record.id, 'diagnosis')}",
                        "display": diagnosis,
                    },
                    "use": self.codeable_concept(
                        DIAGNOSIS_ROLE_SYSTEM, "DD", "Discharge diagnosis"
                    ),
                }
            ]

        return self.finalize(data)
