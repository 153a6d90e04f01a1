"""Observation FHIR Resource Implementation.

This module derives vital-sign Observations (height, weight, blood group)
from the "basic" section of a patient profile. Observations have no natural
id in the legacy model, so each derivation generates fresh ids.
"""

import logging
from enum import Enum
from typing import Any, Dict, List, Optional

from fhirclient.models.observation import Observation

from ..models.legacy import BasicProfile, Measurement, UserProfile
from .code_tables import BLOOD_GROUP_SYSTEM, LOINC_SYSTEM, UCUM_SYSTEM, UnitCode
from .fhir_base import BaseFHIRResource, FHIRJson

logger = logging.getLogger(__name__)

# FHIR resource type for this module
__fhir_resource__ = "Observation"

OBSERVATION_CATEGORY_SYSTEM = (
    "http://terminology.hl7.org/CodeSystem/observation-category"
)


class ObservationStatus(Enum):
    """Observation status codes."""

    REGISTERED = "registered"
    PRELIMINARY = "preliminary"
    FINAL = "final"
    AMENDED = "amended"
    CANCELLED = "cancelled"
    ENTERED_IN_ERROR = "entered-in-error"
    UNKNOWN = "unknown"


class ObservationResource(BaseFHIRResource):
    """Builds vital-sign Observations for one patient."""

    resource_type = Observation

    def build_vitals(
        self, profile: Optional[UserProfile], patient_id: str
    ) -> List[FHIRJson]:
        """Create the Observation set for a profile.

        Args:
            profile: Profile document
            patient_id: Id of the patient the observations describe

        Returns:
            Height, weight and blood group observations, in that order, for
            whichever values are present
        """
        basic: Optional[BasicProfile] = profile.basic if profile else None
        if basic is None:
            return []

        observations: List[FHIRJson] = []

        height, weight = basic.height, basic.weight
        if height is not None and self._has_value(height):
            observations.append(
                self.build_quantity(
                    patient_id,
                    "height",
                    height,
                    self.code_tables.height_unit(height.unit),
                )
            )

        if weight is not None and self._has_value(weight):
            observations.append(
                self.build_quantity(
                    patient_id,
                    "weight",
                    weight,
                    self.code_tables.weight_unit(weight.unit),
                )
            )

        blood_group = self.clean_text(basic.blood_group)
        if blood_group:
            observations.append(self.build_blood_group(patient_id, blood_group))

        return observations

    def build_quantity(
        self,
        patient_id: str,
        vital: str,
        measurement: Measurement,
        unit: UnitCode,
    ) -> FHIRJson:
        """Create a vital-sign Observation with a quantity value."""
        data = self._base(patient_id, vital)
        data["category"] = [
            self.codeable_concept(
                OBSERVATION_CATEGORY_SYSTEM, "vital-signs", "Vital Signs"
            )
        ]
        data["valueQuantity"] = {
            "value": measurement.value,
            "unit": unit.unit,
            "system": UCUM_SYSTEM,
            "code": unit.code,
        }
        return self.finalize(data)

    def build_blood_group(self, patient_id: str, label: str) -> FHIRJson:
        """Create a blood group Observation with a coded value."""
        data = self._base(patient_id, "blood_group")
        data["valueCodeableConcept"] = self.codeable_concept(
            BLOOD_GROUP_SYSTEM, self.code_tables.blood_group_code(label), label
        )
        return self.finalize(data)

    def _base(self, patient_id: str, vital: str) -> Dict[str, Any]:
        sign = self.code_tables.vital_signs[vital]
        return {
            "id": self.new_id(),
            "status": ObservationStatus.FINAL.value,
            "code": self.codeable_concept(LOINC_SYSTEM, sign.code, sign.display),
            "subject": self.reference("Patient", patient_id),
            "effectiveDateTime": self.now(),
        }

    @staticmethod
    def _has_value(measurement: Measurement) -> bool:
        return measurement.value not in (None, 0)
