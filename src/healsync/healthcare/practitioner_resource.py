"""Practitioner FHIR Resource Implementation."""

import logging
from typing import Any, Dict

from fhirclient.models.practitioner import Practitioner

from ..models.legacy import UserRecord
from .code_tables import V2_IDENTIFIER_TYPE_SYSTEM
from .fhir_base import BaseFHIRResource, FHIRJson

logger = logging.getLogger(__name__)

# FHIR resource type for this module
__fhir_resource__ = "Practitioner"


class PractitionerResource(BaseFHIRResource):
    """Builds Practitioner resources from doctor accounts."""

    resource_type = Practitioner

    def build(self, doctor: UserRecord) -> FHIRJson:
        """Create a Practitioner keyed by the doctor's account uid."""
        data: Dict[str, Any] = {"id": doctor.uid, "active": True}

        if doctor.doctor_id:
            data["identifier"] = [
                {
                    "type": self.codeable_concept(
                        V2_IDENTIFIER_TYPE_SYSTEM,
                        "MD",
                        "Medical License number",
                        text="Doctor ID",
                    ),
                    "value": doctor.doctor_id,
                }
            ]

        name = self.clean_text(doctor.name)
        if name:
            data["name"] = [{"use": "official", "text": name}]

        return self.finalize(data)
