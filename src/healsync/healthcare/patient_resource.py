"""Patient FHIR Resource Implementation.

This module maps a legacy account document and its profile into a FHIR
Patient resource. The Patient keeps the account's uid as its id so it stays
addressable across re-derivation.
"""

import logging
import re
from datetime import date
from typing import Any, Dict, List, Optional

from fhirclient.models.patient import Patient

from ..models.legacy import UserProfile, UserRecord
from .code_tables import V2_IDENTIFIER_TYPE_SYSTEM
from .fhir_base import BaseFHIRResource, FHIRJson

logger = logging.getLogger(__name__)

# FHIR resource type for this module
__fhir_resource__ = "Patient"

# FHIR date: YYYY, YYYY-MM or YYYY-MM-DD
FHIR_DATE_PATTERN = re.compile(r"^\d{4}(-(0[1-9]|1[0-2])(-(0[1-9]|[12]\d|3[01]))?)?$")

NEXT_OF_KIN_SYSTEM = "http://terminology.hl7.org/CodeSystem/v2-0131"


class PatientResource(BaseFHIRResource):
    """Builds Patient resources from account and profile documents."""

    resource_type = Patient

    def build(
        self, user: UserRecord, profile: Optional[UserProfile] = None
    ) -> FHIRJson:
        """Create a Patient resource.

        Args:
            user: Account document (its uid becomes the resource id)
            profile: Profile document; absent sections simply omit elements

        Returns:
            Patient resource JSON
        """
        basic = profile.basic if profile else None

        data: Dict[str, Any] = {
            "id": user.uid,
            "identifier": [
                {
                    "type": self.codeable_concept(
                        V2_IDENTIFIER_TYPE_SYSTEM,
                        "MR",
                        "Medical Record Number",
                        text="MRN",
                    ),
                    "value": user.uid,
                }
            ],
            "active": True,
            "gender": self.code_tables.gender_code(basic.gender if basic else None),
        }

        full_name = self.clean_text(basic.full_name if basic else None) or (
            self.clean_text(user.name)
        )
        if full_name:
            data["name"] = [self._create_name(full_name)]

        telecom = self.telecom("email", user.email, "home")
        if basic:
            telecom += self.telecom("phone", basic.contact_number, "mobile")
        if telecom:
            data["telecom"] = telecom

        birth_date = self._birth_date(basic.dob if basic else None, user.uid)
        if birth_date:
            data["birthDate"] = birth_date

        if basic and basic.emergency_contact:
            contact = self._create_contact(
                basic.emergency_contact.name, basic.emergency_contact.number
            )
            if contact:
                data["contact"] = [contact]

        return self.finalize(data)

    @staticmethod
    def _create_name(full_name: str) -> Dict[str, Any]:
        """Split a display name into given names and a family name."""
        parts = full_name.split()
        name: Dict[str, Any] = {"use": "official", "text": full_name}
        name["family"] = parts[-1]
        if len(parts) > 1:
            name["given"] = parts[:-1]
        return name

    @staticmethod
    def _birth_date(dob: Optional[str], patient_id: str) -> Optional[str]:
        if not dob:
            return None
        dob = dob.strip()
        # Accept ISO timestamps by keeping the date part
        candidate = dob.split("T", 1)[0]
        if FHIR_DATE_PATTERN.match(candidate) and _on_calendar(candidate):
            return candidate
        logger.warning("Dropping unparseable birth date for patient %s", patient_id)
        return None

    def _create_contact(
        self, name: Optional[str], number: Optional[str]
    ) -> Optional[Dict[str, Any]]:
        name = self.clean_text(name)
        number = self.clean_text(number)
        if not name and not number:
            return None

        contact: Dict[str, Any] = {
            "relationship": [
                self.codeable_concept(NEXT_OF_KIN_SYSTEM, "N", "Next-of-Kin")
            ]
        }
        if name:
            contact["name"] = {"text": name}
        telecom: List[Dict[str, str]] = []
        if number:
            telecom.append({"system": "phone", "value": number})
        if telecom:
            contact["telecom"] = telecom
        return contact


def _on_calendar(value: str) -> bool:
    """Whether a pattern-valid FHIR date names a real day (or month)."""
    if len(value) < 10:
        return True
    try:
        date.fromisoformat(value)
    except ValueError:
        return False
    return True
