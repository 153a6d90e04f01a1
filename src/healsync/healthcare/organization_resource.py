"""Organization FHIR Resource Implementation.

This module maps an institution (hospital, clinic, lab, ...) into a FHIR
Organization plus one HealthcareService per declared capability.
"""

import logging
from typing import Any, Dict, List, Optional

from fhirclient.models.healthcareservice import HealthcareService
from fhirclient.models.organization import Organization

from ..models.legacy import (
    OrganizationAddress,
    OrganizationContact,
    OrganizationIdentifiers,
    OrganizationRecord,
)
from .bundle import assemble_bundle
from .code_tables import (
    CodeTables,
    ORGANIZATION_TYPE_SYSTEM,
    SNOMED_SYSTEM,
    V2_IDENTIFIER_TYPE_SYSTEM,
)
from .fhir_base import BaseFHIRResource, FHIRJson

logger = logging.getLogger(__name__)

# FHIR resource type for this module
__fhir_resource__ = "Organization"

NPI_SYSTEM = "http://hl7.org/fhir/sid/us-npi"
CONTACT_ENTITY_SYSTEM = "http://terminology.hl7.org/CodeSystem/contactentity-type"


def _title(value: str) -> str:
    return value[:1].upper() + value[1:]


class OrganizationResource(BaseFHIRResource):
    """Builds Organization resources from institution documents."""

    resource_type = Organization

    def build(self, org: OrganizationRecord) -> FHIRJson:
        """Create an Organization keyed by the institution id."""
        data: Dict[str, Any] = {
            "id": org.id,
            "active": org.active,
            "name": org.name,
        }

        if org.type:
            label = _title(org.type)
            data["type"] = [
                self.codeable_concept(
                    ORGANIZATION_TYPE_SYSTEM,
                    self.code_tables.organization_type_code(org.type),
                    label,
                    text=label,
                )
            ]

        telecom = self._create_telecom(org.contact)
        if telecom:
            data["telecom"] = telecom

        address = self._create_address(org.address)
        if address:
            data["address"] = [address]

        identifiers = self._create_identifiers(org.identifiers)
        if identifiers:
            data["identifier"] = identifiers

        if org.contact.email:
            data["contact"] = [
                {
                    "purpose": self.codeable_concept(
                        CONTACT_ENTITY_SYSTEM, "ADMIN", "Administrative"
                    ),
                    "telecom": self.telecom("email", org.contact.email, "work"),
                }
            ]

        return self.finalize(data)

    def _create_telecom(self, contact: OrganizationContact) -> List[Dict[str, str]]:
        return (
            self.telecom("phone", contact.phone, "work")
            + self.telecom("email", contact.email, "work")
            + self.telecom("url", contact.website, "work")
        )

    @staticmethod
    def _create_address(address: OrganizationAddress) -> Dict[str, Any]:
        fields = {
            "city": address.city,
            "state": address.state,
            "postalCode": address.postal_code,
            "country": address.country,
        }
        result: Dict[str, Any] = {k: v for k, v in fields.items() if v}
        if address.line:
            result["line"] = [address.line]
        if result:
            result.update({"use": "work", "type": "both"})
        return result

    def _create_identifiers(
        self, identifiers: OrganizationIdentifiers
    ) -> List[Dict[str, Any]]:
        result: List[Dict[str, Any]] = []

        if identifiers.npi:
            result.append(
                {
                    "type": self.codeable_concept(
                        V2_IDENTIFIER_TYPE_SYSTEM,
                        "NPI",
                        "National Provider Identifier",
                        text="National Provider Identifier",
                    ),
                    "system": NPI_SYSTEM,
                    "value": identifiers.npi,
                }
            )

        if identifiers.tax_id:
            result.append(
                {
                    "type": self.codeable_concept(
                        V2_IDENTIFIER_TYPE_SYSTEM,
                        "TAX",
                        "Tax ID number",
                        text="Tax ID number",
                    ),
                    "value": identifiers.tax_id,
                }
            )

        if identifiers.license_number:
            result.append(
                {
                    "type": self.codeable_concept(
                        V2_IDENTIFIER_TYPE_SYSTEM,
                        "MD",
                        "Medical License number",
                        text="Medical License number",
                    ),
                    "value": identifiers.license_number,
                }
            )

        return result


class HealthcareServiceResource(BaseFHIRResource):
    """Builds one HealthcareService per institution capability."""

    resource_type = HealthcareService

    def build_services(self, org: OrganizationRecord) -> List[FHIRJson]:
        """Create the services an institution provides."""
        specialties = [
            self.codeable_concept(
                SNOMED_SYSTEM, self.code_tables.specialty_code(specialty), specialty
            )
            for specialty in org.specialties
            if specialty
        ]

        services = []
        for capability in org.capabilities:
            if not capability:
                continue
            data: Dict[str, Any] = {
                # Stable per (institution, capability)
                "id": f"{org.id}-{capability.replace('_', '-')}",
                "active": org.active,
                "providedBy": self.reference("Organization", org.id, org.name),
                "type": [
                    self.codeable_concept(
                        SNOMED_SYSTEM,
                        self.code_tables.capability_code(capability),
                        _title(capability),
                    )
                ],
            }
            if specialties:
                data["specialty"] = specialties
            services.append(self.finalize(data))
        return services


def build_organization_bundle(
    org: OrganizationRecord, code_tables: Optional[CodeTables] = None
) -> FHIRJson:
    """Wrap an institution's Organization and its services in a collection Bundle."""
    organization = OrganizationResource(code_tables).build(org)
    services = HealthcareServiceResource(code_tables).build_services(org)
    return assemble_bundle([organization, *services], "collection")
