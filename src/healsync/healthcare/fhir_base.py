"""Base FHIR Resource Builder Class.

This module provides the abstract base class for all FHIR resource builders
in HealSync. Builders are pure: they take legacy domain records and return
FHIR R4 resources as plain JSON dictionaries, and never perform I/O.

Every resource is passed through the matching ``fhirclient`` model before it
is returned, so an element that does not fit the R4 shape is caught at build
time instead of in a downstream consumer.
"""

import logging
from abc import ABC
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Type

from fhirclient.models.domainresource import DomainResource
from fhirclient.models.fhirabstractbase import FHIRValidationError

from ..core.exceptions import ValidationError
from ..utils.datetime_utils import to_fhir_instant, utc_now
from ..utils.id_generator import generate_id
from .code_tables import DEFAULT_CODE_TABLES, CodeTables

logger = logging.getLogger(__name__)

FHIRJson = Dict[str, Any]


class BaseFHIRResource(ABC):
    """Abstract base class for FHIR resource builders.

    This class provides common functionality for builders including:
    - Injected code tables, id factory and clock
    - Shape checking through the fhirclient R4 models
    - Small element helpers shared by all resource types
    """

    #: fhirclient model class for this resource type
    resource_type: Type[DomainResource]

    def __init__(
        self,
        code_tables: Optional[CodeTables] = None,
        id_factory: Optional[Callable[[], str]] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """Initialize base FHIR resource builder.

        Args:
            code_tables: Lookup tables used for coded values
            id_factory: Generates ids for resources without a natural id
            clock: Returns the current time for generated timestamps
        """
        self.code_tables = code_tables or DEFAULT_CODE_TABLES
        self.id_factory = id_factory or generate_id
        self.clock = clock or utc_now

    @property
    def resource_name(self) -> str:
        """FHIR resourceType produced by this builder."""
        return str(self.resource_type.resource_type)

    def new_id(self) -> str:
        """Generate a fresh opaque resource id."""
        return self.id_factory()

    def now(self) -> str:
        """Current time as a FHIR instant."""
        return to_fhir_instant(self.clock())

    def finalize(self, data: FHIRJson) -> FHIRJson:
        """Check a resource against its R4 model and return its JSON.

        Args:
            data: Resource dictionary without ``resourceType``

        Returns:
            JSON dictionary representation

        Raises:
            ValidationError: If the dictionary does not fit the R4 model
        """
        payload = {"resourceType": self.resource_name}
        payload.update({k: v for k, v in data.items() if v is not None})
        try:
            resource = self.resource_type(payload)
            resource_json: FHIRJson = resource.as_json()
        except FHIRValidationError as e:
            logger.error("Invalid %s resource: %s", self.resource_name, e)
            raise ValidationError(
                f"{self.resource_name} does not conform to FHIR R4",
                errors=[str(err) for err in e.errors],
            ) from e
        return resource_json

    # Element helpers

    @staticmethod
    def coding(
        system: str, code: str, display: Optional[str] = None
    ) -> Dict[str, str]:
        """Build a Coding element."""
        coding = {"system": system, "code": code}
        if display:
            coding["display"] = display
        return coding

    @classmethod
    def codeable_concept(
        cls,
        system: str,
        code: str,
        display: Optional[str] = None,
        text: Optional[str] = None,
    ) -> FHIRJson:
        """Build a CodeableConcept with a single coding."""
        concept: FHIRJson = {"coding": [cls.coding(system, code, display)]}
        if text:
            concept["text"] = text
        return concept

    @staticmethod
    def reference(
        resource_type: str, resource_id: str, display: Optional[str] = None
    ) -> Dict[str, str]:
        """Build a Reference element."""
        reference = {"reference": f"{resource_type}/{resource_id}"}
        if display:
            reference["display"] = display
        return reference

    @staticmethod
    def telecom(system: str, value: Optional[str], use: str) -> List[Dict[str, str]]:
        """Build a one-element ContactPoint list, or nothing for empty values."""
        if not value:
            return []
        return [{"system": system, "value": value, "use": use}]

    @staticmethod
    def clean_text(value: Optional[str]) -> Optional[str]:
        """Trim free text; blank input becomes None."""
        if value is None:
            return None
        value = str(value).strip()
        return value or None

    @classmethod
    def free_text_entries(
        cls, values: List[Optional[str]], custom: Optional[str] = None
    ) -> List[str]:
        """Collect the non-blank entries of a multi-valued free-text field.

        The trailing "custom/other" entry, when non-blank, is appended last.
        """
        entries = [text for text in map(cls.clean_text, values) if text]
        custom_text = cls.clean_text(custom)
        if custom_text:
            entries.append(custom_text)
        return entries
