"""FHIR resource validation for HealSync.

The validator performs the structural checks the engine relies on before a
resource is persisted. ``validate`` always answers with a boolean; callers
that must not continue on failure (the audit trail) use
``require_valid_audit_event``, which raises.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..core.exceptions import AuditValidationError
from ..utils.logging import get_logger

logger = get_logger(__name__)

AUDIT_EVENT_REQUIRED = ("type", "action", "recorded", "outcome", "agent", "source")


@dataclass
class ValidationResult:
    """Outcome of validating one resource."""

    valid: bool
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Convert result to dictionary."""
        return {"valid": self.valid, "errors": self.errors, "warnings": self.warnings}


class FHIRValidator:
    """Structural validator for FHIR resources."""

    def check(self, resource: Optional[Dict[str, Any]]) -> ValidationResult:
        """Validate a resource and collect every problem found."""
        errors: List[str] = []
        warnings: List[str] = []

        if not isinstance(resource, dict):
            return ValidationResult(False, ["Resource must be a JSON object"])

        resource_type = resource.get("resourceType")
        if not resource_type:
            errors.append("Resource must have resourceType")
        if not resource.get("id"):
            errors.append("Resource must have id")

        if resource_type == "AuditEvent":
            errors.extend(self._audit_event_errors(resource))
        elif resource_type == "Organization":
            if not resource.get("name"):
                errors.append("Organization name is required")
            warnings.extend(self._organization_warnings(resource))

        return ValidationResult(not errors, errors, warnings)

    def validate(self, resource: Optional[Dict[str, Any]]) -> bool:
        """Return True when the resource passes structural validation."""
        result = self.check(resource)
        if not result.valid:
            logger.warning(
                "fhir_validation_failed",
                resource_type=(
                    resource.get("resourceType") if isinstance(resource, dict) else None
                ),
                errors=result.errors,
            )
        return result.valid

    def require_valid_audit_event(self, resource: Dict[str, Any]) -> None:
        """Raise unless the resource is a complete AuditEvent.

        Raises:
            AuditValidationError: If any required element is missing
        """
        result = self.check(resource)
        if resource.get("resourceType") != "AuditEvent":
            result.errors.append("Resource is not an AuditEvent")
        if result.errors:
            raise AuditValidationError("Invalid AuditEvent", errors=result.errors)

    @staticmethod
    def _audit_event_errors(resource: Dict[str, Any]) -> List[str]:
        return [
            f"AuditEvent must have {name}"
            for name in AUDIT_EVENT_REQUIRED
            if not resource.get(name)
        ]

    @staticmethod
    def _organization_warnings(resource: Dict[str, Any]) -> List[str]:
        warnings = []
        if not resource.get("type"):
            warnings.append("Organization type is recommended")
        if not resource.get("telecom"):
            warnings.append("Contact information is recommended")
        if not resource.get("address"):
            warnings.append("Address is recommended")
        return warnings
