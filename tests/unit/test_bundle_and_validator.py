"""Tests for bundle assembly and structural validation."""

import pytest

from healsync.core.exceptions import AuditValidationError, ValidationError
from healsync.healthcare import FHIRValidator, assemble_bundle
from healsync.healthcare.bundle import full_url


def _resource(resource_type, resource_id):
    return {"resourceType": resource_type, "id": resource_id}


class TestAssembleBundle:
    """Bundle assembly."""

    def test_order_and_full_urls(self, now):
        """Entries keep input order and carry urn:uuid full URLs."""
        resources = [
            _resource("Patient", "p1"),
            _resource("Observation", "o1"),
            _resource("Condition", "c1"),
        ]

        bundle = assemble_bundle(resources, "collection", bundle_id="b1", timestamp=now)

        assert bundle["resourceType"] == "Bundle"
        assert bundle["id"] == "b1"
        assert bundle["type"] == "collection"
        assert bundle["timestamp"] == "2024-05-01T12:00:00.000Z"
        assert [e["fullUrl"] for e in bundle["entry"]] == [
            "urn:uuid:p1",
            "urn:uuid:o1",
            "urn:uuid:c1",
        ]
        assert [e["resource"] for e in bundle["entry"]] == resources
        assert "total" not in bundle

    def test_searchset_has_total(self):
        """Searchset bundles report their entry count."""
        bundle = assemble_bundle([_resource("Patient", "p1")], "searchset")
        assert bundle["total"] == 1

    def test_empty_bundle(self):
        """No resources still yields an entry list."""
        bundle = assemble_bundle([])
        assert bundle["entry"] == []
        assert bundle["id"]

    def test_unknown_type(self):
        """Bundle types outside R4 are rejected."""
        with pytest.raises(ValueError):
            assemble_bundle([], "archive")

    def test_resource_without_id(self):
        """Every entry needs a resource id."""
        with pytest.raises(ValidationError):
            full_url({"resourceType": "Patient"})


class TestFHIRValidator:
    """Structural validation."""

    @pytest.fixture
    def validator(self):
        """Fresh validator."""
        return FHIRValidator()

    def test_valid_resource(self, validator):
        """resourceType and id are enough for a plain resource."""
        assert validator.validate(_resource("Patient", "p1"))

    @pytest.mark.parametrize(
        "resource,error",
        [
            ({"id": "x"}, "Resource must have resourceType"),
            ({"resourceType": "Patient"}, "Resource must have id"),
            ({"resourceType": "Patient", "id": ""}, "Resource must have id"),
        ],
    )
    def test_missing_basics(self, validator, resource, error):
        """Missing basics are reported."""
        result = validator.check(resource)
        assert not result.valid
        assert error in result.errors

    def test_not_a_dict(self, validator):
        """Non-objects never validate."""
        assert not validator.validate(None)
        assert not validator.validate(["Patient"])

    def test_audit_event_requirements(self, validator):
        """AuditEvents need their required elements."""
        result = validator.check(_resource("AuditEvent", "a1"))

        assert not result.valid
        assert "AuditEvent must have recorded" in result.errors
        assert "AuditEvent must have agent" in result.errors

    def test_require_valid_audit_event(self, validator):
        """Invalid AuditEvents raise."""
        with pytest.raises(AuditValidationError) as exc:
            validator.require_valid_audit_event(_resource("Patient", "p1"))
        assert "Resource is not an AuditEvent" in exc.value.errors

    def test_organization_warnings(self, validator):
        """Organizations without contact details validate with warnings."""
        result = validator.check(
            {"resourceType": "Organization", "id": "o1", "name": "Clinic"}
        )

        assert result.valid
        assert result.warnings == [
            "Organization type is recommended",
            "Contact information is recommended",
            "Address is recommended",
        ]

    def test_organization_needs_name(self, validator):
        """Organizations without a name fail."""
        result = validator.check(_resource("Organization", "o1"))
        assert result.to_dict()["errors"] == ["Organization name is required"]
