"""
FHIR Export Pipeline.

Gathers a patient's stored FHIR resources into a Bundle and hands the
serialized JSON to a download sink. Bundle construction is pure; the sink
is the only place a file actually leaves the system.
"""

import json
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Protocol

from healsync.audit.recorder import AuditRecorder
from healsync.config import Settings, get_settings
from healsync.core.exceptions import StorageError, ValidationError
from healsync.core.results import OperationResult
from healsync.healthcare import (
    FHIRValidator,
    assemble_bundle,
    build_organization_bundle,
)
from healsync.healthcare.fhir_base import FHIRJson
from healsync.models.identity import Actor
from healsync.models.legacy import OrganizationRecord
from healsync.storage.base import (
    FHIR_ENCOUNTERS,
    FHIR_PATIENTS,
    DocumentStore,
    FieldFilter,
    patient_resources,
)
from healsync.utils.datetime_utils import utc_now
from healsync.utils.logging import get_logger

logger = get_logger(__name__)

# (resourceType, field ordered by, newest first)
CLINICAL_RESOURCE_ORDER = (
    ("Observation", "effectiveDateTime"),
    ("Condition", "recordedDate"),
    ("AllergyIntolerance", "recordedDate"),
)

JSON_MEDIA_TYPE = "application/json"


@dataclass
class Download:
    """A file handed to the download collaborator."""

    filename: str
    content: str
    media_type: str = JSON_MEDIA_TYPE

    @property
    def data(self) -> bytes:
        """Content encoded as UTF-8."""
        return self.content.encode("utf-8")


class DownloadSink(Protocol):
    """Delivers an export to the user (browser download, file, ...)."""

    async def deliver(self, download: Download) -> None:
        """Deliver one file."""
        ...


class MemoryDownloadSink:
    """Download sink that keeps every delivered file in memory."""

    def __init__(self) -> None:
        """Initialize with no downloads."""
        self.downloads: List[Download] = []

    async def deliver(self, download: Download) -> None:
        """Keep the file."""
        self.downloads.append(download)

    @property
    def last(self) -> Optional[Download]:
        """Most recently delivered file."""
        return self.downloads[-1] if self.downloads else None


class ExportPipeline:
    """Builds and delivers FHIR exports."""

    def __init__(
        self,
        store: DocumentStore,
        recorder: AuditRecorder,
        sink: Optional[DownloadSink] = None,
        validator: Optional[FHIRValidator] = None,
        settings: Optional[Settings] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """Initialize the pipeline.

        Args:
            store: Document store holding the FHIR collections
            recorder: Audit recorder notified of every patient export
            sink: Download collaborator; exports are kept in memory if omitted
            validator: Structural validator
            settings: Application settings
            clock: Source of the current time for filenames and bundles
        """
        self.store = store
        self.recorder = recorder
        self.sink = sink or MemoryDownloadSink()
        self.validator = validator or FHIRValidator()
        self.settings = settings or get_settings()
        self.clock = clock or utc_now

    async def collect_patient_resources(
        self, patient_id: str, include_encounters: bool = True
    ) -> List[FHIRJson]:
        """Patient, Observations, Conditions, AllergyIntolerances, Encounters.

        Raises:
            StorageError: If the store cannot be read
        """
        resources: List[FHIRJson] = []

        patient = await self.store.get(FHIR_PATIENTS, patient_id)
        if patient is not None:
            resources.append(patient)

        collection = patient_resources(patient_id)
        for resource_type, order_by in CLINICAL_RESOURCE_ORDER:
            resources.extend(
                await self.store.query(
                    collection,
                    [FieldFilter("resourceType", resource_type)],
                    order_by=order_by,
                    descending=True,
                )
            )

        if include_encounters:
            resources.extend(
                await self.store.query(
                    FHIR_ENCOUNTERS,
                    [FieldFilter("subject.reference", f"Patient/{patient_id}")],
                    order_by="period.start",
                    descending=True,
                )
            )

        return resources

    async def export_patient_bundle(
        self,
        patient_id: str,
        actor: Actor,
        include_encounters: bool = True,
        network_address: Optional[str] = None,
    ) -> OperationResult[Dict[str, Any]]:
        """Export a patient's FHIR data as a downloadable collection Bundle.

        A patient without any stored resources still exports, as an empty
        Bundle. Every successful export is recorded in the audit trail.

        Args:
            patient_id: Patient to export
            actor: User requesting the export
            include_encounters: Whether visit Encounters are included
            network_address: Client IP address, if known

        Returns:
            Result with ``bundle``, ``resourceCount`` and ``filename``
        """
        try:
            resources = await self.collect_patient_resources(
                patient_id, include_encounters
            )
        except StorageError as e:
            logger.error("patient_export_failed", patient_id=patient_id, error=str(e))
            return OperationResult.fail(str(e))

        now = self.clock()
        bundle = assemble_bundle(resources, "collection", timestamp=now)
        filename = f"fhir-export-{patient_id}-{now:%Y-%m-%d}.json"
        await self.sink.deliver(Download(filename, self.to_json(bundle)))

        exported_types = list(dict.fromkeys(r["resourceType"] for r in resources))
        audit = await self.recorder.record_export(
            actor, patient_id, exported_types, network_address=network_address
        )
        if not audit:
            logger.error(
                "export_audit_failed", patient_id=patient_id, error=audit.error
            )

        logger.info(
            "patient_exported",
            patient_id=patient_id,
            resource_count=len(resources),
            filename=filename,
        )
        return OperationResult.ok(
            {"bundle": bundle, "resourceCount": len(resources), "filename": filename},
            message=f"Exported {len(resources)} FHIR resources",
            audit_id=audit.details.get("audit_id"),
        )

    async def get_patient_bundle(
        self, patient_id: str, include_encounters: bool = True
    ) -> OperationResult[FHIRJson]:
        """A patient's resources as a searchset Bundle, without download."""
        try:
            resources = await self.collect_patient_resources(
                patient_id, include_encounters
            )
        except StorageError as e:
            logger.error("patient_bundle_failed", patient_id=patient_id, error=str(e))
            return OperationResult.fail(str(e))
        return OperationResult.ok(
            assemble_bundle(resources, "searchset", timestamp=self.clock())
        )

    async def validate_patient_data(
        self, patient_id: str
    ) -> OperationResult[Dict[str, Any]]:
        """Count a patient's stored resources and report problems."""
        try:
            resources = await self.collect_patient_resources(patient_id, True)
        except StorageError as e:
            logger.error(
                "patient_validation_failed", patient_id=patient_id, error=str(e)
            )
            return OperationResult.fail(str(e))

        counts: Dict[str, Any] = {
            "Patient": False,
            "Observations": 0,
            "Conditions": 0,
            "Allergies": 0,
            "Encounters": 0,
        }
        keys = {
            "Observation": "Observations",
            "Condition": "Conditions",
            "AllergyIntolerance": "Allergies",
            "Encounter": "Encounters",
        }
        errors: List[str] = []

        for resource in resources:
            resource_type = resource.get("resourceType")
            if resource_type == "Patient":
                counts["Patient"] = True
            elif resource_type in keys:
                counts[keys[resource_type]] += 1
            result = self.validator.check(resource)
            errors.extend(
                f"{resource_type}/{resource.get('id')}: {error}"
                for error in result.errors
            )

        if not counts["Patient"]:
            errors.insert(0, "Patient resource not found")

        return OperationResult.ok(
            {"valid": not errors, "resources": counts, "errors": errors}
        )

    async def export_all(self) -> OperationResult[Dict[str, Any]]:
        """Export every patient into one master collection Bundle."""
        try:
            patient_ids = await self.store.list_ids(FHIR_PATIENTS)
            resources: List[FHIRJson] = []
            for patient_id in patient_ids:
                resources.extend(await self.collect_patient_resources(patient_id))
        except StorageError as e:
            logger.error("master_export_failed", error=str(e))
            return OperationResult.fail(str(e))

        now = self.clock()
        bundle = assemble_bundle(
            resources,
            "collection",
            bundle_id=f"master-export-{int(now.timestamp() * 1000)}",
            timestamp=now,
        )
        filename = f"fhir-master-export-{now:%Y-%m-%d}.json"
        await self.sink.deliver(Download(filename, self.to_json(bundle)))

        logger.info(
            "master_exported", patients=len(patient_ids), resources=len(resources)
        )
        return OperationResult.ok(
            {
                "patients": len(patient_ids),
                "totalResources": len(resources),
                "filename": filename,
            },
            message=f"Exported {len(patient_ids)} patients' FHIR data",
        )

    async def export_organization(
        self, org: OrganizationRecord
    ) -> OperationResult[Dict[str, Any]]:
        """Export an institution as an Organization + services Bundle."""
        try:
            bundle = build_organization_bundle(org)
        except ValidationError as e:
            logger.warning(
                "organization_export_invalid", org_id=org.id, errors=e.errors
            )
            return OperationResult.fail("FHIR validation failed", errors=e.errors)

        result = self.validator.check(bundle["entry"][0]["resource"])
        if not result.valid:
            logger.warning(
                "organization_export_invalid", org_id=org.id, errors=result.errors
            )
            return OperationResult.fail("FHIR validation failed", errors=result.errors)

        filename = f"organization-{org.id}-fhir.json"
        content = self.to_json(bundle)
        await self.sink.deliver(Download(filename, content))
        return OperationResult.ok(
            {"json": content, "filename": filename, "warnings": result.warnings}
        )

    def to_json(self, bundle: FHIRJson) -> str:
        """Serialize a bundle the way downloads are written."""
        return json.dumps(
            bundle, indent=self.settings.export_indent, ensure_ascii=False
        )
