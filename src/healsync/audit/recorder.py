"""
Audit Recorder.

Builds AuditEvents, validates them and appends them to the audit trail.
An event that fails validation is never written.
"""

from typing import Any, Awaitable, Callable, Dict, Optional, Sequence, TypeVar

from healsync.config import Settings, get_settings
from healsync.core.exceptions import StorageError, ValidationError
from healsync.core.results import OperationResult
from healsync.healthcare.audit_event_resource import (
    AuditAction,
    AuditEventResource,
    AuditOutcome,
    AuthEventKind,
)
from healsync.healthcare.fhir_validator import FHIRValidator
from healsync.models.identity import Actor
from healsync.storage.base import FHIR_AUDIT_EVENTS, DocumentStore
from healsync.utils.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

AuditResult = OperationResult[Dict[str, Any]]


class AuditRecorder:
    """Append-only writer for the audit trail."""

    def __init__(
        self,
        store: DocumentStore,
        builder: Optional[AuditEventResource] = None,
        validator: Optional[FHIRValidator] = None,
        settings: Optional[Settings] = None,
    ):
        """Initialize the recorder.

        Args:
            store: Document store receiving the events
            builder: AuditEvent builder; one is created from settings if omitted
            validator: Validator gating every write
            settings: Application settings
        """
        self.store = store
        self.settings = settings or get_settings()
        self.builder = builder or AuditEventResource(settings=self.settings)
        self.validator = validator or FHIRValidator()

    async def record(
        self,
        actor: Actor,
        subject_id: str,
        action: AuditAction = AuditAction.READ,
        resource_type: str = "Patient",
        outcome: AuditOutcome = AuditOutcome.SUCCESS,
        description: str = "",
        network_address: Optional[str] = None,
    ) -> AuditResult:
        """Record access to a patient's data.

        Returns:
            Result carrying the persisted event, or the reason it was not
            persisted
        """
        return await self._record(
            self.builder.build_access,
            actor=actor,
            patient_id=subject_id,
            action=action,
            resource_type=resource_type,
            outcome=outcome,
            description=description,
            network_address=network_address,
        )

    async def record_export(
        self,
        actor: Actor,
        subject_id: str,
        resources_exported: Sequence[str],
        network_address: Optional[str] = None,
    ) -> AuditResult:
        """Record that a patient's data was exported."""
        return await self._record(
            self.builder.build_export,
            actor=actor,
            patient_id=subject_id,
            resources_exported=resources_exported,
            network_address=network_address,
        )

    async def record_auth_event(
        self,
        actor: Actor,
        kind: AuthEventKind = AuthEventKind.LOGIN,
        outcome: AuditOutcome = AuditOutcome.SUCCESS,
        network_address: Optional[str] = None,
    ) -> AuditResult:
        """Record a login or logout."""
        return await self._record(
            self.builder.build_auth,
            actor=actor,
            kind=kind,
            outcome=outcome,
            network_address=network_address,
        )

    async def persist(self, event: Dict[str, Any]) -> AuditResult:
        """Validate and write an already built AuditEvent."""
        try:
            self.validator.require_valid_audit_event(event)
        except ValidationError as e:
            logger.error(
                "audit_event_rejected", audit_id=event.get("id"), errors=e.errors
            )
            return OperationResult.fail(str(e), errors=e.errors)

        try:
            await self.store.set(FHIR_AUDIT_EVENTS, event["id"], event)
        except StorageError as e:
            logger.error("audit_event_write_failed", audit_id=event["id"], error=str(e))
            return OperationResult.fail(str(e), audit_id=event["id"])

        logger.info(
            "audit_event_recorded",
            audit_id=event["id"],
            action=event.get("action"),
            outcome=event.get("outcome"),
        )
        return OperationResult.ok(event, audit_id=event["id"])

    async def _record(
        self, build: Callable[..., Dict[str, Any]], **kwargs: Any
    ) -> AuditResult:
        try:
            event = build(**kwargs)
        except ValidationError as e:
            logger.error("audit_event_build_failed", errors=e.errors)
            return OperationResult.fail(str(e), errors=e.errors)
        return await self.persist(event)


async def with_audit_log(
    recorder: AuditRecorder,
    actor: Actor,
    subject_id: str,
    operation: Callable[[], Awaitable[T]],
    description: str = "Read Patient Data",
    action: AuditAction = AuditAction.READ,
    resource_type: str = "Patient",
    network_address: Optional[str] = None,
) -> T:
    """Run an operation and record exactly one AuditEvent for it.

    The event is recorded whether the operation succeeds or raises. A
    failure to write the event is logged and never replaces the operation's
    own result or exception.

    Args:
        recorder: Audit recorder
        actor: Acting user
        subject_id: Patient whose data the operation touches
        operation: Zero-argument coroutine function to run
        description: Description written into the event
        action: Audit action of the operation
        resource_type: Resource type the operation touches
        network_address: Client IP address, if known

    Returns:
        Whatever the operation returns
    """

    async def audit(outcome: AuditOutcome, text: str) -> None:
        try:
            result = await recorder.record(
                actor,
                subject_id,
                action=action,
                resource_type=resource_type,
                outcome=outcome,
                description=text,
                network_address=network_address,
            )
        except Exception as e:
            logger.exception("audit_log_failed", subject_id=subject_id, error=str(e))
            return
        if not result:
            logger.error("audit_log_failed", subject_id=subject_id, error=result.error)

    try:
        value = await operation()
    except Exception:
        await audit(AuditOutcome.SERIOUS_FAILURE, f"{description} - Failed")
        raise

    await audit(AuditOutcome.SUCCESS, description)
    return value
