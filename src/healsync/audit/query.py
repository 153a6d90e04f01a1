"""Audit trail queries."""

from typing import Any, Dict, List, Optional

from healsync.config import Settings, get_settings
from healsync.core.exceptions import StorageError
from healsync.core.results import OperationResult
from healsync.storage.base import FHIR_AUDIT_EVENTS, DocumentStore, FieldFilter
from healsync.utils.logging import get_logger

logger = get_logger(__name__)

AuditEvents = OperationResult[List[Dict[str, Any]]]


class AuditQueryService:
    """Reads AuditEvents newest first.

    Every query filters on an exact reference string and caps its result at
    ``limit`` (the configured default when omitted). No match is an empty
    list, not an error.
    """

    def __init__(self, store: DocumentStore, settings: Optional[Settings] = None):
        """Initialize with the document store holding the audit trail."""
        self.store = store
        self.settings = settings or get_settings()

    async def query_by_subject(
        self, patient_id: str, limit: Optional[int] = None
    ) -> AuditEvents:
        """Events whose entities reference ``Patient/{patient_id}``."""
        return await self._query(
            FieldFilter("entity.what.reference", f"Patient/{patient_id}"), limit
        )

    async def query_by_actor(
        self, actor_id: str, limit: Optional[int] = None
    ) -> AuditEvents:
        """Events whose agents reference ``Practitioner/{actor_id}``."""
        return await self._query(
            FieldFilter("agent.who.reference", f"Practitioner/{actor_id}"), limit
        )

    async def query_by_entity(
        self, entity_reference: str, limit: Optional[int] = None
    ) -> AuditEvents:
        """Events with an entity referencing exactly ``entity_reference``."""
        return await self._query(
            FieldFilter("entity.what.reference", entity_reference), limit
        )

    async def _query(
        self, field_filter: FieldFilter, limit: Optional[int]
    ) -> AuditEvents:
        cap = limit if limit is not None else self.settings.audit_query_default_limit
        try:
            events = await self.store.query(
                FHIR_AUDIT_EVENTS,
                [field_filter],
                order_by="recorded",
                descending=True,
                limit=cap,
            )
        except StorageError as e:
            logger.error(
                "audit_query_failed",
                path=field_filter.path,
                value=field_filter.value,
                error=str(e),
            )
            return OperationResult.fail(str(e))

        logger.debug("audit_query", value=field_filter.value, count=len(events))
        return OperationResult.ok(events, total=len(events))
