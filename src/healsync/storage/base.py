"""Base storage abstraction layer.

The engine treats the document store as a key-value store with equality
queries. Every document lives under a logical collection path such as
``fhir/auditEvents`` and is addressed by its id.

Note: This module handles PHI-bearing documents. Backends are responsible
for access control and encryption at rest.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional, Sequence, TypeVar

from healsync.utils.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


# Legacy collections (system of record)
USERS = "users"
USER_PROFILES = "userProfile"
MEDICAL_RECORDS = "medicalRecords"
ORGANIZATIONS = "organizations"

# FHIR collections
FHIR_PATIENTS = "fhir/patients"
FHIR_PRACTITIONERS = "fhir/practitioners"
FHIR_ORGANIZATIONS = "fhir/organizations"
FHIR_HEALTHCARE_SERVICES = "fhir/healthcareServices"
FHIR_ENCOUNTERS = "fhir/encounters"
FHIR_AUDIT_EVENTS = "fhir/auditEvents"


def patient_resources(patient_id: str) -> str:
    """Collection holding the clinical resources derived for one patient."""
    return f"{FHIR_PATIENTS}/{patient_id}/resources"


def chunked(items: Sequence[T], size: int) -> Iterator[List[T]]:
    """Split a sequence into lists of at most ``size`` items."""
    for start in range(0, len(items), size):
        yield list(items[start : start + size])


def iter_path(document: Any, path: str) -> Iterator[Any]:
    """Yield every value reachable by a dotted path.

    Lists along the path fan out, so ``entity.what.reference`` yields the
    reference of each entity.
    """
    parts = path.split(".") if path else []

    def walk(node: Any, index: int) -> Iterator[Any]:
        if isinstance(node, list):
            for item in node:
                yield from walk(item, index)
            return
        if index == len(parts):
            yield node
            return
        if isinstance(node, dict) and parts[index] in node:
            yield from walk(node[parts[index]], index + 1)

    yield from walk(document, 0)


def get_path(document: Any, path: str) -> Any:
    """Return the first value at a dotted path, or None."""
    return next(iter_path(document, path), None)


@dataclass(frozen=True)
class FieldFilter:
    """Equality filter on a dotted document path.

    A document matches when any value reachable by ``path`` equals ``value``.
    """

    path: str
    value: Any

    def matches(self, document: Dict[str, Any]) -> bool:
        """Check the filter against one document."""
        return any(found == self.value for found in iter_path(document, self.path))


class WriteKind(str, Enum):
    """Kinds of batched write."""

    SET = "set"
    DELETE = "delete"


@dataclass
class WriteOperation:
    """One write inside a batch."""

    collection: str
    doc_id: str
    data: Dict[str, Any] = field(default_factory=dict)
    kind: WriteKind = WriteKind.SET
    merge: bool = False


class DocumentStore(ABC):
    """Abstract document store consumed by the engine.

    All methods raise :class:`healsync.core.exceptions.StorageError` on I/O
    failure. Reads that find nothing return ``None`` or an empty list.
    """

    #: Largest batch the backend accepts in one commit
    max_batch_size: int = 500

    @abstractmethod
    async def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        """Fetch one document by id."""

    @abstractmethod
    async def set(
        self,
        collection: str,
        doc_id: str,
        data: Dict[str, Any],
        merge: bool = False,
    ) -> None:
        """Create or replace a document; ``merge`` updates top-level keys only."""

    @abstractmethod
    async def delete(self, collection: str, doc_id: str) -> None:
        """Delete a document. Missing documents are ignored."""

    @abstractmethod
    async def query(
        self,
        collection: str,
        filters: Sequence[FieldFilter] = (),
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """Return documents matching every filter, ordered and capped."""

    @abstractmethod
    async def commit_batch(self, operations: Sequence[WriteOperation]) -> int:
        """Apply a batch of writes.

        Returns:
            Number of operations applied. A backend that cannot apply the
            whole batch raises ``StorageError`` and applies none.
        """

    async def list_ids(self, collection: str) -> List[str]:
        """List document ids in a collection."""
        documents = await self.query(collection)
        return [doc["id"] for doc in documents if "id" in doc]
