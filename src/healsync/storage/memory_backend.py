"""In-memory storage backend.

Backs the engine in development and tests. Documents are deep-copied on the
way in and out so callers never share mutable state with the store.
"""

import asyncio
import copy
from collections import defaultdict
from typing import Any, Dict, List, Optional, Sequence

from healsync.core.exceptions import StorageError
from healsync.storage.base import (
    DocumentStore,
    FieldFilter,
    WriteKind,
    WriteOperation,
    get_path,
)
from healsync.utils.logging import get_logger

logger = get_logger(__name__)


class InMemoryDocumentStore(DocumentStore):
    """Dictionary-backed document store."""

    def __init__(self, max_batch_size: int = 500) -> None:
        """Initialize an empty store.

        Args:
            max_batch_size: Largest batch accepted by ``commit_batch``
        """
        self.max_batch_size = max_batch_size
        self._collections: Dict[str, Dict[str, Dict[str, Any]]] = defaultdict(dict)
        self._lock = asyncio.Lock()
        self.batches_committed = 0

    async def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        """Fetch one document by id."""
        document = self._collections.get(collection, {}).get(doc_id)
        return copy.deepcopy(document) if document is not None else None

    async def set(
        self,
        collection: str,
        doc_id: str,
        data: Dict[str, Any],
        merge: bool = False,
    ) -> None:
        """Create or replace a document."""
        async with self._lock:
            self._apply(WriteOperation(collection, doc_id, data, merge=merge))

    async def delete(self, collection: str, doc_id: str) -> None:
        """Delete a document if present."""
        async with self._lock:
            self._apply(WriteOperation(collection, doc_id, kind=WriteKind.DELETE))

    async def query(
        self,
        collection: str,
        filters: Sequence[FieldFilter] = (),
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """Return matching documents."""
        documents = [
            doc
            for doc in self._collections.get(collection, {}).values()
            if all(f.matches(doc) for f in filters)
        ]

        if order_by:
            # Documents without the field sort last in either direction
            present = [d for d in documents if get_path(d, order_by) is not None]
            missing = [d for d in documents if get_path(d, order_by) is None]
            present.sort(key=lambda d: get_path(d, order_by), reverse=descending)
            documents = present + missing

        if limit is not None:
            documents = documents[:limit]

        return copy.deepcopy(documents)

    async def commit_batch(self, operations: Sequence[WriteOperation]) -> int:
        """Apply all operations or none."""
        if len(operations) > self.max_batch_size:
            raise StorageError(
                f"Batch of {len(operations)} exceeds limit of {self.max_batch_size}"
            )
        async with self._lock:
            for operation in operations:
                self._apply(operation)
            self.batches_committed += 1
        logger.debug("batch_committed", operations=len(operations))
        return len(operations)

    async def list_ids(self, collection: str) -> List[str]:
        """List document ids in a collection."""
        return list(self._collections.get(collection, {}).keys())

    def _apply(self, operation: WriteOperation) -> None:
        documents = self._collections[operation.collection]
        if operation.kind == WriteKind.DELETE:
            documents.pop(operation.doc_id, None)
            return

        data = copy.deepcopy(operation.data)
        if operation.merge and operation.doc_id in documents:
            documents[operation.doc_id].update(data)
        else:
            documents[operation.doc_id] = data
