"""Document storage collaborator for HealSync."""

from healsync.storage.base import (
    DocumentStore,
    FieldFilter,
    WriteOperation,
    get_path,
)
from healsync.storage.memory_backend import InMemoryDocumentStore

__all__ = [
    "DocumentStore",
    "FieldFilter",
    "InMemoryDocumentStore",
    "WriteOperation",
    "get_path",
]
