"""Core primitives shared across HealSync components."""

from healsync.core.exceptions import (
    AuditValidationError,
    ConfigurationError,
    HealSyncError,
    StorageError,
    ValidationError,
)
from healsync.core.results import OperationResult

__all__ = [
    "AuditValidationError",
    "ConfigurationError",
    "HealSyncError",
    "OperationResult",
    "StorageError",
    "ValidationError",
]
