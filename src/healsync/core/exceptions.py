"""Core Exceptions Module.

This module defines custom exceptions used throughout the HealSync engine.
"""

from typing import List, Optional


class HealSyncError(Exception):
    """Base exception for all HealSync errors."""


class ValidationError(HealSyncError):
    """Raised when a FHIR resource fails structural validation."""

    def __init__(self, message: str, errors: Optional[List[str]] = None):
        """Initialize with the list of individual validation errors."""
        super().__init__(message)
        self.errors = errors or []


class AuditValidationError(ValidationError):
    """Raised when an AuditEvent is incomplete and must not be persisted."""


class ConfigurationError(HealSyncError):
    """Raised when configuration is invalid or missing."""


class StorageError(HealSyncError):
    """Raised when document storage operations fail."""
