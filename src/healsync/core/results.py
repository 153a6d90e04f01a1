"""Operation result values returned across component boundaries.

Storage failures are reported to callers as an ``OperationResult`` instead of
an exception, so UI-facing code can render a retry affordance.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Generic, Optional, TypeVar

T = TypeVar("T")


@dataclass
class OperationResult(Generic[T]):
    """Outcome of a service operation."""

    success: bool
    data: Optional[T] = None
    error: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def ok(cls, data: Optional[T] = None, **details: Any) -> "OperationResult[T]":
        """Build a successful result."""
        return cls(success=True, data=data, details=details)

    @classmethod
    def fail(cls, error: str, **details: Any) -> "OperationResult[T]":
        """Build a failed result carrying a readable error."""
        return cls(success=False, error=error, details=details)

    def __bool__(self) -> bool:
        return self.success
