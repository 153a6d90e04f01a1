"""Derived, non-persisted views over the audit trail."""

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional

UNKNOWN_ACTOR = "Unknown Doctor"


@dataclass
class LogEntry:
    """A human-readable audit log line."""

    id: Optional[str]
    timestamp: Optional[str]
    actor: str
    action: str
    details: str = ""
    location: str = ""
    authorized: bool = True
    time: Optional[str] = None

    @property
    def is_known_actor(self) -> bool:
        """True when the actor is a real name rather than the placeholder."""
        return bool(self.actor) and self.actor != UNKNOWN_ACTOR

    def to_dict(self) -> Dict[str, Any]:
        """Convert entry to dictionary."""
        data = asdict(self)
        if data["time"] is None:
            del data["time"]
        return data


@dataclass
class AuditConcern:
    """A flagged access pattern."""

    type: str
    message: str
    severity: str

    def to_dict(self) -> Dict[str, Any]:
        """Convert concern to dictionary."""
        return asdict(self)


@dataclass
class AuditSummary:
    """Rolling summary of a patient's audit trail."""

    total_access: int = 0
    unique_doctors: List[str] = field(default_factory=list)
    last_access: Optional[str] = None
    recent_activity: List[LogEntry] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Convert summary to the camelCase dashboard shape."""
        return {
            "totalAccess": self.total_access,
            "uniqueDoctors": list(self.unique_doctors),
            "lastAccess": self.last_access,
            "recentActivity": [entry.to_dict() for entry in self.recent_activity],
        }
