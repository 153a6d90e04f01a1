"""Unusual access pattern detection over a patient's audit log."""

from datetime import datetime, timedelta
from typing import List, Optional, Sequence

from healsync.models.audit_views import AuditConcern, LogEntry
from healsync.utils.datetime_utils import as_utc, parse_timestamp, utc_now

WINDOW = timedelta(hours=24)

# Exceeding either threshold raises a concern; reaching it does not
MAX_DOCTORS_PER_WINDOW = 3
MAX_ACCESSES_PER_WINDOW = 10


def _in_window(entry: LogEntry, since: datetime) -> bool:
    moment = parse_timestamp(entry.timestamp)
    return moment is not None and moment > since


def detect_concerns(
    entries: Sequence[LogEntry], now: Optional[datetime] = None
) -> List[AuditConcern]:
    """Flag access patterns a patient should know about.

    The doctor and frequency rules look at the trailing 24 hours; failed
    attempts are counted over the whole log. Each rule fires independently.

    Args:
        entries: Formatted log entries
        now: Reference time; defaults to the current time

    Returns:
        Concerns in rule order
    """
    since = as_utc(now or utc_now()) - WINDOW
    recent = [entry for entry in entries if _in_window(entry, since)]
    doctors = {entry.actor for entry in recent if entry.is_known_actor}

    concerns = []
    if len(doctors) > MAX_DOCTORS_PER_WINDOW:
        concerns.append(
            AuditConcern(
                type="multiple_doctors",
                message=(
                    f"{len(doctors)} different doctors accessed your records "
                    "in the last 24 hours"
                ),
                severity="medium",
            )
        )

    if len(recent) > MAX_ACCESSES_PER_WINDOW:
        concerns.append(
            AuditConcern(
                type="high_frequency",
                message=(
                    f"Your records were accessed {len(recent)} times "
                    "in the last 24 hours"
                ),
                severity="high",
            )
        )

    failed = sum(1 for entry in entries if not entry.authorized)
    if failed:
        concerns.append(
            AuditConcern(
                type="failed_attempts",
                message=f"{failed} unauthorized access attempts detected",
                severity="high",
            )
        )

    return concerns
