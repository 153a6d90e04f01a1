"""
Patient-facing audit trail views.

Turns raw AuditEvents into readable log entries, groups them by calendar
day and summarizes recent activity for the patient dashboard.
"""

from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Sequence

from healsync.audit.anomaly import detect_concerns
from healsync.audit.query import AuditQueryService
from healsync.config import Settings, get_settings
from healsync.core.results import OperationResult
from healsync.models.audit_views import UNKNOWN_ACTOR, AuditSummary, LogEntry
from healsync.storage.base import get_path, iter_path
from healsync.utils.datetime_utils import as_utc, parse_timestamp, utc_now
from healsync.utils.logging import get_logger

logger = get_logger(__name__)

FRIENDLY_ACTIONS = {
    "Read": "Viewed your medical records",
    "Create": "Added new medical record",
    "Update": "Updated medical record",
    "Delete": "Deleted medical record",
    "Login": "Logged into the system",
    "Logout": "Logged out of the system",
    "Export": "Downloaded your medical data",
}
DEFAULT_ACTION = "Accessed your data"

SUCCESS_OUTCOME = "0"
PATIENT_ENTITY_ROLE = "1"
SUMMARY_WINDOW = timedelta(days=7)
RECENT_ACTIVITY_SIZE = 5
UNKNOWN_DATE = "Unknown date"

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def _subtype_display(event: Dict[str, Any]) -> Optional[str]:
    # R4 Coding list, or a CodeableConcept list written by older clients
    return get_path(event, "subtype.display") or get_path(
        event, "subtype.coding.display"
    )


def _patient_entity(event: Dict[str, Any]) -> Dict[str, Any]:
    for entity in event.get("entity") or []:
        codes = list(iter_path(entity, "type.code")) + list(
            iter_path(entity, "type.coding.code")
        )
        if PATIENT_ENTITY_ROLE in codes:
            return entity
    return {}


def format_for_display(event: Dict[str, Any]) -> LogEntry:
    """Convert an AuditEvent into a readable log entry.

    Args:
        event: AuditEvent JSON

    Returns:
        Log entry; the actor is the requesting agent, or the placeholder
        name when the event has none
    """
    requestor = next(
        (agent for agent in event.get("agent") or [] if agent.get("requestor")),
        {},
    )
    actor = (
        requestor.get("name")
        or get_path(requestor, "who.display")
        or UNKNOWN_ACTOR
    )

    return LogEntry(
        id=event.get("id"),
        timestamp=event.get("recorded"),
        actor=actor,
        action=FRIENDLY_ACTIONS.get(_subtype_display(event) or "", DEFAULT_ACTION),
        details=_patient_entity(event).get("description", ""),
        location=get_path(requestor, "network.address") or "",
        authorized=event.get("outcome") == SUCCESS_OUTCOME,
    )


def date_label(moment: datetime, now: datetime) -> str:
    """Label a moment relative to now by calendar date (UTC)."""
    day = as_utc(moment).date()
    today = as_utc(now).date()
    if day == today:
        return "Today"
    if day == today - timedelta(days=1):
        return "Yesterday"
    return f"{day:%A}, {day:%B} {day.day}, {day.year}"


def group_by_date(
    entries: Sequence[LogEntry], now: Optional[datetime] = None
) -> Dict[str, List[LogEntry]]:
    """Group entries under "Today", "Yesterday" or a long-form date.

    Each grouped entry also carries its time of day.
    """
    now = now or utc_now()
    grouped: Dict[str, List[LogEntry]] = {}
    for entry in entries:
        moment = parse_timestamp(entry.timestamp)
        if moment is None:
            grouped.setdefault(UNKNOWN_DATE, []).append(entry)
            continue
        grouped.setdefault(date_label(moment, now), []).append(
            replace(entry, time=f"{moment:%I:%M %p}")
        )
    return grouped


def summarize(
    entries: Sequence[LogEntry], now: Optional[datetime] = None
) -> AuditSummary:
    """Summarize a log that is already sorted newest first.

    Only the access count is limited to the trailing seven days; the doctor
    list and last access cover the whole log.
    """
    since = as_utc(now or utc_now()) - SUMMARY_WINDOW
    summary = AuditSummary(recent_activity=list(entries[:RECENT_ACTIVITY_SIZE]))

    latest: Optional[datetime] = None
    for entry in entries:
        moment = parse_timestamp(entry.timestamp)
        if moment is not None:
            if moment > since:
                summary.total_access += 1
            if latest is None or moment > latest:
                latest = moment
                summary.last_access = entry.timestamp
        if entry.is_known_actor and entry.actor not in summary.unique_doctors:
            summary.unique_doctors.append(entry.actor)

    return summary


class AuditDisplayService:
    """Builds the audit trail view of a patient's dashboard."""

    def __init__(
        self, query_service: AuditQueryService, settings: Optional[Settings] = None
    ):
        """Initialize with the audit query layer."""
        self.query_service = query_service
        self.settings = settings or get_settings()

    async def get_formatted_logs(
        self, patient_id: str
    ) -> OperationResult[List[LogEntry]]:
        """Fetch a patient's audit trail as log entries, newest first."""
        result = await self.query_service.query_by_subject(
            patient_id, limit=self.settings.audit_display_limit
        )
        if not result.success:
            return OperationResult.fail(result.error or "Audit query failed")

        logs = [format_for_display(event) for event in result.data or []]
        logs.sort(key=lambda e: parse_timestamp(e.timestamp) or _EPOCH, reverse=True)
        return OperationResult.ok(logs, total=len(logs))

    async def get_display_data(
        self, patient_id: str, now: Optional[datetime] = None
    ) -> OperationResult[Dict[str, Any]]:
        """Logs, date groups, summary and concerns for one patient."""
        now = now or utc_now()
        logs_result = await self.get_formatted_logs(patient_id)
        if not logs_result.success:
            logger.warning(
                "audit_display_unavailable",
                patient_id=patient_id,
                error=logs_result.error,
            )
            return OperationResult.fail(logs_result.error or "Audit query failed")

        logs = logs_result.data or []
        grouped = group_by_date(logs, now)
        return OperationResult.ok(
            {
                "logs": [entry.to_dict() for entry in logs],
                "groupedLogs": {
                    label: [entry.to_dict() for entry in group]
                    for label, group in grouped.items()
                },
                "summary": summarize(logs, now).to_dict(),
                "concerns": [c.to_dict() for c in detect_concerns(logs, now)],
            }
        )
