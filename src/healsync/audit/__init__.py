"""Audit trail: recording, querying and patient-facing views."""

from healsync.audit.anomaly import detect_concerns
from healsync.audit.display import (
    AuditDisplayService,
    format_for_display,
    group_by_date,
    summarize,
)
from healsync.audit.query import AuditQueryService
from healsync.audit.recorder import AuditRecorder, with_audit_log

__all__ = [
    "AuditDisplayService",
    "AuditQueryService",
    "AuditRecorder",
    "detect_concerns",
    "format_for_display",
    "group_by_date",
    "summarize",
    "with_audit_log",
]
