"""Tests for the patient-facing audit trail views and anomaly detection."""

from datetime import timedelta

import pytest

from healsync.audit import (
    AuditRecorder,
    detect_concerns,
    format_for_display,
    group_by_date,
    summarize,
)
from healsync.audit.display import date_label
from healsync.healthcare import AuditEventResource, AuditOutcome
from healsync.models.audit_views import UNKNOWN_ACTOR, LogEntry
from healsync.models.identity import Actor
from healsync.utils.datetime_utils import to_fhir_instant
from tests.conftest import sequential_ids

pytestmark = pytest.mark.audit_trail


def entry(moment, actor="Dr. Ada Okafor", authorized=True, entry_id=None):
    """Log entry at a moment."""
    return LogEntry(
        id=entry_id,
        timestamp=to_fhir_instant(moment) if moment is not None else None,
        actor=actor,
        action="Viewed your medical records",
        authorized=authorized,
    )


class TestFormatForDisplay:
    """AuditEvent to log entry."""

    def test_access_event(self, audit_builder, doctor):
        """Actor, friendly action, details and location."""
        event = audit_builder.build_access(
            doctor, "pat-1", description="Opened chart", network_address="10.0.0.7"
        )

        log = format_for_display(event)

        assert log.id == "audit-1"
        assert log.timestamp == "2024-05-01T12:00:00.000Z"
        assert log.actor == "Dr. Ada Okafor"
        assert log.action == "Viewed your medical records"
        assert log.details == "Opened chart"
        assert log.location == "10.0.0.7"
        assert log.authorized is True

    def test_export_and_failure(self, audit_builder, doctor):
        """Exports read as downloads; non-zero outcomes are unauthorized."""
        export = format_for_display(
            audit_builder.build_export(doctor, "pat-1", ["Patient"])
        )
        failed = format_for_display(
            audit_builder.build_access(
                doctor, "pat-1", outcome=AuditOutcome.MINOR_FAILURE
            )
        )

        assert export.action == "Downloaded your medical data"
        assert failed.authorized is False

    def test_sparse_event(self):
        """Events without agents or a known subtype still format."""
        log = format_for_display(
            {
                "resourceType": "AuditEvent",
                "id": "a1",
                "subtype": [{"code": "vread", "display": "Version Read"}],
                "outcome": "0",
            }
        )

        assert log.actor == UNKNOWN_ACTOR
        assert log.action == "Accessed your data"
        assert log.details == ""
        assert log.location == ""

    def test_display_name_fallback(self):
        """Without an agent name the reference display is used."""
        log = format_for_display(
            {
                "agent": [
                    {"who": {"display": "HealSync Web Application"}},
                    {"who": {"display": "Dr. Bello"}, "requestor": True},
                ]
            }
        )
        assert log.actor == "Dr. Bello"


class TestDateGrouping:
    """Grouping by calendar day."""

    def test_labels(self, now):
        """Today, Yesterday, then the long-form date."""
        assert date_label(now - timedelta(hours=4), now) == "Today"
        assert date_label(now - timedelta(hours=25), now) == "Yesterday"
        assert date_label(now - timedelta(days=11), now) == "Saturday, April 20, 2024"

    def test_group_by_date(self, now):
        """Entries carry their time of day; bad timestamps are grouped apart."""
        entries = [
            entry(now - timedelta(hours=4), entry_id="a"),
            entry(now - timedelta(hours=25), entry_id="b"),
            entry(None, entry_id="c"),
        ]

        grouped = group_by_date(entries, now)

        assert list(grouped) == ["Today", "Yesterday", "Unknown date"]
        assert grouped["Today"][0].time == "08:00 AM"
        assert grouped["Yesterday"][0].id == "b"
        assert grouped["Unknown date"][0].time is None


class TestSummarize:
    """Dashboard summary."""

    def test_summary(self, now):
        """Seven-day count, doctors in first-seen order, last access."""
        entries = [
            entry(now - timedelta(hours=1), "Dr. B"),
            entry(now - timedelta(days=2), "Dr. A"),
            entry(now - timedelta(days=3), "Dr. B"),
            entry(now - timedelta(days=8), "Dr. C"),
            entry(now - timedelta(days=9), UNKNOWN_ACTOR),
        ]

        summary = summarize(entries, now)

        assert summary.total_access == 3
        assert summary.unique_doctors == ["Dr. B", "Dr. A", "Dr. C"]
        assert summary.last_access == entries[0].timestamp
        assert len(summary.recent_activity) == 5

    def test_recent_activity_capped(self, now):
        """Only the five most recent entries are shown."""
        entries = [entry(now - timedelta(minutes=m)) for m in range(8)]
        summary = summarize(entries, now).to_dict()

        assert len(summary["recentActivity"]) == 5
        assert summary["totalAccess"] == 8

    def test_empty(self, now):
        """Empty logs summarize to zeros."""
        summary = summarize([], now)
        assert summary.total_access == 0
        assert summary.last_access is None


class TestDetectConcerns:
    """Unusual access patterns."""

    def _by_doctors(self, now, count):
        return [
            entry(now - timedelta(minutes=i), f"Dr. {i}") for i in range(count)
        ]

    def test_three_doctors_is_normal(self, now):
        """Reaching the doctor threshold does not fire."""
        assert detect_concerns(self._by_doctors(now, 3), now) == []

    def test_four_doctors(self, now):
        """Exceeding it fires a medium concern."""
        concerns = detect_concerns(self._by_doctors(now, 4), now)

        assert len(concerns) == 1
        assert concerns[0].type == "multiple_doctors"
        assert concerns[0].severity == "medium"
        assert concerns[0].message == (
            "4 different doctors accessed your records in the last 24 hours"
        )

    def test_unknown_actor_not_counted(self, now):
        """The placeholder actor is not a doctor."""
        entries = self._by_doctors(now, 3) + [entry(now, UNKNOWN_ACTOR)]
        assert detect_concerns(entries, now) == []

    def test_ten_accesses_is_normal(self, now):
        """Reaching the frequency threshold does not fire."""
        entries = [entry(now - timedelta(minutes=i)) for i in range(10)]
        assert detect_concerns(entries, now) == []

    def test_eleven_accesses(self, now):
        """Exceeding it fires a high concern."""
        entries = [entry(now - timedelta(minutes=i)) for i in range(11)]
        concerns = detect_concerns(entries, now)

        assert [c.type for c in concerns] == ["high_frequency"]
        assert concerns[0].severity == "high"
        assert concerns[0].message == (
            "Your records were accessed 11 times in the last 24 hours"
        )

    def test_window_is_strict(self, now):
        """Accesses exactly 24 hours old are outside the window."""
        entries = [entry(now - timedelta(hours=24)) for _ in range(11)]
        assert detect_concerns(entries, now) == []

    def test_failed_attempts_over_whole_log(self, now):
        """Failed attempts count regardless of age."""
        entries = [
            entry(now - timedelta(days=30), authorized=False),
            entry(now - timedelta(minutes=5), authorized=False),
            entry(now - timedelta(minutes=6)),
        ]

        concerns = detect_concerns(entries, now)

        assert [c.to_dict() for c in concerns] == [
            {
                "type": "failed_attempts",
                "message": "2 unauthorized access attempts detected",
                "severity": "high",
            }
        ]


class TestAuditDisplayService:
    """End-to-end display data."""

    @pytest.fixture
    def recent_recorder(self, store, settings, now):
        """Recorder whose events fall within the last hour."""
        moments = iter(now - timedelta(minutes=m) for m in (50, 40, 30, 20, 10))
        builder = AuditEventResource(
            settings=settings,
            id_factory=sequential_ids("evt"),
            clock=lambda: next(moments),
        )
        return AuditRecorder(store, builder=builder, settings=settings)

    @pytest.mark.asyncio
    async def test_repeated_reads_by_one_doctor(
        self, recent_recorder, display_service, doctor, now
    ):
        """Four reads by the same doctor within an hour raise no concern."""
        for _ in range(4):
            await recent_recorder.record(doctor, "pat-1")

        result = await display_service.get_display_data("pat-1", now)

        assert result.success
        data = result.data
        assert data["concerns"] == []
        assert data["summary"]["totalAccess"] == 4
        assert data["summary"]["uniqueDoctors"] == [doctor.name]
        assert [log["id"] for log in data["logs"]] == [
            "evt-4",
            "evt-3",
            "evt-2",
            "evt-1",
        ]
        assert list(data["groupedLogs"]) == ["Today"]
        assert data["groupedLogs"]["Today"][0]["time"] == "11:40 AM"

    @pytest.mark.asyncio
    async def test_other_patients_excluded(
        self, recent_recorder, display_service, doctor, now
    ):
        """Only the requested patient's events are shown."""
        await recent_recorder.record(doctor, "pat-1")
        await recent_recorder.record(Actor(id="doc-9", name="Dr. Z"), "pat-2")

        result = await display_service.get_formatted_logs("pat-1")

        assert [log.id for log in result.data] == ["evt-1"]
