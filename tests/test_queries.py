"""Tests for read-only roster queries."""
from datetime import date, datetime

import pytest

from hubrota.engine.queries import (
    check_availability,
    find_contacts_by_past_role,
    roster_dataframe,
    upcoming_roster,
)
from hubrota.errors import ErrorCode, RotaError
from hubrota.models.assignee import Guest
from hubrota.models.entities import Occurrence, Rota

from conftest import MIDWEEK_EVENT, SUNDAY_EVENT, TODAY

O1 = "occ-2025-09-07"


class TestCheckAvailability:
    """Same-day conflicts across every rota except the one being edited."""

    def test_reports_other_rota_same_day(self, repo, engine):
        engine.add_assignees("welcome", O1, ["alice"])
        conflicts = check_availability(repo, ["alice", "carol"], O1, current_rota_id="tea")
        assert conflicts == [{
            "contactId": "alice",
            "contactName": "Alice Smith",
            "rotaId": "welcome",
            "rotaRole": "Welcome",
            "eventName": "Sunday Service",
            "occurrenceId": O1,
            "occurrenceTime": "2025-09-07T10:30:00",
        }]

    def test_current_rota_excluded(self, repo, engine):
        engine.add_assignees("welcome", O1, ["alice"])
        assert check_availability(repo, ["alice"], O1, current_rota_id="welcome") == []

    def test_spans_events_on_same_date(self, repo, engine):
        """An evening occurrence of another event on the same day still conflicts."""
        repo.add_occurrence(Occurrence(id="mid-0907", event_id=MIDWEEK_EVENT, starts_at=datetime(2025, 9, 7, 18)))
        repo.add_rota(Rota(id="band", event_id=MIDWEEK_EVENT, role="Band", capacity=4))
        engine.add_assignees("band", "mid-0907", ["carol"])
        conflicts = check_availability(repo, ["carol"], O1)
        assert [c["eventName"] for c in conflicts] == ["Midweek Group"]

    def test_other_days_ignored(self, repo, engine):
        engine.add_assignees("welcome", "occ-2025-09-14", ["alice"])
        assert check_availability(repo, ["alice"], O1) == []

    def test_unknown_occurrence(self, repo):
        with pytest.raises(RotaError) as exc:
            check_availability(repo, ["alice"], "nope")
        assert exc.value.code is ErrorCode.NOT_FOUND


class TestPastRole:
    """Suggestions from people who served in a role before."""

    def test_role_match_is_case_insensitive(self, repo, engine):
        repo.add_rota(Rota(id="tea-old", event_id=SUNDAY_EVENT, role="TEA ", capacity=3))
        engine.add_assignees("tea-old", O1, ["carol", "dave", Guest("Gus", "gus@example.com")])
        engine.add_assignees("tea", O1, ["alice"])
        assert find_contacts_by_past_role(repo, "tea", exclude_rota_id="tea") == ["carol", "dave"]
        assert find_contacts_by_past_role(repo, "Tea") == ["alice", "carol", "dave"]

    def test_blank_role(self, repo):
        assert find_contacts_by_past_role(repo, "  ") == []


class TestUpcomingRoster:
    """Roster rows for public display."""

    def test_rows_and_remaining(self, repo, engine):
        engine.add_assignees("welcome", O1, ["alice", Guest("Gus", "gus@example.com")])
        rows = upcoming_roster(repo, SUNDAY_EVENT, today=TODAY)
        first = [r for r in rows if r["occurrenceId"] == O1]
        assert [r["role"] for r in first] == ["Sound", "Tea", "Welcome"]
        welcome = first[-1]
        assert welcome["taken"] == 2
        assert welcome["spotsRemaining"] == 0
        assert welcome["assignees"] == ["Alice Smith", "Gus"]
        assert all(r["rotaId"] != "setup" for r in rows)

    def test_internal_included_on_request(self, repo):
        rows = upcoming_roster(repo, SUNDAY_EVENT, today=date(2025, 12, 20), public_only=False)
        assert sorted({r["role"] for r in rows}) == ["Setup", "Tea", "Welcome"]
        assert len(rows) == 2 * 3

    def test_dataframe(self, repo, engine):
        engine.add_assignees("tea", O1, ["carol"])
        df = roster_dataframe(upcoming_roster(repo, SUNDAY_EVENT, today=TODAY))
        assert list(df.columns) == ["startsAt", "role", "taken", "capacity", "spotsRemaining", "assignees"]
        tea = df[(df["role"] == "Tea")].iloc[0]
        assert tea["assignees"] == "Carol Jones"
        assert roster_dataframe([]).empty
