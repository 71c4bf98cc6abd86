"""Tests for the member, authenticated and guest signup workflow."""
import threading
from datetime import date

import pytest

from hubrota.engine.guard import resolved_count
from hubrota.errors import ErrorCode, RotaError
from hubrota.models.entities import Contact, Holiday, Rota
from hubrota.signup.rate_limit import SlidingWindowRateLimiter
from hubrota.signup.workflow import SignupWorkflow, names_match

from conftest import SESSION, SUNDAY_EVENT, TODAY

O1 = "occ-2025-09-07"
O2 = "occ-2025-09-14"


def member_payload(csrf_token, email="carol@example.com", name="Carol Jones", selections=None, **extra):
    payload = {
        "email": email,
        "name": name,
        "selections": selections or [{"rotaId": "tea", "occurrenceId": O2}],
        "csrfToken": csrf_token,
        "source": "203.0.113.7",
    }
    payload.update(extra)
    return payload


def error_code(call):
    with pytest.raises(RotaError) as exc:
        call()
    return exc.value.code


class TestNamesMatch:
    """Tests for the loose name guard."""

    contact = Contact(id="c", first_name="Carol", last_name="Jones")

    @pytest.mark.parametrize("first,last", [
        ("Carol", "Jones"),
        ("carol", "JONES"),
        ("Car", "Jones"),
        ("Carol", ""),
        ("Carol", "J"),
        ("Caroline", "Jones-Smith"),
    ])
    def test_accepts(self, first, last):
        assert names_match(first, last, self.contact)

    @pytest.mark.parametrize("first,last", [("Karen", "Jones"), ("Carol", "Smith")])
    def test_rejects(self, first, last):
        assert not names_match(first, last, self.contact)

    def test_blank_directory_part_not_compared(self):
        assert names_match("Anyone", "Jones", Contact(id="c", first_name="", last_name="Jones"))


class TestMemberSignup:
    """Tests for email-identified member signup."""

    def test_success_writes_assignment(self, workflow, repo, csrf_token):
        result = workflow.member_signup(member_payload(csrf_token), session_id=SESSION, today=TODAY)
        assert result.person == "carol"
        assert [a["occurrenceId"] for a in result.assignments] == [O2]
        tea = repo.get_rota("tea")
        assert tea.version == 1
        assert tea.to_dict()["assignees"] == [{"contactId": "carol", "occurrenceId": O2}]

    def test_bad_csrf(self, workflow, repo):
        code = error_code(lambda: workflow.member_signup(member_payload("forged"), session_id=SESSION, today=TODAY))
        assert code is ErrorCode.CSRF_INVALID
        assert repo.get_rota("tea").assignees == []

    def test_missing_session_fails_csrf(self, workflow, csrf_token):
        code = error_code(lambda: workflow.member_signup(member_payload(csrf_token), session_id=None, today=TODAY))
        assert code is ErrorCode.CSRF_INVALID

    def test_rate_limited_before_identity(self, repo, csrf, csrf_token, tokens, config):
        limited = SignupWorkflow(repo, csrf, SlidingWindowRateLimiter(max_requests=2, window_seconds=60), tokens, config)
        payload = member_payload(csrf_token, email="nobody@example.com")
        for _ in range(2):
            assert error_code(lambda: limited.member_signup(payload, SESSION, TODAY)) is ErrorCode.NO_ACCOUNT
        with pytest.raises(RotaError) as exc:
            limited.member_signup(payload, SESSION, TODAY)
        assert exc.value.code is ErrorCode.RATE_LIMITED
        assert exc.value.retryable
        assert exc.value.details["retryAfterSeconds"] > 0

    @pytest.mark.parametrize("source", [None, "", "   "])
    def test_source_required(self, workflow, csrf_token, source):
        """Without a client key every caller would share one rate limit bucket."""
        payload = member_payload(csrf_token)
        if source is None:
            del payload["source"]
        else:
            payload["source"] = source
        with pytest.raises(RotaError) as exc:
            workflow.member_signup(payload, SESSION, TODAY)
        assert exc.value.code is ErrorCode.VALIDATION
        assert exc.value.details["errors"][0]["field"] == "source"

    def test_rate_limit_is_per_source(self, repo, csrf, csrf_token, tokens, config):
        limited = SignupWorkflow(repo, csrf, SlidingWindowRateLimiter(max_requests=1, window_seconds=60), tokens, config)
        first = member_payload(csrf_token, email="nobody@example.com", source="203.0.113.7")
        second = member_payload(csrf_token, email="nobody@example.com", source="203.0.113.8")
        assert error_code(lambda: limited.member_signup(first, SESSION, TODAY)) is ErrorCode.NO_ACCOUNT
        assert error_code(lambda: limited.member_signup(second, SESSION, TODAY)) is ErrorCode.NO_ACCOUNT
        assert error_code(lambda: limited.member_signup(first, SESSION, TODAY)) is ErrorCode.RATE_LIMITED

    def test_unknown_email(self, workflow, csrf_token):
        payload = member_payload(csrf_token, email="stranger@example.com")
        assert error_code(lambda: workflow.member_signup(payload, SESSION, TODAY)) is ErrorCode.NO_ACCOUNT

    def test_email_lookup_ignores_case(self, workflow, repo, csrf_token):
        payload = member_payload(csrf_token, email="dave.brown@EXAMPLE.com", name="Dave Brown")
        assert workflow.member_signup(payload, SESSION, TODAY).person == "dave"

    def test_unconfirmed_account(self, workflow, csrf_token):
        payload = member_payload(csrf_token, email="erin@example.com", name="Erin Gray")
        assert error_code(lambda: workflow.member_signup(payload, SESSION, TODAY)) is ErrorCode.VALIDATION

    def test_name_mismatch(self, workflow, repo, csrf_token):
        payload = member_payload(csrf_token, name="Carol Smith")
        assert error_code(lambda: workflow.member_signup(payload, SESSION, TODAY)) is ErrorCode.NAME_MISMATCH
        assert repo.get_rota("tea").version == 0

    def test_malformed_request(self, workflow, csrf_token):
        with pytest.raises(RotaError) as exc:
            workflow.member_signup(member_payload(csrf_token, email="not-an-email"), SESSION, TODAY)
        assert exc.value.code is ErrorCode.VALIDATION
        assert exc.value.details["errors"][0]["field"] == "email"

    def test_empty_selection_list(self, workflow, csrf_token):
        payload = member_payload(csrf_token)
        payload["selections"] = []
        assert error_code(lambda: workflow.member_signup(payload, SESSION, TODAY)) is ErrorCode.VALIDATION


class TestHousehold:
    """Spouse co-signup."""

    def test_spouse_takes_second_place(self, workflow, repo, csrf_token):
        payload = member_payload(
            csrf_token, email="alice@example.com", name="Alice Smith",
            selections=[{"rotaId": "welcome", "occurrenceId": O1}], withSpouse=True,
        )
        result = workflow.member_signup(payload, SESSION, TODAY)
        assert [a["person"] for a in result.assignments] == ["alice", "bob"]
        assert resolved_count(repo.get_rota("welcome"), O1) == 2

    def test_spouse_blocked_by_capacity_rolls_back_both(self, workflow, repo, csrf_token):
        payload = member_payload(
            csrf_token, email="alice@example.com", name="Alice Smith",
            selections=[{"rotaId": "tea", "occurrenceId": O1}], withSpouse=True,
        )
        assert error_code(lambda: workflow.member_signup(payload, SESSION, TODAY)) is ErrorCode.CAPACITY_FULL
        assert repo.get_rota("tea").assignees == []

    def test_spouse_already_on_rota_is_duplicate(self, workflow, engine, repo, csrf_token):
        repo.add_rota(Rota(id="chairs", event_id=SUNDAY_EVENT, role="Chairs", capacity=3))
        engine.add_assignees("chairs", O1, ["bob"])
        payload = member_payload(
            csrf_token, email="alice@example.com", name="Alice Smith",
            selections=[{"rotaId": "chairs", "occurrenceId": O1}], withSpouse=True,
        )
        assert error_code(lambda: workflow.member_signup(payload, SESSION, TODAY)) is ErrorCode.DUPLICATE
        assert resolved_count(repo.get_rota("chairs"), O1) == 1

    def test_spouse_checked_for_clash(self, workflow, engine, csrf_token):
        engine.add_assignees("tea", O1, ["bob"])
        payload = member_payload(
            csrf_token, email="alice@example.com", name="Alice Smith",
            selections=[{"rotaId": "welcome", "occurrenceId": O1}], withSpouse=True,
        )
        assert error_code(lambda: workflow.member_signup(payload, SESSION, TODAY)) is ErrorCode.CROSS_ROTA_CLASH

    def test_missing_spouse_record(self, workflow, repo, csrf_token):
        repo.add_contact(Contact(id="fay", first_name="Fay", last_name="Lee", email="fay@example.com", spouse_id="gone"))
        call = lambda: workflow.authenticated_signup(  # noqa: E731
            "fay", [("tea", O2)], with_spouse=True, session_id=SESSION, csrf_token=csrf_token, today=TODAY
        )
        assert error_code(call) is ErrorCode.NOT_FOUND


class TestSlotChecks:
    """Per-slot checks shared by every signup channel."""

    def signup(self, workflow, csrf_token, selections, contact_id="carol", today=TODAY):
        return workflow.authenticated_signup(
            contact_id, selections, session_id=SESSION, csrf_token=csrf_token, today=today
        )

    def test_same_occurrence_twice_in_one_request(self, workflow, repo, csrf_token):
        call = lambda: self.signup(workflow, csrf_token, [("welcome", O1), ("tea", O1)])  # noqa: E731
        assert error_code(call) is ErrorCode.CROSS_ROTA_CLASH
        assert repo.get_rota("welcome").assignees == []

    def test_cross_rota_clash_only_on_signup(self, workflow, engine, csrf_token):
        """The admin engine allows a second role on a date; signup refuses it."""
        engine.add_assignees("welcome", O2, ["carol"])

        call = lambda: self.signup(workflow, csrf_token, [("tea", O2)])  # noqa: E731
        assert error_code(call) is ErrorCode.CROSS_ROTA_CLASH
        assert engine.add_assignees("tea", O2, ["carol"]).added == 1

    def test_clash_with_pinned_rota(self, workflow, engine, csrf_token):
        engine.add_assignees("sound", None, ["carol"])
        call = lambda: self.signup(workflow, csrf_token, [("tea", O1)])  # noqa: E731
        assert error_code(call) is ErrorCode.CROSS_ROTA_CLASH

    def test_past_occurrence_even_when_full(self, workflow, engine, csrf_token):
        engine.add_assignees("tea", O2, ["dave"])
        call = lambda: self.signup(workflow, csrf_token, [("tea", O2)], today=date(2025, 9, 20))  # noqa: E731
        assert error_code(call) is ErrorCode.PAST_OCCURRENCE

    def test_occurrence_today_is_allowed(self, workflow, csrf_token):
        result = self.signup(workflow, csrf_token, [("tea", O2)], today=date(2025, 9, 14))
        assert len(result.assignments) == 1

    def test_on_leave(self, workflow, repo, csrf_token):
        repo.add_holiday(Holiday(id="h1", contact_id="carol", start_date="2025-09-13", end_date="2025-09-15"))
        call = lambda: self.signup(workflow, csrf_token, [("tea", O2)])  # noqa: E731
        assert error_code(call) is ErrorCode.ON_LEAVE

    def test_pinned_rota_needs_no_occurrence(self, workflow, repo, csrf_token):
        result = self.signup(workflow, csrf_token, [("sound", None)])
        assert result.assignments[0]["occurrenceId"] == O1

    def test_template_rota_needs_occurrence(self, workflow, csrf_token):
        assert error_code(lambda: self.signup(workflow, csrf_token, [("tea", None)])) is ErrorCode.VALIDATION

    def test_internal_rota_hidden(self, workflow, csrf_token):
        assert error_code(lambda: self.signup(workflow, csrf_token, [("setup", O2)])) is ErrorCode.NOT_FOUND

    def test_occurrence_from_other_event(self, workflow, csrf_token):
        call = lambda: self.signup(workflow, csrf_token, [("tea", "occ-2025-09-10")])  # noqa: E731
        assert error_code(call) is ErrorCode.VALIDATION

    def test_all_or_nothing(self, workflow, engine, repo, csrf_token):
        """A failing second slot leaves the first one unwritten."""
        engine.add_assignees("tea", "occ-2025-09-21", ["dave"])
        call = lambda: self.signup(  # noqa: E731
            workflow, csrf_token, [("welcome", O2), ("tea", "occ-2025-09-21")]
        )
        assert error_code(call) is ErrorCode.CAPACITY_FULL
        welcome = repo.get_rota("welcome")
        assert welcome.assignees == []
        assert welcome.version == 0

    def test_multiple_slots_commit_together(self, workflow, repo, csrf_token):
        result = self.signup(workflow, csrf_token, [("welcome", O1), ("tea", O2), ("welcome", "occ-2025-09-21")])
        assert len(result.assignments) == 3
        assert repo.get_rota("welcome").version == 1
        assert repo.get_rota("tea").version == 1

    def test_empty_selections(self, workflow, csrf_token):
        assert error_code(lambda: self.signup(workflow, csrf_token, [])) is ErrorCode.VALIDATION

    def test_concurrent_signups_fill_exactly_once(self, workflow, repo, csrf_token):
        people = ["alice", "bob", "carol", "dave"]
        barrier = threading.Barrier(len(people))
        outcomes = {}

        def worker(contact_id):
            barrier.wait()
            try:
                self.signup(workflow, csrf_token, [("tea", O2)], contact_id=contact_id)
                outcomes[contact_id] = "ok"
            except RotaError as e:
                outcomes[contact_id] = e.code

        threads = [threading.Thread(target=worker, args=(p,)) for p in people]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert list(outcomes.values()).count("ok") == 1
        assert resolved_count(repo.get_rota("tea"), O2) == 1


class TestGuestSignup:
    """Tests for token-scoped public signup."""

    def payload(self, token, csrf_token, selections, email="gus@example.com"):
        return {
            "token": token,
            "name": "Gus Guest",
            "email": email,
            "selections": [{"rotaId": r, "occurrenceId": o} for r, o in selections],
            "csrfToken": csrf_token,
            "source": "198.51.100.4",
        }

    def test_rota_token_scope(self, workflow, tokens, repo, csrf_token):
        token = tokens.ensure_rota_token(SUNDAY_EVENT, "welcome").token
        result = workflow.guest_signup(self.payload(token, csrf_token, [("welcome", O1)]), SESSION, TODAY)
        assert result.person == "gus@example.com"
        assert repo.get_rota("welcome").to_dict()["assignees"] == [
            {"name": "Gus Guest", "email": "gus@example.com", "occurrenceId": O1}
        ]

        other = self.payload(token, csrf_token, [("tea", O1)], email="hal@example.com")
        assert error_code(lambda: workflow.guest_signup(other, SESSION, TODAY)) is ErrorCode.NOT_FOUND

    def test_occurrence_scoped_token(self, workflow, tokens, csrf_token):
        token = tokens.ensure_rota_token(SUNDAY_EVENT, "welcome", O1).token
        payload = self.payload(token, csrf_token, [("welcome", O2)])
        assert error_code(lambda: workflow.guest_signup(payload, SESSION, TODAY)) is ErrorCode.NOT_FOUND

    def test_event_token_opens_public_rotas_only(self, workflow, tokens, csrf_token):
        token = tokens.ensure_event_token(SUNDAY_EVENT).token
        ok = workflow.guest_signup(self.payload(token, csrf_token, [("tea", O2)]), SESSION, TODAY)
        assert len(ok.assignments) == 1
        internal = self.payload(token, csrf_token, [("setup", O2)], email="hal@example.com")
        assert error_code(lambda: workflow.guest_signup(internal, SESSION, TODAY)) is ErrorCode.NOT_FOUND

    def test_guest_duplicate_by_email(self, workflow, tokens, csrf_token):
        token = tokens.ensure_event_token(SUNDAY_EVENT).token
        workflow.guest_signup(self.payload(token, csrf_token, [("welcome", O1)]), SESSION, TODAY)
        again = self.payload(token, csrf_token, [("welcome", O1)], email="GUS@example.com")
        assert error_code(lambda: workflow.guest_signup(again, SESSION, TODAY)) is ErrorCode.DUPLICATE

    def test_unknown_token(self, workflow, csrf_token):
        payload = self.payload("RTA_nope", csrf_token, [("welcome", O1)])
        assert error_code(lambda: workflow.guest_signup(payload, SESSION, TODAY)) is ErrorCode.NOT_FOUND

    def test_guest_not_checked_for_leave(self, workflow, tokens, repo, csrf_token):
        repo.add_holiday(Holiday(id="h", contact_id="gus@example.com", start_date="2025-09-01", end_date="2025-09-30"))
        token = tokens.ensure_event_token(SUNDAY_EVENT).token
        result = workflow.guest_signup(self.payload(token, csrf_token, [("tea", O2)]), SESSION, TODAY)
        assert len(result.assignments) == 1
