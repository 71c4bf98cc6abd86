"""
Signup Workflow
===============
Self-service signup for members and public guests, layered over the guard.

Unlike the bulk tool, a signup is all-or-nothing: every requested slot is
checked against working copies of the affected rotas before anything is
written, the first failure raises, and the whole batch is committed in one
version-checked write with every touched rota locked.

Check order per request:
    CSRF -> rate limit -> identity -> name guard -> household
    -> repeated occurrence -> per slot (rota, scope, occurrence, past,
       leave, capacity / duplicate / cross-rota clash)
"""
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence, Union

from hubrota.engine.assignment import resolve_occurrence
from hubrota.engine.guard import can_assign
from hubrota.errors import ErrorCode, RotaError, VersionConflict
from hubrota.models.assignee import Assignee, Guest, Member, Person
from hubrota.models.config import HubConfig
from hubrota.models.entities import Contact, Occurrence, Rota
from hubrota.models.validated import GuestSignupRequest, SignupRequest, SignupSelection, parse_request
from hubrota.store.repository import Repository
from hubrota.utils.dates import format_uk, is_upcoming
from hubrota.utils.logging_setup import get_logger
from hubrota.utils.structured_logging import get_structured_logger, request_context

from .csrf import CsrfVerifier, require_csrf
from .rate_limit import SlidingWindowRateLimiter
from .tokens import ShareToken, TokenStore

logger = get_logger("hubrota.signup")
log = get_structured_logger("hubrota.signup")

NAME_MISMATCH_MESSAGE = (
    "The name provided does not match the account for this email address. "
    "Please check your details and try again."
)


@dataclass
class SignupResult:
    """What a successful signup wrote."""
    person: str                     # Contact id, or guest email
    assignments: List[Dict[str, Any]] = field(default_factory=list)

    def as_dict(self) -> Dict[str, Any]:
        return {"person": self.person, "assignments": list(self.assignments)}


def names_match(supplied_first: str, supplied_last: str, contact: Contact) -> bool:
    """
    Loose comparison of a typed name with the directory entry.

    Each part matches when either string contains the other, ignoring
    case. A part that is blank on either side is not compared.
    """
    def part_ok(given: str, known: str) -> bool:
        given, known = given.strip().lower(), known.strip().lower()
        if not given or not known:
            return True
        return given in known or known in given

    return part_ok(supplied_first, contact.first_name) and part_ok(supplied_last, contact.last_name)


def _as_selection(raw: Any) -> SignupSelection:
    if isinstance(raw, SignupSelection):
        return raw
    if isinstance(raw, (tuple, list)):
        rota_id, occurrence_id = (list(raw) + [None])[:2]
        return SignupSelection(rota_id=rota_id, occurrence_id=occurrence_id)
    return parse_request(SignupSelection, raw)


class _Plan:
    """Working copies of every rota a signup reads, plus the versions read."""

    def __init__(self, repository: Repository):
        self.repository = repository
        self.rotas: Dict[str, Rota] = {}
        self.versions: Dict[str, int] = {}
        self.touched: List[str] = []
        self.assignments: List[Dict[str, Any]] = []

    def load_event(self, event_id: str) -> List[Rota]:
        for rota in self.repository.rotas_for_event(event_id):
            if rota.id not in self.rotas:
                self.rotas[rota.id] = rota
                self.versions[rota.id] = rota.version
        return [r for r in self.rotas.values() if r.event_id == event_id]

    def add(self, rota: Rota, person: Person, occurrence: Occurrence) -> None:
        rota.assignees.append(Assignee(person, occurrence.id))
        if rota.id not in self.touched:
            self.touched.append(rota.id)
        self.assignments.append({
            "rotaId": rota.id,
            "role": rota.role,
            "occurrenceId": occurrence.id,
            "startsAt": occurrence.starts_at.isoformat(),
            "person": person.contact_id if isinstance(person, Member) else person.email,
        })


class SignupWorkflow:
    """Entry points for member, authenticated and guest signups."""

    def __init__(
        self,
        repository: Repository,
        csrf: CsrfVerifier,
        rate_limiter: Optional[SlidingWindowRateLimiter] = None,
        tokens: Optional[TokenStore] = None,
        config: Optional[HubConfig] = None,
    ):
        self.repository = repository
        self.csrf = csrf
        self.config = config or HubConfig()
        self.rate_limiter = rate_limiter or SlidingWindowRateLimiter(
            self.config.rate_limit_max_requests,
            self.config.rate_limit_window_seconds,
        )
        self.tokens = tokens or TokenStore()

    # === Entry points ===

    def member_signup(
        self,
        request: Union[SignupRequest, Mapping[str, Any]],
        session_id: Optional[str] = None,
        today: Optional[date] = None,
    ) -> SignupResult:
        """Signup by email for an existing, confirmed contact."""
        with self._rejections("member"):
            req = request if isinstance(request, SignupRequest) else parse_request(SignupRequest, request)
            require_csrf(self.csrf, session_id, req.csrf_token)
            self.rate_limiter.hit(req.source)

            contact = self.repository.find_contact_by_email(req.email)
            if contact is None:
                raise RotaError(
                    ErrorCode.NO_ACCOUNT,
                    "No account found for this email address. Please contact the office to be added.",
                )
            self._require_confirmed(contact)
            if not names_match(req.first_name, req.last_name, contact):
                raise RotaError(ErrorCode.NAME_MISMATCH, NAME_MISMATCH_MESSAGE)

            people = self._household(contact, req.with_spouse)
            return self._sign_up(people, req.selections, today, scope=None, person_key=contact.id)

    def authenticated_signup(
        self,
        contact_id: str,
        selections: Sequence[Any],
        with_spouse: bool = False,
        session_id: Optional[str] = None,
        csrf_token: Optional[str] = None,
        today: Optional[date] = None,
    ) -> SignupResult:
        """Signup for a caller the session layer has already identified."""
        with self._rejections("authenticated"):
            require_csrf(self.csrf, session_id, csrf_token)
            contact = self.repository.get_contact(contact_id)
            if contact is None:
                raise RotaError(ErrorCode.NOT_FOUND, f"Contact not found: {contact_id}")
            self._require_confirmed(contact)
            people = self._household(contact, with_spouse)
            sels = [_as_selection(s) for s in selections]
            if not sels:
                raise RotaError(ErrorCode.VALIDATION, "Please select at least one rota")
            return self._sign_up(people, sels, today, scope=None, person_key=contact.id)

    def guest_signup(
        self,
        request: Union[GuestSignupRequest, Mapping[str, Any]],
        session_id: Optional[str] = None,
        today: Optional[date] = None,
    ) -> SignupResult:
        """Public signup through a share token, recorded as a guest assignee."""
        with self._rejections("guest"):
            req = request if isinstance(request, GuestSignupRequest) else parse_request(GuestSignupRequest, request)
            require_csrf(self.csrf, session_id, req.csrf_token)
            self.rate_limiter.hit(req.source)

            scope = self.tokens.resolve(req.token)
            if scope is None:
                raise RotaError(ErrorCode.NOT_FOUND, "This signup link is not valid")
            guest = Guest(name=req.name, email=req.email)
            return self._sign_up([guest], req.selections, today, scope=scope, person_key=guest.email)

    # === Checks ===

    @contextmanager
    def _rejections(self, channel: str) -> Iterator[None]:
        with request_context(channel=channel):
            try:
                yield
            except RotaError as e:
                log.warning("signup_rejected", code=e.code.value, reason=e.message)
                raise

    @staticmethod
    def _require_confirmed(contact: Contact) -> None:
        if not contact.confirmed:
            raise RotaError(
                ErrorCode.VALIDATION,
                "Your account is awaiting confirmation. Please contact the office.",
            )

    def _household(self, contact: Contact, with_spouse: bool) -> List[Person]:
        people: List[Person] = [Member(contact.id)]
        if with_spouse and contact.spouse_id:
            spouse = self.repository.get_contact(contact.spouse_id)
            if spouse is None:
                raise RotaError(ErrorCode.NOT_FOUND, "Spouse contact not found")
            people.append(Member(spouse.id))
        return people

    def _sign_up(
        self,
        people: List[Person],
        selections: Sequence[SignupSelection],
        today: Optional[date],
        scope: Optional[ShareToken],
        person_key: str,
    ) -> SignupResult:
        conflict = None
        for attempt in range(1, self.config.max_write_retries + 1):
            plan = self._plan(people, selections, today, scope)
            with self.repository.rota_locks(plan.versions):
                try:
                    self.repository.save_rotas([plan.rotas[rid] for rid in plan.touched], plan.versions)
                except VersionConflict as e:
                    logger.info(f"Signup re-planning after concurrent write (attempt {attempt}): {e}")
                    conflict = e
                    continue
            log.info("signup_committed", person=person_key, slots=len(plan.assignments))
            return SignupResult(person=person_key, assignments=plan.assignments)
        raise conflict

    def _plan(
        self,
        people: List[Person],
        selections: Sequence[SignupSelection],
        today: Optional[date],
        scope: Optional[ShareToken],
    ) -> _Plan:
        explicit = [s.occurrence_id for s in selections if s.occurrence_id]
        if len(explicit) != len(set(explicit)):
            raise RotaError(
                ErrorCode.CROSS_ROTA_CLASH,
                "Your rota selections are clashing, please change one of your rota signups",
            )

        plan = _Plan(self.repository)
        for sel in selections:
            rota = self.repository.get_rota(sel.rota_id)
            if rota is None or rota.visibility != "public":
                raise RotaError(ErrorCode.NOT_FOUND, f"Rota not found: {sel.rota_id}")
            occurrence_id = sel.occurrence_id or rota.occurrence_id
            if scope is not None and not scope.allows(rota.event_id, rota.id, occurrence_id):
                raise RotaError(ErrorCode.NOT_FOUND, f"Rota not found: {sel.rota_id}")
            if not occurrence_id:
                raise RotaError(ErrorCode.VALIDATION, f"Please choose a date for '{rota.role}'")
            event_rotas = plan.load_event(rota.event_id)
            working = plan.rotas[rota.id]
            occurrence = resolve_occurrence(self.repository, working, occurrence_id)
            if not is_upcoming(occurrence.starts_at, today):
                raise RotaError(
                    ErrorCode.PAST_OCCURRENCE,
                    f"{format_uk(occurrence.starts_at)} has already taken place",
                )

            for person in people:
                if isinstance(person, Member) and self.repository.has_leave_conflict(
                    person.contact_id, occurrence.starts_at, occurrence.effective_end
                ):
                    raise RotaError(
                        ErrorCode.ON_LEAVE,
                        f"You are on leave on {format_uk(occurrence.starts_at)}",
                    )
                verdict = can_assign(working, occurrence.id, person, event_rotas=event_rotas)
                if not verdict:
                    raise RotaError(verdict.reason, verdict.message, details={"rotaId": rota.id})
                plan.add(working, person, occurrence)

        return plan
