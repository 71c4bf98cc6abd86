"""Pytest configuration and fixtures."""
import json
import sys
from datetime import date, datetime, timedelta
from pathlib import Path

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import pytest

from hubrota.engine.assignment import RotaAssignmentEngine
from hubrota.models.config import HubConfig
from hubrota.models.entities import Contact, ContactList, Event, Occurrence, Rota
from hubrota.signup.csrf import HmacCsrfVerifier
from hubrota.signup.rate_limit import SlidingWindowRateLimiter
from hubrota.signup.tokens import TokenStore
from hubrota.signup.workflow import SignupWorkflow
from hubrota.store.repository import Repository
from hubrota.utils.structured_logging import configure_structlog

configure_structlog(level="WARNING")

TODAY = date(2025, 9, 1)  # A Monday
SUNDAY_EVENT = "ev-sun"
MIDWEEK_EVENT = "ev-mid"
SESSION = "sess-1"


def occ_id(d: date) -> str:
    return f"occ-{d.isoformat()}"


def make_occurrence(d: date, event_id: str = SUNDAY_EVENT, hour: int = 10, minute: int = 30) -> Occurrence:
    start = datetime(d.year, d.month, d.day, hour, minute)
    return Occurrence(id=occ_id(d), event_id=event_id, starts_at=start, ends_at=start + timedelta(minutes=90))


def sunday_dates():
    """Every Sunday from 31 Aug 2025 to 28 Dec 2025 (18 dates)."""
    d = date(2025, 8, 31)
    out = []
    while d <= date(2025, 12, 28):
        out.append(d)
        d += timedelta(days=7)
    return out


@pytest.fixture
def today():
    return TODAY


@pytest.fixture
def sunday_occurrences():
    return [make_occurrence(d) for d in sunday_dates()]


@pytest.fixture
def contacts():
    return [
        Contact(id="alice", first_name="Alice", last_name="Smith", email="alice@example.com", spouse_id="bob"),
        Contact(id="bob", first_name="Bob", last_name="Smith", email="bob@example.com", spouse_id="alice"),
        Contact(id="carol", first_name="Carol", last_name="Jones", email="carol@example.com"),
        Contact(id="dave", first_name="Dave", last_name="Brown", email="Dave.Brown@Example.com"),
        Contact(id="erin", first_name="Erin", last_name="Gray", email="erin@example.com", confirmed=False),
    ]


@pytest.fixture
def rotas():
    return [
        Rota(id="welcome", event_id=SUNDAY_EVENT, role="Welcome", capacity=2),
        Rota(id="tea", event_id=SUNDAY_EVENT, role="Tea", capacity=1),
        Rota(id="sound", event_id=SUNDAY_EVENT, role="Sound", capacity=1, occurrence_id="occ-2025-09-07"),
        Rota(id="setup", event_id=SUNDAY_EVENT, role="Setup", capacity=3, visibility="internal"),
    ]


@pytest.fixture
def repo(sunday_occurrences, contacts, rotas):
    """Sunday event with weekly occurrences, four rotas and five contacts."""
    return Repository(
        events=[Event(id=SUNDAY_EVENT, title="Sunday Service"), Event(id=MIDWEEK_EVENT, title="Midweek Group")],
        occurrences=sunday_occurrences + [make_occurrence(date(2025, 9, 10), event_id=MIDWEEK_EVENT, hour=19)],
        rotas=rotas,
        contacts=contacts,
        lists=[ContactList(id="team-a", name="Team A", contact_ids=["alice", "carol"])],
    )


@pytest.fixture
def config():
    return HubConfig(rate_limit_max_requests=100)


@pytest.fixture
def engine(repo, config):
    return RotaAssignmentEngine(repo, config)


@pytest.fixture
def csrf():
    return HmacCsrfVerifier(b"test-secret")


@pytest.fixture
def csrf_token(csrf):
    return csrf.issue(SESSION)


@pytest.fixture
def tokens():
    return TokenStore()


@pytest.fixture
def workflow(repo, csrf, tokens, config):
    return SignupWorkflow(
        repo,
        csrf=csrf,
        rate_limiter=SlidingWindowRateLimiter(max_requests=100, window_seconds=60),
        tokens=tokens,
        config=config,
    )


def write_collection(data_dir: Path, name: str, records) -> None:
    data_dir.mkdir(parents=True, exist_ok=True)
    with open(data_dir / f"{name}.ndjson", "w", encoding="utf-8") as fh:
        for record in records:
            fh.write(json.dumps(record) + "\n")


@pytest.fixture
def data_dir(tmp_path, repo):
    """The ``repo`` fixture written out as NDJSON collections."""
    path = tmp_path / "data"
    write_collection(path, "events", [e.to_dict() for e in repo.events.values()])
    write_collection(path, "occurrences", [o.to_dict() for o in repo.occurrences.values()])
    write_collection(path, "contacts", [c.to_dict() for c in repo.contacts.values()])
    write_collection(path, "lists", [cl.to_dict() for cl in repo.lists.values()])
    write_collection(path, "rotas", [r.to_dict() for r in repo.list_rotas()])
    return path
