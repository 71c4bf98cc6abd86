"""
Assignee Normalizer
===================
Rota assignees have been persisted in three shapes over the years:

    "c-123"                                            legacy bare contact id
    {"contactId": "c-123", "occurrenceId": "o-1"}      registered member
    {"name": "Ann", "email": "a@x", "occurrenceId": "o-1"}   guest signup

They are decoded once, at the storage boundary, into ``Assignee`` values
holding either a ``Member`` or a ``Guest`` plus the resolved occurrence id.
Unrecognised entries decode to ``None`` and are dropped; historical data is
never allowed to break a read.
"""
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Union

Identity = Tuple[str, str]


@dataclass(frozen=True)
class Member:
    """A registered contact, identified by id."""
    contact_id: str

    @property
    def identity(self) -> Identity:
        return ("contact", self.contact_id)


@dataclass(frozen=True)
class Guest:
    """A no-account signup, identified by case-insensitive email."""
    name: str
    email: str

    @property
    def identity(self) -> Identity:
        return ("email", self.email.strip().lower())


Person = Union[Member, Guest]


@dataclass(frozen=True)
class Assignee:
    """One person occupying one slot on one occurrence."""
    person: Person
    occurrence_id: Optional[str] = None

    @property
    def identity(self) -> Identity:
        return self.person.identity

    @property
    def contact_id(self) -> Optional[str]:
        return self.person.contact_id if isinstance(self.person, Member) else None

    @property
    def guest(self) -> Optional[Guest]:
        return self.person if isinstance(self.person, Guest) else None

    @property
    def is_guest(self) -> bool:
        return isinstance(self.person, Guest)


def _rota_occurrence_id(rota: Any) -> Optional[str]:
    """Occurrence id of a Rota object or of a raw persisted rota record."""
    if rota is None:
        return None
    if isinstance(rota, Mapping):
        return rota.get("occurrenceId") or None
    return getattr(rota, "occurrence_id", None) or None


def _inline_guest(raw: Mapping) -> Optional[Guest]:
    name, email = raw.get("name"), raw.get("email")
    if isinstance(name, str) and isinstance(email, str) and name.strip() and email.strip():
        return Guest(name=name.strip(), email=email.strip())
    return None


def _person_from_mapping(raw: Mapping) -> Optional[Person]:
    contact = raw.get("contactId")
    if isinstance(contact, str) and contact:
        return Member(contact)
    if isinstance(contact, Mapping):
        inner_id = contact.get("id")
        if isinstance(inner_id, str) and inner_id:
            return Member(inner_id)
        guest = _inline_guest(contact)
        if guest:
            return guest
    raw_id = raw.get("id")
    if isinstance(raw_id, str) and raw_id:
        return Member(raw_id)
    return _inline_guest(raw)


def normalize(raw: Any, rota: Any) -> Optional[Assignee]:
    """
    Decode one persisted assignee entry.

    Args:
        raw: The stored entry (string, mapping, or anything else)
        rota: Owning rota (object or raw record); supplies the fallback occurrence

    Returns:
        Assignee with its resolved occurrence id, or None for unrecognised shapes
    """
    fallback = _rota_occurrence_id(rota)
    if isinstance(raw, str):
        if not raw:
            return None
        return Assignee(Member(raw), fallback)
    if isinstance(raw, Mapping):
        person = _person_from_mapping(raw)
        if person is None:
            return None
        return Assignee(person, raw.get("occurrenceId") or fallback)
    return None


def decode_assignees(raw_list: Any, rota: Any) -> List[Assignee]:
    """Decode a whole persisted array, skipping entries that do not decode."""
    if not isinstance(raw_list, (list, tuple)):
        return []
    decoded = []
    for raw in raw_list:
        if isinstance(raw, Assignee):
            decoded.append(raw)
            continue
        assignee = normalize(raw, rota)
        if assignee is not None:
            decoded.append(assignee)
    return decoded


def encode_assignee(assignee: Assignee) -> Dict[str, Any]:
    """Persisted shape written for new and rewritten entries."""
    person = assignee.person
    if isinstance(person, Guest):
        return {"name": person.name, "email": person.email, "occurrenceId": assignee.occurrence_id}
    return {"contactId": person.contact_id, "occurrenceId": assignee.occurrence_id}


def encode_assignees(assignees: Iterable[Assignee]) -> List[Dict[str, Any]]:
    return [encode_assignee(a) for a in assignees]


def as_person(candidate: Any) -> Person:
    """Coerce an engine candidate (contact id, Member or Guest) to a Person."""
    if isinstance(candidate, (Member, Guest)):
        return candidate
    if isinstance(candidate, str) and candidate:
        return Member(candidate)
    if isinstance(candidate, Mapping):
        person = _person_from_mapping(candidate)
        if person is not None:
            return person
    raise ValueError(f"Unrecognised assignee candidate: {candidate!r}")
