"""Events, occurrences, rotas and the external records they reference."""
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Dict, List, Optional

from hubrota.errors import ErrorCode, RotaError
from hubrota.utils.dates import parse_datetime, to_date

from .assignee import Assignee, decode_assignees, encode_assignees

VISIBILITIES = ("public", "internal")


def _normalize_visibility(value: Any) -> str:
    return "internal" if value == "internal" else "public"


def _capacity(value: Any) -> int:
    """Positive whole number, or 1. Numeric strings count."""
    if isinstance(value, bool):
        return 1
    try:
        n = int(value)
    except (TypeError, ValueError):
        return 1
    return n if n >= 1 else 1


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


@dataclass
class Event:
    """An event owning a set of occurrences."""
    id: str
    title: str = ""
    recurrence: Optional[str] = None  # Opaque rule, expanded elsewhere
    visibility: str = "public"

    def __post_init__(self):
        self.visibility = _normalize_visibility(self.visibility)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "recurrence": self.recurrence,
            "visibility": self.visibility,
        }

    @classmethod
    def from_dict(cls, d: dict) -> "Event":
        return cls(
            id=str(d["id"]),
            title=str(d.get("title") or ""),
            recurrence=d.get("recurrence") or d.get("repeatType"),
            visibility=d.get("visibility", "public"),
        )


@dataclass
class Occurrence:
    """One concrete dated instance of an event."""
    id: str
    event_id: str
    starts_at: datetime
    ends_at: Optional[datetime] = None
    max_spaces: Optional[int] = None
    location: str = ""

    def __post_init__(self):
        self.starts_at = parse_datetime(self.starts_at)
        self.ends_at = parse_datetime(self.ends_at)

    @property
    def date(self):
        return to_date(self.starts_at)

    @property
    def effective_end(self) -> datetime:
        return self.ends_at or self.starts_at

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "eventId": self.event_id,
            "startsAt": _iso(self.starts_at),
            "endsAt": _iso(self.ends_at),
            "maxSpaces": self.max_spaces,
            "location": self.location,
        }

    @classmethod
    def from_dict(cls, d: dict) -> "Occurrence":
        max_spaces = d.get("maxSpaces")
        return cls(
            id=str(d["id"]),
            event_id=str(d.get("eventId") or ""),
            starts_at=d.get("startsAt"),
            ends_at=d.get("endsAt"),
            max_spaces=int(max_spaces) if max_spaces not in (None, "") else None,
            location=str(d.get("location") or ""),
        )


@dataclass
class Contact:
    """A person in the contact directory."""
    id: str
    first_name: str = ""
    last_name: str = ""
    email: str = ""
    spouse_id: Optional[str] = None
    confirmed: bool = True

    @property
    def full_name(self) -> str:
        name = f"{self.first_name} {self.last_name}".strip()
        return name or self.email

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "firstName": self.first_name,
            "lastName": self.last_name,
            "email": self.email,
            "spouseId": self.spouse_id,
            "confirmed": self.confirmed,
        }

    @classmethod
    def from_dict(cls, d: dict) -> "Contact":
        return cls(
            id=str(d["id"]),
            first_name=str(d.get("firstName") or ""),
            last_name=str(d.get("lastName") or ""),
            email=str(d.get("email") or ""),
            spouse_id=d.get("spouseId") or None,
            confirmed=d.get("confirmed") is not False,
        )


@dataclass
class Holiday:
    """A period of leave booked by a contact."""
    id: str
    contact_id: str
    start_date: datetime
    end_date: datetime

    def __post_init__(self):
        self.start_date = parse_datetime(self.start_date)
        self.end_date = parse_datetime(self.end_date)

    def overlaps(self, start: datetime, end: datetime) -> bool:
        """Half-open interval overlap with [start, end)."""
        return start < self.end_date and end > self.start_date

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "contactId": self.contact_id,
            "startDate": _iso(self.start_date),
            "endDate": _iso(self.end_date),
        }

    @classmethod
    def from_dict(cls, d: dict) -> "Holiday":
        return cls(
            id=str(d["id"]),
            contact_id=str(d.get("contactId") or ""),
            start_date=d.get("startDate"),
            end_date=d.get("endDate"),
        )


@dataclass
class ContactList:
    """A named list of contacts, used to pick bulk assignment candidates."""
    id: str
    name: str = ""
    contact_ids: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name, "contactIds": list(self.contact_ids)}

    @classmethod
    def from_dict(cls, d: dict) -> "ContactList":
        ids = d.get("contactIds")
        return cls(
            id=str(d["id"]),
            name=str(d.get("name") or ""),
            contact_ids=[str(c) for c in ids] if isinstance(ids, list) else [],
        )


@dataclass
class Rota:
    """
    A named, capacity-limited role on an event.

    ``occurrence_id`` is None for a template rota that applies to every
    occurrence of the event; set, it pins the rota to one date. ``version``
    increases by one on every committed write.
    """
    id: str
    event_id: str
    role: str
    capacity: int = 1
    occurrence_id: Optional[str] = None
    assignees: List[Assignee] = field(default_factory=list)
    visibility: str = "public"
    owner_id: Optional[str] = None
    notes: str = ""
    version: int = 0

    def __post_init__(self):
        self.capacity = _capacity(self.capacity)
        self.visibility = _normalize_visibility(self.visibility)
        self.occurrence_id = self.occurrence_id or None
        self.assignees = decode_assignees(self.assignees, self)

    @property
    def is_template(self) -> bool:
        return self.occurrence_id is None

    def applies_to(self, occurrence_id: Optional[str]) -> bool:
        """True if this rota covers the given occurrence."""
        return self.occurrence_id is None or self.occurrence_id == occurrence_id

    def validate(self) -> "Rota":
        """Reject records that cannot be stored."""
        if not self.event_id:
            raise RotaError(ErrorCode.VALIDATION, "Event ID is required")
        if not self.role or not self.role.strip():
            raise RotaError(ErrorCode.VALIDATION, "Role is required")
        if len(self.role) > 100:
            raise RotaError(ErrorCode.VALIDATION, "Role must be 100 characters or fewer")
        return self

    def copy(self) -> "Rota":
        return replace(self, assignees=list(self.assignees))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "eventId": self.event_id,
            "occurrenceId": self.occurrence_id,
            "role": self.role,
            "capacity": self.capacity,
            "assignees": encode_assignees(self.assignees),
            "notes": self.notes,
            "ownerId": self.owner_id,
            "visibility": self.visibility,
            "version": self.version,
        }

    @classmethod
    def from_dict(cls, d: dict) -> "Rota":
        return cls(
            id=str(d["id"]),
            event_id=str(d.get("eventId") or ""),
            role=str(d.get("role") or ""),
            capacity=_capacity(d.get("capacity")),
            occurrence_id=d.get("occurrenceId") or None,
            assignees=d.get("assignees") or [],
            visibility=d.get("visibility", "public"),
            owner_id=d.get("ownerId") or None,
            notes=str(d.get("notes") or ""),
            version=int(d.get("version") or 0),
        )
