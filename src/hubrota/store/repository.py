"""
Repository
==========
In-memory collections for events, occurrences, rotas and the external
records they point at (contacts, holidays, contact lists).

Rotas are handed out as copies. A writer reads a rota, computes the new
assignee array and commits it with the version it read; a commit against a
rota that moved on raises ``VersionConflict``. ``rota_lock`` serializes
writers to the same rota inside one process.
"""
import threading
import uuid
from contextlib import ExitStack, contextmanager
from datetime import datetime
from typing import TYPE_CHECKING, Dict, Iterable, Iterator, List, Mapping, Optional

from hubrota.errors import ErrorCode, RotaError, VersionConflict
from hubrota.models.assignee import normalize
from hubrota.models.entities import Contact, ContactList, Event, Holiday, Occurrence, Rota
from hubrota.utils.dates import parse_datetime
from hubrota.utils.logging_setup import get_logger

if TYPE_CHECKING:
    from hubrota.io.ndjson_store import NdjsonStore

logger = get_logger("hubrota.store")


def new_id() -> str:
    return uuid.uuid4().hex


class Repository:
    """Thread-safe store for the rota domain."""

    def __init__(
        self,
        events: Iterable[Event] = (),
        occurrences: Iterable[Occurrence] = (),
        rotas: Iterable[Rota] = (),
        contacts: Iterable[Contact] = (),
        holidays: Iterable[Holiday] = (),
        lists: Iterable[ContactList] = (),
    ):
        self._lock = threading.RLock()
        self._rota_locks: Dict[str, threading.Lock] = {}
        self.events: Dict[str, Event] = {e.id: e for e in events}
        self.occurrences: Dict[str, Occurrence] = {o.id: o for o in occurrences}
        self.contacts: Dict[str, Contact] = {c.id: c for c in contacts}
        self.holidays: Dict[str, Holiday] = {h.id: h for h in holidays}
        self.lists: Dict[str, ContactList] = {cl.id: cl for cl in lists}
        self._rotas: Dict[str, Rota] = {}
        for rota in rotas:
            self.add_rota(rota)

    # Events

    def add_event(self, event: Event) -> Event:
        with self._lock:
            self.events[event.id] = event
        return event

    def get_event(self, event_id: str) -> Optional[Event]:
        return self.events.get(event_id)

    # Occurrences

    def add_occurrence(self, occurrence: Occurrence) -> Occurrence:
        with self._lock:
            self.occurrences[occurrence.id] = occurrence
        return occurrence

    def add_occurrences_from_instances(self, event_id: str, instances: Iterable[Mapping]) -> List[Occurrence]:
        """
        Store the output of the recurrence generator for one event.

        Each instance is a mapping with ``startsAt``, optional ``endsAt``
        and optional ``location``.
        """
        created = []
        for inst in instances:
            occ = Occurrence(
                id=str(inst.get("id") or new_id()),
                event_id=event_id,
                starts_at=parse_datetime(inst.get("startsAt")),
                ends_at=parse_datetime(inst.get("endsAt")),
                location=str(inst.get("location") or ""),
            )
            created.append(self.add_occurrence(occ))
        return created

    def get_occurrence(self, occurrence_id: Optional[str]) -> Optional[Occurrence]:
        if not occurrence_id:
            return None
        return self.occurrences.get(occurrence_id)

    def delete_occurrence(self, occurrence_id: str) -> Optional[Occurrence]:
        """Remove an occurrence. References to it are left for the auditor to report."""
        with self._lock:
            return self.occurrences.pop(occurrence_id, None)

    def occurrences_for_event(self, event_id: str) -> List[Occurrence]:
        occs = [o for o in self.occurrences.values() if o.event_id == event_id]
        return sorted(occs, key=lambda o: o.starts_at)

    def occurrences_on(self, day) -> List[Occurrence]:
        return [o for o in self.occurrences.values() if o.date == day]

    # Contact directory

    def add_contact(self, contact: Contact) -> Contact:
        with self._lock:
            self.contacts[contact.id] = contact
        return contact

    def get_contact(self, contact_id: Optional[str]) -> Optional[Contact]:
        if not contact_id:
            return None
        return self.contacts.get(contact_id)

    def find_contact_by_email(self, email: str) -> Optional[Contact]:
        """Case-insensitive lookup; the first match wins."""
        wanted = (email or "").strip().lower()
        if not wanted:
            return None
        for contact in self.contacts.values():
            if contact.email and contact.email.strip().lower() == wanted:
                return contact
        return None

    # Holidays

    def add_holiday(self, holiday: Holiday) -> Holiday:
        with self._lock:
            self.holidays[holiday.id] = holiday
        return holiday

    def holidays_for(self, contact_id: str) -> List[Holiday]:
        return [h for h in self.holidays.values() if h.contact_id == contact_id]

    def has_leave_conflict(self, contact_id: str, start: datetime, end: datetime) -> bool:
        return any(h.overlaps(start, end) for h in self.holidays_for(contact_id))

    # Contact lists

    def add_list(self, contact_list: ContactList) -> ContactList:
        with self._lock:
            self.lists[contact_list.id] = contact_list
        return contact_list

    def get_list(self, list_id: str) -> Optional[ContactList]:
        return self.lists.get(list_id)

    # Rotas

    def add_rota(self, rota: Rota) -> Rota:
        rota.validate()
        with self._lock:
            self._rotas[rota.id] = rota.copy()
        return rota.copy()

    def get_rota(self, rota_id: str) -> Optional[Rota]:
        with self._lock:
            rota = self._rotas.get(rota_id)
            return rota.copy() if rota else None

    def require_rota(self, rota_id: str) -> Rota:
        rota = self.get_rota(rota_id)
        if rota is None:
            raise RotaError(ErrorCode.NOT_FOUND, f"Rota not found: {rota_id}")
        return rota

    def list_rotas(self) -> List[Rota]:
        with self._lock:
            return [r.copy() for r in self._rotas.values()]

    def rotas_for_event(self, event_id: str) -> List[Rota]:
        with self._lock:
            return [r.copy() for r in self._rotas.values() if r.event_id == event_id]

    def delete_rota(self, rota_id: str) -> Optional[Rota]:
        with self._lock:
            self._rota_locks.pop(rota_id, None)
            return self._rotas.pop(rota_id, None)

    def _lock_for(self, rota_id: str) -> threading.Lock:
        with self._lock:
            lock = self._rota_locks.get(rota_id)
            if lock is None:
                lock = self._rota_locks[rota_id] = threading.Lock()
            return lock

    @contextmanager
    def rota_lock(self, rota_id: str) -> Iterator[None]:
        """Serialize writers to one rota."""
        with self._lock_for(rota_id):
            yield

    @contextmanager
    def rota_locks(self, rota_ids: Iterable[str]) -> Iterator[None]:
        """Hold several rota locks, always acquired in id order."""
        with ExitStack() as stack:
            for rota_id in sorted(set(rota_ids)):
                stack.enter_context(self.rota_lock(rota_id))
            yield

    def save_rota(self, rota: Rota, expected_version: int) -> Rota:
        """Commit one rota if nobody else committed since ``expected_version``."""
        return self.save_rotas([rota], {rota.id: expected_version})[0]

    def save_rotas(self, rotas: List[Rota], expected_versions: Mapping[str, int]) -> List[Rota]:
        """
        Commit several rotas at once, or none of them.

        ``expected_versions`` may name more rotas than are written: every
        rota the caller based its decision on is re-checked.
        """
        for rota in rotas:
            rota.validate()
        with self._lock:
            for rota_id, expected in expected_versions.items():
                current = self._rotas.get(rota_id)
                actual = current.version if current else None
                if actual != expected:
                    raise VersionConflict(rota_id, expected, actual)
            saved = []
            for rota in rotas:
                stored = rota.copy()
                stored.version = expected_versions[rota.id] + 1
                self._rotas[rota.id] = stored
                saved.append(stored.copy())
        return saved

    # Persistence

    @classmethod
    def from_store(cls, store: "NdjsonStore") -> "Repository":
        """Load every collection from an NDJSON data directory."""
        repo = cls(
            events=[Event.from_dict(d) for d in store.read_collection("events")],
            occurrences=[Occurrence.from_dict(d) for d in store.read_collection("occurrences")],
            contacts=[Contact.from_dict(d) for d in store.read_collection("contacts")],
            holidays=[Holiday.from_dict(d) for d in store.read_collection("holidays")],
            lists=[ContactList.from_dict(d) for d in store.read_collection("lists")],
        )
        with repo._lock:
            for d in store.read_collection("rotas"):
                rota = Rota.from_dict(d)
                repo._rotas[rota.id] = rota
        logger.info(
            f"Loaded {len(repo._rotas)} rotas, {len(repo.events)} events, "
            f"{len(repo.occurrences)} occurrences, {len(repo.contacts)} contacts"
        )
        return repo

    def save_rotas_to(self, store: "NdjsonStore", rota_ids: Iterable[str]) -> int:
        """
        Write the named rotas back to ``store``.

        Every other stored record is kept exactly as read. Entries of a
        rewritten rota that do not decode are carried over unchanged; only
        the auditor's repair mode drops them.

        Returns:
            Number of records rewritten
        """
        wanted = set(rota_ids)
        records = store.read_collection("rotas")
        written = set()
        for i, raw in enumerate(records):
            rota_id = str(raw.get("id"))
            rota = self.get_rota(rota_id) if rota_id in wanted else None
            if rota is None:
                continue
            record = rota.to_dict()
            raw_assignees = raw.get("assignees")
            if isinstance(raw_assignees, list):
                record["assignees"] += [a for a in raw_assignees if normalize(a, raw) is None]
            records[i] = record
            written.add(rota_id)
        for rota_id in sorted(wanted - written):
            rota = self.get_rota(rota_id)
            if rota is not None:
                records.append(rota.to_dict())
                written.add(rota_id)
        store.write_collection("rotas", records)
        logger.info(f"Wrote {len(written)} of {len(records)} rotas")
        return len(written)
