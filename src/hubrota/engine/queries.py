"""Read-only lookups over rotas used by the admin pickers and signup pages."""
from datetime import date
from typing import Any, Dict, Iterable, List, Optional

import pandas as pd

from hubrota.errors import ErrorCode, RotaError
from hubrota.models.assignee import Assignee
from hubrota.store.repository import Repository
from hubrota.utils.dates import is_upcoming

from .guard import assignees_at


def check_availability(
    repository: Repository,
    contact_ids: Iterable[str],
    occurrence_id: str,
    current_rota_id: Optional[str] = None,
) -> List[Dict[str, Any]]:
    """
    Find existing assignments of ``contact_ids`` on the same calendar date.

    Every rota of every event is scanned except ``current_rota_id``, so a
    contact serving elsewhere that day is reported even across events.
    """
    target = repository.get_occurrence(occurrence_id)
    if target is None:
        raise RotaError(ErrorCode.NOT_FOUND, f"Occurrence not found: {occurrence_id}")

    wanted = set(contact_ids)
    same_day = {o.id: o for o in repository.occurrences_on(target.date)}

    conflicts = []
    for rota in repository.list_rotas():
        if rota.id == current_rota_id:
            continue
        for assignee in rota.assignees:
            cid = assignee.contact_id
            if cid not in wanted or assignee.occurrence_id not in same_day:
                continue
            contact = repository.get_contact(cid)
            event = repository.get_event(rota.event_id)
            occ = same_day[assignee.occurrence_id]
            conflicts.append({
                "contactId": cid,
                "contactName": contact.full_name if contact else "Unknown",
                "rotaId": rota.id,
                "rotaRole": rota.role,
                "eventName": event.title if event else "Unknown Event",
                "occurrenceId": occ.id,
                "occurrenceTime": occ.starts_at.isoformat(),
            })
    return conflicts


def find_contacts_by_past_role(
    repository: Repository,
    role: str,
    exclude_rota_id: Optional[str] = None,
) -> List[str]:
    """Contact ids that have served in a rota with the same role name (case-insensitive)."""
    wanted = (role or "").strip().lower()
    if not wanted:
        return []
    found: List[str] = []
    for rota in repository.list_rotas():
        if rota.id == exclude_rota_id or rota.role.strip().lower() != wanted:
            continue
        for assignee in rota.assignees:
            if assignee.contact_id and assignee.contact_id not in found:
                found.append(assignee.contact_id)
    return found


def _display_name(repository: Repository, assignee: Assignee) -> str:
    if assignee.is_guest:
        return assignee.guest.name
    contact = repository.get_contact(assignee.contact_id)
    return contact.full_name if contact else "Unknown"


def upcoming_roster(
    repository: Repository,
    event_id: str,
    today: Optional[date] = None,
    public_only: bool = True,
) -> List[Dict[str, Any]]:
    """
    Per rota, per upcoming occurrence: who is serving and how many places remain.

    Only public rotas are listed unless ``public_only`` is False.
    """
    occurrences = [o for o in repository.occurrences_for_event(event_id) if is_upcoming(o.starts_at, today)]
    rows = []
    for rota in repository.rotas_for_event(event_id):
        if public_only and rota.visibility != "public":
            continue
        for occ in occurrences:
            if not rota.applies_to(occ.id):
                continue
            present = assignees_at(rota, occ.id)
            rows.append({
                "rotaId": rota.id,
                "role": rota.role,
                "occurrenceId": occ.id,
                "startsAt": occ.starts_at,
                "capacity": rota.capacity,
                "taken": len(present),
                "spotsRemaining": max(rota.capacity - len(present), 0),
                "assignees": [_display_name(repository, a) for a in present],
            })
    rows.sort(key=lambda r: (r["startsAt"], r["role"]))
    return rows


def roster_dataframe(rows: List[Dict[str, Any]]) -> pd.DataFrame:
    """Tabular view of ``upcoming_roster`` output, one row per rota and date."""
    columns = ["startsAt", "role", "taken", "capacity", "spotsRemaining", "assignees"]
    if not rows:
        return pd.DataFrame(columns=columns)
    df = pd.DataFrame(rows)
    df["assignees"] = df["assignees"].apply(", ".join)
    return df[columns]
