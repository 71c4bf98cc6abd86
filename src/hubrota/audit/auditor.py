"""
Integrity Auditor
=================
Offline scan of stored rotas for references that no longer resolve:
deleted events, deleted or moved occurrences, departed contacts.

The scan reads raw records, so entries the assignee decoder would drop are
still visible here. It reports first; in repair mode it prepares cleaned
copies that null invalid owners and drop invalid assignees. Nothing else is
changed automatically; a dangling event id needs a human to look at it.
"""
from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Set

import pandas as pd

from hubrota.io.ndjson_store import NdjsonStore
from hubrota.models.assignee import Guest, normalize
from hubrota.store.repository import Repository
from hubrota.utils.logging_setup import get_logger
from hubrota.utils.structured_logging import get_structured_logger

logger = get_logger("hubrota.audit")
log = get_structured_logger("hubrota.audit")


class IssueType(str, Enum):
    INVALID_EVENT_ID = "invalid_eventId"
    INVALID_OCCURRENCE_ID = "invalid_occurrenceId"
    MISMATCHED_OCCURRENCE_ID = "mismatched_occurrenceId"
    INVALID_ASSIGNEE = "invalid_assignee"
    INVALID_OWNER_ID = "invalid_ownerId"
    INVALID_RECORD = "invalid_record"


@dataclass
class AuditIssue:
    type: IssueType
    message: str

    def as_dict(self) -> Dict[str, str]:
        return {"type": self.type.value, "message": self.message}


@dataclass
class RotaAudit:
    """Issues found on one rota."""
    rota_id: str
    role: str
    issues: List[AuditIssue] = field(default_factory=list)
    assignees_removed: int = 0


@dataclass
class AuditSnapshot:
    """Raw rota records plus the id sets they are checked against."""
    rotas: List[Dict[str, Any]]
    event_ids: Set[str]
    occurrence_events: Dict[str, str]   # occurrence id -> event id
    contact_ids: Set[str]

    @classmethod
    def from_store(cls, store: NdjsonStore) -> "AuditSnapshot":
        """Read the collections; raises StorageError if one is unreadable."""
        return cls(
            rotas=store.read_collection("rotas"),
            event_ids={str(e.get("id")) for e in store.read_collection("events")},
            occurrence_events={
                str(o.get("id")): str(o.get("eventId") or "") for o in store.read_collection("occurrences")
            },
            contact_ids={str(c.get("id")) for c in store.read_collection("contacts")},
        )

    @classmethod
    def from_repository(cls, repository: Repository) -> "AuditSnapshot":
        return cls(
            rotas=[r.to_dict() for r in repository.list_rotas()],
            event_ids=set(repository.events),
            occurrence_events={o.id: o.event_id for o in repository.occurrences.values()},
            contact_ids=set(repository.contacts),
        )


@dataclass
class AuditReport:
    """Outcome of one audit run."""
    rotas_checked: int = 0
    rota_audits: List[RotaAudit] = field(default_factory=list)
    cleaned_rotas: List[Dict[str, Any]] = field(default_factory=list)  # Only in repair mode
    repair: bool = False

    @property
    def rotas_with_issues(self) -> int:
        return len(self.rota_audits)

    @property
    def total_issues(self) -> int:
        return sum(len(r.issues) for r in self.rota_audits)

    @property
    def assignees_removed(self) -> int:
        return sum(r.assignees_removed for r in self.rota_audits)

    @property
    def is_clean(self) -> bool:
        return not self.rota_audits

    def issues_for(self, rota_id: str) -> List[AuditIssue]:
        for r in self.rota_audits:
            if r.rota_id == rota_id:
                return list(r.issues)
        return []

    def counts_by_type(self) -> Dict[str, int]:
        counts = Counter(i.type.value for r in self.rota_audits for i in r.issues)
        return dict(counts)

    def summary(self) -> Dict[str, Any]:
        return {
            "rotasChecked": self.rotas_checked,
            "rotasWithIssues": self.rotas_with_issues,
            "totalIssues": self.total_issues,
            "assigneesRemoved": self.assignees_removed,
            "rotasUpdated": len(self.cleaned_rotas),
            "byType": self.counts_by_type(),
        }

    def as_dict(self) -> Dict[str, Any]:
        return {
            "summary": self.summary(),
            "issues": [
                {"rotaId": r.rota_id, "rotaRole": r.role, "issues": [i.as_dict() for i in r.issues]}
                for r in self.rota_audits
            ],
        }

    def to_dataframe(self) -> pd.DataFrame:
        """One row per issue."""
        rows = [
            {"rota_id": r.rota_id, "role": r.role, "type": i.type.value, "message": i.message}
            for r in self.rota_audits
            for i in r.issues
        ]
        return pd.DataFrame(rows, columns=["rota_id", "role", "type", "message"])


def _bad_id(value: Any) -> bool:
    """Set, but not a usable string id (lists and objects included)."""
    return bool(value) and not isinstance(value, str)


def _assignee_problem(raw: Any, rota: Mapping[str, Any], snapshot: AuditSnapshot) -> Optional[str]:
    """Reason an assignee entry is invalid, or None."""
    assignee = normalize(raw, rota)
    if assignee is None:
        return f"invalid assignee format: {raw!r}"
    if assignee.contact_id is not None and assignee.contact_id not in snapshot.contact_ids:
        return f"contactId: {assignee.contact_id} - Contact ID {assignee.contact_id} does not exist"

    who = (
        f"email: {assignee.person.email}" if isinstance(assignee.person, Guest)
        else f"contactId: {assignee.contact_id}"
    )
    occ_id = assignee.occurrence_id
    if _bad_id(occ_id):
        return f"{who} - Occurrence ID {occ_id!r} is not a string"
    if occ_id:
        if occ_id not in snapshot.occurrence_events:
            return f"{who} - Occurrence ID {occ_id} does not exist"
        event_id = rota.get("eventId")
        if isinstance(event_id, str) and event_id and snapshot.occurrence_events[occ_id] != event_id:
            return f"{who} - Occurrence ID {occ_id} does not belong to event {event_id}"
    return None


def _audit_rota(rota: Mapping[str, Any], snapshot: AuditSnapshot, repair: bool) -> tuple:
    rota_id = str(rota.get("id"))
    role = str(rota.get("role") or "")
    label = f'Rota "{role}" ({rota_id})'
    audit = RotaAudit(rota_id=rota_id, role=role)
    cleaned = dict(rota)
    changed = False

    event_id = rota.get("eventId")
    if _bad_id(event_id):
        audit.issues.append(AuditIssue(IssueType.INVALID_EVENT_ID, f"{label} has a non-string eventId: {event_id!r}"))
        event_id = None
    elif event_id and event_id not in snapshot.event_ids:
        audit.issues.append(AuditIssue(
            IssueType.INVALID_EVENT_ID,
            f"{label} references non-existent eventId: {event_id}",
        ))

    occ_id = rota.get("occurrenceId")
    if _bad_id(occ_id):
        audit.issues.append(AuditIssue(
            IssueType.INVALID_OCCURRENCE_ID,
            f"{label} has a non-string occurrenceId: {occ_id!r}",
        ))
    elif occ_id:
        if occ_id not in snapshot.occurrence_events:
            audit.issues.append(AuditIssue(
                IssueType.INVALID_OCCURRENCE_ID,
                f"{label} references non-existent occurrenceId: {occ_id}",
            ))
        elif event_id and snapshot.occurrence_events[occ_id] != event_id:
            audit.issues.append(AuditIssue(
                IssueType.MISMATCHED_OCCURRENCE_ID,
                f"{label} occurrenceId {occ_id} does not belong to event {event_id}",
            ))

    owner_id = rota.get("ownerId")
    if _bad_id(owner_id) or (owner_id and owner_id not in snapshot.contact_ids):
        audit.issues.append(AuditIssue(
            IssueType.INVALID_OWNER_ID,
            f"{label} references non-existent ownerId: {owner_id}",
        ))
        if repair:
            cleaned["ownerId"] = None
            changed = True

    raw_assignees = rota.get("assignees")
    if isinstance(raw_assignees, list):
        kept = []
        for raw in raw_assignees:
            problem = _assignee_problem(raw, rota, snapshot)
            if problem is None:
                kept.append(raw)
                continue
            audit.assignees_removed += 1 if repair else 0
            audit.issues.append(AuditIssue(IssueType.INVALID_ASSIGNEE, f"{label} has invalid assignee: {problem}"))
        if repair and len(kept) != len(raw_assignees):
            cleaned["assignees"] = kept
            changed = True

    return audit, (cleaned if changed else None)


def audit_integrity(snapshot: AuditSnapshot, repair: bool = False) -> AuditReport:
    """
    Check every rota in ``snapshot``.

    Args:
        snapshot: Raw records to check
        repair: Prepare cleaned rotas (invalid owners nulled, invalid
            assignees dropped) in ``report.cleaned_rotas``

    Returns:
        AuditReport; data problems are reported, never raised
    """
    report = AuditReport(rotas_checked=len(snapshot.rotas), repair=repair)
    for position, rota in enumerate(snapshot.rotas):
        if not isinstance(rota, Mapping):
            audit = RotaAudit(rota_id=f"#{position}", role="")
            audit.issues.append(AuditIssue(IssueType.INVALID_RECORD, f"Rota record {position} is not an object: {rota!r}"))
            cleaned = None
        else:
            audit, cleaned = _audit_rota(rota, snapshot, repair)
        if audit.issues:
            report.rota_audits.append(audit)
            for issue in audit.issues:
                logger.warning(f"{issue.type.value}: {issue.message}")
        if cleaned is not None:
            report.cleaned_rotas.append(cleaned)

    log.info("audit_completed", repair=repair, **report.summary())
    return report


def apply_repairs(store: NdjsonStore, report: AuditReport) -> int:
    """
    Write the cleaned rotas of a repair-mode report back to ``store``.

    Returns:
        Number of rotas rewritten
    """
    if not report.cleaned_rotas:
        return 0
    by_id = {str(r.get("id")): r for r in report.cleaned_rotas}
    rotas = store.read_collection("rotas")
    updated = 0
    for i, rota in enumerate(rotas):
        cleaned = by_id.get(str(rota.get("id")))
        if cleaned is not None:
            rotas[i] = cleaned
            updated += 1
    store.write_collection("rotas", rotas)
    logger.info(f"Updated {updated} rotas")
    return updated
