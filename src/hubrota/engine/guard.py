"""
Capacity & Conflict Guard
=========================
Decide whether one more person may take a slot on a rota for a given
occurrence. The guard only reads; it returns a result and never raises.
"""
from dataclasses import dataclass
from typing import Any, Iterable, List, Optional

from hubrota.errors import ErrorCode
from hubrota.models.assignee import Assignee, Identity, as_person
from hubrota.models.entities import Rota


@dataclass(frozen=True)
class GuardResult:
    """Outcome of ``can_assign``; truthy when the assignment is allowed."""
    ok: bool
    reason: Optional[ErrorCode] = None
    message: str = ""

    def __bool__(self) -> bool:
        return self.ok


ALLOWED = GuardResult(True)


def assignees_at(rota: Rota, occurrence_id: Optional[str]) -> List[Assignee]:
    """Assignees of ``rota`` whose resolved occurrence is ``occurrence_id``."""
    return [a for a in rota.assignees if a.occurrence_id == occurrence_id]


def resolved_count(rota: Rota, occurrence_id: Optional[str]) -> int:
    return len(assignees_at(rota, occurrence_id))


def detect_clashes(
    identity: Identity,
    occurrence_id: Optional[str],
    rotas: Iterable[Rota],
    exclude_rota_id: Optional[str] = None,
) -> List[Rota]:
    """
    Other rotas in which ``identity`` already holds a slot on ``occurrence_id``.

    Only rotas that apply to the occurrence (templates, or pinned to it)
    are considered.
    """
    clashes = []
    for other in rotas:
        if other.id == exclude_rota_id or not other.applies_to(occurrence_id):
            continue
        if any(a.identity == identity for a in assignees_at(other, occurrence_id)):
            clashes.append(other)
    return clashes


def can_assign(
    rota: Rota,
    occurrence_id: Optional[str],
    candidate: Any,
    event_rotas: Optional[Iterable[Rota]] = None,
) -> GuardResult:
    """
    Check capacity, duplicates and, when ``event_rotas`` is given, clashes.

    Args:
        rota: Rota receiving the assignment
        occurrence_id: Target occurrence
        candidate: Contact id, Member, Guest or raw assignee mapping
        event_rotas: Rotas of the same event to scan for a clash. The admin
            add primitive and the bulk tool leave this out.

    Returns:
        GuardResult with ``reason`` set on rejection
    """
    try:
        person = as_person(candidate)
    except ValueError as e:
        return GuardResult(False, ErrorCode.VALIDATION, str(e))

    present = assignees_at(rota, occurrence_id)
    if len(present) >= rota.capacity:
        return GuardResult(
            False,
            ErrorCode.CAPACITY_FULL,
            f"'{rota.role}' is full ({len(present)}/{rota.capacity})",
        )
    if any(a.identity == person.identity for a in present):
        return GuardResult(False, ErrorCode.DUPLICATE, f"Already signed up for '{rota.role}'")

    if event_rotas is not None:
        same_event = [r for r in event_rotas if r.event_id == rota.event_id]
        clashes = detect_clashes(person.identity, occurrence_id, same_event, exclude_rota_id=rota.id)
        if clashes:
            roles = ", ".join(r.role for r in clashes)
            return GuardResult(
                False,
                ErrorCode.CROSS_ROTA_CLASH,
                f"Already assigned to {roles} on this date",
            )
    return ALLOWED
