"""
Rota Assignment Engine
======================
Add and remove primitives shared by the admin screens, the bulk tool and
the signup workflow.

Each write reads the current rota, computes the new assignee array and
commits the whole array with the version it read, holding the rota's lock.
"""
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

from hubrota.errors import ErrorCode, RotaError, VersionConflict
from hubrota.models.assignee import Assignee, as_person, encode_assignee
from hubrota.models.config import HubConfig
from hubrota.models.entities import Occurrence, Rota
from hubrota.store.repository import Repository
from hubrota.utils.logging_setup import get_logger, log_decision
from hubrota.utils.structured_logging import get_structured_logger

from .guard import assignees_at

logger = get_logger("hubrota.engine.assignment")
log = get_structured_logger("hubrota.engine")


@dataclass
class AddResult:
    """Per-call outcome of ``add_assignees``."""
    added: int = 0
    skipped_duplicate: int = 0  # Already present, or repeated in the input
    skipped_full: int = 0       # Unique candidates beyond the free places

    def as_dict(self) -> Dict[str, int]:
        return {
            "added": self.added,
            "skippedDuplicate": self.skipped_duplicate,
            "skippedFull": self.skipped_full,
        }


def resolve_occurrence(repository: Repository, rota: Rota, occurrence_id: Optional[str]) -> Optional[Occurrence]:
    """
    Look up the target occurrence of a write and check it belongs to the rota.

    A template rota may be written without an occurrence; a pinned rota
    only accepts its own occurrence.
    """
    if occurrence_id is None:
        return None
    occurrence = repository.get_occurrence(occurrence_id)
    if occurrence is None:
        raise RotaError(ErrorCode.NOT_FOUND, f"Occurrence not found: {occurrence_id}")
    if occurrence.event_id != rota.event_id:
        raise RotaError(
            ErrorCode.VALIDATION,
            f"Occurrence {occurrence_id} does not belong to event {rota.event_id}",
        )
    if not rota.applies_to(occurrence_id):
        raise RotaError(
            ErrorCode.VALIDATION,
            f"Rota {rota.id} is pinned to occurrence {rota.occurrence_id}",
        )
    return occurrence


def plan_additions(rota: Rota, occurrence_id: Optional[str], candidates: Sequence[Any]) -> tuple:
    """
    Work out which candidates fit, without touching storage.

    Returns:
        (new assignee list, AddResult)
    """
    try:
        people = [as_person(c) for c in candidates]
    except ValueError as e:
        raise RotaError(ErrorCode.VALIDATION, str(e)) from e

    present = assignees_at(rota, occurrence_id)
    seen = {a.identity for a in present}
    available = max(rota.capacity - len(present), 0)

    result = AddResult()
    new_entries: List[Assignee] = []
    for person in people:
        who = person.identity[1]
        if person.identity in seen:
            result.skipped_duplicate += 1
            log_decision(logger, rota.id, occurrence_id, who, "duplicate")
            continue
        seen.add(person.identity)
        if len(new_entries) >= available:
            result.skipped_full += 1
            log_decision(logger, rota.id, occurrence_id, who, "full")
            continue
        new_entries.append(Assignee(person, occurrence_id))
        log_decision(logger, rota.id, occurrence_id, who, "added")

    result.added = len(new_entries)
    return rota.assignees + new_entries, result


class RotaAssignmentEngine:
    """Admin add/remove with per-rota serialization and a version check."""

    def __init__(self, repository: Repository, config: Optional[HubConfig] = None):
        self.repository = repository
        self.config = config or HubConfig()

    def add_assignees(self, rota_id: str, occurrence_id: Optional[str], candidates: Sequence[Any]) -> AddResult:
        """
        Append candidates to a rota for one occurrence.

        Duplicates are counted and skipped, places beyond capacity are
        counted as ``skipped_full``; neither fails the call. No cross-rota
        clash scan runs here.

        Args:
            rota_id: Target rota
            occurrence_id: Target occurrence; None means the rota's own
            candidates: Contact ids, Member or Guest values

        Returns:
            AddResult with the three counters
        """
        for attempt in range(1, self.config.max_write_retries + 1):
            with self.repository.rota_lock(rota_id):
                rota = self.repository.require_rota(rota_id)
                target = occurrence_id or rota.occurrence_id
                resolve_occurrence(self.repository, rota, target)
                assignees, result = plan_additions(rota, target, candidates)
                if result.added == 0:
                    return result
                rota.assignees = assignees
                try:
                    self.repository.save_rota(rota, rota.version)
                except VersionConflict as e:
                    logger.warning(f"Retrying add on rota {rota_id} (attempt {attempt}): {e}")
                    continue
            log.info(
                "assignees_added",
                rota_id=rota_id,
                occurrence_id=target,
                **result.as_dict(),
            )
            return result
        raise VersionConflict(rota_id, rota.version, None)

    def remove_assignee(self, rota_id: str, index: int) -> Dict[str, Any]:
        """
        Remove the assignee at ``index`` and return its persisted form.

        Removal is positional; guests have no identity beyond name and email.
        """
        for attempt in range(1, self.config.max_write_retries + 1):
            with self.repository.rota_lock(rota_id):
                rota = self.repository.require_rota(rota_id)
                if not isinstance(index, int) or index < 0 or index >= len(rota.assignees):
                    raise RotaError(
                        ErrorCode.VALIDATION,
                        f"No assignee at position {index} (rota has {len(rota.assignees)})",
                    )
                removed = rota.assignees.pop(index)
                try:
                    self.repository.save_rota(rota, rota.version)
                except VersionConflict as e:
                    logger.warning(f"Retrying remove on rota {rota_id} (attempt {attempt}): {e}")
                    continue
            log.info("assignee_removed", rota_id=rota_id, index=index, occurrence_id=removed.occurrence_id)
            return encode_assignee(removed)
        raise VersionConflict(rota_id, rota.version, None)
