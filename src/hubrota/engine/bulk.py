"""
Bulk pattern assignment: assign a fixed set of contacts to every occurrence
of a rota's event that matches a recurring date rule.

This path is best effort. Full or duplicate slots are counted per
occurrence; only a bad request or an empty selection raises.
"""
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, List, Optional, Sequence

from hubrota.errors import ErrorCode, RotaError
from hubrota.store.repository import Repository
from hubrota.utils.logging_setup import get_logger, log_function_call
from hubrota.utils.structured_logging import get_structured_logger

from .assignment import RotaAssignmentEngine
from .patterns import DatePattern, select_occurrences

logger = get_logger("hubrota.engine.bulk")
log = get_structured_logger("hubrota.engine.bulk")


@dataclass
class BulkAssignResult:
    """Totals across every matched occurrence."""
    assignments_made: int = 0
    occurrences_matched: int = 0
    skipped_full: int = 0
    skipped_duplicate: int = 0
    occurrence_ids: List[str] = field(default_factory=list)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "assignmentsMade": self.assignments_made,
            "occurrencesMatched": self.occurrences_matched,
            "skippedFull": self.skipped_full,
            "skippedDuplicate": self.skipped_duplicate,
            "occurrenceIds": list(self.occurrence_ids),
        }


class BulkAssigner:
    """Drives the assignment engine over pattern-matched occurrences."""

    def __init__(self, repository: Repository, engine: Optional[RotaAssignmentEngine] = None):
        self.repository = repository
        self.engine = engine or RotaAssignmentEngine(repository)

    @log_function_call
    def bulk_assign_by_pattern(
        self,
        rota_id: str,
        contact_ids: Sequence[str],
        pattern: DatePattern,
        frequency: int,
        end_date,
        today: Optional[date] = None,
    ) -> BulkAssignResult:
        """
        Assign ``contact_ids`` to each matching occurrence, oldest first.

        Occurrences are processed one at a time and the rota is re-read
        before each, so later occurrences see earlier writes.

        Raises:
            RotaError: VALIDATION for an empty contact list or bad frequency,
                NOT_FOUND for an unknown rota, NO_MATCHING_OCCURRENCES when
                nothing matches.
        """
        contact_ids = [c for c in (contact_ids or []) if c]
        if not contact_ids:
            raise RotaError(ErrorCode.VALIDATION, "At least one contact is required")

        rota = self.repository.require_rota(rota_id)
        if rota.is_template:
            pool = self.repository.occurrences_for_event(rota.event_id)
        else:
            pinned = self.repository.get_occurrence(rota.occurrence_id)
            pool = [pinned] if pinned else []

        matched = select_occurrences(pool, pattern, frequency, end_date, today=today)
        if not matched:
            raise RotaError(
                ErrorCode.NO_MATCHING_OCCURRENCES,
                f"No occurrences match '{pattern.describe()}' before {end_date}",
            )

        result = BulkAssignResult(occurrences_matched=len(matched))
        for occ in matched:
            step = self.engine.add_assignees(rota_id, occ.id, contact_ids)
            result.assignments_made += step.added
            result.skipped_full += step.skipped_full
            result.skipped_duplicate += step.skipped_duplicate
            result.occurrence_ids.append(occ.id)
            logger.debug(f"Occurrence {occ.id}: {step.as_dict()}")

        log.info("bulk_assign_completed", rota_id=rota_id, pattern=pattern.describe(), **result.as_dict())
        return result

    def bulk_assign_by_list(
        self,
        rota_id: str,
        list_id: str,
        pattern: DatePattern,
        frequency: int,
        end_date,
        today: Optional[date] = None,
    ) -> BulkAssignResult:
        """Same as ``bulk_assign_by_pattern`` with candidates taken from a named contact list."""
        contact_list = self.repository.get_list(list_id)
        if contact_list is None:
            raise RotaError(ErrorCode.NOT_FOUND, f"Contact list not found: {list_id}")
        return self.bulk_assign_by_pattern(
            rota_id, contact_list.contact_ids, pattern, frequency, end_date, today=today
        )
