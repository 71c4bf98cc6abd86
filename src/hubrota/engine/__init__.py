# hubrota/engine - Assignment primitives, guard, pattern matching and bulk tools
from .assignment import AddResult, RotaAssignmentEngine
from .bulk import BulkAssigner, BulkAssignResult
from .guard import GuardResult, assignees_at, can_assign, detect_clashes, resolved_count
from .patterns import DatePattern, MonthPosition, PatternType, WeekOfMonth, month_band, select_occurrences
from .queries import check_availability, find_contacts_by_past_role, roster_dataframe, upcoming_roster

__all__ = [
    "RotaAssignmentEngine", "AddResult",
    "BulkAssigner", "BulkAssignResult",
    "GuardResult", "can_assign", "assignees_at", "resolved_count", "detect_clashes",
    "DatePattern", "PatternType", "MonthPosition", "WeekOfMonth", "month_band", "select_occurrences",
    "check_availability", "find_contacts_by_past_role", "upcoming_roster", "roster_dataframe",
]
