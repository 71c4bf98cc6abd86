"""Excel export of an event's rota roster."""
import io
from datetime import date
from pathlib import Path
from typing import Dict, List, Optional, Union

from openpyxl import Workbook
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter

from hubrota.engine.queries import upcoming_roster
from hubrota.store.repository import Repository
from hubrota.utils.dates import format_uk

# Fill per slot state
FILL_COLORS = {
    "full": "C6EFCE",
    "partial": "FFEB9C",
    "empty": "FFC7CE",
}

THIN = Side(border_style="thin", color="CCCCCC")
BORDER_THIN = Border(top=THIN, bottom=THIN, left=THIN, right=THIN)
HEADER_FILL = PatternFill(start_color="DDEEFF", end_color="DDEEFF", fill_type="solid")


def _slot_state(taken: int, capacity: int) -> str:
    if taken >= capacity:
        return "full"
    return "partial" if taken else "empty"


def export_roster_to_excel(
    repository: Repository,
    event_id: str,
    output: Union[str, Path, io.BytesIO],
    today: Optional[date] = None,
    include_internal: bool = True,
) -> int:
    """
    Export upcoming occurrences x rotas to an Excel workbook.

    Args:
        repository: Source of rotas, occurrences and contact names
        event_id: Event to export
        output: File path or BytesIO buffer
        today: First date included (the clock when omitted)
        include_internal: Also export internal rotas

    Returns:
        Number of roster rows written
    """
    rows = upcoming_roster(repository, event_id, today=today, public_only=not include_internal)
    event = repository.get_event(event_id)

    roles: List[str] = []
    for r in rows:
        if r["role"] not in roles:
            roles.append(r["role"])
    dates: Dict[str, str] = {}
    for r in rows:
        dates.setdefault(r["occurrenceId"], format_uk(r["startsAt"]))

    wb = Workbook()

    # ========== Roster Sheet ==========
    ws = wb.active
    ws.title = "Roster"
    ws.cell(row=1, column=1, value="Date").font = Font(bold=True)
    for j, role in enumerate(roles, start=2):
        cell = ws.cell(row=1, column=j, value=role)
        cell.font = Font(bold=True)
        cell.fill = HEADER_FILL
        cell.alignment = Alignment(horizontal="center")
    ws.freeze_panes = "B2"

    row_of = {occ_id: i for i, occ_id in enumerate(dates, start=2)}
    for occ_id, label in dates.items():
        ws.cell(row=row_of[occ_id], column=1, value=label).font = Font(bold=True)

    counts = {"full": 0, "partial": 0, "empty": 0}
    for r in rows:
        state = _slot_state(r["taken"], r["capacity"])
        counts[state] += 1
        text = ", ".join(r["assignees"])
        cell = ws.cell(
            row=row_of[r["occurrenceId"]],
            column=roles.index(r["role"]) + 2,
            value=f"{text} ({r['taken']}/{r['capacity']})" if text else f"({r['taken']}/{r['capacity']})",
        )
        color = FILL_COLORS[state]
        cell.fill = PatternFill(start_color=color, end_color=color, fill_type="solid")
        cell.alignment = Alignment(wrap_text=True, vertical="top")
        cell.border = BORDER_THIN

    ws.column_dimensions["A"].width = 24
    for j in range(2, len(roles) + 2):
        ws.column_dimensions[get_column_letter(j)].width = 28

    # ========== Summary Sheet ==========
    ws_sum = wb.create_sheet("Summary")
    summary = [
        ["Metric", "Value"],
        ["Event", event.title if event else event_id],
        ["Occurrences", len(dates)],
        ["Rotas", len(roles)],
        ["Slots full", counts["full"]],
        ["Slots partly filled", counts["partial"]],
        ["Slots empty", counts["empty"]],
    ]
    for i, row_data in enumerate(summary, start=1):
        for j, val in enumerate(row_data, start=1):
            cell = ws_sum.cell(row=i, column=j, value=val)
            if i == 1:
                cell.font = Font(bold=True)
    for i in range(1, 3):
        ws_sum.column_dimensions[get_column_letter(i)].width = 24

    if isinstance(output, io.BytesIO):
        wb.save(output)
    else:
        wb.save(str(output))
    return len(rows)
