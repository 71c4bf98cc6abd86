"""CSV loading for contacts, occurrences and leave exported from other tools."""
from pathlib import Path
from typing import Dict, List, Optional, Union

import pandas as pd

from hubrota.models.entities import Contact, Holiday, Occurrence
from hubrota.store.repository import new_id

Source = Union[str, Path, pd.DataFrame]

# Accepted spellings for each field
CONTACT_COLUMNS = {
    "id": ("id", "contact_id", "contactId"),
    "first_name": ("first_name", "firstName", "first name"),
    "last_name": ("last_name", "lastName", "last name", "surname"),
    "email": ("email", "e-mail", "email_address"),
    "spouse_id": ("spouse_id", "spouseId"),
    "confirmed": ("confirmed",),
}

OCCURRENCE_COLUMNS = {
    "id": ("id", "occurrence_id", "occurrenceId"),
    "event_id": ("event_id", "eventId"),
    "starts_at": ("starts_at", "startsAt", "start"),
    "ends_at": ("ends_at", "endsAt", "end"),
    "location": ("location",),
}

HOLIDAY_COLUMNS = {
    "id": ("id",),
    "contact_id": ("contact_id", "contactId"),
    "start_date": ("start_date", "startDate", "start"),
    "end_date": ("end_date", "endDate", "end"),
}


def _safe_bool(value, default: bool = True) -> bool:
    """Safely convert value to bool."""
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    if isinstance(value, str):
        if not value.strip():
            return default
        return value.strip().lower() in ("1", "true", "yes", "y")
    return default


def _read(source: Source) -> pd.DataFrame:
    if isinstance(source, pd.DataFrame):
        df = source.copy()
    else:
        df = pd.read_csv(source, dtype=str)
    return df.fillna("")


def _rename(df: pd.DataFrame, columns: Dict[str, tuple]) -> pd.DataFrame:
    """Map accepted spellings onto canonical column names."""
    lookup = {c.strip().lower(): c for c in df.columns}
    mapping = {}
    for canonical, spellings in columns.items():
        for s in spellings:
            if s.lower() in lookup:
                mapping[lookup[s.lower()]] = canonical
                break
    return df.rename(columns=mapping)


def _cell(row: pd.Series, key: str) -> str:
    return str(row.get(key, "")).strip()


def load_contacts(source: Source) -> List[Contact]:
    """
    Load contacts from a CSV file or DataFrame.

    An ``email`` column is required. Rows without an email are skipped;
    rows without an id get a generated one.
    """
    df = _rename(_read(source), CONTACT_COLUMNS)
    if "email" not in df.columns:
        raise ValueError("CSV must have an 'email' column")

    contacts = []
    for _, row in df.iterrows():
        email = _cell(row, "email")
        if not email:
            continue
        contacts.append(Contact(
            id=_cell(row, "id") or new_id(),
            first_name=_cell(row, "first_name"),
            last_name=_cell(row, "last_name"),
            email=email,
            spouse_id=_cell(row, "spouse_id") or None,
            confirmed=_safe_bool(row.get("confirmed", "")),
        ))
    return contacts


def load_occurrences(source: Source, event_id: Optional[str] = None) -> List[Occurrence]:
    """
    Load occurrences from a CSV file or DataFrame.

    Args:
        source: Path to CSV file or pandas DataFrame
        event_id: Event to attach rows to when the file has no event column

    Returns:
        Occurrences sorted by start time
    """
    df = _rename(_read(source), OCCURRENCE_COLUMNS)
    if "starts_at" not in df.columns:
        raise ValueError("CSV must have a 'startsAt' column")
    if "event_id" not in df.columns and not event_id:
        raise ValueError("CSV has no 'eventId' column and no event was given")

    occurrences = []
    for _, row in df.iterrows():
        starts_at = _cell(row, "starts_at")
        if not starts_at:
            continue
        occurrences.append(Occurrence(
            id=_cell(row, "id") or new_id(),
            event_id=_cell(row, "event_id") or event_id,
            starts_at=starts_at,
            ends_at=_cell(row, "ends_at") or None,
            location=_cell(row, "location"),
        ))
    return sorted(occurrences, key=lambda o: o.starts_at)


def load_holidays(source: Source) -> List[Holiday]:
    """Load leave periods; rows missing a contact or either date are skipped."""
    df = _rename(_read(source), HOLIDAY_COLUMNS)
    holidays = []
    for _, row in df.iterrows():
        contact_id, start, end = _cell(row, "contact_id"), _cell(row, "start_date"), _cell(row, "end_date")
        if not (contact_id and start and end):
            continue
        holidays.append(Holiday(id=_cell(row, "id") or new_id(), contact_id=contact_id, start_date=start, end_date=end))
    return holidays


def contacts_to_dataframe(contacts: List[Contact]) -> pd.DataFrame:
    """Convert contacts to a DataFrame for display or export."""
    if not contacts:
        return pd.DataFrame(columns=["id", "firstName", "lastName", "email", "spouseId", "confirmed"])
    return pd.DataFrame([c.to_dict() for c in contacts])
