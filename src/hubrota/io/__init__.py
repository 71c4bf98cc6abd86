# hubrota/io - Input/output handling
from .ndjson_store import COLLECTIONS, NdjsonStore
from .csv_loader import contacts_to_dataframe, load_contacts, load_holidays, load_occurrences
from .excel_export import export_roster_to_excel

__all__ = [
    "NdjsonStore", "COLLECTIONS",
    "load_contacts", "load_occurrences", "load_holidays", "contacts_to_dataframe",
    "export_roster_to_excel",
]
