# hubrota/models - Data models for rotas, occurrences and assignees
from .assignee import (
    Assignee,
    Guest,
    Member,
    decode_assignees,
    encode_assignee,
    encode_assignees,
    normalize,
)
from .config import HubConfig
from .entities import Contact, ContactList, Event, Holiday, Occurrence, Rota

__all__ = [
    "Event", "Occurrence", "Rota", "Contact", "Holiday", "ContactList",
    "Assignee", "Member", "Guest",
    "normalize", "decode_assignees", "encode_assignee", "encode_assignees",
    "HubConfig",
]
