"""
Share tokens for public signup pages.

Public links carry an opaque token instead of entity ids. A rota token
(``RTA_`` prefix) scopes a link to one rota, optionally one occurrence; an
event token (``EVT_`` prefix) opens every public rota of an event.
"""
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from hubrota.io.ndjson_store import NdjsonStore
from hubrota.utils.dates import parse_datetime

ROTA_PREFIX = "RTA_"
EVENT_PREFIX = "EVT_"


@dataclass(frozen=True)
class ShareToken:
    token: str
    event_id: str
    rota_id: Optional[str] = None
    occurrence_id: Optional[str] = None
    created_at: datetime = field(default_factory=datetime.utcnow)

    @property
    def is_event_token(self) -> bool:
        return self.rota_id is None

    def allows(self, event_id: str, rota_id: str, occurrence_id: Optional[str]) -> bool:
        """True when a selection falls inside this token's scope."""
        if event_id != self.event_id:
            return False
        if self.rota_id is not None and rota_id != self.rota_id:
            return False
        if self.occurrence_id is not None and occurrence_id != self.occurrence_id:
            return False
        return True

    def to_dict(self) -> dict:
        d = {"token": self.token, "eventId": self.event_id, "createdAt": self.created_at.isoformat()}
        if not self.is_event_token:
            d["rotaId"] = self.rota_id
            d["occurrenceId"] = self.occurrence_id
        return d

    @classmethod
    def from_dict(cls, d: dict) -> "ShareToken":
        return cls(
            token=str(d["token"]),
            event_id=str(d.get("eventId") or ""),
            rota_id=d.get("rotaId") or None,
            occurrence_id=d.get("occurrenceId") or None,
            created_at=parse_datetime(d.get("createdAt")) or datetime.utcnow(),
        )


def _generate(prefix: str) -> str:
    return f"{prefix}{uuid.uuid4().hex}"


class TokenStore:
    """Issues and resolves share tokens; one token per scope."""

    def __init__(self, rota_tokens: Iterable[ShareToken] = (), event_tokens: Iterable[ShareToken] = ()):
        self._lock = threading.Lock()
        self._tokens: Dict[str, ShareToken] = {}
        for t in list(rota_tokens) + list(event_tokens):
            self._tokens[t.token] = t

    def ensure_rota_token(self, event_id: str, rota_id: str, occurrence_id: Optional[str] = None) -> ShareToken:
        """Return the token for this rota and occurrence, creating it on first use."""
        occurrence_id = occurrence_id or None
        with self._lock:
            for t in self._tokens.values():
                if (t.event_id, t.rota_id, t.occurrence_id) == (event_id, rota_id, occurrence_id):
                    return t
            token = ShareToken(_generate(ROTA_PREFIX), event_id, rota_id, occurrence_id)
            self._tokens[token.token] = token
            return token

    def ensure_event_token(self, event_id: str) -> ShareToken:
        with self._lock:
            for t in self._tokens.values():
                if t.is_event_token and t.event_id == event_id:
                    return t
            token = ShareToken(_generate(EVENT_PREFIX), event_id)
            self._tokens[token.token] = token
            return token

    def resolve(self, token: str) -> Optional[ShareToken]:
        return self._tokens.get(token or "")

    def tokens_for_rota(self, rota_id: str) -> List[ShareToken]:
        return [t for t in self._tokens.values() if t.rota_id == rota_id]

    @classmethod
    def from_store(cls, store: NdjsonStore) -> "TokenStore":
        return cls(
            rota_tokens=[ShareToken.from_dict(d) for d in store.read_collection("rota_tokens")],
            event_tokens=[ShareToken.from_dict(d) for d in store.read_collection("event_tokens")],
        )

    def persist(self, store: NdjsonStore) -> None:
        tokens = list(self._tokens.values())
        store.write_collection("rota_tokens", [t.to_dict() for t in tokens if not t.is_event_token])
        store.write_collection("event_tokens", [t.to_dict() for t in tokens if t.is_event_token])
