"""
Pydantic Validated Models
=========================
Validation layer for requests arriving from the admin screens, the public
signup pages and the CLI. Incoming payloads use camelCase keys; snake_case
is accepted too.

Usage:
    from hubrota.models.validated import BulkAssignRequest, parse_request

    req = parse_request(BulkAssignRequest, payload)
    pattern = req.to_pattern()

A pydantic ``ValidationError`` never escapes this module: ``parse_request``
turns it into a ``RotaError`` with code VALIDATION.
"""
from datetime import date
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Type, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator
from pydantic.alias_generators import to_camel

from hubrota.errors import ErrorCode, RotaError

from .entities import Rota

M = TypeVar("M", bound=BaseModel)


class _Request(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, str_strip_whitespace=True)


def _check_email(v: str) -> str:
    local, _, domain = v.partition("@")
    if not local or "." not in domain:
        raise ValueError("a valid email address is required")
    return v


class PatternTypeEnum(str, Enum):
    DAY_OF_MONTH = "day-of-month"
    DAY_OF_WEEK = "day-of-week"


class BulkAssignRequest(_Request):
    """
    Admin bulk assignment by date pattern.

    Candidates come from ``contact_ids`` or from a named contact list.
    """
    rota_id: str = Field(min_length=1)
    contact_ids: List[str] = Field(default_factory=list)
    list_id: Optional[str] = None

    pattern_type: PatternTypeEnum
    position: Optional[str] = None        # day-of-month
    weekday: Optional[str] = None         # day-of-week
    week_of_month: Optional[str] = None   # day-of-week

    frequency: int = Field(default=1, ge=1, le=31)
    end_date: date

    @field_validator("contact_ids")
    @classmethod
    def drop_blank_ids(cls, v: List[str]) -> List[str]:
        return [c.strip() for c in v if c and c.strip()]

    @model_validator(mode="after")
    def require_candidates(self):
        if not self.contact_ids and not self.list_id:
            raise ValueError("contactIds or listId is required")
        if self.pattern_type is PatternTypeEnum.DAY_OF_MONTH and not self.position:
            raise ValueError("position is required for day-of-month patterns")
        if self.pattern_type is PatternTypeEnum.DAY_OF_WEEK and not self.weekday:
            raise ValueError("weekday is required for day-of-week patterns")
        return self

    def to_pattern(self):
        """Build the engine's ``DatePattern``."""
        from hubrota.engine.patterns import DatePattern

        return DatePattern.build(
            self.pattern_type.value,
            position=self.position,
            weekday=self.weekday,
            week_of_month=self.week_of_month,
        )


class SignupSelection(_Request):
    """One requested slot: a rota and, for template rotas, the occurrence."""
    rota_id: str = Field(min_length=1)
    occurrence_id: Optional[str] = None


class SignupRequest(_Request):
    """Member self-service signup identified by email and name."""
    email: str
    name: str = Field(min_length=1, max_length=200)
    selections: List[SignupSelection] = Field(min_length=1)
    with_spouse: bool = False
    csrf_token: str = ""
    source: str = Field(min_length=1)  # Client address; the rate limit key

    @field_validator("email")
    @classmethod
    def valid_email(cls, v: str) -> str:
        return _check_email(v)

    @property
    def first_name(self) -> str:
        parts = self.name.split()
        return parts[0] if parts else ""

    @property
    def last_name(self) -> str:
        return " ".join(self.name.split()[1:])


class GuestSignupRequest(_Request):
    """Public signup through a share token; no account needed."""
    token: str = Field(min_length=1)
    name: str = Field(min_length=1, max_length=200)
    email: str
    selections: List[SignupSelection] = Field(min_length=1)
    csrf_token: str = ""
    source: str = Field(min_length=1)

    @field_validator("email")
    @classmethod
    def valid_email(cls, v: str) -> str:
        return _check_email(v)


class RotaInput(_Request):
    """A rota as submitted by the rota editor."""
    id: str = Field(min_length=1)
    event_id: str = Field(min_length=1)
    role: str = Field(min_length=1, max_length=100)
    capacity: int = 1
    occurrence_id: Optional[str] = None
    assignees: List[Any] = Field(default_factory=list)
    visibility: str = "public"
    owner_id: Optional[str] = None
    notes: str = ""

    @field_validator("capacity", mode="before")
    @classmethod
    def default_capacity(cls, v: Any) -> int:
        """Anything that is not a positive whole number becomes 1."""
        try:
            n = int(v)
        except (TypeError, ValueError):
            return 1
        return n if n >= 1 else 1

    @field_validator("visibility", mode="before")
    @classmethod
    def normalize_visibility(cls, v: Any) -> str:
        return "internal" if v == "internal" else "public"


def parse_request(model: Type[M], data: Mapping[str, Any]) -> M:
    """Validate ``data`` against ``model``, raising RotaError(VALIDATION) on failure."""
    try:
        return model.model_validate(dict(data))
    except ValidationError as e:
        errors = [
            {"field": ".".join(str(p) for p in err["loc"]), "message": err["msg"]}
            for err in e.errors()
        ]
        first = errors[0] if errors else {"field": "", "message": "invalid request"}
        raise RotaError(
            ErrorCode.VALIDATION,
            f"{first['field']}: {first['message']}" if first["field"] else first["message"],
            details={"errors": errors},
        ) from e


def validate_rota(data: Mapping[str, Any]) -> Rota:
    """
    Validate an editor payload and build the canonical Rota.

    Event id and role are required, capacity falls back to 1, visibility is
    public or internal, and assignees are rewritten to the current shapes.
    """
    payload: Dict[str, Any] = parse_request(RotaInput, data).model_dump()
    return Rota(**payload).validate()
