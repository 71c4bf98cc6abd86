"""
Error Taxonomy
==============
Every failure surfaced by the assignment engine, the bulk tool and the
signup workflow carries one of these codes. Callers (admin screens, public
signup pages) map codes to user-facing messages and HTTP statuses.
"""
from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(str, Enum):
    """Failure categories shared by every write surface."""
    VALIDATION = "VALIDATION"
    NOT_FOUND = "NOT_FOUND"
    CAPACITY_FULL = "CAPACITY_FULL"
    DUPLICATE = "DUPLICATE"
    CROSS_ROTA_CLASH = "CROSS_ROTA_CLASH"
    NO_ACCOUNT = "NO_ACCOUNT"
    NAME_MISMATCH = "NAME_MISMATCH"
    PAST_OCCURRENCE = "PAST_OCCURRENCE"
    RATE_LIMITED = "RATE_LIMITED"
    CSRF_INVALID = "CSRF_INVALID"
    NO_MATCHING_OCCURRENCES = "NO_MATCHING_OCCURRENCES"
    ON_LEAVE = "ON_LEAVE"

    @property
    def http_status(self) -> int:
        """Status code a web layer should answer with."""
        return {
            ErrorCode.NOT_FOUND: 404,
            ErrorCode.RATE_LIMITED: 429,
            ErrorCode.CSRF_INVALID: 403,
        }.get(self, 400)


class RotaError(Exception):
    """Domain error raised at the service seams."""

    def __init__(self, code: ErrorCode, message: str = "", details: Optional[Dict[str, Any]] = None):
        self.code = ErrorCode(code)
        self.message = message or self.code.value
        self.details = details or {}
        super().__init__(f"{self.code.value}: {self.message}")

    @property
    def retryable(self) -> bool:
        """Only rate limiting clears up by itself."""
        return self.code is ErrorCode.RATE_LIMITED

    def as_dict(self) -> Dict[str, Any]:
        return {
            "error": self.code.value,
            "message": self.message,
            "retryable": self.retryable,
            **({"details": self.details} if self.details else {}),
        }


class StorageError(Exception):
    """Raised when a collection cannot be read or written."""

    def __init__(self, collection: str, reason: str):
        self.collection = collection
        self.reason = reason
        super().__init__(f"Storage failure on '{collection}': {reason}")


class VersionConflict(Exception):
    """A rota changed between read and write."""

    def __init__(self, rota_id: str, expected: int, actual: Optional[int]):
        self.rota_id = rota_id
        self.expected = expected
        self.actual = actual
        super().__init__(f"Rota {rota_id} is at version {actual}, expected {expected}")
