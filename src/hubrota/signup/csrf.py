"""CSRF verification for mutating signup calls."""
import hashlib
import hmac
import secrets
from typing import Optional, Protocol

from hubrota.errors import ErrorCode, RotaError


class CsrfVerifier(Protocol):
    """Provided by the session layer; tokens are issued outside this package."""

    def verify(self, session_id: Optional[str], token: Optional[str]) -> bool:
        ...


class HmacCsrfVerifier:
    """Tokens bound to a session id with an HMAC over a server secret."""

    def __init__(self, secret: Optional[bytes] = None):
        self._secret = secret or secrets.token_bytes(32)

    def issue(self, session_id: str) -> str:
        return hmac.new(self._secret, session_id.encode("utf-8"), hashlib.sha256).hexdigest()

    def verify(self, session_id: Optional[str], token: Optional[str]) -> bool:
        if not session_id or not token:
            return False
        return hmac.compare_digest(self.issue(session_id), token)


def require_csrf(verifier: CsrfVerifier, session_id: Optional[str], token: Optional[str]) -> None:
    if not verifier.verify(session_id, token):
        raise RotaError(ErrorCode.CSRF_INVALID, "Invalid or missing security token. Please refresh and try again.")
