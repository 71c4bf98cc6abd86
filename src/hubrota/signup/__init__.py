# hubrota/signup - Public and member self-service signup
from .csrf import CsrfVerifier, HmacCsrfVerifier, require_csrf
from .rate_limit import SlidingWindowRateLimiter
from .tokens import ShareToken, TokenStore
from .workflow import SignupResult, SignupWorkflow, names_match

__all__ = [
    "SignupWorkflow", "SignupResult", "names_match",
    "SlidingWindowRateLimiter",
    "ShareToken", "TokenStore",
    "CsrfVerifier", "HmacCsrfVerifier", "require_csrf",
]
