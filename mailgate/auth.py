# mailgate/auth.py
"""
Auth gate middleware and the route-level caller check.

The gate classifies every request, first match wins:
  1. public path (docs, token issuance, health)           -> forward
  2. Authorization header present (any value)             -> forward, the route validates the bearer token
  3. API key header: missing -> 401, invalid -> 401, valid -> forward

The gate never validates bearer tokens itself; `require_caller` does that on
protected routes, and re-checks the API key when no Authorization header is sent.
"""

import enum
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Mapping, Optional

from fastapi import HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import PlainTextResponse

from mailgate import monitoring
from mailgate.errors import ConfigurationError, InvalidTokenError
from mailgate.tokens import TokenIssuer

DOCS_PATH = "/swagger"
TOKEN_PATH = "/api/auth/token"
PUBLIC_PATHS = (DOCS_PATH, TOKEN_PATH, "/health")

AUTHORIZATION_HEADER = "Authorization"


class GateOutcome(str, enum.Enum):
    PUBLIC = "public"
    PENDING_BEARER = "pending_bearer"
    SECRET_VERIFIED = "secret_verified"
    MISSING_KEY = "missing_key"
    INVALID_KEY = "invalid_key"

    @property
    def forwarded(self) -> bool:
        return self not in (GateOutcome.MISSING_KEY, GateOutcome.INVALID_KEY)


def is_public_path(path: str, public_paths: Iterable[str] = PUBLIC_PATHS) -> bool:
    """Segment-aware prefix match: /swagger matches /swagger and /swagger/x, not /swaggerx."""
    for prefix in public_paths:
        prefix = prefix.rstrip("/")
        if path == prefix or path.startswith(prefix + "/"):
            return True
    return False


def classify_request(path: str, headers: Mapping[str, str], issuer: TokenIssuer,
                     api_key_header: str, public_paths: Iterable[str] = PUBLIC_PATHS) -> GateOutcome:
    if is_public_path(path, public_paths):
        return GateOutcome.PUBLIC
    if AUTHORIZATION_HEADER in headers:
        return GateOutcome.PENDING_BEARER
    if api_key_header not in headers:
        return GateOutcome.MISSING_KEY
    if not issuer.validate_shared_secret(headers.get(api_key_header)):
        return GateOutcome.INVALID_KEY
    return GateOutcome.SECRET_VERIFIED


class AuthGateMiddleware(BaseHTTPMiddleware):
    """Rejects requests that carry neither a bearer token nor a valid API key."""

    def __init__(self, app, issuer: TokenIssuer, api_key_header: str = "X-API-Key",
                 public_paths: Iterable[str] = PUBLIC_PATHS):
        super().__init__(app)
        self.issuer = issuer
        self.api_key_header = api_key_header
        self.public_paths = tuple(public_paths)

    async def dispatch(self, request: Request, call_next):
        outcome = classify_request(request.url.path, request.headers, self.issuer,
                                   self.api_key_header, self.public_paths)
        monitoring.inc_auth_decision(outcome.value)

        if outcome.forwarded:
            return await call_next(request)

        if outcome == GateOutcome.MISSING_KEY:
            return PlainTextResponse(f"API key not provided in header {self.api_key_header}",
                                     status_code=401)
        monitoring.logger.warning("Invalid API key",
                                  extra={"path": request.url.path,
                                         "client": request.client.host if request.client else "unknown"})
        return PlainTextResponse("Invalid API key.", status_code=401)


# ---------------------------------------------------------------------------
# Route-level check
# ---------------------------------------------------------------------------
_bearer_scheme = HTTPBearer(auto_error=False)


@dataclass
class Caller:
    method: str  # "bearer" | "api_key"
    principal: Optional[str] = None
    claims: Optional[Dict[str, Any]] = None


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def require_caller(request: Request) -> Caller:
    """FastAPI dependency: accept a valid bearer token or, without one, a valid API key."""
    issuer: TokenIssuer = request.app.state.token_issuer
    api_key_header: str = request.app.state.settings.api_key_header

    if AUTHORIZATION_HEADER in request.headers:
        credentials: Optional[HTTPAuthorizationCredentials] = await _bearer_scheme(request)
        if credentials is None:
            raise _unauthorized("Authorization header must use the Bearer scheme")
        try:
            claims = issuer.verify_token(credentials.credentials)
        except InvalidTokenError as e:
            monitoring.logger.info("Bearer token rejected", extra={"reason": str(e)})
            raise _unauthorized("Invalid or expired token")
        except ConfigurationError:
            monitoring.logger.exception("Token validation misconfigured")
            raise HTTPException(status_code=500, detail="Internal server error")
        return Caller(method="bearer", principal=claims.get("sub"), claims=claims)

    if issuer.validate_shared_secret(request.headers.get(api_key_header)):
        return Caller(method="api_key")
    raise _unauthorized("Missing or invalid credentials")
