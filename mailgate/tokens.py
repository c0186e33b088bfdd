# mailgate/tokens.py
"""
Bearer token issuance/validation and shared-secret checks.

Tokens are HS256 JWTs with fixed claims: the issuer mints them for any caller
that already proved knowledge of the shared secret, so nothing in the token
comes from the request. There is no server-side session or revocation list;
a token dies when its `exp` passes.
"""

import datetime
import hmac
import uuid
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

import jwt

from mailgate.config import Settings
from mailgate.errors import ConfigurationError, InvalidTokenError

PRINCIPAL_NAME = "MailGateClient"
PRINCIPAL_ROLE = "ApiUser"
ALGORITHM = "HS256"


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


@dataclass(frozen=True)
class IssuedToken:
    token: str
    expires_at: datetime.datetime


class TokenIssuer:
    def __init__(self, settings: Settings,
                 clock: Optional[Callable[[], datetime.datetime]] = None):
        self.settings = settings
        self._clock = clock or _utcnow

    def _signing_key(self) -> bytes:
        secret = self.settings.jwt_secret_key
        if not secret:
            raise ConfigurationError("JWT secret key is not configured")
        return secret.encode("utf-8")

    def issue_token(self) -> IssuedToken:
        key = self._signing_key()
        # JWT NumericDate has whole-second precision
        now = self._clock().replace(microsecond=0)
        expires_at = now + datetime.timedelta(minutes=self.settings.jwt_expiration_minutes)
        token_id = str(uuid.uuid4())
        claims = {
            "sub": PRINCIPAL_NAME,
            "role": PRINCIPAL_ROLE,
            "client_id": token_id,
            "jti": token_id,
            "iat": now,
            "exp": expires_at,
            "iss": self.settings.jwt_issuer,
            "aud": self.settings.jwt_audience,
        }
        token = jwt.encode(claims, key, algorithm=ALGORITHM)
        return IssuedToken(token=token, expires_at=expires_at)

    def verify_token(self, token: str) -> Dict[str, Any]:
        """
        Decode and check a bearer token. Signature, issuer and audience must match
        exactly and `exp` must be in the future; no clock skew is tolerated.
        """
        if not token:
            raise InvalidTokenError("Token is empty")
        key = self._signing_key()
        try:
            return jwt.decode(
                token,
                key,
                algorithms=[ALGORITHM],
                audience=self.settings.jwt_audience,
                issuer=self.settings.jwt_issuer,
                leeway=0,
                options={"require": ["exp", "iss", "aud"]},
            )
        except jwt.ExpiredSignatureError as e:
            raise InvalidTokenError("Token has expired") from e
        except jwt.InvalidTokenError as e:
            raise InvalidTokenError(f"Invalid token: {e}") from e

    def validate_shared_secret(self, candidate: Optional[str]) -> bool:
        configured = self.settings.api_key
        if not candidate or not configured:
            return False
        return hmac.compare_digest(candidate.encode("utf-8"), configured.encode("utf-8"))
