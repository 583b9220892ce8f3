"""
Shared-secret JWT verification for the Newsfeed Gateway.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Optional

from jose import JWTError, jwt
from jose.exceptions import ExpiredSignatureError

from newsfeed_shared.errors import (
    ExpiredCredentialError,
    InvalidCredentialError,
    MissingCredentialError,
)
from newsfeed_shared.logging import get_logger

USER_ID_CLAIMS = ("id", "userId", "user_id", "sub")


@dataclass(frozen=True)
class Identity:
    """Authenticated caller derived from a verified token. Lives for one request."""

    user_id: int
    username: str
    role: str
    issued_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    claims: Dict[str, Any] = field(default_factory=dict, compare=False, repr=False)


class TokenVerifier:
    """Validates HMAC-signed bearer tokens issued by the User Service."""

    def __init__(
        self,
        secret: str,
        *,
        algorithms: Iterable[str] = ("HS256",),
        leeway_seconds: int = 0,
    ) -> None:
        if not secret:
            raise ValueError("Token verification requires a shared secret")
        self._secret = secret
        self.algorithms = list(algorithms)
        self.leeway_seconds = leeway_seconds
        self.logger = get_logger("gateway.auth.token_verifier")

    @staticmethod
    def extract_bearer(authorization: Optional[str]) -> str:
        """Pull the token out of an ``Authorization`` header value."""
        if not authorization or not authorization.strip():
            raise MissingCredentialError()

        scheme, _, token = authorization.strip().partition(" ")
        if scheme.lower() != "bearer":
            raise MissingCredentialError("Invalid authorization header format")

        token = token.strip()
        if not token:
            raise MissingCredentialError()
        return token

    def verify_header(self, authorization: Optional[str]) -> Identity:
        """Verify the credential carried by an ``Authorization`` header."""
        return self.verify(self.extract_bearer(authorization))

    def verify(self, credential: str) -> Identity:
        """Verify signature and expiry and return the caller identity."""
        try:
            claims = jwt.decode(
                credential,
                self._secret,
                algorithms=self.algorithms,
                options={"verify_aud": False, "verify_sub": False, "leeway": self.leeway_seconds},
            )
        except ExpiredSignatureError as exc:
            raise ExpiredCredentialError(details={"reason": "expired"}) from exc
        except JWTError as exc:
            self.logger.debug("Token rejected", error=str(exc))
            raise InvalidCredentialError() from exc

        return Identity(
            user_id=self._extract_user_id(claims),
            username=str(claims.get("username") or ""),
            role=str(claims.get("role") or "user"),
            issued_at=self._timestamp(claims.get("iat")),
            expires_at=self._timestamp(claims.get("exp")),
            claims=claims,
        )

    def _extract_user_id(self, claims: Dict[str, Any]) -> int:
        """Resolve the numeric user id from the first populated id claim."""
        for claim in USER_ID_CLAIMS:
            value = claims.get(claim)
            if value is None or isinstance(value, bool):
                continue
            try:
                user_id = int(value)
            except (TypeError, ValueError):
                break
            if user_id >= 1:
                return user_id
            break

        raise InvalidCredentialError(details={"reason": "missing user id claim"})

    @staticmethod
    def _timestamp(value: Any) -> Optional[datetime]:
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return datetime.fromtimestamp(value, tz=timezone.utc)
        return None
