"""JWT access token creation and verification.

Learn: JWT (JSON Web Token) provides stateless authentication. A token
carries the user id, email and role name, so downstream services can
authorize requests without calling back into this service.

- No refresh tokens: a token simply expires (default 7 days)
- Every verification failure raises the same InvalidTokenError, so
  callers can't probe which check failed
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
from sqlalchemy import inspect

from authgate.config import Settings
from authgate.db.models import User
from authgate.errors import InvalidTokenError

DEFAULT_ROLE_CLAIM = "user"


@dataclass(frozen=True)
class TokenClaims:
    user_id: str
    email: str
    role: str

    def to_dict(self) -> dict:
        return {"userId": self.user_id, "email": self.email, "role": self.role}


class TokenIssuer:
    """Signs and verifies access tokens with the server-held secret."""

    def __init__(self, settings: Settings):
        self.secret = settings.jwt_secret
        self.algorithm = settings.jwt_algorithm
        self.expires_in = settings.jwt_expires_in

    def issue(self, user: User, expires_in: Optional[int] = None) -> str:
        """Create a signed access token for a user with a loaded role."""
        now = datetime.now(timezone.utc)
        # Never lazy-load here: async sessions can't do implicit IO
        role = None if "role" in inspect(user).unloaded else user.role
        payload = {
            "sub": str(user.id),
            "userId": str(user.id),
            "email": user.email,
            "role": role.name if role is not None else DEFAULT_ROLE_CLAIM,
            "iat": now,
            "exp": now + timedelta(seconds=expires_in or self.expires_in),
        }
        return jwt.encode(payload, self.secret, algorithm=self.algorithm)

    def verify(self, token: str) -> TokenClaims:
        """Verify and decode a token.

        Returns the claims on success.
        Raises InvalidTokenError on any failure (bad signature, expired,
        malformed, missing claims).
        """
        try:
            payload = jwt.decode(
                token,
                self.secret,
                algorithms=[self.algorithm],
                options={"require": ["exp", "sub"]},
            )
            return TokenClaims(
                user_id=payload["userId"],
                email=payload["email"],
                role=payload["role"],
            )
        except (jwt.PyJWTError, KeyError):
            raise InvalidTokenError()
