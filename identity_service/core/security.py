from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Any

import jwt
from jwt import ExpiredSignatureError
from jwt import InvalidTokenError as PyJWTInvalidTokenError

from identity_service.core.config import settings
from identity_service.core.exceptions import SessionTokenError, SessionTokenExpiredError

if TYPE_CHECKING:
    from identity_service.models.identity_models import Identity

ALGORITHM = "HS256"


class SessionTokenService:
    """Mints and validates the session token handed to the frontend."""

    def __init__(self, secret: str | None = None, expires_minutes: int | None = None):
        self.secret = secret or settings.JWT_SECRET
        self.expires_minutes = expires_minutes or settings.JWT_EXPIRES_MINUTES

    def mint(self, identity: Identity) -> str:
        now = datetime.now(timezone.utc)
        payload = {
            "sub": identity.id,
            "username": identity.username,
            "email": identity.email,
            "role": identity.role,
            "iat": now,
            "exp": now + timedelta(minutes=self.expires_minutes),
        }
        return jwt.encode(payload, self.secret, algorithm=ALGORITHM)

    def validate(self, token: str) -> dict[str, Any]:
        try:
            payload = jwt.decode(token, self.secret, algorithms=[ALGORITHM])
        except ExpiredSignatureError as exc:
            raise SessionTokenExpiredError() from exc
        except PyJWTInvalidTokenError as exc:
            raise SessionTokenError() from exc
        if not payload.get("sub"):
            raise SessionTokenError("Token has no subject")
        return payload
