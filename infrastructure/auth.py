"""Bearer-token authentication using HS256 JWTs."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import jwt
from loguru import logger

from core.errors import TokenExpired, Unauthenticated

ISSUER = "photo-store"


class JwtAuthenticator:
    """Issues and verifies signed tokens carrying the principal id in ``sub``."""

    def __init__(self, secret: str, token_hours: float = 24.0) -> None:
        if not secret:
            raise ValueError("auth secret must not be empty")
        self._secret = secret
        self._lifetime = timedelta(hours=token_hours)

    def issue(self, principal: str) -> str:
        now = datetime.now(timezone.utc)
        payload = {
            "sub": principal,
            "iat": now,
            "exp": now + self._lifetime,
            "iss": ISSUER,
        }
        return jwt.encode(payload, self._secret, algorithm="HS256")

    def authenticate(self, credentials: str | None) -> str:
        """Return the principal for a raw token or an ``Authorization`` header value.

        Raises:
            TokenExpired: the token signature is valid but it has expired.
            Unauthenticated: credentials are missing or invalid.
        """
        if not credentials:
            raise Unauthenticated("Missing credentials")
        token = credentials.strip()
        if token.lower().startswith("bearer "):
            token = token[7:].strip()
        try:
            payload = jwt.decode(token, self._secret, algorithms=["HS256"], issuer=ISSUER)
        except jwt.ExpiredSignatureError as ex:
            logger.warning("Expired token presented")
            raise TokenExpired("Token expired") from ex
        except jwt.InvalidTokenError as ex:
            logger.warning("Invalid token presented: {}", ex)
            raise Unauthenticated("Invalid token") from ex
        principal = payload.get("sub")
        if not isinstance(principal, str) or not principal:
            raise Unauthenticated("Token has no subject")
        return principal
