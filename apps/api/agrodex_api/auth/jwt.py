"""Bearer JWT authentication for operator endpoints."""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Request, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from agrodex_api.errors import AuthenticationError
from agrodex_api.settings import get_settings

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class AuthenticatedUser:
    user_id: str
    email: Optional[str] = None
    claims: dict = field(default_factory=dict)


def create_access_token(subject: str, email: Optional[str] = None, expires_in: timedelta = timedelta(hours=24)) -> str:
    """Issue a signed access token (CLI and tests)."""
    settings = get_settings()
    now = datetime.now(timezone.utc)
    claims = {"sub": subject, "iat": int(now.timestamp()), "exp": int((now + expires_in).timestamp())}
    if email:
        claims["email"] = email
    if settings.jwt_audience:
        claims["aud"] = settings.jwt_audience
    return jwt.encode(claims, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> dict:
    settings = get_settings()
    try:
        return jwt.decode(
            token,
            settings.jwt_secret_key,
            algorithms=[settings.jwt_algorithm],
            audience=settings.jwt_audience,
        )
    except JWTError as e:
        raise AuthenticationError("Invalid or expired token", details=str(e)) from e


def require_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Security(bearer_scheme),
) -> AuthenticatedUser:
    """Dependency: authenticated caller from the Authorization header."""
    if credentials is None or not credentials.credentials:
        raise AuthenticationError("Missing bearer token")

    claims = decode_access_token(credentials.credentials)
    subject = claims.get("sub")
    if not subject:
        raise AuthenticationError("Token has no subject")

    user = AuthenticatedUser(user_id=str(subject), email=claims.get("email"), claims=claims)
    request.state.user = user
    return user
