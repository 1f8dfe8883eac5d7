"""Bearer token handling.

Tokens are issued by the identity provider in front of this service. The API
only verifies them; ``create_access_token`` exists for service-to-service
callers and local tooling.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any
from uuid import UUID

from fastapi.security import HTTPBearer
from jose import ExpiredSignatureError, JWTError, jwt

from app.core.config import get_settings
from app.shared.exceptions import AuthenticationFailed

settings = get_settings()

bearer_scheme = HTTPBearer(auto_error=False)

ACCESS_TOKEN_TYPE = "access"


@dataclass(frozen=True, slots=True)
class TokenClaims:
    user_id: UUID
    expires_at: datetime


def create_access_token(user_id: UUID, expires_delta: timedelta = timedelta(minutes=30), **claims: Any) -> str:
    payload: dict[str, Any] = {
        "sub": str(user_id),
        "type": ACCESS_TOKEN_TYPE,
        "exp": datetime.now(UTC) + expires_delta,
    }
    payload.update(claims)
    return jwt.encode(payload, settings.secret_key, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> TokenClaims:
    """Verify signature, expiry and token type, then extract the subject."""
    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=[settings.jwt_algorithm])
    except ExpiredSignatureError as exc:
        raise AuthenticationFailed("Access token has expired") from exc
    except JWTError as exc:
        raise AuthenticationFailed("Invalid access token") from exc

    if payload.get("type") != ACCESS_TOKEN_TYPE:
        raise AuthenticationFailed("Invalid access token")
    try:
        user_id = UUID(str(payload["sub"]))
    except (KeyError, ValueError) as exc:
        raise AuthenticationFailed("Token subject is malformed") from exc
    return TokenClaims(user_id=user_id, expires_at=datetime.fromtimestamp(payload["exp"], UTC))
