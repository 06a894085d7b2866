"""
JWT issuing and verification.
The payload carries sub (user id), role, company_id and email; the identity
provider in front of this service issues the same claims.
"""
from datetime import datetime, timezone, timedelta
from typing import Any

import jwt

from .config import get_jwt_algorithm, get_jwt_expire_seconds, get_jwt_secret


def create_access_token(
    sub: int | str,
    role: str = "employee",
    company_id: str | None = None,
    email: str | None = None,
    expire_seconds: int | None = None,
) -> str:
    """Issue an access token for a user."""
    now = datetime.now(timezone.utc)
    payload: dict[str, Any] = {
        "sub": str(sub),
        "role": role,
        "exp": now + timedelta(seconds=expire_seconds or get_jwt_expire_seconds()),
        "iat": now,
    }
    if company_id:
        payload["company_id"] = company_id
    if email:
        payload["email"] = email
    return jwt.encode(payload, get_jwt_secret(), algorithm=get_jwt_algorithm())


def decode_token(token: str) -> dict[str, Any] | None:
    """Verify and decode; None when expired or the signature is invalid."""
    try:
        return jwt.decode(
            token,
            get_jwt_secret(),
            algorithms=[get_jwt_algorithm()],
        )
    except jwt.PyJWTError:
        return None
