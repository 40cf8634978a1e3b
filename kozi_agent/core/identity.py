# kozi_agent/core/identity.py
from __future__ import annotations
import time
from typing import Any, Dict, Optional

import jwt

from kozi_agent.core.models import Identity, Role


class InvalidToken(Exception):
    pass


def decode_identity(token: str, secret: str, algorithm: str = "HS256") -> Identity:
    """
    Verify a platform JWT and read the caller's identity from it.

    Accepted claims: sub | id | userId for the user, role | userType for the
    role, email. The role must be one of the platform roles.
    """
    try:
        payload: Dict[str, Any] = jwt.decode(token, secret, algorithms=[algorithm])
    except jwt.ExpiredSignatureError:
        raise InvalidToken("Token has expired")
    except jwt.InvalidTokenError as e:
        raise InvalidToken(f"Invalid token: {e}")

    user_id = payload.get("sub") or payload.get("id") or payload.get("userId")
    if user_id is None or str(user_id).strip() == "":
        raise InvalidToken("Token has no subject")
    role = Role.parse(payload.get("role") or payload.get("userType"))
    if role is None:
        raise InvalidToken("Token has no recognized role")
    return Identity(user_id=str(user_id), role=role, email=payload.get("email"))


def issue_token(
    user_id: str,
    role: Role,
    secret: str,
    *,
    email: Optional[str] = None,
    algorithm: str = "HS256",
    ttl_seconds: int = 3600,
) -> str:
    """Sign a token in the shape decode_identity() reads. Used by tooling and tests."""
    now = int(time.time())
    claims: Dict[str, Any] = {"sub": str(user_id), "role": role.value, "iat": now, "exp": now + ttl_seconds}
    if email:
        claims["email"] = email
    return jwt.encode(claims, secret, algorithm=algorithm)
