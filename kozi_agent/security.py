# kozi_agent/security.py
from __future__ import annotations
import logging
from typing import Optional

from fastapi import Depends, HTTPException, Query
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from kozi_agent.core.identity import InvalidToken, decode_identity
from kozi_agent.core.models import Identity, Role
from kozi_agent.deps import settings
from kozi_agent.settings import Settings

logger = logging.getLogger(__name__)

bearer = HTTPBearer(auto_error=False)


def current_identity(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer),
    token: Optional[str] = Query(None, description="Bearer token for EventSource clients that cannot set headers"),
    s: Settings = Depends(settings),
) -> Identity:
    raw = credentials.credentials if credentials else token
    if not raw:
        raise HTTPException(status_code=401, detail="Missing bearer token.")
    try:
        return decode_identity(raw, s.JWT_SECRET, s.JWT_ALGORITHM)
    except InvalidToken as ex:
        logger.info("Rejected token: %s", ex)
        raise HTTPException(status_code=401, detail=str(ex))


def require_admin(identity: Identity = Depends(current_identity)) -> Identity:
    if identity.role is not Role.ADMIN:
        raise HTTPException(status_code=403, detail="Admin access required.")
    return identity
