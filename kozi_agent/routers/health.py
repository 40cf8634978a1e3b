# kozi_agent/routers/health.py
from __future__ import annotations

import logging

import anyio
from fastapi import APIRouter, Depends
from sqlalchemy.exc import SQLAlchemyError

from kozi_agent.core.read_only_db_executor import ReadOnlyDbExecutor
from kozi_agent.core.redact import driver_message
from kozi_agent.deps import db

logger = logging.getLogger(__name__)
router = APIRouter(tags=["health"])


@router.get("/health", summary="Liveness check")
def health_check():
    return {"status": "ok"}


@router.get("/health/db", summary="Database connectivity (read-only)")
async def db_health(executor: ReadOnlyDbExecutor = Depends(db)):
    try:
        await anyio.to_thread.run_sync(executor.ping)
        return {"ok": True}
    except SQLAlchemyError as ex:
        logger.warning("DB health check failed: %s", type(ex).__name__)
        return {"ok": False, "error": driver_message(ex)}
