# kozi_agent/routers/classifier.py
from __future__ import annotations

import logging

import anyio
from fastapi import APIRouter, Depends

from kozi_agent.core.intent_classifier import IntentClassifier
from kozi_agent.core.models import ClassifierRequest, Identity, Role
from kozi_agent.deps import classifier
from kozi_agent.routers.envelope import require_text
from kozi_agent.security import current_identity

logger = logging.getLogger(__name__)
router = APIRouter(tags=["classifier"])


@router.post("/classifier", summary="Classify a message as chat, sql or gmail")
async def classify(
    body: ClassifierRequest,
    identity: Identity = Depends(current_identity),
    c: IntentClassifier = Depends(classifier),
):
    message = require_text(body.message, "message")
    claimed = Role.parse(body.userType) if body.userType else None
    if claimed is not None and claimed is not identity.role:
        logger.info("Ignoring userType %s for %s caller", claimed.value, identity.role.value)
    result = await anyio.to_thread.run_sync(c.classify, message, identity.role)
    out = {"type": result.wire_type(), "intent": result.intent.value}
    if result.response:
        out["response"] = result.response
    return out
