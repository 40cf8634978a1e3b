# kozi_agent/routers/gmail.py
from __future__ import annotations

from fastapi import APIRouter, Depends

from kozi_agent.core.mail_dispatcher import MailboxDispatcher
from kozi_agent.core.models import Identity, InputRequest
from kozi_agent.deps import dispatcher
from kozi_agent.routers.envelope import ok, require_text
from kozi_agent.security import current_identity

router = APIRouter(prefix="/gmail", tags=["gmail"])


@router.post("/agent", summary="Mailbox actions for administrators")
async def agent(
    body: InputRequest,
    identity: Identity = Depends(current_identity),
    d: MailboxDispatcher = Depends(dispatcher),
):
    # role is enforced inside the dispatcher, before any mail call
    result = await d.dispatch(require_text(body.input), identity)
    return ok(**result.model_dump(mode="json"))
