# kozi_agent/routers/assistant.py
from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from kozi_agent.core.assistant_pipeline import AssistantPipeline, runner
from kozi_agent.core.models import ChatRequest, Identity
from kozi_agent.core.stream_session import stream_response
from kozi_agent.deps import pipeline, settings
from kozi_agent.routers.envelope import parse_history, split_turns
from kozi_agent.security import current_identity
from kozi_agent.settings import Settings

router = APIRouter(prefix="/assistant", tags=["assistant"])


@router.get("/stream", summary="Classify, route and answer over SSE")
async def stream(
    input: str = Query("", description="User message"),
    messages: str = Query("", description="JSON array of earlier turns: [{\"type\": \"user\", \"content\": \"...\"}]"),
    identity: Identity = Depends(current_identity),
    p: AssistantPipeline = Depends(pipeline),
    s: Settings = Depends(settings),
):
    message, history = split_turns(input, parse_history(messages))
    return stream_response(
        runner(p.run, message, identity, history),
        timeout=s.STREAM_TIMEOUT_SECONDS,
        keepalive=s.STREAM_KEEPALIVE_SECONDS,
    )


@router.post("/chat", summary="Same as /stream with the conversation in the request body")
async def chat(
    body: ChatRequest,
    identity: Identity = Depends(current_identity),
    p: AssistantPipeline = Depends(pipeline),
    s: Settings = Depends(settings),
):
    message, history = split_turns(body.input, body.messages)
    return stream_response(
        runner(p.run, message, identity, history),
        timeout=s.STREAM_TIMEOUT_SECONDS,
        keepalive=s.STREAM_KEEPALIVE_SECONDS,
    )
