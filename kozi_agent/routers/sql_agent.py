# kozi_agent/routers/sql_agent.py
from __future__ import annotations

import logging

import anyio
from fastapi import APIRouter, Depends, Query

from kozi_agent.core.assistant_pipeline import AssistantPipeline, runner
from kozi_agent.core.models import Identity, InputRequest
from kozi_agent.core.schema_catalog import SchemaCache
from kozi_agent.core.stream_session import stream_response
from kozi_agent.deps import pipeline, schema_cache, settings
from kozi_agent.routers.envelope import ok, require_text
from kozi_agent.security import current_identity, require_admin
from kozi_agent.settings import Settings

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/sql-agent", tags=["sql-agent"])


@router.post("", summary="Answer a data question (shortcut or generated SQL, read-only)")
async def ask(
    body: InputRequest,
    identity: Identity = Depends(current_identity),
    p: AssistantPipeline = Depends(pipeline),
):
    question = require_text(body.input)
    answer = await p.answer_data_query(question)
    return ok(result={
        "sql": answer.sql,
        "answer": answer.markdown,
        "source": answer.source,
        **answer.result.to_dict(),
    })


@router.get("/stream", summary="Data question streamed over SSE")
async def stream(
    input: str = Query("", description="User question"),
    identity: Identity = Depends(current_identity),
    p: AssistantPipeline = Depends(pipeline),
    s: Settings = Depends(settings),
):
    question = require_text(input)
    return stream_response(
        runner(p.run_data_query, question),
        timeout=s.STREAM_TIMEOUT_SECONDS,
        keepalive=s.STREAM_KEEPALIVE_SECONDS,
    )


@router.post("/simple", summary="Structured rows only")
async def simple(
    body: InputRequest,
    identity: Identity = Depends(current_identity),
    p: AssistantPipeline = Depends(pipeline),
):
    answer = await p.answer_data_query(require_text(body.input))
    return ok(result={"sql": answer.sql, **answer.result.to_dict()})


@router.post("/generate-sql", summary="SQL text only, nothing is executed")
async def generate_sql(
    body: InputRequest,
    identity: Identity = Depends(current_identity),
    p: AssistantPipeline = Depends(pipeline),
):
    return ok(sql=await p.generate_sql(require_text(body.input)))


@router.post("/simple-query", summary="Plain text answer")
async def simple_query(
    body: InputRequest,
    identity: Identity = Depends(current_identity),
    p: AssistantPipeline = Depends(pipeline),
):
    answer = await p.answer_data_query(require_text(body.input))
    return ok(result=answer.markdown)


@router.post("/propose", summary="Read result, or an unexecuted write proposal")
async def propose(
    body: InputRequest,
    identity: Identity = Depends(current_identity),
    p: AssistantPipeline = Depends(pipeline),
):
    return ok(result=await p.propose(require_text(body.input)))


@router.get("/schema", summary="Schema description offered to the SQL generator")
async def schema(identity: Identity = Depends(current_identity), cache: SchemaCache = Depends(schema_cache)):
    desc = await anyio.to_thread.run_sync(cache.get_or_empty)
    return ok(schema=desc.to_dict(), text=desc.render())


@router.post("/schema/rebuild", summary="Re-read database metadata (admin)")
async def rebuild_schema(identity: Identity = Depends(require_admin), cache: SchemaCache = Depends(schema_cache)):
    desc = await anyio.to_thread.run_sync(cache.rebuild)
    logger.info("Schema rebuilt by %s", identity.user_id)
    return ok(tables=desc.table_names())
