# kozi_agent/core/assistant_pipeline.py
from __future__ import annotations
import logging
from typing import Any, Awaitable, Callable, Dict, Optional, Sequence, Tuple

import anyio

from kozi_agent.core.errors import UnsafeStatement
from kozi_agent.core.gemini_client import GeminiClient
from kozi_agent.core.intent_classifier import IntentClassifier, PLATFORM_HELP
from kozi_agent.core.mail_dispatcher import MailboxDispatcher
from kozi_agent.core.models import (
    ChatTurn, ClassificationResult, DataAnswer, Identity, Intent, SafeStatement, StatementKind,
)
from kozi_agent.core.presentation import render_markdown
from kozi_agent.core.query_synthesizer import QuerySynthesizer
from kozi_agent.core.read_only_db_executor import ReadOnlyDbExecutor
from kozi_agent.core.schema_catalog import SchemaCache
from kozi_agent.core.shortcuts import ShortcutTable
from kozi_agent.core.sql_guard import validate
from kozi_agent.core.stream_session import StreamSession
from kozi_agent.prompts.versioned.v1.assistant import ASSISTANT_PROMPT

logger = logging.getLogger(__name__)

Progress = Callable[[str], Any]
WRITE_REFUSAL = "write statements are never executed by the assistant"
WRITE_INFO = "This request changes data. The statement was not executed; review it and apply it manually if intended."
# earlier turns folded into the chat prompt
HISTORY_TURNS = 10
HISTORY_CHARS = 1000


def _noop(_: str) -> None:
    return None


def format_history(history: Optional[Sequence[ChatTurn]], utterance: str = "") -> str:
    turns = [t for t in (history or ()) if t.content.strip()]
    # the client often repeats the current message as the last turn
    if turns and turns[-1].speaker == "User" and turns[-1].content.strip() == utterance.strip():
        turns = turns[:-1]
    lines = [f"{t.speaker}: {t.content.strip()[:HISTORY_CHARS]}" for t in turns[-HISTORY_TURNS:]]
    return "\n".join(lines) or "(none)"


class AssistantPipeline:
    """
    classify -> route -> (shortcut | synthesize) -> gate -> execute -> render.

    Components raise the AssistantError taxonomy; the stream runner turns it
    into the terminal event and the JSON routes into an envelope.
    """

    def __init__(
        self,
        classifier: IntentClassifier,
        synthesizer: QuerySynthesizer,
        executor: ReadOnlyDbExecutor,
        schema_cache: SchemaCache,
        shortcuts: ShortcutTable,
        dispatcher: MailboxDispatcher,
        llm: GeminiClient,
        *,
        dialect: str = "mysql",
        default_limit: int = 10,
        max_cell: int = 30,
    ):
        self.classifier = classifier
        self.synthesizer = synthesizer
        self.executor = executor
        self.schema_cache = schema_cache
        self.shortcuts = shortcuts
        self.dispatcher = dispatcher
        self.llm = llm
        self.dialect = dialect
        self.default_limit = default_limit
        self.max_cell = max_cell

    # === Data path ===
    async def candidate(self, utterance: str) -> Tuple[str, StatementKind, str]:
        """(statement, declared kind, source) from a shortcut or the synthesizer."""
        hit = self.shortcuts.match(utterance)
        if hit is not None:
            return hit.sql, StatementKind.READ, f"shortcut:{hit.name}"
        schema = await anyio.to_thread.run_sync(self.schema_cache.get_or_empty)
        synthesized = await anyio.to_thread.run_sync(self.synthesizer.synthesize, utterance, schema)
        return synthesized.statement, synthesized.declared_kind, "synthesized"

    def gate(self, statement: str, kind: StatementKind) -> SafeStatement:
        if kind is StatementKind.WRITE:
            raise UnsafeStatement(WRITE_REFUSAL, proposal=statement)
        return validate(statement, default_limit=self.default_limit, dialect=self.dialect)

    async def answer_data_query(self, utterance: str, progress: Progress = _noop) -> DataAnswer:
        statement, kind, source = await self.candidate(utterance)
        safe = self.gate(statement, kind)
        logger.info("Executing %s statement: %s", source, safe.sql)
        progress("Running query...\n\n")
        result = await self.executor.execute(safe)
        progress("Formatting results...\n\n")
        return DataAnswer(
            sql=safe.sql,
            result=result,
            markdown=render_markdown(result, max_cell=self.max_cell),
            source=source,
        )

    async def generate_sql(self, utterance: str) -> str:
        statement, kind, _ = await self.candidate(utterance)
        return self.gate(statement, kind).sql

    async def propose(self, utterance: str) -> Dict[str, Any]:
        """Read requests are answered; write requests come back as an unexecuted proposal."""
        statement, kind, source = await self.candidate(utterance)
        try:
            safe = self.gate(statement, kind)
        except UnsafeStatement as ex:
            if not ex.proposal:
                raise
            return {"type": "write", "sql": ex.proposal, "info": WRITE_INFO, "executed": False}
        result = await self.executor.execute(safe)
        return {"type": "read", "sql": safe.sql, "source": source, **result.to_dict()}

    # === Streaming entry points ===
    async def run_data_query(self, session: StreamSession, utterance: str) -> None:
        answer = await self.answer_data_query(utterance, progress=session.message)
        session.message(answer.markdown)

    async def run(
        self,
        session: StreamSession,
        utterance: str,
        identity: Identity,
        history: Optional[Sequence[ChatTurn]] = None,
    ) -> None:
        session.message("Understanding your request...\n\n")
        result: ClassificationResult = await anyio.to_thread.run_sync(
            self.classifier.classify, utterance, identity.role
        )
        logger.info("Routed as %s (%s)", result.intent.value, result.source)

        if result.intent is Intent.DATA_QUERY:
            await self.run_data_query(session, utterance)
        elif result.intent is Intent.MAILBOX_ACTION:
            mail = await self.dispatcher.dispatch(utterance, identity)
            session.message(mail.output)
        elif result.response and not (history and result.source == "model"):
            # a follow-up is answered from the earlier turns, which the classifier never sees
            session.message(result.response)
        else:
            await self.stream_chat(session, utterance, identity, history)

    async def stream_chat(
        self,
        session: StreamSession,
        utterance: str,
        identity: Identity,
        history: Optional[Sequence[ChatTurn]] = None,
    ) -> None:
        prompt = ASSISTANT_PROMPT.format(
            ROLE=identity.role.value,
            HISTORY=format_history(history, utterance),
            MESSAGE=utterance,
        )
        chunks = iter(self.llm.chat_stream(prompt))
        sent = False
        while True:
            chunk: Optional[str] = await anyio.to_thread.run_sync(next, chunks, None)
            if chunk is None:
                break
            sent = session.message(chunk) or sent
        if not sent:
            session.message(PLATFORM_HELP)


def runner(fn: Callable[..., Awaitable[None]], *args: Any) -> Callable[[StreamSession], Awaitable[None]]:
    async def run(session: StreamSession) -> None:
        await fn(session, *args)
    return run
