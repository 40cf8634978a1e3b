# kozi_agent/deps.py
from __future__ import annotations
from functools import lru_cache
from sqlalchemy import create_engine

from kozi_agent.settings import Settings
from kozi_agent.core.assistant_pipeline import AssistantPipeline
from kozi_agent.core.credentials import TokenFileCredentialStore
from kozi_agent.core.gemini_client import GeminiClient
from kozi_agent.core.intent_classifier import IntentClassifier
from kozi_agent.core.mail_client import GmailClient
from kozi_agent.core.mail_dispatcher import MailboxDispatcher
from kozi_agent.core.query_synthesizer import QuerySynthesizer
from kozi_agent.core.read_only_db_executor import ReadOnlyDbExecutor
from kozi_agent.core.schema_catalog import SchemaCache
from kozi_agent.core.shortcuts import ShortcutTable


@lru_cache(maxsize=1)
def settings() -> Settings:
    return Settings()


@lru_cache(maxsize=1)
def engine():
    s = settings()
    # Pre-ping keeps connections healthy over time
    return create_engine(s.DB_URL_RO, pool_pre_ping=True)


@lru_cache(maxsize=1)
def gemini() -> GeminiClient:
    s = settings()
    return GeminiClient(
        api_key=s.GEMINI_API_KEY,
        model=s.GEMINI_MODEL,
        fallback_model=s.GEMINI_FALLBACK_MODEL,
    )


@lru_cache(maxsize=1)
def schema_cache() -> SchemaCache:
    # Built on first use; POST /api/sql-agent/schema/rebuild swaps in a fresh one
    return SchemaCache(engine())


@lru_cache(maxsize=1)
def db() -> ReadOnlyDbExecutor:
    s = settings()
    return ReadOnlyDbExecutor(
        engine=engine(),
        max_rows=s.MAX_RESULT_ROWS,
        statement_timeout_ms=s.STATEMENT_TIMEOUT_MS,
    )


@lru_cache(maxsize=1)
def classifier() -> IntentClassifier:
    return IntentClassifier(gemini())


@lru_cache(maxsize=1)
def synthesizer() -> QuerySynthesizer:
    s = settings()
    return QuerySynthesizer(gemini(), dialect=s.SQL_DIALECT, default_limit=s.DEFAULT_SQL_LIMIT)


@lru_cache(maxsize=1)
def shortcuts() -> ShortcutTable:
    s = settings()
    return ShortcutTable(default_limit=s.DEFAULT_SQL_LIMIT, hard_cap=s.MAX_RESULT_ROWS)


@lru_cache(maxsize=1)
def credentials() -> TokenFileCredentialStore:
    s = settings()
    return TokenFileCredentialStore(token_path=s.GMAIL_TOKEN_PATH, credentials_path=s.GMAIL_CREDENTIALS_PATH)


@lru_cache(maxsize=1)
def mail_client() -> GmailClient:
    return GmailClient(credentials(), sender=settings().GMAIL_SENDER)


@lru_cache(maxsize=1)
def dispatcher() -> MailboxDispatcher:
    return MailboxDispatcher(gemini(), credentials(), mail_client(), db(), dialect=settings().SQL_DIALECT)


@lru_cache(maxsize=1)
def pipeline() -> AssistantPipeline:
    s = settings()
    return AssistantPipeline(
        classifier(),
        synthesizer(),
        db(),
        schema_cache(),
        shortcuts(),
        dispatcher(),
        gemini(),
        dialect=s.SQL_DIALECT,
        default_limit=s.DEFAULT_SQL_LIMIT,
        max_cell=s.DISPLAY_CELL_WIDTH,
    )
