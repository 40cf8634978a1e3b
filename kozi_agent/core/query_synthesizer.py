# kozi_agent/core/query_synthesizer.py
from __future__ import annotations
import logging

from kozi_agent.core.errors import SynthesisFailed
from kozi_agent.core.gemini_client import GeminiClient
from kozi_agent.core.llm_output import parse_generation
from kozi_agent.core.models import OutcomeKind, SchemaDescription, StatementKind, SynthesizedQuery
from kozi_agent.prompts.versioned.v1.synthesizer import SQL_GEN_PROMPT

logger = logging.getLogger(__name__)


class QuerySynthesizer:
    """Natural language + schema description -> one candidate SQL statement."""

    def __init__(self, llm: GeminiClient, dialect: str = "mysql", default_limit: int = 10):
        self.llm = llm
        self.dialect = dialect
        self.default_limit = default_limit

    def build_prompt(self, utterance: str, schema: SchemaDescription) -> str:
        return SQL_GEN_PROMPT.format(
            DIALECT=self.dialect,
            SCHEMA=schema.render(),
            REQUEST=(utterance or "").strip(),
            DEFAULT_LIMIT=self.default_limit,
        )

    def synthesize(self, utterance: str, schema: SchemaDescription) -> SynthesizedQuery:
        if not schema.available:
            logger.warning("Synthesizing without a schema description")
        raw = self.llm.generate(self.build_prompt(utterance, schema))
        if not raw.strip():
            raise SynthesisFailed("completion backend returned no content")

        outcome = parse_generation(raw)
        if outcome.kind is OutcomeKind.UNPARSEABLE:
            logger.info("Unparseable synthesizer output: %.120r", outcome.raw)
            raise SynthesisFailed("synthesizer output is not a statement")
        kind = StatementKind.WRITE if outcome.kind is OutcomeKind.WRITE else StatementKind.READ
        return SynthesizedQuery(statement=outcome.statement, declared_kind=kind)
