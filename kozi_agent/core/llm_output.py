# kozi_agent/core/llm_output.py
"""
All "try to parse model output, else fall back" logic lives here.

The model is asked for JSON, but replies arrive wrapped in code fences, with
commentary, or as a bare statement. Callers get either a dict / a tagged
GenerationOutcome, never an exception.
"""
from __future__ import annotations
import json
import re
from typing import Any, Dict, Optional

from kozi_agent.core.models import GenerationOutcome, OutcomeKind

FENCE_RE = re.compile(r"```(?:json|sql)?\s*(.*?)```", re.I | re.S)
SQL_START_RE = re.compile(r"(?is)\b(with|select)\b")
NOTES_RE = re.compile(r"(?im)^\s*(?:notes?|explanation)\s*:")
STATEMENT_LINE_RE = re.compile(r"(?im)^\s*\(?\s*(?:select|with)\b")
WRITE_LINE_RE = re.compile(r"(?im)^\s*(?:insert|update|delete|drop|alter|truncate|create|grant|revoke|replace)\b")


def strip_fence(text: str) -> str:
    raw = (text or "").strip()
    m = FENCE_RE.search(raw)
    if m:
        return m.group(1).strip()
    # unterminated fence
    return re.sub(r"^```(?:json|sql)?", "", raw, flags=re.I).strip()


def extract_json(text: str) -> Optional[Dict[str, Any]]:
    raw = strip_fence(text)
    try:
        obj = json.loads(raw)
        return obj if isinstance(obj, dict) else None
    except ValueError:
        pass
    i = raw.find("{")
    j = raw.rfind("}")
    if i != -1 and j > i:
        try:
            obj = json.loads(raw[i:j + 1])
            return obj if isinstance(obj, dict) else None
        except ValueError:
            return None
    return None


def clean_sql(text: str) -> str:
    sql = strip_fence(text)
    sql = NOTES_RE.split(sql, maxsplit=1)[0].strip()
    m = SQL_START_RE.search(sql)
    if m:
        sql = sql[m.start():].strip()
    return sql.strip().rstrip(";").strip()


def parse_generation(raw: str) -> GenerationOutcome:
    """
    Parse synthesizer output into read | write | unparseable.

    Contract: {"type": "read"|"write", "sql": "..."}. A bare SELECT/WITH
    statement is accepted as read; anything else is unparseable.
    """
    text = (raw or "").strip()
    if not text:
        return GenerationOutcome(OutcomeKind.UNPARSEABLE, raw=raw or "")

    obj = extract_json(text)
    if obj is not None:
        sql = str(obj.get("sql") or obj.get("query") or "").strip()
        kind = str(obj.get("type") or obj.get("kind") or "").strip().lower()
        if not sql:
            return GenerationOutcome(OutcomeKind.UNPARSEABLE, raw=text)
        sql = clean_sql(sql) if kind != "write" else sql.strip().rstrip(";").strip()
        if kind == "write":
            return GenerationOutcome(OutcomeKind.WRITE, statement=sql, raw=text)
        if kind in ("read", ""):
            return GenerationOutcome(OutcomeKind.READ, statement=sql, raw=text)
        return GenerationOutcome(OutcomeKind.UNPARSEABLE, raw=text)

    # bare statement, possibly after a line of commentary
    body = strip_fence(text)
    m = STATEMENT_LINE_RE.search(body)
    if m:
        sql = clean_sql(body[m.start():])
        if sql:
            return GenerationOutcome(OutcomeKind.READ, statement=sql, raw=text)
    m = WRITE_LINE_RE.search(body)
    if m:
        return GenerationOutcome(OutcomeKind.WRITE, statement=body[m.start():].strip().rstrip(";"), raw=text)
    return GenerationOutcome(OutcomeKind.UNPARSEABLE, raw=text)
