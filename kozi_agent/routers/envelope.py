# kozi_agent/routers/envelope.py
from __future__ import annotations
from typing import Any, Dict, List, Optional, Tuple

from fastapi import HTTPException
from pydantic import TypeAdapter, ValidationError

from kozi_agent.core.models import ChatTurn

_TURNS = TypeAdapter(List[ChatTurn])


def ok(**fields: Any) -> Dict[str, Any]:
    return {"success": True, **fields}


def require_text(value: Optional[str], field: str = "input") -> str:
    text = (value or "").strip()
    if not text:
        raise HTTPException(status_code=400, detail=f"Missing '{field}' in request.")
    return text


def parse_history(raw: Optional[str], field: str = "messages") -> List[ChatTurn]:
    """JSON array of earlier turns as sent in a query string; "" means none."""
    if not (raw or "").strip():
        return []
    try:
        return _TURNS.validate_json(raw)
    except ValidationError:
        raise HTTPException(status_code=400, detail=f"Invalid '{field}': expected a JSON array of {{type, content}}.")


def split_turns(utterance: Optional[str], turns: List[ChatTurn]) -> Tuple[str, List[ChatTurn]]:
    """(message, history); without an explicit message the last user turn is the message."""
    text = (utterance or "").strip()
    if text or not turns or turns[-1].speaker != "User":
        return require_text(text), turns
    return require_text(turns[-1].content), turns[:-1]
