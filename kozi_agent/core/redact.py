from __future__ import annotations
import re

API_KEY_RE = re.compile(r"(key=|token=|access_token\"?:\s*\"?|Bearer\s+)([^&\s\"]+)", re.I)
DB_URL_RE = re.compile(r"(\w+(?:\+\w+)?://)([^:/@\s]+):([^@\s]+)@")
LONG_TOKEN_RE = re.compile(r"([A-Za-z0-9_\-\.]{32,})")


def redact(s: str, limit: int = 300) -> str:
    """Mask credentials in messages that may reach a caller or a log line."""
    try:
        out = API_KEY_RE.sub(r"\1***REDACTED***", str(s))
        out = DB_URL_RE.sub(r"\1***:***@", out)
        # Heuristic: mask long tokens
        out = LONG_TOKEN_RE.sub("***", out)
        return out[:limit]
    except Exception:  # noqa: BLE001
        return "(redacted error)"


def driver_message(exc: BaseException) -> str:
    """First line of a DB driver error, without SQL echo or parameters."""
    orig = getattr(exc, "orig", None) or exc
    text = str(orig).strip().splitlines()[0] if str(orig).strip() else type(orig).__name__
    # SQLAlchemy appends "[SQL: ...]" and "(Background on this error ...)"
    text = re.split(r"\s*\[SQL:|\s*\(Background on this error", text)[0]
    return redact(text, limit=200)
