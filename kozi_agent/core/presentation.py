from __future__ import annotations
from typing import Any, List

from kozi_agent.core.models import QueryResult


def clip(value: Any, width: int = 30) -> str:
    s = "" if value is None else str(value)
    s = s.replace("\n", " ").replace("|", "\\|")
    if width > 1 and len(s) > width:
        return s[: width - 1] + "…"
    return s


def render_markdown(result: QueryResult, *, max_cell: int = 30) -> str:
    """Markdown table for chat display. Cells are clipped here only; result.rows stays intact."""
    if not result.rows:
        return "No matching records found."
    headers = result.columns
    lines: List[str] = [
        "| " + " | ".join(headers) + " |",
        "| " + " | ".join(["---"] * len(headers)) + " |",
    ]
    for r in result.rows:
        lines.append("| " + " | ".join(clip(r.get(h), max_cell) for h in headers) + " |")
    noun = "row" if result.row_count == 1 else "rows"
    footer = f"\n\n{result.row_count} {noun}"
    if result.truncated:
        footer += " (more available, refine your question to narrow the results)"
    return "\n".join(lines) + footer
