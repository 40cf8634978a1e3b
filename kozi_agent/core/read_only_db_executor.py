# kozi_agent/core/read_only_db_executor.py
from __future__ import annotations
import logging
from collections.abc import Mapping
from typing import List, Dict, Any, Optional
from decimal import Decimal
from datetime import date, datetime, time, timedelta
from uuid import UUID

import anyio
from sqlalchemy import text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from kozi_agent.core.errors import ExecutionFailed
from kozi_agent.core.models import QueryResult, SafeStatement
from kozi_agent.core.redact import driver_message

logger = logging.getLogger(__name__)


def _json_safe(v: Any) -> Any:
    """Coerce DB types into JSON-serializable values."""
    if v is None or isinstance(v, (bool, int, float, str)):
        return v
    if isinstance(v, Decimal):
        # Use float for analytics; switch to str if you need exact precision
        return float(v)
    if isinstance(v, (date, datetime, time)):
        return v.isoformat()
    if isinstance(v, timedelta):
        return v.total_seconds()
    if isinstance(v, (bytes, bytearray, memoryview)):
        return bytes(v).decode("utf-8", errors="replace")
    if isinstance(v, UUID):
        return str(v)
    return str(v)


def _row(mapping: Mapping) -> Dict[str, Any]:
    return {str(k): _json_safe(v) for k, v in mapping.items()}


def normalize_rows(raw: Any) -> List[Dict[str, Any]]:
    """
    Map any driver return shape onto a list of column->value rows.

    list of mappings -> as is; list of sequences -> positional columns;
    list of scalars -> one "value" column; mapping -> one row;
    scalar/str -> one row, one column; None -> [].
    """
    if raw is None:
        return []
    if isinstance(raw, Mapping):
        return [_row(raw)]
    if isinstance(raw, (str, bytes, bytearray)):
        return [{"value": _json_safe(raw)}]
    if isinstance(raw, (list, tuple)) or hasattr(raw, "__iter__"):
        out: List[Dict[str, Any]] = []
        for item in raw:
            if isinstance(item, Mapping):
                out.append(_row(item))
            elif hasattr(item, "_mapping"):  # SQLAlchemy Row
                out.append(_row(item._mapping))
            elif isinstance(item, (list, tuple)):
                out.append({f"col{i + 1}": _json_safe(v) for i, v in enumerate(item)})
            else:
                out.append({"value": _json_safe(item)})
        return out
    return [{"value": _json_safe(raw)}]


class ReadOnlyDbExecutor:
    def __init__(self, engine: Engine, max_rows: int, statement_timeout_ms: int):
        self.engine = engine
        self.max_rows = max_rows
        self.statement_timeout_ms = statement_timeout_ms

    async def execute(self, statement: SafeStatement, params: Optional[Dict[str, Any]] = None) -> QueryResult:
        """Run a gated statement off the event loop, bounded by a wall-clock timeout."""
        if not isinstance(statement, SafeStatement):
            raise TypeError("execute() only accepts statements returned by the safety gate")
        # client-side bound; the worker thread may finish later and is discarded
        wall_clock = self.statement_timeout_ms / 1000.0 + 1.0
        try:
            with anyio.fail_after(wall_clock):
                return await anyio.to_thread.run_sync(self.execute_sync, statement, params, abandon_on_cancel=True)
        except TimeoutError as ex:
            logger.warning("Query timed out after %.1fs", wall_clock)
            raise ExecutionFailed("timeout", public_message="The query took too long and was stopped.") from ex

    def execute_sync(self, statement: SafeStatement, params: Optional[Dict[str, Any]] = None) -> QueryResult:
        try:
            with self.engine.connect() as conn:
                self._apply_timeout(conn)
                cursor = conn.execute(text(statement.sql), params or {})
                fetched = cursor.mappings().fetchmany(self.max_rows + 1)
        except SQLAlchemyError as ex:
            msg = driver_message(ex)
            logger.warning("Query failed: %s", msg)
            raise ExecutionFailed(msg, public_message=f"The database rejected the query: {msg}") from ex
        rows = normalize_rows(fetched)
        truncated = len(rows) > self.max_rows
        return QueryResult(rows=rows[: self.max_rows], truncated=truncated)

    def ping(self) -> bool:
        with self.engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        return True

    def _apply_timeout(self, conn) -> None:
        ms = int(self.statement_timeout_ms)
        dialect = conn.dialect.name
        if dialect == "postgresql":
            conn.exec_driver_sql(f"SET LOCAL statement_timeout = {ms}")
        elif dialect == "mysql":
            conn.exec_driver_sql(f"SET SESSION MAX_EXECUTION_TIME = {ms}")
        elif dialect == "mariadb":
            conn.exec_driver_sql(f"SET SESSION max_statement_time = {ms / 1000:.3f}")
