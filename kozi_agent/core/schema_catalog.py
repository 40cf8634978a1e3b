# kozi_agent/core/schema_catalog.py
from __future__ import annotations
import logging
import threading
from typing import Iterable, List, Optional

from sqlalchemy import inspect
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from kozi_agent.core.errors import SchemaUnavailable
from kozi_agent.core.models import ColumnInfo, SchemaDescription, TableInfo

logger = logging.getLogger(__name__)

# Utility tables never offered to the model
EXCLUDED_TABLES = {"_prisma_migrations", "sqlite_sequence"}


def describe_schema(engine: Engine, exclude: Iterable[str] = EXCLUDED_TABLES) -> SchemaDescription:
    """
    Read tables and columns of the active database/schema.

    Tables are sorted by name, columns keep declaration order, so the rendered
    text is stable across calls. Raises SchemaUnavailable on any metadata error.
    """
    skip = set(exclude)
    try:
        insp = inspect(engine)
        tables: List[TableInfo] = []
        for name in sorted(insp.get_table_names()):
            if name in skip:
                continue
            cols = tuple(
                ColumnInfo(
                    name=str(c["name"]),
                    data_type=_type_name(c.get("type")),
                    nullable=bool(c.get("nullable", True)),
                )
                for c in insp.get_columns(name)
            )
            tables.append(TableInfo(name=name, columns=cols))
    except SQLAlchemyError as ex:
        raise SchemaUnavailable(f"metadata query failed: {type(ex).__name__}") from ex
    return SchemaDescription(tables=tuple(tables))


def _type_name(t) -> str:
    if t is None:
        return "unknown"
    try:
        return str(t).lower()
    except Exception:  # noqa: BLE001  (some dialect types refuse to compile without a dialect)
        return type(t).__name__.lower()


class SchemaCache:
    """
    Process-wide schema description, built lazily.

    Readers get whatever reference is current; rebuild() builds a new value
    first and swaps it in, so a half-built description is never visible.
    """

    def __init__(self, engine: Engine):
        self.engine = engine
        self._value: Optional[SchemaDescription] = None
        self._lock = threading.Lock()

    def get(self) -> SchemaDescription:
        value = self._value
        if value is not None:
            return value
        with self._lock:
            if self._value is None:
                return self._build()
            return self._value

    def get_or_empty(self) -> SchemaDescription:
        """Degraded mode: an empty description instead of an error."""
        try:
            return self.get()
        except SchemaUnavailable as ex:
            logger.warning("Schema unavailable, continuing without it: %s", ex)
            return SchemaDescription.empty()

    def rebuild(self) -> SchemaDescription:
        with self._lock:
            return self._build()

    def invalidate(self) -> None:
        self._value = None

    def _build(self) -> SchemaDescription:
        fresh = describe_schema(self.engine)
        # failed builds raise above and leave the previous value in place
        self._value = fresh
        logger.info("Schema description built: %d tables", len(fresh.tables))
        return fresh
