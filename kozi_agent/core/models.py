from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import List, Dict, Any, Optional, Tuple

from pydantic import AliasChoices, BaseModel, Field


# --- Schema ---

@dataclass(frozen=True)
class ColumnInfo:
    name: str
    data_type: str
    nullable: bool = True


@dataclass(frozen=True)
class TableInfo:
    name: str
    columns: Tuple[ColumnInfo, ...] = ()


@dataclass(frozen=True)
class SchemaDescription:
    tables: Tuple[TableInfo, ...] = ()
    # False when built in degraded mode after a metadata failure
    available: bool = True

    @classmethod
    def empty(cls) -> "SchemaDescription":
        return cls(tables=(), available=False)

    def table_names(self) -> List[str]:
        return [t.name for t in self.tables]

    def render(self) -> str:
        """
        Compact, deterministic text for prompts:
          - employers
            columns: id(int) NOT NULL, userId(int) NOT NULL, companyName(varchar)
        """
        if not self.tables:
            return "(schema unavailable)" if not self.available else "(no user tables found)"
        parts: List[str] = []
        for t in self.tables:
            cols = ", ".join(
                f"{c.name}({c.data_type}){'' if c.nullable else ' NOT NULL'}" for c in t.columns
            )
            parts.append(f"- {t.name}\n  columns: {cols}")
        return "\n".join(parts)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "available": self.available,
            "tables": [
                {
                    "name": t.name,
                    "columns": [{"name": c.name, "type": c.data_type, "nullable": c.nullable} for c in t.columns],
                }
                for t in self.tables
            ],
        }


# --- Identity ---

class Role(str, Enum):
    JOB_SEEKER = "job_seeker"
    EMPLOYER = "employer"
    ADMIN = "admin"

    @classmethod
    def parse(cls, value: Any) -> Optional["Role"]:
        v = str(value or "").strip().lower().replace("-", "_")
        aliases = {"jobseeker": "job_seeker", "seeker": "job_seeker"}
        v = aliases.get(v, v)
        try:
            return cls(v)
        except ValueError:
            return None


@dataclass(frozen=True)
class Identity:
    user_id: str
    role: Role
    email: Optional[str] = None

    @property
    def is_privileged(self) -> bool:
        return self.role is Role.ADMIN


# --- Classification ---

class Intent(str, Enum):
    CONVERSATIONAL = "conversational"
    DATA_QUERY = "data-query"
    MAILBOX_ACTION = "mailbox-action"


@dataclass
class ClassificationResult:
    intent: Intent
    response: Optional[str] = None
    # model | keyword | fallback | role-gate
    source: str = "model"

    def wire_type(self) -> str:
        return {
            Intent.CONVERSATIONAL: "chat",
            Intent.DATA_QUERY: "sql",
            Intent.MAILBOX_ACTION: "gmail",
        }[self.intent]


# --- Generation / SQL ---

class StatementKind(str, Enum):
    READ = "read"
    WRITE = "write"


class OutcomeKind(str, Enum):
    READ = "read"
    WRITE = "write"
    UNPARSEABLE = "unparseable"


@dataclass(frozen=True)
class GenerationOutcome:
    kind: OutcomeKind
    statement: str = ""
    raw: str = ""


@dataclass(frozen=True)
class SynthesizedQuery:
    statement: str
    declared_kind: StatementKind = StatementKind.READ


@dataclass(frozen=True)
class SafeStatement:
    """A statement that passed the safety gate; only these reach the executor."""
    sql: str
    limited: bool = False


@dataclass
class QueryResult:
    rows: List[Dict[str, Any]] = field(default_factory=list)
    truncated: bool = False

    @property
    def row_count(self) -> int:
        return len(self.rows)

    @property
    def columns(self) -> List[str]:
        return list(self.rows[0].keys()) if self.rows else []

    def to_dict(self) -> Dict[str, Any]:
        return {"rows": self.rows, "row_count": self.row_count, "truncated": self.truncated, "columns": self.columns}


@dataclass
class DataAnswer:
    """Outcome of the data-query path, shared by JSON and streaming routes."""
    sql: str
    result: QueryResult
    markdown: str
    source: str  # shortcut:<name> | synthesized


# --- Streaming ---

class StreamEventKind(str, Enum):
    START = "start"
    MESSAGE = "message"
    ERROR = "error"
    DONE = "done"


@dataclass(frozen=True)
class StreamEvent:
    kind: StreamEventKind
    data: Dict[str, Any] = field(default_factory=dict)
    id: Optional[str] = None

    @property
    def terminal(self) -> bool:
        return self.kind in (StreamEventKind.DONE, StreamEventKind.ERROR)


# --- Reminders ---

@dataclass(frozen=True)
class ReminderRecord:
    payment_id: int
    amount: Decimal
    due_date: datetime
    recipient_email: Optional[str]


# --- Mail ---

class MailAction(str, Enum):
    SEARCH = "search"
    READ = "read"
    SEND = "send"
    BULK_SEND = "bulk_send"


class MailPlan(BaseModel):
    action: MailAction = MailAction.SEARCH
    query: str = ""
    message_id: Optional[str] = None
    to: Optional[str] = None
    subject: str = ""
    body: str = ""
    # employers | job_seekers (bulk_send only)
    audience: Optional[str] = None
    max_results: int = 10


class BulkSendReport(BaseModel):
    """Outcome of a bulk send; failures are reported here, never raised."""
    attempted: int = 0
    sent: int = 0
    failures: List[Dict[str, str]] = Field(default_factory=list)


class MailResult(BaseModel):
    action: MailAction
    output: str
    messages: List[Dict[str, str]] = Field(default_factory=list)
    report: Optional[BulkSendReport] = None


# --- HTTP bodies ---

class ChatTurn(BaseModel):
    """One earlier turn of the conversation; the web client sends {type, content}."""
    type: str = Field("user", validation_alias=AliasChoices("type", "role"))
    content: str = ""

    @property
    def speaker(self) -> str:
        kind = self.type.strip().lower()
        if kind == "user":
            return "User"
        return "System" if kind == "system" else "Assistant"


class InputRequest(BaseModel):
    input: str = ""


class ChatRequest(BaseModel):
    input: str = ""
    messages: List[ChatTurn] = Field(default_factory=list)


class ClassifierRequest(BaseModel):
    message: str = ""
    userType: Optional[str] = None
