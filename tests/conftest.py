"""
Pytest configuration and shared fixtures.

Everything runs offline: an in-memory SQLite database seeded with the Kozi
recruitment tables, a scripted completion backend and fake mail collaborators.
"""
import os
from datetime import datetime
from typing import Dict, Iterable, List, Optional

import pytest
from google.oauth2.credentials import Credentials
from sqlalchemy import (
    Column, DateTime, Float, ForeignKey, Integer, MetaData, String, Table, create_engine,
)
from sqlalchemy.pool import StaticPool

TEST_SECRET = "test-secret"

# Settings() is built at import time by kozi_agent.main
os.environ.setdefault("GEMINI_API_KEY", "test-key")
os.environ.setdefault("DB_URL_RO", "sqlite://")
os.environ.setdefault("JWT_SECRET", TEST_SECRET)
os.environ.setdefault("REMINDERS_ENABLED", "false")

from kozi_agent.core.errors import CredentialsUnavailable, MailActionFailed  # noqa: E402
from kozi_agent.core.identity import issue_token  # noqa: E402
from kozi_agent.core.models import Identity, Role  # noqa: E402
from kozi_agent.settings import Settings  # noqa: E402

# Fixed clock for reminder tests: payments due 2026-10-21 are in the window
NOW = datetime(2026, 10, 19, 7, 0, 0)


@pytest.fixture
def now() -> datetime:
    return NOW


def pytest_configure(config):
    config.addinivalue_line("markers", "unit: mark test as unit test (default)")


# ============================================================================
# Database
# ============================================================================

metadata = MetaData()

users = Table(
    "users", metadata,
    Column("id", Integer, primary_key=True),
    Column("fname", String(60), nullable=False),
    Column("lname", String(60), nullable=False),
    Column("email", String(120)),
    Column("role", String(20), nullable=False),
)
employers = Table(
    "employers", metadata,
    Column("id", Integer, primary_key=True),
    Column("userId", Integer, ForeignKey("users.id"), nullable=False),
    Column("companyName", String(120)),
    Column("companySize", String(20)),
    Column("industry", String(60)),
)
job_seekers = Table(
    "job_seekers", metadata,
    Column("id", Integer, primary_key=True),
    Column("userId", Integer, ForeignKey("users.id"), nullable=False),
    Column("skills", String(255)),
    Column("experience", String(60)),
    Column("location", String(60)),
    Column("desiredJob", String(60)),
    Column("expectedSalary", Integer),
)
jobs = Table(
    "jobs", metadata,
    Column("id", Integer, primary_key=True),
    Column("employerId", Integer, ForeignKey("employers.id"), nullable=False),
    Column("title", String(120), nullable=False),
    Column("location", String(60)),
    Column("jobType", String(30)),
    Column("salary", Integer),
    Column("createdAt", DateTime),
)
applications = Table(
    "applications", metadata,
    Column("id", Integer, primary_key=True),
    Column("jobId", Integer, ForeignKey("jobs.id"), nullable=False),
    Column("jobSeekerId", Integer, ForeignKey("job_seekers.id"), nullable=False),
    Column("status", String(20)),
    Column("createdAt", DateTime),
)
payments = Table(
    "payments", metadata,
    Column("id", Integer, primary_key=True),
    Column("amount", Float, nullable=False),
    Column("dueDate", DateTime, nullable=False),
    Column("status", String(20), nullable=False),
    Column("employerId", Integer, ForeignKey("employers.id")),
    Column("jobSeekerId", Integer, ForeignKey("job_seekers.id")),
)

SEEKER_COUNT = 15
EMPLOYER_COUNT = 5


def _seed(conn) -> None:
    conn.execute(users.insert(), [
        {"id": i, "fname": f"Seeker{i}", "lname": "Uwase", "email": f"seeker{i}@example.com", "role": "job_seeker"}
        for i in range(1, SEEKER_COUNT + 1)
    ])
    conn.execute(users.insert(), [
        {
            "id": 100 + i, "fname": f"Boss{i}", "lname": "Habimana",
            # the last employer has no email on file
            "email": f"employer{i}@example.com" if i < EMPLOYER_COUNT else None,
            "role": "employer",
        }
        for i in range(1, EMPLOYER_COUNT + 1)
    ])
    conn.execute(job_seekers.insert(), [
        {
            "id": i, "userId": i, "skills": "cooking, cleaning" if i % 2 else "security",
            "experience": f"{i % 5} years", "location": "Kigali" if i % 3 else "Musanze",
            "desiredJob": "chef" if i % 2 else "guard", "expectedSalary": 100000 + i * 1000,
        }
        for i in range(1, SEEKER_COUNT + 1)
    ])
    conn.execute(employers.insert(), [
        {"id": i, "userId": 100 + i, "companyName": f"Company {i}", "companySize": "small", "industry": "hospitality"}
        for i in range(1, EMPLOYER_COUNT + 1)
    ])
    conn.execute(jobs.insert(), [
        {
            "id": i, "employerId": (i % EMPLOYER_COUNT) + 1, "title": f"Job {i}", "location": "Kigali",
            "jobType": "full-time", "salary": 150000, "createdAt": datetime(2026, 10, i, 9, 0),
        }
        for i in range(1, 13)
    ])
    conn.execute(applications.insert(), [
        {"id": 1, "jobId": 1, "jobSeekerId": 1, "status": "pending", "createdAt": datetime(2026, 10, 2)},
        {"id": 2, "jobId": 2, "jobSeekerId": 2, "status": "accepted", "createdAt": datetime(2026, 10, 3)},
    ])
    conn.execute(payments.insert(), [
        # in the reminder window
        {"id": 1, "amount": 1500.0, "dueDate": datetime(2026, 10, 21, 10, 0), "status": "pending", "employerId": 1},
        {"id": 2, "amount": 2500.0, "dueDate": datetime(2026, 10, 21, 23, 30), "status": "pending", "employerId": 5},
        # already paid
        {"id": 3, "amount": 900.0, "dueDate": datetime(2026, 10, 21, 9, 0), "status": "paid", "employerId": 2},
        # outside the window
        {"id": 4, "amount": 700.0, "dueDate": datetime(2026, 10, 22, 0, 0), "status": "pending", "employerId": 3},
        {"id": 5, "amount": 300.0, "dueDate": datetime(2026, 10, 20, 12, 0), "status": "pending", "employerId": 4},
    ])


@pytest.fixture
def engine():
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    metadata.create_all(eng)
    with eng.begin() as conn:
        _seed(conn)
    yield eng
    eng.dispose()


# ============================================================================
# Fakes
# ============================================================================

class FakeLLM:
    """Scripted completion backend; records every prompt it receives."""

    def __init__(self, classify: str = "", generate: str = "", chunks: Iterable[str] = ()):
        self.classify_reply = classify
        self.generate_reply = generate
        self.chunks = list(chunks)
        self.calls: List[tuple] = []

    def classify(self, prompt: str) -> str:
        self.calls.append(("classify", prompt))
        return self.classify_reply

    def generate(self, prompt: str) -> str:
        self.calls.append(("generate", prompt))
        return self.generate_reply

    def chat_stream(self, prompt: str):
        self.calls.append(("chat", prompt))
        for chunk in self.chunks:
            yield chunk

    def count(self, kind: str) -> int:
        return sum(1 for k, _ in self.calls if k == kind)


class FakeMailClient:
    def __init__(self, fail_for: Iterable[str] = (), messages: Optional[List[Dict[str, str]]] = None):
        self.fail_for = set(fail_for)
        self.messages = messages or []
        self.sent: List[Dict[str, str]] = []
        self.calls = 0

    def search(self, query: str, max_results: int = 10) -> List[Dict[str, str]]:
        self.calls += 1
        self.last_query = query
        return self.messages[:max_results]

    def get(self, message_id: str) -> Dict[str, str]:
        self.calls += 1
        for m in self.messages:
            if m["id"] == message_id:
                return {**m, "body": m.get("body", m.get("snippet", ""))}
        raise MailActionFailed("HTTP 404")

    def send(self, to: str, subject: str, body: str) -> str:
        self.calls += 1
        if to in self.fail_for:
            raise MailActionFailed("HTTP 500")
        self.sent.append({"to": to, "subject": subject, "body": body})
        return f"sent-{len(self.sent)}"


class FakeCredentials:
    def __init__(self, available: bool = True):
        self.available = available
        self.calls = 0

    def current_token(self) -> str:
        self.calls += 1
        if not self.available:
            raise CredentialsUnavailable("token file not found")
        return "ya29.test-token"

    def credentials(self) -> Credentials:
        return Credentials(token=self.current_token())


# ============================================================================
# Identity & settings
# ============================================================================

@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        GEMINI_API_KEY="test-key",
        DB_URL_RO="sqlite://",
        JWT_SECRET=TEST_SECRET,
        REMINDERS_ENABLED=False,
        STREAM_TIMEOUT_SECONDS=5.0,
        STREAM_KEEPALIVE_SECONDS=1.0,
    )


ADMIN = Identity(user_id="900", role=Role.ADMIN, email="admin@kozi.rw")
EMPLOYER = Identity(user_id="101", role=Role.EMPLOYER, email="employer1@example.com")
JOB_SEEKER = Identity(user_id="1", role=Role.JOB_SEEKER, email="seeker1@example.com")


def auth_header(identity: Identity) -> Dict[str, str]:
    token = issue_token(identity.user_id, identity.role, TEST_SECRET, email=identity.email)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def admin_headers() -> Dict[str, str]:
    return auth_header(ADMIN)


@pytest.fixture
def employer_headers() -> Dict[str, str]:
    return auth_header(EMPLOYER)


@pytest.fixture
def seeker_headers() -> Dict[str, str]:
    return auth_header(JOB_SEEKER)


@pytest.fixture
def admin() -> Identity:
    return ADMIN


@pytest.fixture
def employer() -> Identity:
    return EMPLOYER


@pytest.fixture
def seeker() -> Identity:
    return JOB_SEEKER


@pytest.fixture
def fake_llm() -> FakeLLM:
    return FakeLLM()


@pytest.fixture
def fake_mail() -> FakeMailClient:
    return FakeMailClient()


@pytest.fixture
def fake_credentials() -> FakeCredentials:
    return FakeCredentials()


# ============================================================================
# Assembled components (real gate, executor and schema cache on SQLite)
# ============================================================================

@pytest.fixture
def executor(engine):
    from kozi_agent.core.read_only_db_executor import ReadOnlyDbExecutor
    return ReadOnlyDbExecutor(engine, max_rows=200, statement_timeout_ms=5000)


@pytest.fixture
def schema_cache(engine):
    from kozi_agent.core.schema_catalog import SchemaCache
    return SchemaCache(engine)


@pytest.fixture
def dispatcher(fake_llm, fake_credentials, fake_mail, executor):
    from kozi_agent.core.mail_dispatcher import MailboxDispatcher
    return MailboxDispatcher(fake_llm, fake_credentials, fake_mail, executor, dialect="sqlite")


@pytest.fixture
def pipeline(fake_llm, executor, schema_cache, dispatcher):
    from kozi_agent.core.assistant_pipeline import AssistantPipeline
    from kozi_agent.core.intent_classifier import IntentClassifier
    from kozi_agent.core.query_synthesizer import QuerySynthesizer
    from kozi_agent.core.shortcuts import ShortcutTable
    return AssistantPipeline(
        IntentClassifier(fake_llm),
        QuerySynthesizer(fake_llm, dialect="sqlite", default_limit=10),
        executor,
        schema_cache,
        ShortcutTable(default_limit=10, hard_cap=200),
        dispatcher,
        fake_llm,
        dialect="sqlite",
        default_limit=10,
    )
