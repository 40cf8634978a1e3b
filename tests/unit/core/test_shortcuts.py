"""Unit tests for the direct-pattern shortcut table."""
import pytest

from kozi_agent.core.shortcuts import SHORTCUTS, ShortcutTable, requested_limit
from kozi_agent.core.sql_guard import validate


@pytest.fixture
def table():
    return ShortcutTable(default_limit=10, hard_cap=200)


@pytest.mark.parametrize(
    "utterance, name",
    [
        ("show me job seekers", "job_seekers"),
        ("list job seekers with their skills", "job_seekers_skills"),
        ("show candidates and their locations", "job_seekers_location"),
        ("show employers and their company names", "employers_company"),
        ("show employers", "employers"),
        ("any pending payments?", "pending_payments"),
        ("latest jobs", "recent_jobs"),
        ("show me the 5 most recent jobs", "recent_jobs"),
        ("top 5 employers", "employers"),
    ],
)
def test_first_matching_entry_wins(table, utterance, name):
    hit = table.match(utterance)
    assert hit is not None
    assert hit.name == name


def test_job_seekers_list_selects_name_and_email_only(table):
    hit = table.match("show me job seekers")
    assert hit.sql == (
        "SELECT u.fname, u.lname, u.email FROM job_seekers js "
        "JOIN users u ON js.userId = u.id LIMIT 10"
    )
    assert hit.limit == 10


@pytest.mark.parametrize(
    "utterance",
    [
        "DROP TABLE payments",
        "delete all job seekers",
        "update employers set industry = 'x'",
        "how many job seekers are there?",
        "total pending payments per employer",
        "what is the weather in Kigali?",
        "show employers located in Kigali",
        "list recent jobs posted by employers",
        "show job seekers in Musanze with cooking skills",
        "list employers who have pending payments",
        "show pending payments for employer 3",
        "",
    ],
)
def test_no_match_falls_through(table, utterance):
    assert table.match(utterance) is None


class TestRequestedLimit:
    @pytest.mark.parametrize(
        "utterance, expected",
        [
            ("top 5 employers", 5),
            ("show 20 job seekers", 20),
            ("show me the first 3 candidates", 3),
            ("show 500 job seekers", 200),
            ("show job seekers", 10),
            ("jobs posted in 2026", 10),
            ("top 0 employers", 10),
        ],
    )
    def test_explicit_numbers(self, utterance, expected):
        assert requested_limit(utterance, default=10, hard_cap=200) == expected

    def test_limit_reaches_the_statement(self, table):
        assert table.match("top 5 employers").sql.endswith("LIMIT 5")


@pytest.mark.parametrize("shortcut", SHORTCUTS, ids=lambda s: s.name)
def test_every_template_passes_the_gate(shortcut):
    safe = validate(shortcut.template.format(limit=10))
    assert safe.limited is False


async def test_shortcut_rows_on_the_seeded_database(table, executor):
    hit = table.match("show me job seekers")
    result = await executor.execute(validate(hit.sql, dialect="sqlite"))
    assert result.row_count == 10
    assert result.columns == ["fname", "lname", "email"]


def test_listing_words_are_checked_before_entities(table):
    # "jobs" and "payments" outrank the employer and seeker entries
    assert table.match("show recent jobs").name == "recent_jobs"
    assert table.match("show all pending payments").name == "pending_payments"
