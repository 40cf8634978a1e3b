# kozi_agent/core/shortcuts.py
"""
Hand-written read statements for the most frequent listing requests.

A shortcut fires only when the whole utterance is a plain listing request
("show me the top 5 employers", "any pending payments?"). Anything that adds a
filter, a count or a change request goes to the synthesizer. Entries are
checked in a fixed order and statements still go through the safety gate like
any generated one.
"""
from __future__ import annotations
import logging
import re
from dataclasses import dataclass
from typing import Optional, Pattern, Sequence

logger = logging.getLogger(__name__)

# "please show me all the top 5 ..." up to the entity words
_LEAD = (
    r"^\s*(?:please\s+)?(?:(?:can|could)\s+you\s+)?"
    r"(?:(?:show|list|get|display|give|fetch|view)(?:\s+me)?\s+)?"
    r"(?:(?:all|any|the|all\s+the|our)\s+)?(?:(?:top|first|last)\s+)?(?:\d{1,4}\s+)?"
)
_TAIL = r"(?:\s+please)?\s*[.!?]*\s*$"
SEEKERS = r"(?:job\s*seekers|candidates|workers)"
EMPLOYERS = r"(?:employers|companies|clients)"
_AND_THEIR = r"(?:\s+(?:with|and)\s+(?:their\s+)?|'\s+)"

EXPLICIT_LIMIT = re.compile(
    r"\b(?:top|first|last|latest|recent)\s+(\d{1,4})\b"
    r"|\b(\d{1,4})\s+(?:\w+\s+)?(?:job ?seekers?|candidates?|workers?|employers?|companies|jobs?|payments?|records|rows|results)\b",
    re.I,
)


def listing(body: str) -> Pattern[str]:
    return re.compile(_LEAD + body + _TAIL, re.I)


@dataclass(frozen=True)
class Shortcut:
    name: str
    pattern: Pattern[str]
    template: str  # must end with LIMIT {limit}

    def matches(self, utterance: str) -> bool:
        return self.pattern.match(utterance) is not None


@dataclass(frozen=True)
class ShortcutMatch:
    name: str
    sql: str
    limit: int


SHORTCUTS: Sequence[Shortcut] = (
    Shortcut(
        "pending_payments",
        listing(r"(?:pending|unpaid|due|outstanding|overdue)\s+payments"),
        "SELECT p.id, p.amount, p.dueDate, p.status FROM payments p "
        "WHERE p.status = 'pending' ORDER BY p.dueDate LIMIT {limit}",
    ),
    Shortcut(
        "recent_jobs",
        listing(r"(?:most\s+)?(?:recent|latest|new|newest)\s+(?:\d{1,4}\s+)?(?:jobs|job\s+postings|postings|vacancies)"),
        "SELECT j.id, j.title, j.location, j.jobType, j.createdAt FROM jobs j "
        "ORDER BY j.createdAt DESC LIMIT {limit}",
    ),
    Shortcut(
        "job_seekers_skills",
        listing(SEEKERS + _AND_THEIR + r"(?:skills|professions)"),
        "SELECT u.fname, u.lname, u.email, js.skills FROM job_seekers js "
        "JOIN users u ON js.userId = u.id LIMIT {limit}",
    ),
    Shortcut(
        "job_seekers_location",
        listing(SEEKERS + _AND_THEIR + r"(?:locations?|addresses)"),
        "SELECT u.fname, u.lname, u.email, js.location FROM job_seekers js "
        "JOIN users u ON js.userId = u.id LIMIT {limit}",
    ),
    Shortcut(
        "job_seekers",
        listing(SEEKERS),
        "SELECT u.fname, u.lname, u.email FROM job_seekers js "
        "JOIN users u ON js.userId = u.id LIMIT {limit}",
    ),
    Shortcut(
        "employers_company",
        listing(EMPLOYERS + _AND_THEIR + r"(?:company\s+names?|company\s+details|companies|details|industry|industries)"),
        "SELECT u.fname, u.lname, u.email, e.companyName, e.industry FROM employers e "
        "JOIN users u ON e.userId = u.id LIMIT {limit}",
    ),
    Shortcut(
        "employers",
        listing(EMPLOYERS),
        "SELECT u.fname, u.lname, u.email FROM employers e "
        "JOIN users u ON e.userId = u.id LIMIT {limit}",
    ),
)


def requested_limit(utterance: str, default: int, hard_cap: int) -> int:
    """Explicit row count in the utterance ("top 5", "20 employers"), bounded by hard_cap."""
    m = EXPLICIT_LIMIT.search(utterance or "")
    if not m:
        return default
    n = int(m.group(1) or m.group(2))
    if n < 1:
        return default
    return min(n, hard_cap)


class ShortcutTable:
    def __init__(self, shortcuts: Sequence[Shortcut] = SHORTCUTS, default_limit: int = 10, hard_cap: int = 200):
        self.shortcuts = tuple(shortcuts)
        self.default_limit = default_limit
        self.hard_cap = hard_cap

    def match(self, utterance: str) -> Optional[ShortcutMatch]:
        text = (utterance or "").strip()
        if not text:
            return None
        for sc in self.shortcuts:
            if sc.matches(text):
                limit = requested_limit(text, self.default_limit, self.hard_cap)
                logger.info("Shortcut %s matched (limit %d)", sc.name, limit)
                return ShortcutMatch(name=sc.name, sql=sc.template.format(limit=limit), limit=limit)
        return None
