# kozi_agent/core/sql_guard.py
from __future__ import annotations
import re
from typing import List

import sqlglot
from sqlglot import expressions as exp
from sqlglot.errors import ParseError

from kozi_agent.core.errors import UnsafeStatement
from kozi_agent.core.models import SafeStatement

# Allow only safe, single-statement, read-only queries
ALLOW = re.compile(r"^\s*\(?\s*(?:select|with)\b", re.I)
STRIP = re.compile(r"/\*.*?\*/|--[^\n]*", flags=re.S)  # strip /* */ and -- comments
MUTATING_VERBS = (
    "insert", "update", "delete", "drop", "alter", "truncate", "create", "grant", "revoke",
    "merge", "rename", "call", "exec", "execute", "copy", "load", "lock", "set", "handler",
    "outfile", "dumpfile",
)
READ_ROOTS = (exp.Select, exp.Union, exp.Intersect, exp.Except, exp.Subquery)
DANGERS = re.compile(r"(?<![\w$])(" + "|".join(MUTATING_VERBS) + r")(?![\w$])", re.I)
PSQL_META = re.compile(r"(^|\s)\\\w+")  # \dt, \gdesc, etc.
LIMIT_RE = re.compile(r"\blimit\s+\d+", re.I)
AGGREGATES = {"sum", "avg", "count", "min", "max"}


def strip_comments(sql: str) -> str:
    return STRIP.sub(" ", sql or "")


def mutating_verbs(sql: str) -> List[str]:
    """Mutating keywords found as standalone tokens."""
    return sorted({m.group(1).upper() for m in DANGERS.finditer(sql or "")})


def is_aggregate(tree: exp.Expression) -> bool:
    if tree.find(exp.Group):
        return True
    if tree.find(exp.AggFunc):
        return True
    return any((f.name or "").lower() in AGGREGATES for f in tree.find_all(exp.Func))


def should_inject_limit(tree: exp.Expression) -> bool:
    # Do not inject LIMIT for aggregates or when GROUP BY is present
    return not is_aggregate(tree)


def validate(candidate: str, *, default_limit: int = 10, dialect: str = "mysql") -> SafeStatement:
    """
    Accept one read-only statement or raise UnsafeStatement.

    Mutating verbs are checked in the statement body outside string literals,
    and inside comments, so hiding a verb behind a comment still rejects while
    a value such as 'Data Load Engineer' does not. Missing LIMIT is injected
    for non-aggregate queries.
    """
    raw = (candidate or "").strip()
    if not raw:
        raise UnsafeStatement("empty statement")

    code = _without_literals(strip_comments(raw))
    hidden = " ".join(STRIP.findall(raw))
    found = sorted(set(mutating_verbs(code)) | set(mutating_verbs(hidden)))
    if found:
        raise UnsafeStatement(f"mutating keyword not allowed ({', '.join(found)})", proposal=raw)

    s = strip_comments(raw).strip()
    s = s.rstrip().rstrip(";").rstrip()
    if ";" in _without_literals(s):
        raise UnsafeStatement("multiple statements not allowed")
    if not ALLOW.search(s) or PSQL_META.search(s):
        raise UnsafeStatement("only SELECT queries are allowed")

    try:
        trees = [t for t in sqlglot.parse(s, read=dialect) if t is not None]
    except ParseError as ex:
        raise UnsafeStatement(f"statement is not well-formed: {_first_line(str(ex))}") from ex
    if len(trees) != 1:
        raise UnsafeStatement("multiple statements not allowed")
    tree = trees[0]
    if not isinstance(tree, READ_ROOTS):
        raise UnsafeStatement(f"only SELECT queries are allowed (got {type(tree).__name__})")

    limited = False
    if LIMIT_RE.search(s) is None and should_inject_limit(tree):
        s = f"{s} LIMIT {int(default_limit)}"
        limited = True
    return SafeStatement(sql=s, limited=limited)


def _without_literals(sql: str) -> str:
    return re.sub(r"'(?:''|\\'|[^'])*'|\"(?:\"\"|[^\"])*\"|`[^`]*`", "''", sql)


def _first_line(msg: str) -> str:
    return (msg or "").strip().splitlines()[0][:200] if msg else "parse error"
