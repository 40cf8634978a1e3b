"""Unit tests for markdown rendering of query results."""
from kozi_agent.core.models import QueryResult
from kozi_agent.core.presentation import clip, render_markdown


def test_long_cells_are_clipped_with_ellipsis():
    assert clip("x" * 40, 30) == "x" * 29 + "…"
    assert clip(None) == ""
    assert clip("a|b") == "a\\|b"


def test_render_does_not_mutate_rows():
    long_skills = "cooking, cleaning, laundry, childcare, gardening"
    result = QueryResult(rows=[{"fname": "Aline", "skills": long_skills}])
    text = render_markdown(result, max_cell=30)
    assert "| fname | skills |" in text
    assert long_skills not in text
    assert result.rows[0]["skills"] == long_skills
    assert text.endswith("1 row")


def test_truncated_results_say_so():
    text = render_markdown(QueryResult(rows=[{"id": 1}, {"id": 2}], truncated=True))
    assert "2 rows (more available" in text


def test_empty_result():
    assert render_markdown(QueryResult()) == "No matching records found."
