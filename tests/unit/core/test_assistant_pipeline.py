"""
Unit tests for the routed assistant pipeline.

Real gate, executor and schema cache over the seeded SQLite database; the
completion backend and mail collaborators are scripted.
"""
import pytest
from sqlalchemy import create_engine, text

from kozi_agent.core.assistant_pipeline import runner
from kozi_agent.core.errors import SynthesisFailed, UnsafeStatement
from kozi_agent.core.intent_classifier import ADMIN_ONLY_MAIL, ROLE_GUIDANCE
from kozi_agent.core.models import ChatTurn, Role, StreamEventKind
from kozi_agent.core.schema_catalog import SchemaCache
from kozi_agent.core.stream_session import StreamSession, drive


async def run_stream(pipeline, utterance, identity):
    session = StreamSession()
    session.start()
    await drive(session, runner(pipeline.run, utterance, identity))
    return session.drain()


def messages(events):
    return [e.data["content"] for e in events if e.kind is StreamEventKind.MESSAGE]


def terminal(events):
    ends = [e for e in events if e.terminal]
    assert len(ends) == 1
    return ends[0]


class TestDataPath:
    async def test_show_me_job_seekers_uses_the_shortcut(self, pipeline, fake_llm, employer):
        answer = await pipeline.answer_data_query("show me job seekers")
        assert answer.source == "shortcut:job_seekers"
        assert answer.result.row_count == 10
        assert answer.result.columns == ["fname", "lname", "email"]
        assert fake_llm.count("generate") == 0

        events = await run_stream(pipeline, "show me job seekers", employer)
        assert events[0].kind is StreamEventKind.START
        assert terminal(events).kind is StreamEventKind.DONE
        assert "| fname | lname | email |" in messages(events)[-1]
        assert fake_llm.count("classify") == 0

    async def test_generated_statement_is_gated_and_limited(self, pipeline, fake_llm):
        fake_llm.generate_reply = '{"type": "read", "sql": "SELECT title, location FROM jobs ORDER BY id"}'
        answer = await pipeline.answer_data_query("which jobs do we have in Kigali or elsewhere")
        assert answer.source == "synthesized"
        assert answer.sql.endswith("LIMIT 10")
        assert answer.result.row_count == 10

    async def test_progress_is_reported(self, pipeline, fake_llm):
        seen = []
        await pipeline.answer_data_query("show employers", progress=seen.append)
        assert seen == ["Running query...\n\n", "Formatting results...\n\n"]

    async def test_generate_sql_does_not_execute(self, pipeline, fake_llm):
        fake_llm.generate_reply = "SELECT fname FROM users WHERE role = 'employer'"
        sql = await pipeline.generate_sql("first names of hiring accounts")
        assert sql == "SELECT fname FROM users WHERE role = 'employer' LIMIT 10"

    async def test_synthesis_failure(self, pipeline, fake_llm):
        fake_llm.generate_reply = ""
        with pytest.raises(SynthesisFailed):
            await pipeline.answer_data_query("average salary by town for chefs")


class TestWriteRequests:
    @pytest.mark.parametrize(
        "reply",
        ['{"type": "write", "sql": "DROP TABLE payments"}', '{"type": "read", "sql": "DROP TABLE payments"}', ""],
    )
    async def test_drop_table_never_runs(self, pipeline, fake_llm, engine, admin, reply):
        fake_llm.classify_reply = '{"type": "sql"}'
        fake_llm.generate_reply = reply
        events = await run_stream(pipeline, "DROP TABLE payments", admin)
        end = terminal(events)
        assert end.kind is StreamEventKind.ERROR
        assert not any("|" in m for m in messages(events))
        with engine.connect() as conn:
            assert conn.execute(text("SELECT COUNT(*) FROM payments")).scalar() == 5

    async def test_rejection_message(self, pipeline, fake_llm):
        fake_llm.generate_reply = '{"type": "write", "sql": "DROP TABLE payments"}'
        with pytest.raises(UnsafeStatement) as exc:
            await pipeline.answer_data_query("DROP TABLE payments")
        assert exc.value.public_message.startswith("Query rejected")
        assert exc.value.proposal == "DROP TABLE payments"

    async def test_propose_returns_write_without_executing(self, pipeline, fake_llm, engine):
        fake_llm.generate_reply = '{"type": "write", "sql": "UPDATE payments SET status = \'paid\' WHERE id = 1"}'
        out = await pipeline.propose("mark payment 1 as paid")
        assert out["type"] == "write"
        assert out["executed"] is False
        with engine.connect() as conn:
            assert conn.execute(text("SELECT status FROM payments WHERE id = 1")).scalar() == "pending"

    async def test_propose_answers_reads(self, pipeline):
        out = await pipeline.propose("show pending payments")
        assert out["type"] == "read"
        assert out["row_count"] == 4


async def test_degraded_schema_still_answers(pipeline, fake_llm, tmp_path):
    pipeline.schema_cache = SchemaCache(create_engine(f"sqlite:///{tmp_path}/missing/dir/kozi.db"))
    fake_llm.generate_reply = '{"type": "read", "sql": "SELECT title FROM jobs LIMIT 3"}'
    answer = await pipeline.answer_data_query("three job titles please")
    assert answer.result.row_count == 3
    assert "(schema unavailable)" in fake_llm.calls[-1][1]


class TestConversational:
    async def test_malformed_classification_gets_platform_help(self, pipeline, fake_llm, employer):
        fake_llm.classify_reply = "{not json"
        events = await run_stream(pipeline, "I need someone to cook for a party", employer)
        assert terminal(events).kind is StreamEventKind.DONE
        assert messages(events)[-1] == ROLE_GUIDANCE[Role.EMPLOYER]

    async def test_chat_without_reply_streams_from_the_model(self, pipeline, fake_llm, seeker):
        fake_llm.classify_reply = '{"type": "chat", "response": ""}'
        fake_llm.chunks = ["Open the Jobs tab", " and press Apply."]
        events = await run_stream(pipeline, "how do I apply for a job?", seeker)
        assert messages(events)[-2:] == ["Open the Jobs tab", " and press Apply."]
        assert fake_llm.count("chat") == 1

    async def test_earlier_turns_reach_the_chat_prompt(self, pipeline, fake_llm, employer):
        fake_llm.classify_reply = '{"type": "chat", "response": "How can I help?"}'
        fake_llm.chunks = ["Noted: a chef in Kigali from Monday."]
        history = [
            ChatTurn(type="user", content="I need a chef in Kigali"),
            ChatTurn(type="assistant", content="When should they start?"),
            ChatTurn(type="user", content="from Monday"),
        ]
        session = StreamSession()
        session.start()
        await drive(session, runner(pipeline.run, "from Monday", employer, history))
        events = session.drain()
        assert messages(events)[-1] == "Noted: a chef in Kigali from Monday."
        prompt = [p for k, p in fake_llm.calls if k == "chat"][0]
        assert "User: I need a chef in Kigali\nAssistant: When should they start?" in prompt
        # the current message is not repeated as history
        assert prompt.count("from Monday") == 1

    async def test_no_history_is_marked_in_the_prompt(self, pipeline, fake_llm, seeker):
        fake_llm.classify_reply = '{"type": "chat", "response": ""}'
        await run_stream(pipeline, "how do I apply for a job?", seeker)
        prompt = [p for k, p in fake_llm.calls if k == "chat"][0]
        assert "Conversation so far:\n(none)" in prompt

    async def test_non_admin_mail_request_is_explained(self, pipeline, fake_mail, seeker):
        events = await run_stream(pipeline, "check my emails", seeker)
        assert messages(events)[-1] == ADMIN_ONLY_MAIL
        assert fake_mail.calls == 0


async def test_admin_mail_request_is_dispatched(pipeline, fake_mail, admin):
    fake_mail.messages = [{"id": "a1", "from": "hr@example.com", "subject": "Invoice", "date": "today", "snippet": ""}]
    events = await run_stream(pipeline, "check my emails", admin)
    assert terminal(events).kind is StreamEventKind.DONE
    assert "Invoice" in messages(events)[-1]
