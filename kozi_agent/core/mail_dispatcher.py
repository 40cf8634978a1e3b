# kozi_agent/core/mail_dispatcher.py
from __future__ import annotations
import logging
import re
from typing import Dict, List, Optional

import anyio
from pydantic import ValidationError

from kozi_agent.core.credentials import TokenFileCredentialStore
from kozi_agent.core.errors import CredentialsUnavailable, Forbidden, MailActionFailed
from kozi_agent.core.gemini_client import GeminiClient
from kozi_agent.core.llm_output import extract_json
from kozi_agent.core.mail_client import GmailClient
from kozi_agent.core.models import BulkSendReport, Identity, MailAction, MailPlan, MailResult, Role
from kozi_agent.core.read_only_db_executor import ReadOnlyDbExecutor
from kozi_agent.core.sql_guard import validate
from kozi_agent.prompts.versioned.v1.mailbox import MAIL_PLAN_PROMPT

logger = logging.getLogger(__name__)

BULK_RE = re.compile(
    r"\b(?:send|email|mail|message|notify|remind)\b.*?\b(?:to\s+(?:all\s+|every\s+)?|all\s+|every\s+)"
    r"(?:the\s+)?(employers?|job ?seekers?|candidates?)\b",
    re.I | re.S,
)
SEND_TO_RE = re.compile(r"\b(?:send|email|mail|write)\b.*?\bto\s+([\w.+-]+@[\w-]+(?:\.[\w-]+)+)", re.I | re.S)
SUBJECT_RE = re.compile(r"\bsubject\s*:\s*(.+?)(?=\s+\b(?:say|body|message)\s*:|$)", re.I | re.S)
SAY_RE = re.compile(r"\b(?:say|body|message)\s*:\s*(.+)$", re.I | re.S)
UNREAD_RE = re.compile(r"\bunread\b", re.I)
SEARCH_RE = re.compile(r"\b(?:search|find|look)\b.*?\bfor\s+(.+?)\s*[.?!]*$", re.I | re.S)
READ_ID_RE = re.compile(r"\b(?:read|open|show)\b.*?\b(?:message|email)\s+(?:id\s+)?([0-9a-f]{12,})\b", re.I)

AUDIENCES = {
    "employers": "SELECT DISTINCT u.email FROM employers e JOIN users u ON e.userId = u.id "
                 "WHERE u.email IS NOT NULL LIMIT {cap}",
    "job_seekers": "SELECT DISTINCT u.email FROM job_seekers js JOIN users u ON js.userId = u.id "
                   "WHERE u.email IS NOT NULL LIMIT {cap}",
}
DEFAULT_SUBJECT = "Message from Kozi"


def normalize_audience(value: Optional[str]) -> Optional[str]:
    v = re.sub(r"[\s-]+", "_", str(value or "").strip().lower())
    if v.startswith("employer"):
        return "employers"
    if v.startswith(("job_seeker", "jobseeker", "candidate")):
        return "job_seekers"
    return None


def prefilter_plan(utterance: str) -> Optional[MailPlan]:
    """Deterministic plan for recognized phrasings; None means ask the model."""
    text = (utterance or "").strip()
    subject = SUBJECT_RE.search(text)
    say = SAY_RE.search(text)
    fields = {
        "subject": subject.group(1).strip() if subject else "",
        "body": say.group(1).strip() if say else "",
    }
    m = BULK_RE.search(text)
    if m:
        return MailPlan(action=MailAction.BULK_SEND, audience=normalize_audience(m.group(1)), **fields)
    m = SEND_TO_RE.search(text)
    if m:
        return MailPlan(action=MailAction.SEND, to=m.group(1), **fields)
    m = READ_ID_RE.search(text)
    if m:
        return MailPlan(action=MailAction.READ, message_id=m.group(1))
    if UNREAD_RE.search(text):
        return MailPlan(action=MailAction.SEARCH, query="is:unread")
    m = SEARCH_RE.search(text)
    if m:
        return MailPlan(action=MailAction.SEARCH, query=m.group(1).strip())
    return None


def parse_mail_plan(raw: str) -> Optional[MailPlan]:
    obj = extract_json(raw)
    if not obj:
        return None
    try:
        return MailPlan.model_validate(obj)
    except ValidationError as ex:
        logger.info("Mail plan rejected: %s", ex.error_count())
        return None


def _format_messages(rows: List[Dict[str, str]]) -> str:
    if not rows:
        return "No matching emails found."
    lines = [f"Found {len(rows)} email{'s' if len(rows) != 1 else ''}:"]
    for r in rows:
        lines.append(f"• {r.get('subject') or '(no subject)'} from {r.get('from') or 'unknown'} ({r.get('date', '')}) [id: {r.get('id')}]")
    return "\n".join(lines)


class MailboxDispatcher:
    def __init__(
        self,
        llm: GeminiClient,
        credentials: TokenFileCredentialStore,
        mail: GmailClient,
        executor: ReadOnlyDbExecutor,
        *,
        dialect: str = "mysql",
    ):
        self.llm = llm
        self.credentials = credentials
        self.mail = mail
        self.executor = executor
        self.dialect = dialect

    async def dispatch(self, utterance: str, identity: Identity) -> MailResult:
        # nothing below runs for non-admins
        if identity.role is not Role.ADMIN:
            raise Forbidden(f"role {identity.role.value} requested a mailbox action")
        await anyio.to_thread.run_sync(self.credentials.current_token)

        plan = await anyio.to_thread.run_sync(self.plan, utterance)
        logger.info("Mailbox action %s requested by %s", plan.action.value, identity.user_id)

        if plan.action is MailAction.BULK_SEND:
            return await self.bulk_send(plan)
        if plan.action is MailAction.SEND:
            return await self.send_one(plan)
        if plan.action is MailAction.READ:
            return await self.read(plan)
        rows = await anyio.to_thread.run_sync(self.mail.search, plan.query, plan.max_results)
        return MailResult(action=MailAction.SEARCH, output=_format_messages(rows), messages=rows)

    def plan(self, utterance: str) -> MailPlan:
        """Pre-filter first; the model fills what the phrasing did not say."""
        quick = prefilter_plan(utterance)
        complete = quick is not None and (
            quick.action in (MailAction.SEARCH, MailAction.READ) or (quick.subject and quick.body)
        )
        if complete:
            return quick

        drafted = parse_mail_plan(self.llm.generate(MAIL_PLAN_PROMPT.format(REQUEST=utterance.replace('"', "'"))))
        if quick is None:
            return drafted or MailPlan(action=MailAction.SEARCH, query="in:inbox")
        # deterministic fields win over the model's
        return quick.model_copy(update={
            "subject": quick.subject or (drafted.subject if drafted else "") or DEFAULT_SUBJECT,
            "body": quick.body or (drafted.body if drafted else "") or utterance.strip(),
        })

    async def send_one(self, plan: MailPlan) -> MailResult:
        if not plan.to:
            return MailResult(action=MailAction.SEND, output="Please tell me the recipient's email address.")
        message_id = await anyio.to_thread.run_sync(
            self.mail.send, plan.to, plan.subject or DEFAULT_SUBJECT, plan.body
        )
        return MailResult(
            action=MailAction.SEND,
            output=f"Email sent to {plan.to}.",
            messages=[{"id": message_id, "to": plan.to, "subject": plan.subject or DEFAULT_SUBJECT}],
        )

    async def read(self, plan: MailPlan) -> MailResult:
        message_id = plan.message_id
        if not message_id:
            found = await anyio.to_thread.run_sync(self.mail.search, plan.query, 1)
            if not found:
                return MailResult(action=MailAction.READ, output="No matching emails found.")
            message_id = found[0]["id"]
        msg = await anyio.to_thread.run_sync(self.mail.get, message_id)
        output = f"From: {msg.get('from')}\nSubject: {msg.get('subject')}\nDate: {msg.get('date')}\n\n{msg.get('body', '')}"
        return MailResult(action=MailAction.READ, output=output, messages=[msg])

    async def recipients(self, audience: Optional[str]) -> List[str]:
        key = normalize_audience(audience)
        if key is None:
            raise MailActionFailed(
                f"unknown audience {audience!r}",
                public_message="Tell me who should receive it: all employers or all job seekers.",
            )
        # one extra row so the executor can report truncation
        safe = validate(AUDIENCES[key].format(cap=self.executor.max_rows + 1), dialect=self.dialect)
        result = await self.executor.execute(safe)
        if result.truncated:
            logger.warning("Audience %s capped at %d recipients", key, self.executor.max_rows)
        emails = [str(r.get("email")).strip() for r in result.rows if r.get("email")]
        return [e for e in emails if e]

    async def bulk_send(self, plan: MailPlan) -> MailResult:
        emails = await self.recipients(plan.audience)
        report = BulkSendReport(attempted=len(emails))
        for email in emails:
            try:
                await anyio.to_thread.run_sync(self.mail.send, email, plan.subject or DEFAULT_SUBJECT, plan.body)
                report.sent += 1
            except CredentialsUnavailable:
                raise
            except MailActionFailed as ex:
                logger.warning("Send to one recipient failed: %s", ex)
                report.failures.append({"to": email, "error": ex.public_message})

        if report.failures:
            logger.warning("Bulk send incomplete: %d of %d sent, %d failed",
                           report.sent, report.attempted, len(report.failures))
            output = f"Sent {report.sent} of {report.attempted} emails. {len(report.failures)} failed."
        else:
            output = f"Sent {report.sent} email{'s' if report.sent != 1 else ''}."
        return MailResult(action=MailAction.BULK_SEND, output=output, report=report)
