# kozi_agent/jobs/payment_reminders.py
"""
Daily payment reminders: pending payments due in REMINDER_LEAD_DAYS days get
one email each to the employer who owes them.

Runs inside the API process on an APScheduler cron trigger, or once from the
command line:  python -m kozi_agent.jobs.payment_reminders
"""
from __future__ import annotations
import logging
from datetime import datetime, time, timedelta
from decimal import Decimal
from typing import List, Optional, Tuple

import anyio
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from pytz import timezone
from sqlalchemy import DateTime, bindparam, create_engine, text
from sqlalchemy.engine import Engine

from kozi_agent.core.models import ReminderRecord
from kozi_agent.core.notifier import SmtpNotifier
from kozi_agent.settings import Settings

logger = logging.getLogger(__name__)

DUE_PAYMENTS_SQL = text("""
    SELECT p.id AS id, p.amount AS amount, p.dueDate AS dueDate, u.email AS email
    FROM payments p
    LEFT JOIN employers e ON p.employerId = e.id
    LEFT JOIN users u ON e.userId = u.id
    WHERE p.status = :status AND p.dueDate BETWEEN :start AND :end
    ORDER BY p.id
""").bindparams(
    bindparam("start", type_=DateTime()),
    bindparam("end", type_=DateTime()),
).columns(dueDate=DateTime())


def reminder_window(now: datetime, lead_days: int = 2) -> Tuple[datetime, datetime]:
    """Whole target day, lead_days after now: 00:00:00 to 23:59:59.999999."""
    day = (now + timedelta(days=lead_days)).date()
    return datetime.combine(day, time.min), datetime.combine(day, time.max)


def reminder_subject(rec: ReminderRecord, lead_days: int = 2) -> str:
    return f"Payment due in {lead_days} days - payment #{rec.payment_id}"


def reminder_body(rec: ReminderRecord) -> str:
    return f"Payment #{rec.payment_id} of {rec.amount} is due on {rec.due_date.isoformat()}"


def fetch_due_payments(engine: Engine, start: datetime, end: datetime, status: str = "pending") -> List[ReminderRecord]:
    with engine.connect() as conn:
        rows = conn.execute(DUE_PAYMENTS_SQL, {"status": status, "start": start, "end": end}).mappings().all()
    return [
        ReminderRecord(
            payment_id=int(r["id"]),
            amount=Decimal(str(r["amount"])) if r["amount"] is not None else Decimal(0),
            due_date=r["dueDate"],
            recipient_email=r["email"] or None,
        )
        for r in rows
    ]


def run_payment_reminders(
    engine: Engine,
    notifier: SmtpNotifier,
    *,
    now: Optional[datetime] = None,
    lead_days: int = 2,
    fallback_email: str = "admin@kozi.rw",
) -> int:
    """One reminder pass; returns how many reminders were delivered."""
    start, end = reminder_window(now or datetime.now(), lead_days)
    records = fetch_due_payments(engine, start, end)
    logger.info("Payment reminders: %d pending payments due %s", len(records), start.date().isoformat())

    reminded = 0
    for rec in records:
        recipient = rec.recipient_email or fallback_email
        if notifier.send(recipient, reminder_subject(rec, lead_days), reminder_body(rec)):
            reminded += 1
        else:
            logger.warning("Reminder for payment #%s was not delivered", rec.payment_id)
    logger.info("Payment reminders sent: %d/%d", reminded, len(records))
    return reminded


def notifier_from(s: Settings) -> SmtpNotifier:
    return SmtpNotifier(
        server=s.SMTP_SERVER,
        port=s.SMTP_PORT,
        username=s.SMTP_USERNAME,
        password=s.SMTP_PASSWORD,
        from_email=s.SMTP_FROM_EMAIL,
    )


class PaymentReminderScheduler:
    """Cron-driven reminder job with its own engine; shares nothing with request handlers."""

    def __init__(self, settings: Settings):
        self.settings = settings
        self.tz = timezone(settings.REMINDER_TIMEZONE)
        self.enabled = settings.REMINDERS_ENABLED
        self._scheduler: Optional[AsyncIOScheduler] = None
        self._engine: Optional[Engine] = None

    @property
    def running(self) -> bool:
        return self._scheduler is not None

    async def start(self) -> None:
        if not self.enabled:
            logger.info("Payment reminder scheduler is disabled, skipping start")
            return
        if self._scheduler is not None:
            logger.warning("Payment reminder scheduler already running")
            return

        s = self.settings
        self._engine = create_engine(s.DB_URL_RO, pool_pre_ping=True)
        scheduler = AsyncIOScheduler()
        scheduler.add_job(
            self._send_reminders,
            CronTrigger(hour=s.REMINDER_HOUR, minute=s.REMINDER_MINUTE, timezone=self.tz),
            id="payment_reminders",
            replace_existing=True,
            name="Payment Reminders",
        )
        scheduler.start()
        self._scheduler = scheduler
        logger.info("Payment reminder scheduler started (%02d:%02d %s)", s.REMINDER_HOUR, s.REMINDER_MINUTE, self.tz)

    async def stop(self) -> None:
        if self._scheduler is not None:
            self._scheduler.shutdown(wait=False)
            self._scheduler = None
            logger.info("Payment reminder scheduler stopped")
        if self._engine is not None:
            self._engine.dispose()
            self._engine = None

    async def _send_reminders(self) -> int:
        s = self.settings
        now = datetime.now(self.tz).replace(tzinfo=None)
        try:
            return await anyio.to_thread.run_sync(
                lambda: run_payment_reminders(
                    self._engine,
                    notifier_from(s),
                    now=now,
                    lead_days=s.REMINDER_LEAD_DAYS,
                    fallback_email=s.REMINDER_FALLBACK_EMAIL,
                )
            )
        except Exception as e:
            # the next day's run must still happen
            logger.error("Error sending payment reminders: %s", e, exc_info=True)
            return 0


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s [%(name)s] %(message)s")
    s = Settings()
    eng = create_engine(s.DB_URL_RO, pool_pre_ping=True)
    try:
        now = datetime.now(timezone(s.REMINDER_TIMEZONE)).replace(tzinfo=None)
        count = run_payment_reminders(
            eng, notifier_from(s), now=now,
            lead_days=s.REMINDER_LEAD_DAYS, fallback_email=s.REMINDER_FALLBACK_EMAIL,
        )
        print(f"Reminded {count} payments")
    finally:
        eng.dispose()


if __name__ == "__main__":
    main()
