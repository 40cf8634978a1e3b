# kozi_agent/core/notifier.py
from __future__ import annotations
import logging
import smtplib
from email.message import EmailMessage

logger = logging.getLogger(__name__)


class SmtpNotifier:
    """Plain-text email over SMTP. send() reports success and never raises."""

    def __init__(self, server: str, port: int = 587, username: str = "", password: str = "",
                 from_email: str = "no-reply@kozi.rw", timeout: float = 20.0):
        self.server = server
        self.port = port
        self.username = username
        self.password = password
        self.from_email = from_email
        self.timeout = timeout

    def send(self, recipient: str, subject: str, body: str) -> bool:
        if not self.server or not recipient:
            logger.warning("Email notification skipped: SMTP server or recipient missing")
            return False
        msg = EmailMessage()
        msg["From"] = self.from_email
        msg["To"] = recipient
        msg["Subject"] = subject
        msg.set_content(body)
        try:
            with smtplib.SMTP(self.server, self.port, timeout=self.timeout) as smtp:
                if self.username:
                    smtp.starttls()
                    smtp.login(self.username, self.password)
                smtp.send_message(msg)
            return True
        except (smtplib.SMTPException, OSError) as e:
            logger.error("Failed to send email notification: %s", type(e).__name__)
            return False
