# kozi_agent/core/errors.py
"""
Failure kinds raised across the assistant pipeline.

Every error carries a ``public_message`` that is safe to show to the caller.
Internal details stay in ``str(exc)`` and in the server log.
"""
from __future__ import annotations
from typing import Optional


class AssistantError(Exception):
    public_message = "Sorry, something went wrong while handling your request."
    status_code = 500

    def __init__(self, detail: str = "", *, public_message: Optional[str] = None):
        super().__init__(detail or self.public_message)
        if public_message:
            self.public_message = public_message


class SchemaUnavailable(AssistantError):
    public_message = "Database schema is currently unavailable."
    status_code = 503


class ClassificationAmbiguous(AssistantError):
    public_message = "I could not tell what you were asking for."
    status_code = 200


class SynthesisFailed(AssistantError):
    public_message = "Sorry, I couldn't turn that into a database query right now. Please try rephrasing."
    status_code = 502


class UnsafeStatement(AssistantError):
    public_message = "That request would modify data, which the assistant never does."
    status_code = 422

    def __init__(self, reason: str, *, proposal: Optional[str] = None):
        super().__init__(reason, public_message=f"Query rejected: {reason}")
        self.reason = reason
        # write SQL offered back for separate, manual authorization
        self.proposal = proposal


class ExecutionFailed(AssistantError):
    public_message = "The database query failed. Please try a simpler question."
    status_code = 502


class Forbidden(AssistantError):
    public_message = "You need admin access to perform mailbox actions."
    status_code = 403


class CredentialsUnavailable(AssistantError):
    public_message = "Mailbox credentials are missing or expired. Ask an administrator to reconnect Gmail."
    status_code = 503


class MailActionFailed(AssistantError):
    public_message = "The mail service did not complete the request."
    status_code = 502

