# kozi_agent/core/mail_client.py
from __future__ import annotations
import base64
import logging
from dataclasses import dataclass
from email.message import EmailMessage
from typing import Any, Dict, List, Optional

import httplib2
from google.auth.exceptions import RefreshError, TransportError
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from kozi_agent.core.credentials import TokenFileCredentialStore
from kozi_agent.core.errors import CredentialsUnavailable, MailActionFailed

logger = logging.getLogger(__name__)

SUMMARY_HEADERS = ["From", "To", "Subject", "Date"]


def _header(payload: Dict[str, Any], name: str) -> str:
    for h in payload.get("headers", []) or []:
        if str(h.get("name", "")).lower() == name.lower():
            return str(h.get("value", ""))
    return ""


def _decode(data: str) -> str:
    padded = data + "=" * (-len(data) % 4)
    return base64.urlsafe_b64decode(padded.encode("ascii")).decode("utf-8", errors="replace")


def plain_text_body(payload: Dict[str, Any]) -> str:
    """First text/plain part of a Gmail message payload (depth-first)."""
    if payload.get("mimeType") == "text/plain" and (payload.get("body") or {}).get("data"):
        return _decode(payload["body"]["data"])
    for part in payload.get("parts", []) or []:
        text = plain_text_body(part)
        if text:
            return text
    return ""


@dataclass
class GmailClient:
    """
    Gmail v1 through google-api-python-client. 429 and 5xx answers are retried
    by the client library (``num_retries``); a 401 means the stored credentials
    no longer work, any other failure is a MailActionFailed.
    """
    credentials: TokenFileCredentialStore
    sender: Optional[str] = None
    retries: int = 3

    def _messages(self):
        # one service per call: the underlying httplib2 transport is not thread-safe
        service = build("gmail", "v1", credentials=self.credentials.credentials(), cache_discovery=False)
        return service.users().messages()

    def _execute(self, request, what: str) -> Dict[str, Any]:
        try:
            return request.execute(num_retries=self.retries) or {}
        except HttpError as ex:
            status = ex.resp.status
            if status == 401:
                raise CredentialsUnavailable("mail API rejected the access token") from ex
            logger.warning("Gmail %s failed with HTTP %s", what, status)
            raise MailActionFailed(f"HTTP {status}") from ex
        except RefreshError as ex:
            raise CredentialsUnavailable("access token could not be refreshed") from ex
        except (TransportError, httplib2.HttpLib2Error, OSError) as ex:
            logger.warning("Gmail %s failed: %s", what, type(ex).__name__)
            raise MailActionFailed(type(ex).__name__) from ex

    def search(self, query: str, max_results: int = 10) -> List[Dict[str, str]]:
        messages = self._messages()
        listing = self._execute(
            messages.list(userId="me", q=query or "", maxResults=max(1, min(max_results, 50))), "search"
        )
        out: List[Dict[str, str]] = []
        for ref in listing.get("messages", []) or []:
            msg = self._execute(
                messages.get(userId="me", id=ref["id"], format="metadata", metadataHeaders=SUMMARY_HEADERS),
                "get",
            )
            payload = msg.get("payload") or {}
            out.append({
                "id": str(msg.get("id", ref["id"])),
                "from": _header(payload, "From"),
                "subject": _header(payload, "Subject"),
                "date": _header(payload, "Date"),
                "snippet": str(msg.get("snippet", "")),
            })
        return out

    def get(self, message_id: str) -> Dict[str, str]:
        msg = self._execute(self._messages().get(userId="me", id=message_id, format="full"), "get")
        payload = msg.get("payload") or {}
        return {
            "id": str(msg.get("id", message_id)),
            "from": _header(payload, "From"),
            "to": _header(payload, "To"),
            "subject": _header(payload, "Subject"),
            "date": _header(payload, "Date"),
            "body": plain_text_body(payload) or str(msg.get("snippet", "")),
        }

    def send(self, to: str, subject: str, body: str) -> str:
        message = EmailMessage()
        message["To"] = to
        if self.sender:
            message["From"] = self.sender
        message["Subject"] = subject
        message.set_content(body)
        raw = base64.urlsafe_b64encode(message.as_bytes()).decode("ascii")
        sent = self._execute(self._messages().send(userId="me", body={"raw": raw}), "send")
        return str(sent.get("id", ""))
