"""Unit tests for the Gmail API client (discovery is static; HTTP is scripted)."""
import base64
import json
from email import message_from_bytes

import pytest
from googleapiclient.discovery import build as real_build
from googleapiclient.http import HttpMockSequence

from kozi_agent.core import mail_client as mail_client_module
from kozi_agent.core.errors import CredentialsUnavailable, MailActionFailed
from kozi_agent.core.mail_client import GmailClient, plain_text_body


class RecordingHttp(HttpMockSequence):
    """Scripted responses in order; remembers every request."""

    def __init__(self, responses):
        super().__init__(responses)
        self.requests = []

    def request(self, uri, method="GET", body=None, headers=None, **kwargs):
        self.requests.append({"uri": uri, "method": method, "body": body})
        return super().request(uri, method=method, body=body, headers=headers, **kwargs)


def ok(payload):
    return {"status": "200"}, json.dumps(payload)


def status(code):
    return {"status": str(code)}, json.dumps({"error": {"code": code, "message": "nope"}})


def b64(text):
    return base64.urlsafe_b64encode(text.encode()).decode().rstrip("=")


@pytest.fixture
def scripted(monkeypatch):
    holder = {}

    def script(*responses):
        holder["http"] = RecordingHttp(list(responses))
        return holder["http"]

    def fake_build(service, version, credentials=None, cache_discovery=False):
        return real_build(service, version, http=holder["http"], static_discovery=True)

    monkeypatch.setattr(mail_client_module, "build", fake_build)
    return script


@pytest.fixture
def client(fake_credentials):
    return GmailClient(fake_credentials, sender="admin@kozi.rw")


def test_send_posts_raw_mime(client, scripted, fake_credentials):
    http = scripted(ok({"id": "abc", "threadId": "t1"}))
    assert client.send("jane@example.com", "Interview", "See you at 10") == "abc"
    req = http.requests[0]
    assert req["method"] == "POST"
    assert "/gmail/v1/users/me/messages/send" in req["uri"]
    raw = json.loads(req["body"])["raw"]
    msg = message_from_bytes(base64.urlsafe_b64decode(raw + "=" * (-len(raw) % 4)))
    assert msg["To"] == "jane@example.com"
    assert msg["From"] == "admin@kozi.rw"
    assert msg["Subject"] == "Interview"
    assert fake_credentials.calls == 1


def test_search_lists_then_reads_metadata(client, scripted):
    http = scripted(
        ok({"messages": [{"id": "m1", "threadId": "t1"}], "resultSizeEstimate": 1}),
        ok({
            "id": "m1",
            "snippet": "Your invoice",
            "payload": {"headers": [{"name": "From", "value": "billing@x.rw"}, {"name": "Subject", "value": "Invoice"}]},
        }),
    )
    rows = client.search("is:unread", 5)
    assert rows == [{"id": "m1", "from": "billing@x.rw", "subject": "Invoice", "date": "", "snippet": "Your invoice"}]
    assert "q=is%3Aunread" in http.requests[0]["uri"]
    assert "maxResults=5" in http.requests[0]["uri"]
    assert "format=metadata" in http.requests[1]["uri"]


def test_empty_mailbox(client, scripted):
    scripted(ok({"resultSizeEstimate": 0}))
    assert client.search("from:nobody@example.com") == []


def test_read_returns_the_plain_text_part(client, scripted):
    scripted(ok({
        "id": "m2",
        "payload": {
            "mimeType": "multipart/alternative",
            "headers": [{"name": "To", "value": "admin@kozi.rw"}],
            "parts": [{"mimeType": "text/plain", "body": {"data": b64("Report attached")}}],
        },
    }))
    msg = client.get("m2")
    assert msg["to"] == "admin@kozi.rw"
    assert msg["body"] == "Report attached"


def test_unauthorized_means_credentials_unavailable(client, scripted):
    scripted(status(401))
    with pytest.raises(CredentialsUnavailable):
        client.get("m1")


def test_client_errors_are_not_retried(client, scripted):
    http = scripted(status(404), ok({"id": "never"}))
    with pytest.raises(MailActionFailed):
        client.get("missing")
    assert len(http.requests) == 1


def test_missing_credentials_stop_before_any_request(client, scripted, fake_credentials):
    http = scripted(ok({"id": "abc"}))
    fake_credentials.available = False
    with pytest.raises(CredentialsUnavailable):
        client.send("jane@example.com", "Hi", "Hello")
    assert http.requests == []


def test_plain_text_body_walks_parts():
    payload = {
        "mimeType": "multipart/alternative",
        "parts": [
            {"mimeType": "text/html", "body": {"data": b64("<p>Hi</p>")}},
            {"mimeType": "text/plain", "body": {"data": b64("Hi there")}},
        ],
    }
    assert plain_text_body(payload) == "Hi there"
