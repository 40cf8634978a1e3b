# kozi_agent/core/credentials.py
from __future__ import annotations
import json
import logging
import os
import threading
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from google.auth.exceptions import GoogleAuthError, RefreshError, TransportError
from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from kozi_agent.core.errors import CredentialsUnavailable

logger = logging.getLogger(__name__)

TOKEN_URI = "https://oauth2.googleapis.com/token"
GMAIL_SCOPES = ["https://mail.google.com/"]

# network hiccups on the token endpoint; a rejected grant is final
refresh_retry = retry(
    reraise=True,
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=0.5, min=0.5, max=4),
    retry=retry_if_exception_type(TransportError),
)


def _expiry(data: Dict[str, Any]) -> Optional[datetime]:
    """Naive UTC expiry, as google-auth keeps it."""
    # googleapis node client: expiry_date in ms; google-auth: ISO "expiry"
    if data.get("expiry_date"):
        try:
            stamp = datetime.fromtimestamp(float(data["expiry_date"]) / 1000.0, tz=timezone.utc)
        except (TypeError, ValueError, OverflowError, OSError):
            return None
        return stamp.replace(tzinfo=None)
    if data.get("expiry"):
        try:
            stamp = datetime.fromisoformat(str(data["expiry"]).replace("Z", "+00:00"))
        except ValueError:
            return None
        return stamp.astimezone(timezone.utc).replace(tzinfo=None) if stamp.tzinfo else stamp
    return None


def _scopes(data: Dict[str, Any]) -> List[str]:
    scopes = data.get("scopes") or str(data.get("scope") or "").split()
    return list(scopes) or list(GMAIL_SCOPES)


class TokenFileCredentialStore:
    """
    OAuth credentials for the admin mailbox, read from a token file.

    Accepts both the google-auth ``token.json`` layout and the one written by
    the Node googleapis client (``access_token``/``expiry_date``, no client
    secret). Expired credentials are refreshed through google-auth with the
    client id/secret from the token file or credentials.json, and written back
    in the google-auth layout. Anything missing raises CredentialsUnavailable.
    """

    def __init__(self, token_path: str, credentials_path: str, *, token_uri: str = TOKEN_URI):
        self.token_path = token_path
        self.credentials_path = credentials_path
        self.token_uri = token_uri
        self._lock = threading.Lock()

    def credentials(self) -> Credentials:
        with self._lock:
            creds = self._load()
            if creds.valid:
                return creds
            if not creds.refresh_token:
                raise CredentialsUnavailable("token expired and no refresh token is stored")
            try:
                self._refresh(creds)
            except RefreshError as ex:
                logger.warning("Gmail token refresh rejected: %s", ex)
                raise CredentialsUnavailable("token refresh rejected") from ex
            except GoogleAuthError as ex:
                logger.warning("Gmail token refresh failed: %s", type(ex).__name__)
                raise CredentialsUnavailable("token refresh failed") from ex
            self._write_token(creds)
            logger.info("Gmail access token refreshed")
            return creds

    def current_token(self) -> str:
        return str(self.credentials().token)

    def _load(self) -> Credentials:
        data = self._read_json(self.token_path, "token file")
        client = self._client(data) if data.get("refresh_token") else {}
        return Credentials(
            token=data.get("token") or data.get("access_token"),
            refresh_token=data.get("refresh_token"),
            token_uri=data.get("token_uri") or self.token_uri,
            client_id=client.get("client_id"),
            client_secret=client.get("client_secret"),
            scopes=_scopes(data),
            expiry=_expiry(data),
        )

    def _client(self, data: Dict[str, Any]) -> Dict[str, str]:
        if data.get("client_id") and data.get("client_secret"):
            return {"client_id": data["client_id"], "client_secret": data["client_secret"]}
        creds = self._read_json(self.credentials_path, "credentials file")
        block = creds.get("installed") or creds.get("web") or creds
        if not block.get("client_id") or not block.get("client_secret"):
            raise CredentialsUnavailable("credentials file has no client id/secret")
        return {"client_id": block["client_id"], "client_secret": block["client_secret"]}

    @refresh_retry
    def _refresh(self, creds: Credentials) -> None:
        creds.refresh(Request())

    def _write_token(self, creds: Credentials) -> None:
        tmp = f"{self.token_path}.tmp"
        try:
            with open(tmp, "w", encoding="utf-8") as f:
                f.write(creds.to_json())
            os.replace(tmp, self.token_path)
        except OSError as ex:
            # the fresh token still serves this process
            logger.warning("Could not persist refreshed token: %s", ex)

    @staticmethod
    def _read_json(path: str, what: str) -> Dict[str, Any]:
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError as ex:
            raise CredentialsUnavailable(f"{what} not found") from ex
        except (OSError, ValueError) as ex:
            raise CredentialsUnavailable(f"{what} unreadable") from ex
        if not isinstance(data, dict):
            raise CredentialsUnavailable(f"{what} is not a JSON object")
        return data
