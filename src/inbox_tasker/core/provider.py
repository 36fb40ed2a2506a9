"""Gmail-backed mail provider: credentials lifecycle plus recent-message listing."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from google.oauth2.credentials import Credentials

from inbox_tasker.config.settings import InboxTaskerSettings
from inbox_tasker.core.auth import (
    build_gmail_service,
    load_cached_credentials,
    refresh_credentials,
    run_consent_flow,
)
from inbox_tasker.core.exceptions import AuthenticationError, ParseError
from inbox_tasker.core.gmail_client import GmailClient
from inbox_tasker.core.models import RawMessage
from inbox_tasker.core.parser import GmailParser

logger = logging.getLogger(__name__)


class GmailProvider:
    """Implements the MailProvider protocol on top of the Gmail API.

    All methods block; the monitor runs them in worker threads.
    """

    def __init__(
        self,
        credentials_path: Path,
        token_path: Path,
        *,
        query: str | None = "in:inbox",
        oauth_port: int = 0,
        client_options: dict[str, Any] | None = None,
    ) -> None:
        self._credentials_path = credentials_path
        self._token_path = token_path
        self._query = query
        self._oauth_port = oauth_port
        self._client_options = client_options or {}
        self._parser = GmailParser()

        self._initialized = False
        self._creds: Credentials | None = None
        self._client: GmailClient | None = None

    @classmethod
    def from_settings(cls, settings: InboxTaskerSettings) -> GmailProvider:
        return cls(
            settings.credentials_path,
            settings.token_path,
            query=settings.gmail_query,
            oauth_port=settings.oauth_port,
            client_options={
                "max_retries": settings.max_retries,
                "initial_backoff_seconds": settings.initial_backoff_seconds,
                "max_backoff_seconds": settings.max_backoff_seconds,
                "num_retries": settings.num_retries,
            },
        )

    def _initialize(self) -> None:
        if self._initialized:
            return
        self._creds = load_cached_credentials(self._token_path)
        self._initialized = True

    def is_ready(self) -> bool:
        """True when a client secrets file or a cached token is available."""
        self._initialize()
        return self._creds is not None or self._credentials_path.exists()

    def is_signed_in(self) -> bool:
        self._initialize()
        if self._creds is None:
            return False
        if refresh_credentials(self._creds, self._token_path):
            return True
        logger.info("Cached credentials are no longer valid")
        self._client = None
        return False

    def sign_in(self) -> None:
        """Run the consent flow; raises AuthenticationError or AuthCancelledError."""
        self._initialize()
        if self._creds is not None and refresh_credentials(self._creds, self._token_path):
            logger.debug("Signed in silently from cached token")
            return
        self._creds = run_consent_flow(
            self._credentials_path, self._token_path, port=self._oauth_port
        )
        self._client = None

    def sign_out(self) -> None:
        """Forget credentials and delete the cached token."""
        self._creds = None
        self._client = None
        self._token_path.unlink(missing_ok=True)
        logger.info("Signed out, removed cached token %s", self._token_path)

    def _ensure_client(self) -> GmailClient:
        if not self.is_signed_in():
            raise AuthenticationError("Not authenticated - please sign in first")
        if self._client is None:
            service = build_gmail_service(self._creds)
            self._client = GmailClient(service, **self._client_options)
        return self._client

    def list_recent_messages(self, limit: int) -> list[RawMessage]:
        """Fetch and parse the ``limit`` newest messages, most recent first.

        A message that fails to parse comes back as ``RawMessage.unparsed``
        so the caller can record the failure; one without an ID is skipped.
        """
        client = self._ensure_client()
        ids = client.list_recent_message_ids(limit, query=self._query)
        if not ids:
            logger.debug("No messages found")
            return []

        messages: list[RawMessage] = []
        for raw in client.fetch_messages_batch(ids):
            try:
                messages.append(self._parser.parse(raw))
            except ParseError as e:
                message_id = raw.get("id") if isinstance(raw, dict) else None
                if not message_id:
                    logger.warning("Skipping unparseable message without ID: %s", e)
                    continue
                logger.warning("Could not parse message %s: %s", message_id, e)
                messages.append(RawMessage.unparsed(message_id, str(e)))
        return messages

    def debug_status(self) -> dict[str, Any]:
        return {
            "initialized": self._initialized,
            "credentials_file": str(self._credentials_path),
            "credentials_file_exists": self._credentials_path.exists(),
            "token_file_exists": self._token_path.exists(),
            "has_credentials": self._creds is not None,
            "credentials_valid": bool(self._creds and self._creds.valid),
            "query": self._query,
        }
