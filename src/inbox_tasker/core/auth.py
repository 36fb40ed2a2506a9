"""OAuth 2.0 authentication with token caching for Gmail API."""

from __future__ import annotations

import logging
from pathlib import Path

from google.auth.exceptions import RefreshError
from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import InstalledAppFlow
from googleapiclient.discovery import Resource, build
from oauthlib.oauth2.rfc6749.errors import AccessDeniedError

from inbox_tasker.core.exceptions import AuthCancelledError, AuthenticationError

logger = logging.getLogger(__name__)

SCOPES = ["https://www.googleapis.com/auth/gmail.readonly"]


def load_cached_credentials(token_path: Path) -> Credentials | None:
    """Load credentials from the token cache, or None if absent or unreadable."""
    if not token_path.exists():
        return None
    try:
        return Credentials.from_authorized_user_file(str(token_path), SCOPES)
    except Exception as e:
        logger.warning("Failed to load cached token: %s", e)
        return None


def refresh_credentials(creds: Credentials, token_path: Path) -> bool:
    """Silently refresh expired credentials.

    Returns:
        True if the credentials are valid afterwards.
    """
    if creds.valid:
        return True
    if not (creds.expired and creds.refresh_token):
        return False
    try:
        creds.refresh(Request())
    except RefreshError as e:
        logger.warning("Token refresh failed: %s", e)
        return False
    _save_token(creds, token_path)
    return creds.valid


def run_consent_flow(credentials_path: Path, token_path: Path, port: int = 0) -> Credentials:
    """Run the interactive OAuth consent flow and cache the resulting token.

    Args:
        credentials_path: Path to OAuth 2.0 client credentials JSON.
        token_path: Path to store the OAuth token.
        port: Local redirect server port (0 picks a free one).

    Returns:
        Valid Google OAuth2 credentials.

    Raises:
        AuthCancelledError: If the user denied access or aborted the flow.
        AuthenticationError: If the flow failed for any other reason.
    """
    if not credentials_path.exists():
        raise AuthenticationError(
            f"Credentials file not found: {credentials_path}. "
            "Download it from Google Cloud Console."
        )

    try:
        flow = InstalledAppFlow.from_client_secrets_file(str(credentials_path), SCOPES)
        creds = flow.run_local_server(port=port)
    except AccessDeniedError as e:
        raise AuthCancelledError(f"Sign-in was cancelled: {e}") from e
    except Exception as e:
        raise AuthenticationError(f"OAuth flow failed: {e}") from e

    _save_token(creds, token_path)
    logger.info("Authentication successful, token cached at %s", token_path)
    return creds


def build_gmail_service(creds: Credentials) -> Resource:
    """Build a Gmail API service resource."""
    return build("gmail", "v1", credentials=creds, cache_discovery=False)


def _save_token(creds: Credentials, token_path: Path) -> None:
    """Save credentials to the token cache file."""
    token_path.parent.mkdir(parents=True, exist_ok=True)
    token_path.write_text(creds.to_json())
