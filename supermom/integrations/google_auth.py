"""
Supermom Assistant — Google account linking.

Manual OAuth2 flow for a chat interface: the bot sends an authorization URL,
the user authorizes in the browser and pastes back the code (or the whole
redirect URL). The result is a GoogleAccount holding only a short-lived
access token; when it expires the user links the account again.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from urllib.parse import parse_qs, urlparse

from google_auth_oauthlib.flow import Flow

from supermom.data.models import GoogleAccount

logger = logging.getLogger(__name__)

SCOPES = ["https://www.googleapis.com/auth/calendar.events"]
_DEFAULT_TOKEN_LIFETIME = timedelta(seconds=3600)


class GoogleAuthError(Exception):
    """Raised when the authorization handshake fails."""


def build_flow(client_id: str, client_secret: str, redirect_uri: str) -> Flow:
    """Create an OAuth2 flow for the given client registration."""
    if not client_id:
        raise GoogleAuthError("No Google client id configured")

    client_config = {
        "installed": {
            "client_id": client_id,
            "client_secret": client_secret,
            "auth_uri": "https://accounts.google.com/o/oauth2/auth",
            "token_uri": "https://oauth2.googleapis.com/token",
            "redirect_uris": [redirect_uri],
        }
    }
    try:
        return Flow.from_client_config(
            client_config,
            scopes=SCOPES,
            redirect_uri=redirect_uri,
            autogenerate_code_verifier=True,
        )
    except ValueError as exc:
        raise GoogleAuthError(f"Invalid client configuration: {exc}") from exc


def get_authorization_url(flow: Flow) -> str:
    """Return the URL the user must open to grant calendar access."""
    auth_url, _ = flow.authorization_url(prompt="consent")
    return auth_url


def extract_code(code_or_url: str) -> str:
    """Accept either the bare code or the full redirect URL containing it."""
    text = code_or_url.strip()
    if "code=" in text:
        query = parse_qs(urlparse(text).query)
        codes = query.get("code")
        if codes:
            return codes[0]
    return text


def exchange_code(
    flow: Flow,
    code_or_url: str,
    email: str,
    now: datetime | None = None,
) -> GoogleAccount:
    """Exchange an authorization code for an access token.

    Raises GoogleAuthError if the provider rejects the code.
    """
    code = extract_code(code_or_url)
    if not code:
        raise GoogleAuthError("Empty authorization code")

    try:
        flow.fetch_token(code=code)
    except Exception as exc:
        logger.error("Google token exchange failed: %s", exc)
        raise GoogleAuthError(f"Authorization failed: {exc}") from exc

    creds = flow.credentials
    if not creds.token:
        raise GoogleAuthError("Google returned no access token")

    if creds.expiry is not None:
        # google-auth reports expiry as naive UTC
        expires_at = creds.expiry.replace(tzinfo=timezone.utc)
    else:
        expires_at = (now or datetime.now(timezone.utc)) + _DEFAULT_TOKEN_LIFETIME

    logger.info("Google account linked: %s (valid until %s)", email, expires_at)
    return GoogleAccount(email=email, access_token=creds.token, expires_at=expires_at)
