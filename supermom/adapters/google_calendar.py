"""Google Calendar adapter — implements CalendarPort for Google Calendar API.

Authenticates with the bare access token of a linked GoogleAccount (no
refresh token is ever held) and inserts events into the primary calendar.
"""

from __future__ import annotations

import logging

from google.oauth2.credentials import Credentials
from googleapiclient.discovery import build

from supermom.data.models import GoogleAccount
from supermom.ports.calendar_port import CalendarError

logger = logging.getLogger(__name__)


class GoogleCalendarAdapter:
    """Google Calendar implementation of CalendarPort for one account."""

    def __init__(self, access_token: str, calendar_id: str = "primary") -> None:
        self._access_token = access_token
        self._calendar_id = calendar_id
        self._service = None

    def _get_service(self):
        if self._service is None:
            creds = Credentials(token=self._access_token)
            self._service = build("calendar", "v3", credentials=creds, cache_discovery=False)
        return self._service

    async def create_event(self, body: dict) -> dict:
        try:
            service = self._get_service()
            created = (
                service.events()
                .insert(calendarId=self._calendar_id, body=body)
                .execute()
            )
            logger.info(
                "Event created: '%s' at %s — %s",
                body.get("summary", ""),
                body.get("start", {}).get("dateTime", ""),
                created.get("htmlLink", ""),
            )
            return created
        except Exception as exc:
            logger.error("Google Calendar API error: %s", exc)
            raise CalendarError(f"Failed to create event: {exc}") from exc


def create_calendar_adapter(account: GoogleAccount) -> GoogleCalendarAdapter:
    """Return the export adapter bound to `account`'s access token."""
    return GoogleCalendarAdapter(access_token=account.access_token)
