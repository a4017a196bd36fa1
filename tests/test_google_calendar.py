"""Tests for the Google Calendar export adapter.

All Google API calls are mocked.
"""

from datetime import datetime, timezone
from unittest.mock import MagicMock, patch

import pytest

from supermom.adapters.google_calendar import GoogleCalendarAdapter, create_calendar_adapter
from supermom.data.models import GoogleAccount
from supermom.ports.calendar_port import CalendarError

_PATCH_BUILD = "supermom.adapters.google_calendar.build"

BODY = {
    "summary": "Dentist",
    "start": {"dateTime": "2026-10-20T16:00:00Z"},
    "end": {"dateTime": "2026-10-20T17:00:00Z"},
}


def _mock_service(execute_return=None, error=None):
    service = MagicMock()
    insert = service.events.return_value.insert.return_value
    if error is not None:
        insert.execute.side_effect = error
    else:
        insert.execute.return_value = execute_return
    return service


class TestGoogleCalendarAdapter:
    @pytest.mark.asyncio
    async def test_create_event(self):
        service = _mock_service({"id": "gcal-1", "htmlLink": "https://calendar/x"})
        with patch(_PATCH_BUILD, return_value=service) as mock_build:
            adapter = GoogleCalendarAdapter(access_token="tok")
            created = await adapter.create_event(BODY)

        assert created["id"] == "gcal-1"
        service.events.return_value.insert.assert_called_once_with(calendarId="primary", body=BODY)
        assert mock_build.call_args.args[:2] == ("calendar", "v3")
        assert mock_build.call_args.kwargs["credentials"].token == "tok"

    @pytest.mark.asyncio
    async def test_service_built_once(self):
        service = _mock_service({"id": "x"})
        with patch(_PATCH_BUILD, return_value=service) as mock_build:
            adapter = GoogleCalendarAdapter(access_token="tok")
            await adapter.create_event(BODY)
            await adapter.create_event(BODY)
        mock_build.assert_called_once()

    @pytest.mark.asyncio
    async def test_api_error_wrapped(self):
        service = _mock_service(error=RuntimeError("401 Unauthorized"))
        with patch(_PATCH_BUILD, return_value=service):
            adapter = GoogleCalendarAdapter(access_token="expired")
            with pytest.raises(CalendarError, match="401"):
                await adapter.create_event(BODY)


class TestFactory:
    def test_uses_account_token(self):
        account = GoogleAccount(
            email="mom@example.com", access_token="tok-123",
            expires_at=datetime(2026, 10, 19, 9, tzinfo=timezone.utc),
        )
        adapter = create_calendar_adapter(account)
        assert isinstance(adapter, GoogleCalendarAdapter)
        assert adapter._access_token == "tok-123"
