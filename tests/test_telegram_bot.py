"""Tests for supermom.bot.telegram_bot — Telegram bot handlers.

Tests the rendering, command handlers, callbacks and authorization.
The assistant runs against a temp store; LLM and Google are mocked.
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from telegram.ext import ConversationHandler

from supermom.bot.telegram_bot import (
    LINK_CODE,
    LINK_EMAIL,
    _clear_link_data,
    _format_start,
    render_account_selector,
    render_dashboard,
    render_transcript,
)
from supermom.core.assistant import Assistant
from supermom.core.client_config import StoredClientIdSource
from supermom.data.models import AppState, CalendarEvent, ChatMessage, GoogleAccount, Task
from supermom.integrations.google_auth import GoogleAuthError

NOW = datetime(2026, 10, 19, 8, 0, tzinfo=timezone.utc)


def _make_update(text="", user_id=12345):
    """Create a mock Update with a text message from an authorized user."""
    update = MagicMock()
    update.message.text = text
    update.effective_user.id = user_id
    update.message.reply_text = AsyncMock()
    return update


def _make_callback(data, user_id=12345):
    update = MagicMock()
    query = update.callback_query
    query.data = data
    query.from_user.id = user_id
    query.answer = AsyncMock()
    query.edit_message_text = AsyncMock()
    query.message.reply_text = AsyncMock()
    return update


def _make_context(assistant, args=None):
    """Create a mock context with user_data dict and the assistant in bot_data."""
    context = MagicMock()
    context.user_data = {}
    context.args = args or []
    context.bot_data = {"assistant": assistant}
    return context


def _callback_data(markup):
    return [button.callback_data for row in markup.inline_keyboard for button in row]


def _seed(assistant):
    assistant.state.tasks = [Task(id="t1", description="Buy diapers", created_at=NOW,
                                  priority="high", due_date="2026-10-21")]
    assistant.state.events = [CalendarEvent(id="e1", summary="Dentist",
                                            start="2026-10-20T16:00:00", end="2026-10-20T17:00:00",
                                            recurrence="weekly")]


# ---------------------------------------------------------------------------
# Rendering
# ---------------------------------------------------------------------------


class TestRenderDashboard:
    def test_empty(self):
        text, markup = render_dashboard(AppState())
        assert "No events yet" in text
        assert "The list is empty" in text
        assert markup is None

    def test_items_and_buttons(self):
        state = AppState(
            tasks=[Task(id="t1", description="Buy diapers", created_at=NOW, priority="high",
                        due_date="2026-10-21", completed=True)],
            events=[CalendarEvent(id="e1", summary="Dentist", start="2026-10-20T16:00:00",
                                  end="2026-10-20T17:00:00", recurrence="weekly")],
        )
        text, markup = render_dashboard(state)
        assert "2026-10-20 16:00 — Dentist 🔄 weekly" in text
        assert "☑️ [HIGH] Buy diapers 📅 2026-10-21" in text
        assert _callback_data(markup) == [
            "event:del:e1", "task:toggle:t1", "task:del:t1", "export:menu",
        ]


class TestRenderHelpers:
    def test_format_start(self):
        assert _format_start("2026-10-20T16:00:00") == "2026-10-20 16:00"
        assert _format_start("2026-10-20") == "2026-10-20"
        assert _format_start("garbageTtime") == "garbageTtime"

    def test_transcript_keeps_last_messages(self):
        state = AppState(messages=[
            ChatMessage(role="user" if i % 2 else "assistant", content=f"m{i}", timestamp=NOW)
            for i in range(15)
        ])
        text = render_transcript(state, limit=3)
        assert "m11" not in text
        assert text.split("\n\n") == ["🤱: m12", "You: m13", "🤱: m14"]

    def test_account_selector(self):
        expires = NOW + timedelta(hours=1)
        state = AppState(accounts=[
            GoogleAccount(email="a@example.com", access_token="x", expires_at=expires),
            GoogleAccount(email="a@example.com", access_token="y", expires_at=expires),
        ])
        assert _callback_data(render_account_selector(state)) == [
            "export:acct:0", "export:acct:1", "export:new",
        ]


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


class TestAuthorization:
    @pytest.mark.asyncio
    async def test_stranger_ignored(self, assistant):
        from supermom.bot.telegram_bot import cmd_dashboard

        update = _make_update(user_id=999)
        context = _make_context(assistant)
        await cmd_dashboard(update, context)
        update.message.reply_text.assert_not_called()

    @pytest.mark.asyncio
    async def test_stranger_text_not_classified(self, assistant, fake_classifier):
        from supermom.bot.telegram_bot import handle_text

        await handle_text(_make_update("hi", user_id=999), _make_context(assistant))
        fake_classifier.assert_not_called()


class TestViewCommands:
    @pytest.mark.asyncio
    async def test_chat_switches_view(self, assistant):
        from supermom.bot.telegram_bot import cmd_chat

        update = _make_update()
        await cmd_chat(update, _make_context(assistant))
        assert assistant.state.view == "chat"
        assert "🤱" in update.message.reply_text.call_args.args[0]

    @pytest.mark.asyncio
    async def test_dashboard_switches_view(self, assistant):
        from supermom.bot.telegram_bot import cmd_dashboard

        assistant.set_view("chat")
        update = _make_update()
        await cmd_dashboard(update, _make_context(assistant))
        assert assistant.state.view == "dashboard"


class TestClientIdCommand:
    def _prompt_assistant(self, store, fake_classifier):
        a = Assistant(store, classifier=fake_classifier, calendar_factory=lambda acc: None,
                      client_id_source=StoredClientIdSource(store, clock=lambda: NOW),
                      tz=timezone.utc, incomplete_only=True, clock=lambda: NOW)
        a.load()
        return a

    @pytest.mark.asyncio
    async def test_sets_client_id(self, store, fake_classifier):
        from supermom.bot.telegram_bot import cmd_clientid

        assistant = self._prompt_assistant(store, fake_classifier)
        update = _make_update()
        await cmd_clientid(update, _make_context(assistant, args=["abc.apps.googleusercontent.com"]))

        assert assistant.client_id() == "abc.apps.googleusercontent.com"
        assert "2026-10-20 08:00" in update.message.reply_text.call_args.args[0]

    @pytest.mark.asyncio
    async def test_no_args_shows_status(self, store, fake_classifier):
        from supermom.bot.telegram_bot import cmd_clientid

        update = _make_update()
        await cmd_clientid(update, _make_context(self._prompt_assistant(store, fake_classifier)))
        assert "not set" in update.message.reply_text.call_args.args[0]

    @pytest.mark.asyncio
    async def test_fixed_client_id_refused(self, assistant):
        from supermom.bot.telegram_bot import cmd_clientid

        update = _make_update()
        await cmd_clientid(update, _make_context(assistant, args=["other"]))
        assert "fixed" in update.message.reply_text.call_args.args[0]
        assert assistant.client_id() == "client-123.apps.googleusercontent.com"


class TestHandleText:
    @pytest.mark.asyncio
    async def test_reply_sent(self, assistant, fake_classifier):
        from supermom.bot.telegram_bot import handle_text

        update = _make_update("what's on today?")
        processing = MagicMock()
        processing.delete = AsyncMock()
        update.message.reply_text = AsyncMock(side_effect=[processing, None])

        await handle_text(update, _make_context(assistant))

        fake_classifier.assert_awaited_once()
        assert update.message.reply_text.call_args_list[1].args[0] == "Here you go!"
        processing.delete.assert_awaited_once()


# ---------------------------------------------------------------------------
# Callbacks
# ---------------------------------------------------------------------------


class TestItemCallbacks:
    @pytest.mark.asyncio
    async def test_toggle(self, assistant):
        from supermom.bot.telegram_bot import _handle_item_callback

        _seed(assistant)
        update = _make_callback("task:toggle:t1")
        await _handle_item_callback(update, _make_context(assistant))
        assert assistant.state.tasks[0].completed is True
        update.callback_query.edit_message_text.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_delete_event(self, assistant):
        from supermom.bot.telegram_bot import _handle_item_callback

        _seed(assistant)
        await _handle_item_callback(_make_callback("event:del:e1"), _make_context(assistant))
        assert assistant.state.events == []

    @pytest.mark.asyncio
    async def test_stranger_ignored(self, assistant):
        from supermom.bot.telegram_bot import _handle_item_callback

        _seed(assistant)
        update = _make_callback("task:del:t1", user_id=999)
        await _handle_item_callback(update, _make_context(assistant))
        assert len(assistant.state.tasks) == 1
        update.callback_query.edit_message_text.assert_not_called()

    @pytest.mark.asyncio
    async def test_stale_button_leaves_message(self, assistant):
        from supermom.bot.telegram_bot import _handle_item_callback

        _seed(assistant)
        update = _make_callback("task:del:already-gone")
        await _handle_item_callback(update, _make_context(assistant))
        assert len(assistant.state.tasks) == 1
        update.callback_query.answer.assert_awaited_once()
        update.callback_query.edit_message_text.assert_not_called()


class TestExportCallbacks:
    @pytest.mark.asyncio
    async def test_menu_lists_accounts(self, assistant):
        from supermom.bot.telegram_bot import _handle_export_callback

        _seed(assistant)
        assistant.add_account(GoogleAccount(email="mom@example.com", access_token="x",
                                            expires_at=NOW + timedelta(hours=1)))
        update = _make_callback("export:menu")
        await _handle_export_callback(update, _make_context(assistant))

        markup = update.callback_query.message.reply_text.call_args.kwargs["reply_markup"]
        assert _callback_data(markup) == ["export:acct:0", "export:new"]

    @pytest.mark.asyncio
    async def test_account_export(self, assistant, fake_calendar):
        from supermom.bot.telegram_bot import _handle_export_callback

        _seed(assistant)
        assistant.add_account(GoogleAccount(email="mom@example.com", access_token="x",
                                            expires_at=NOW + timedelta(hours=1)))
        update = _make_callback("export:acct:0")
        await _handle_export_callback(update, _make_context(assistant))

        assert fake_calendar.create_event.await_count == 2
        last = update.callback_query.edit_message_text.call_args.args[0]
        assert last == "Exported 2 of 2 item(s) to mom@example.com! 🌸"


# ---------------------------------------------------------------------------
# /link conversation
# ---------------------------------------------------------------------------


class TestLinkConversation:
    @pytest.mark.asyncio
    async def test_start_asks_for_email(self, assistant):
        from supermom.bot.telegram_bot import cmd_link

        result = await cmd_link(_make_update("/link"), _make_context(assistant))
        assert result == LINK_EMAIL

    @pytest.mark.asyncio
    async def test_email_sends_auth_url(self, assistant):
        from supermom.bot.telegram_bot import link_email

        update = _make_update("mom@example.com")
        context = _make_context(assistant)
        flow = MagicMock()
        with patch("supermom.bot.telegram_bot.build_flow", return_value=flow), \
             patch("supermom.bot.telegram_bot.get_authorization_url", return_value="https://auth/x"):
            result = await link_email(update, context)

        assert result == LINK_CODE
        assert context.user_data["link_email"] == "mom@example.com"
        assert context.user_data["oauth_flow"] is flow
        assert "https://auth/x" in update.message.reply_text.call_args.args[0]

    @pytest.mark.asyncio
    async def test_code_links_account(self, assistant):
        from supermom.bot.telegram_bot import link_code

        update = _make_update("4/0AbC")
        context = _make_context(assistant)
        context.user_data = {"oauth_flow": MagicMock(), "link_email": "mom@example.com"}
        account = GoogleAccount(email="mom@example.com", access_token="tok",
                                expires_at=NOW + timedelta(hours=1))
        with patch("supermom.bot.telegram_bot.exchange_code", return_value=account):
            result = await link_code(update, context)

        assert result == ConversationHandler.END
        assert assistant.state.accounts == [account]
        assert context.user_data == {}

    @pytest.mark.asyncio
    async def test_bad_code(self, assistant):
        from supermom.bot.telegram_bot import link_code

        update = _make_update("nope")
        context = _make_context(assistant)
        context.user_data = {"oauth_flow": MagicMock(), "link_email": "mom@example.com"}
        with patch("supermom.bot.telegram_bot.exchange_code", side_effect=GoogleAuthError("invalid_grant")):
            result = await link_code(update, context)

        assert result == ConversationHandler.END
        assert assistant.state.accounts == []

    def test_clear_link_data(self):
        context = MagicMock()
        context.user_data = {"oauth_flow": object(), "link_email": "x", "unrelated_key": "keep"}
        _clear_link_data(context)
        assert context.user_data == {"unrelated_key": "keep"}
