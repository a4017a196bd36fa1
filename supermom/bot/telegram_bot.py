"""
Supermom Assistant — Telegram Bot.

Telegram is the user interface. Free text goes to the assistant for
classification; /dashboard shows tasks and events with inline buttons to
toggle, delete and export; /chat shows the transcript. Google linking runs as
a short conversation (/link).

Security-first: unauthorized users are silently ignored.
"""

from __future__ import annotations

import logging
from datetime import datetime
from functools import wraps
from typing import TYPE_CHECKING, Any, Callable, Coroutine

from telegram import InlineKeyboardButton, InlineKeyboardMarkup, Update
from telegram.ext import (
    Application,
    ApplicationBuilder,
    CallbackQueryHandler,
    CommandHandler,
    ContextTypes,
    ConversationHandler,
    MessageHandler,
    filters,
)

from supermom.config import settings
from supermom.core.client_config import ClientIdLockedError
from supermom.integrations.google_auth import (
    GoogleAuthError,
    build_flow,
    exchange_code,
    get_authorization_url,
)

if TYPE_CHECKING:
    from supermom.core.assistant import Assistant
    from supermom.data.models import AppState

logger = logging.getLogger(__name__)

# /link conversation states
LINK_EMAIL, LINK_CODE = range(2)

_TRANSCRIPT_LENGTH = 10
_BUTTON_LABEL_LENGTH = 24


# ---------------------------------------------------------------------------
# Security: silent-ignore decorator
# ---------------------------------------------------------------------------


def _is_authorized(user: Any) -> bool:
    return user is not None and user.id in settings.ALLOWED_USER_IDS


def authorized_only(
    func: Callable[..., Coroutine[Any, Any, Any]],
) -> Callable[..., Coroutine[Any, Any, Any]]:
    """Decorator that silently ignores updates from unauthorized users.

    Does NOT send any response to strangers — the bot must not reveal
    its existence to unauthorized users.
    """

    @wraps(func)
    async def wrapper(update: Update, context: ContextTypes.DEFAULT_TYPE) -> Any:
        user = update.effective_user
        if not _is_authorized(user):
            uid = user.id if user else "unknown"
            logger.warning("Unauthorized access attempt from user_id=%s", uid)
            return None  # Silent ignore
        return await func(update, context)

    return wrapper


def _assistant(context: ContextTypes.DEFAULT_TYPE) -> Assistant:
    return context.bot_data["assistant"]


# ---------------------------------------------------------------------------
# Rendering
# ---------------------------------------------------------------------------


def _short(text: str, limit: int = _BUTTON_LABEL_LENGTH) -> str:
    return text if len(text) <= limit else text[: limit - 1] + "…"


def _format_start(value: str) -> str:
    """'2026-10-20T16:00:00' → '2026-10-20 16:00'; dates pass through."""
    if "T" not in value:
        return value
    try:
        return datetime.fromisoformat(value).strftime("%Y-%m-%d %H:%M")
    except ValueError:
        return value


def _recurrence_label(recurrence: str | None) -> str:
    if not recurrence or recurrence == "none":
        return ""
    return f" 🔄 {recurrence}"


def render_dashboard(state: AppState) -> tuple[str, InlineKeyboardMarkup | None]:
    """Build the dashboard text and its inline keyboard."""
    lines = ["📅 Events"]
    if not state.events:
        lines.append("  No events yet...")
    for event in state.events:
        lines.append(
            f"  • {_format_start(event.start)} — {event.summary}"
            f"{_recurrence_label(event.recurrence)}"
        )

    lines.append("")
    lines.append("✅ Tasks")
    if not state.tasks:
        lines.append("  The list is empty...")
    for task in state.tasks:
        box = "☑️" if task.completed else "⬜"
        due = f" 📅 {task.due_date}" if task.due_date else ""
        lines.append(
            f"  {box} [{task.priority.upper()}] {task.description}"
            f"{due}{_recurrence_label(task.recurrence)}"
        )

    buttons: list[list[InlineKeyboardButton]] = []
    for event in state.events:
        buttons.append([
            InlineKeyboardButton(f"🗑 {_short(event.summary)}", callback_data=f"event:del:{event.id}"),
        ])
    for task in state.tasks:
        toggle_label = "↩️" if task.completed else "✅"
        buttons.append([
            InlineKeyboardButton(f"{toggle_label} {_short(task.description)}", callback_data=f"task:toggle:{task.id}"),
            InlineKeyboardButton("🗑", callback_data=f"task:del:{task.id}"),
        ])
    if state.tasks or state.events:
        buttons.append([InlineKeyboardButton("💾 Save to Google Calendar", callback_data="export:menu")])

    markup = InlineKeyboardMarkup(buttons) if buttons else None
    return "\n".join(lines), markup


def render_transcript(state: AppState, limit: int = _TRANSCRIPT_LENGTH) -> str:
    if not state.messages:
        return "No messages yet."
    lines = []
    for message in state.messages[-limit:]:
        who = "You" if message.role == "user" else "🤱"
        lines.append(f"{who}: {message.content}")
    return "\n\n".join(lines)


def render_account_selector(state: AppState) -> InlineKeyboardMarkup:
    buttons = [
        [InlineKeyboardButton(account.email, callback_data=f"export:acct:{index}")]
        for index, account in enumerate(state.accounts)
    ]
    buttons.append([InlineKeyboardButton("➕ Add a new account", callback_data="export:new")])
    return InlineKeyboardMarkup(buttons)


# ---------------------------------------------------------------------------
# Command handlers
# ---------------------------------------------------------------------------


@authorized_only
async def cmd_start(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /start — welcome message."""
    await update.message.reply_text(
        "Welcome to Supermom Assistant! 🤱\n\n"
        "Just tell me what's on your mind — 'dentist tomorrow at 4pm', "
        "'buy diapers on Friday', 'swimming every Monday' — and I'll sort it "
        "into tasks and events.\n\n"
        "Type /help for the full command list."
    )


@authorized_only
async def cmd_help(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /help — list available commands."""
    await update.message.reply_text(
        "Available commands:\n"
        "/dashboard — Tasks and events (toggle, delete, export)\n"
        "/chat — Recent conversation\n"
        "/clientid <id> — Set the Google OAuth client id\n"
        "/link — Connect a Google account\n"
        "/export — Save everything to Google Calendar\n"
        "/help — Show this message"
    )


@authorized_only
async def cmd_dashboard(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /dashboard — switch to the list view."""
    assistant = _assistant(context)
    assistant.set_view("dashboard")
    text, markup = render_dashboard(assistant.state)
    await update.message.reply_text(text, reply_markup=markup)


@authorized_only
async def cmd_chat(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /chat — switch to the transcript view."""
    assistant = _assistant(context)
    assistant.set_view("chat")
    await update.message.reply_text(render_transcript(assistant.state))


@authorized_only
async def cmd_clientid(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /clientid <id> — store the Google OAuth client id."""
    assistant = _assistant(context)
    value = " ".join(context.args or []).strip()

    if not value:
        current = assistant.client_id()
        status = "configured ✅" if current else "not set"
        await update.message.reply_text(
            f"Google client id: {status}\n\n"
            "Usage: /clientid <id>.apps.googleusercontent.com\n"
            "Get one in Google Cloud Console: create a project, enable the "
            "Google Calendar API and create an OAuth client id."
        )
        return

    try:
        config = assistant.set_client_id(value)
    except ClientIdLockedError:
        await update.message.reply_text("The client id is fixed by the bot's configuration.")
        return
    except ValueError:
        await update.message.reply_text("That client id looks empty. Please try again.")
        return

    await update.message.reply_text(
        f"Client id saved 🌸 It will be forgotten at "
        f"{config.expires_at.strftime('%Y-%m-%d %H:%M')} UTC for safety."
    )


@authorized_only
async def cmd_export(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /export — show the account selector."""
    assistant = _assistant(context)
    if assistant.state.view != "dashboard":
        await update.message.reply_text("Export is available from the dashboard. Open it with /dashboard.")
        return
    if not assistant.client_id():
        await update.message.reply_text("Set up the Google connection first: /clientid <your OAuth client id>.")
        return
    await update.message.reply_text(
        "Which account?", reply_markup=render_account_selector(assistant.state),
    )


# ---------------------------------------------------------------------------
# /link conversation
# ---------------------------------------------------------------------------


@authorized_only
async def cmd_link(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    """Handle /link — start the Google account linking conversation."""
    assistant = _assistant(context)
    if not assistant.client_id():
        await update.message.reply_text(
            "I need a Google client id first: /clientid <your OAuth client id>."
        )
        return ConversationHandler.END

    await update.message.reply_text("Which Google email address are you linking?")
    return LINK_EMAIL


async def link_email(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    """Receive the email, send the authorization URL."""
    assistant = _assistant(context)
    context.user_data["link_email"] = update.message.text.strip() or "Unknown"

    try:
        flow = build_flow(
            assistant.client_id() or "",
            settings.GOOGLE_CLIENT_SECRET,
            settings.GOOGLE_REDIRECT_URI,
        )
        auth_url = get_authorization_url(flow)
    except GoogleAuthError as exc:
        logger.error("Could not start Google authorization: %s", exc)
        await update.message.reply_text("⚠️ Something went wrong while signing in. Check the client id!")
        _clear_link_data(context)
        return ConversationHandler.END

    context.user_data["oauth_flow"] = flow
    await update.message.reply_text(
        "Open this link, allow calendar access, then paste the code "
        f"(or the whole address you were sent to) here:\n\n{auth_url}\n\n"
        "/cancel to stop."
    )
    return LINK_CODE


async def link_code(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    """Receive the authorization code and finish linking."""
    assistant = _assistant(context)
    flow = context.user_data.get("oauth_flow")
    email = context.user_data.get("link_email", "Unknown")

    if flow is None:
        await update.message.reply_text("The sign-in expired. Please start again with /link.")
        _clear_link_data(context)
        return ConversationHandler.END

    try:
        account = exchange_code(flow, update.message.text, email)
    except GoogleAuthError as exc:
        logger.error("Google account linking failed: %s", exc)
        await update.message.reply_text("⚠️ Something went wrong while signing in. Check the code!")
        _clear_link_data(context)
        return ConversationHandler.END

    assistant.add_account(account)
    _clear_link_data(context)
    await update.message.reply_text(f"✅ {account.email} is connected!")
    return ConversationHandler.END


async def link_cancel(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    _clear_link_data(context)
    await update.message.reply_text("Linking cancelled.")
    return ConversationHandler.END


def _clear_link_data(context: ContextTypes.DEFAULT_TYPE) -> None:
    for key in ("oauth_flow", "link_email"):
        context.user_data.pop(key, None)


# ---------------------------------------------------------------------------
# Callback handlers
# ---------------------------------------------------------------------------


async def _handle_item_callback(
    update: Update, context: ContextTypes.DEFAULT_TYPE
) -> None:
    """Handle dashboard taps: task:toggle:<id>, task:del:<id>, event:del:<id>."""
    query = update.callback_query
    await query.answer()

    if not _is_authorized(query.from_user):
        return

    assistant = _assistant(context)
    record_type, action, record_id = query.data.split(":", 2)

    if record_type == "task" and action == "toggle":
        changed = assistant.toggle_task(record_id)
    elif record_type == "task" and action == "del":
        changed = assistant.delete_task(record_id)
    elif record_type == "event" and action == "del":
        changed = assistant.delete_event(record_id)
    else:
        logger.warning("Unknown dashboard callback: %s", query.data)
        return

    # stale button: nothing changed, so the message stays as it is
    if not changed:
        return

    text, markup = render_dashboard(assistant.state)
    await query.edit_message_text(text, reply_markup=markup)


async def _handle_export_callback(
    update: Update, context: ContextTypes.DEFAULT_TYPE
) -> None:
    """Handle export taps: export:menu, export:new, export:acct:<n>."""
    query = update.callback_query
    await query.answer()

    if not _is_authorized(query.from_user):
        return

    assistant = _assistant(context)
    parts = query.data.split(":")

    if parts[1] == "menu":
        if not assistant.client_id():
            await query.message.reply_text("Set up the Google connection first: /clientid <your OAuth client id>.")
            return
        await query.message.reply_text(
            "Which account?", reply_markup=render_account_selector(assistant.state),
        )
        return

    if parts[1] == "new":
        await query.edit_message_text("Send /link to connect a new Google account.")
        return

    try:
        index = int(parts[2])
    except (IndexError, ValueError):
        logger.warning("Malformed export callback: %s", query.data)
        return

    await query.edit_message_text("Syncing... ✨")
    response = await assistant.export_to_calendar(index)
    await query.edit_message_text(response.message)


# ---------------------------------------------------------------------------
# Message handlers
# ---------------------------------------------------------------------------


@authorized_only
async def handle_text(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle plain text messages — classify and store."""
    assistant = _assistant(context)
    processing_msg = await update.message.reply_text("Working on it... ✨")
    response = await assistant.handle_message(update.message.text)
    if response.message:
        await update.message.reply_text(response.message)
    try:
        await processing_msg.delete()
    except Exception:
        pass  # Non-critical if delete fails


# ---------------------------------------------------------------------------
# App builder
# ---------------------------------------------------------------------------


def build_app(assistant: Assistant | None = None) -> Application:
    """Build and configure the Telegram Application with all handlers.

    Args:
        assistant: Controller to drive. Defaults to one backed by the
                   configured LocalStore, loaded from disk.
    """
    app = ApplicationBuilder().token(settings.TELEGRAM_BOT_TOKEN).build()

    if assistant is None:
        from supermom.core.assistant import Assistant
        from supermom.data.db import LocalStore

        assistant = Assistant(LocalStore())
        assistant.load()

    app.bot_data["assistant"] = assistant

    # Commands
    app.add_handler(CommandHandler("start", cmd_start))
    app.add_handler(CommandHandler("help", cmd_help))
    app.add_handler(CommandHandler("dashboard", cmd_dashboard))
    app.add_handler(CommandHandler("chat", cmd_chat))
    app.add_handler(CommandHandler("clientid", cmd_clientid))
    app.add_handler(CommandHandler("export", cmd_export))
    app.add_handler(CallbackQueryHandler(_handle_item_callback, pattern=r"^(task|event):"))
    app.add_handler(CallbackQueryHandler(_handle_export_callback, pattern=r"^export:"))

    # /link conversation handler
    _text = filters.TEXT & ~filters.COMMAND
    link_conv = ConversationHandler(
        entry_points=[CommandHandler("link", cmd_link)],
        states={
            LINK_EMAIL: [MessageHandler(_text, link_email)],
            LINK_CODE: [MessageHandler(_text, link_code)],
        },
        fallbacks=[CommandHandler("cancel", link_cancel)],
    )
    app.add_handler(link_conv)

    # Text messages (non-command)
    app.add_handler(MessageHandler(_text, handle_text))

    logger.info("Telegram bot application built with %d handlers", len(app.handlers[0]))
    return app


def main() -> None:
    """Entry point: build the app and start polling."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    logger.info("Starting Supermom Assistant bot...")
    app = build_app()
    app.run_polling()


if __name__ == "__main__":
    main()
