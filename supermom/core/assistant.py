"""
Supermom Assistant — UI-agnostic controller.

Owns the single AppState and is the only place it changes. Every operation is
one state transition followed by a wholesale save, and returns a response
object the UI adapter (Telegram today) renders in its own way.

Collaborators are injected so tests can swap in a fake classifier, store or
calendar.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import datetime, timezone, tzinfo
from enum import Enum
from typing import TYPE_CHECKING, Awaitable, Callable
from zoneinfo import ZoneInfo

from supermom.core.classifier import EmailIntent, Intent
from supermom.core.exporter import ExportReport, build_export_items, export_items
from supermom.core.normalizer import apply_intent
from supermom.data.models import AppState, CalendarEvent, ChatMessage, GoogleAccount, Task

if TYPE_CHECKING:
    from supermom.core.client_config import ClientIdSource
    from supermom.data.db import LocalStore
    from supermom.ports.calendar_port import CalendarPort

logger = logging.getLogger(__name__)

GREETING = (
    "Hi! Your Supermom assistant is ready. "
    "Have you connected your Google Calendar yet? Use /clientid and /link. ✨"
)

ClassifierFn = Callable[[str, str | None], Awaitable[Intent]]
CalendarFactory = Callable[[GoogleAccount], "CalendarPort"]


# ---------------------------------------------------------------------------
# Response types
# ---------------------------------------------------------------------------


class ResponseKind(Enum):
    REPLY = "reply"
    NO_ACTION = "no_action"
    BUSY = "busy"
    ERROR = "error"
    CONFIG_REQUIRED = "config_required"
    ACCOUNT_REQUIRED = "account_required"
    EXPORT_SUMMARY = "export_summary"


@dataclass
class ServiceResponse:
    kind: ResponseKind
    message: str


@dataclass
class ReplyResponse(ServiceResponse):
    intent: Intent | None = None
    record: Task | CalendarEvent | None = None


@dataclass
class NoActionResponse(ServiceResponse):
    pass


@dataclass
class BusyResponse(ServiceResponse):
    pass


@dataclass
class ErrorResponse(ServiceResponse):
    pass


@dataclass
class ConfigRequiredResponse(ServiceResponse):
    pass


@dataclass
class AccountRequiredResponse(ServiceResponse):
    pass


@dataclass
class ExportSummaryResponse(ServiceResponse):
    report: ExportReport | None = None
    account_email: str = ""


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def context_hint(today: datetime) -> str:
    """Context line sent with every classification request."""
    return f"TODAY: {today.date().isoformat()} ({today.strftime('%A')})"


def _reply_text(intent: Intent) -> str:
    if isinstance(intent, EmailIntent) and intent.email is not None:
        return (
            f"{intent.text_response}\n\n"
            f"Subject: {intent.email.subject}\n\n{intent.email.body}"
        )
    return intent.text_response


# ---------------------------------------------------------------------------
# Controller
# ---------------------------------------------------------------------------


class Assistant:
    """Single owner of the application state."""

    def __init__(
        self,
        store: LocalStore,
        classifier: ClassifierFn | None = None,
        calendar_factory: CalendarFactory | None = None,
        client_id_source: ClientIdSource | None = None,
        tz: tzinfo | None = None,
        incomplete_only: bool | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        if classifier is None:
            from supermom.core.classifier import classify
            classifier = classify
        if calendar_factory is None:
            from supermom.adapters.google_calendar import create_calendar_adapter
            calendar_factory = create_calendar_adapter
        if client_id_source is None:
            from supermom.core.client_config import create_client_id_source
            client_id_source = create_client_id_source(store)
        if tz is None or incomplete_only is None:
            from supermom.config import settings
            tz = tz or ZoneInfo(settings.TIMEZONE)
            if incomplete_only is None:
                incomplete_only = settings.EXPORT_INCOMPLETE_ONLY

        self._store = store
        self._classify = classifier
        self._calendar_factory = calendar_factory
        self._client_ids = client_id_source
        self._tz = tz
        self._incomplete_only = incomplete_only
        self._clock = clock or _utc_now
        self.state = AppState()

    # -- lifecycle ----------------------------------------------------------

    def load(self) -> AppState:
        """Populate state from the store and greet the user."""
        stored = self._store.load(now=self._clock())
        self.state = AppState(
            tasks=stored.tasks,
            events=stored.events,
            accounts=stored.accounts,
        )
        self.append_message(ChatMessage(role="assistant", content=GREETING, timestamp=self._clock()))
        return self.state

    def _persist(self) -> None:
        self._store.save(self.state.tasks, self.state.events)

    def _persist_accounts(self) -> None:
        self._store.save_accounts(self.state.accounts)

    # -- chat ---------------------------------------------------------------

    def append_message(self, message: ChatMessage) -> None:
        self.state.messages.append(message)

    async def handle_message(self, text: str) -> ServiceResponse:
        """Classify one user message and reconcile the result into state."""
        if not text or not text.strip():
            return NoActionResponse(kind=ResponseKind.NO_ACTION, message="")
        if self.state.busy:
            logger.info("Rejected message while a classification is in flight")
            return BusyResponse(
                kind=ResponseKind.BUSY,
                message="Still working on your previous message... ✨",
            )

        self.append_message(ChatMessage(role="user", content=text, timestamp=self._clock()))
        self.state.busy = True
        try:
            now = self._clock()
            intent = await self._classify(text, context_hint(now.astimezone(self._tz)))

            self.append_message(ChatMessage(
                role="assistant",
                content=intent.text_response,
                timestamp=self._clock(),
                data=intent.raw or None,
            ))

            tasks, events, record = apply_intent(
                intent, self.state.tasks, self.state.events, now, self._tz,
            )
            if record is not None:
                self.state.tasks = tasks
                self.state.events = events
                self._persist()
        finally:
            self.state.busy = False

        return ReplyResponse(
            kind=ResponseKind.REPLY,
            message=_reply_text(intent),
            intent=intent,
            record=record,
        )

    # -- reconciliation -----------------------------------------------------

    def toggle_task(self, task_id: str) -> bool:
        """Flip `completed` on the matching task. Unknown id is a no-op."""
        if not any(t.id == task_id for t in self.state.tasks):
            logger.debug("toggle_task: no task %s", task_id)
            return False
        self.state.tasks = [
            replace(t, completed=not t.completed) if t.id == task_id else t
            for t in self.state.tasks
        ]
        self._persist()
        logger.info("Task %s toggled", task_id)
        return True

    def delete_task(self, task_id: str) -> bool:
        remaining = [t for t in self.state.tasks if t.id != task_id]
        if len(remaining) == len(self.state.tasks):
            logger.debug("delete_task: no task %s", task_id)
            return False
        self.state.tasks = remaining
        self._persist()
        logger.info("Task %s deleted", task_id)
        return True

    def delete_event(self, event_id: str) -> bool:
        remaining = [e for e in self.state.events if e.id != event_id]
        if len(remaining) == len(self.state.events):
            logger.debug("delete_event: no event %s", event_id)
            return False
        self.state.events = remaining
        self._persist()
        logger.info("Event %s deleted", event_id)
        return True

    def set_view(self, view: str) -> None:
        if view not in ("dashboard", "chat"):
            raise ValueError(f"Unknown view: {view!r}")
        self.state.view = view

    # -- Google configuration -----------------------------------------------

    def client_id(self) -> str | None:
        return self._client_ids.get()

    @property
    def client_id_editable(self) -> bool:
        return self._client_ids.accepts_input

    def set_client_id(self, value: str):
        """Store a user-supplied client id. See ClientIdSource.set()."""
        return self._client_ids.set(value)

    def add_account(self, account: GoogleAccount) -> None:
        self.state.accounts = [*self.state.accounts, account]
        self._persist_accounts()
        logger.info("Account %s added (%d linked)", account.email, len(self.state.accounts))

    # -- export -------------------------------------------------------------

    def can_export(self) -> bool:
        return bool(self.state.tasks or self.state.events)

    async def export_to_calendar(self, account_index: int) -> ServiceResponse:
        """Push the current snapshot into the chosen account's calendar."""
        if self.state.view != "dashboard":
            return ErrorResponse(
                kind=ResponseKind.ERROR,
                message="Export is available from the dashboard. Open it with /dashboard.",
            )
        if not self.can_export():
            return NoActionResponse(kind=ResponseKind.NO_ACTION, message="Nothing to export yet.")
        if not self.client_id():
            return ConfigRequiredResponse(
                kind=ResponseKind.CONFIG_REQUIRED,
                message="Set up the Google connection first: /clientid <your OAuth client id>.",
            )
        if not 0 <= account_index < len(self.state.accounts):
            return AccountRequiredResponse(
                kind=ResponseKind.ACCOUNT_REQUIRED,
                message="Link a Google account first with /link.",
            )

        account = self.state.accounts[account_index]
        items = build_export_items(self.state.tasks, self.state.events, self._incomplete_only)
        calendar = self._calendar_factory(account)

        logger.info("Exporting %d item(s) to %s", len(items), account.email)
        report = await export_items(items, calendar, self._tz)

        return ExportSummaryResponse(
            kind=ResponseKind.EXPORT_SUMMARY,
            message=(
                f"Exported {report.success_count} of {report.total} item(s) "
                f"to {account.email}! 🌸"
            ),
            report=report,
            account_email=account.email,
        )
