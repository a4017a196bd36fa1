"""
Supermom Assistant — Data Models.

Tasks and events live in the local store; the store is authoritative and the
Google Calendar export is only a convenience copy. Accounts and the client-id
configuration expire and are dropped at load time.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Literal

Priority = Literal["critical", "high", "medium", "low"]
Recurrence = Literal["daily", "weekly", "monthly", "none"]
Role = Literal["user", "assistant"]

PRIORITIES: tuple[str, ...] = ("critical", "high", "medium", "low")
RECURRENCES: tuple[str, ...] = ("daily", "weekly", "monthly", "none")
DEFAULT_PRIORITY: Priority = "medium"


@dataclass
class Task:
    """A to-do item captured from a 'task' intent.

    Only `completed` ever changes after creation (toggle); everything else
    is fixed until the task is deleted.
    """

    id: str
    description: str
    created_at: datetime
    priority: Priority = DEFAULT_PRIORITY
    completed: bool = False
    due_date: str | None = None          # YYYY-MM-DD
    recurrence: Recurrence | None = None


@dataclass
class CalendarEvent:
    """A timed entry captured from an 'event' intent."""

    id: str
    summary: str
    start: str                           # YYYY-MM-DD or YYYY-MM-DDTHH:MM:SS
    end: str
    recurrence: Recurrence | None = None
    is_confirmed: bool = True


@dataclass
class GoogleAccount:
    """An authorized Google account the user can export into.

    The access token is never refreshed; once `expires_at` passes the account
    disappears from the roster on the next load.
    """

    email: str
    access_token: str
    expires_at: datetime


@dataclass
class ChatMessage:
    role: Role
    content: str
    timestamp: datetime
    data: dict[str, Any] | None = None   # raw classifier response


@dataclass
class ClientIdConfig:
    """Google OAuth client id supplied by the user, kept for a limited time."""

    value: str
    expires_at: datetime


@dataclass
class AppState:
    """Everything the controller owns. No other module keeps a reference."""

    tasks: list[Task] = field(default_factory=list)
    events: list[CalendarEvent] = field(default_factory=list)
    accounts: list[GoogleAccount] = field(default_factory=list)
    messages: list[ChatMessage] = field(default_factory=list)
    view: Literal["dashboard", "chat"] = "dashboard"
    busy: bool = False
