"""Tests for supermom.data.models — dataclass defaults."""

from dataclasses import asdict
from datetime import datetime, timezone

from supermom.data.models import AppState, CalendarEvent, ChatMessage, Task

CREATED = datetime(2026, 10, 19, tzinfo=timezone.utc)


def test_task_defaults():
    task = Task(id="t1", description="Buy diapers", created_at=CREATED)
    assert task.priority == "medium"
    assert task.completed is False
    assert task.due_date is None
    assert task.recurrence is None


def test_event_defaults_to_confirmed():
    event = CalendarEvent(id="e1", summary="Dentist", start="2026-10-20", end="2026-10-20")
    assert event.is_confirmed is True
    assert event.recurrence is None


def test_chat_message_without_data():
    msg = ChatMessage(role="user", content="hi", timestamp=CREATED)
    assert msg.data is None


def test_app_state_starts_on_dashboard():
    state = AppState()
    assert state.view == "dashboard"
    assert state.busy is False
    assert state.tasks == [] and state.events == [] and state.accounts == []


def test_task_serializable():
    task = Task(id="t1", description="Test", created_at=CREATED, recurrence="weekly")
    d = asdict(task)
    assert d["description"] == "Test"
    assert d["recurrence"] == "weekly"
