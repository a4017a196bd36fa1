"""
Supermom Assistant — Record Normalizer.

Maps a classified intent onto a canonical Task or CalendarEvent: fresh
identity, defaults, and the collection ordering rules (tasks newest-first,
events ascending by start). Functions return new lists; the controller swaps
them into the application state.
"""

from __future__ import annotations

import logging
import uuid
from datetime import date, datetime, timezone, tzinfo

from supermom.core.classifier import EventIntent, Intent, TaskIntent
from supermom.data.models import DEFAULT_PRIORITY, CalendarEvent, Task

logger = logging.getLogger(__name__)

# Sort bucket for start values that cannot be parsed: after every real date.
_UNPARSEABLE = (1, datetime.max)


def new_id() -> str:
    return uuid.uuid4().hex


def start_sort_key(value: str, tz: tzinfo | None = None) -> tuple[int, datetime]:
    """Sort key for an event start (YYYY-MM-DD or ISO date-time).

    Values are compared in UTC. Naive values are local time in `tz` (the zone
    the export uses); without `tz` they compare as wall-clock time.
    Unparseable values sort last.
    """
    try:
        if "T" in value:
            parsed = datetime.fromisoformat(value)
        else:
            parsed = datetime.combine(date.fromisoformat(value), datetime.min.time())
    except (TypeError, ValueError):
        logger.warning("Cannot parse event start '%s' — sorting it last", value)
        return _UNPARSEABLE

    if parsed.tzinfo is None and tz is not None:
        parsed = parsed.replace(tzinfo=tz)
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return (0, parsed)


def task_from_intent(intent: TaskIntent, now: datetime | None = None) -> Task:
    data = intent.task
    return Task(
        id=new_id(),
        description=data.description,
        priority=data.priority or DEFAULT_PRIORITY,
        completed=False,
        due_date=data.due_date,
        recurrence=data.recurrence,
        created_at=now or datetime.now(timezone.utc),
    )


def event_from_intent(intent: EventIntent) -> CalendarEvent:
    data = intent.event
    return CalendarEvent(
        id=new_id(),
        summary=data.summary,
        start=data.start,
        end=data.end or data.start,
        recurrence=data.recurrence,
        is_confirmed=True,
    )


def insert_task(tasks: list[Task], task: Task) -> list[Task]:
    """Return a new list with `task` first."""
    return [task, *tasks]


def insert_event(
    events: list[CalendarEvent], event: CalendarEvent, tz: tzinfo | None = None,
) -> list[CalendarEvent]:
    """Return a new list with `event` added, sorted ascending by start."""
    return sorted([*events, event], key=lambda e: start_sort_key(e.start, tz))


def apply_intent(
    intent: Intent,
    tasks: list[Task],
    events: list[CalendarEvent],
    now: datetime | None = None,
    tz: tzinfo | None = None,
) -> tuple[list[Task], list[CalendarEvent], Task | CalendarEvent | None]:
    """Apply one intent to the collections.

    Only task and event intents create a record; every other kind returns the
    collections untouched and no record.
    """
    if isinstance(intent, TaskIntent):
        task = task_from_intent(intent, now)
        logger.info("New task %s: '%s' (%s)", task.id, task.description, task.priority)
        return insert_task(tasks, task), events, task

    if isinstance(intent, EventIntent):
        event = event_from_intent(intent)
        logger.info("New event %s: '%s' at %s", event.id, event.summary, event.start)
        return tasks, insert_event(events, event, tz), event

    return tasks, events, None
