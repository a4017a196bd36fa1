"""
Supermom Assistant — Calendar Export Pipeline.

Projects the local tasks and events into Google Calendar event bodies and
uploads them one at a time. Export is best-effort: a failed item is recorded
and skipped, nothing is retried or rolled back, and the local store stays the
source of truth whatever happens here.

Timezone policy: dates without an offset are wall-clock times in the
configured TIMEZONE and are converted to UTC before upload. Values that carry
an offset are converted to UTC as-is. Date-only values get 09:00 (start) or
10:00 (end) local time.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from typing import Literal

from supermom.data.models import CalendarEvent, Recurrence, Task
from supermom.ports.calendar_port import CalendarError, CalendarPort

logger = logging.getLogger(__name__)

DEFAULT_START_TIME = time(9, 0)
DEFAULT_END_TIME = time(10, 0)

_RRULES: dict[str, str] = {
    "daily": "RRULE:FREQ=DAILY",
    "weekly": "RRULE:FREQ=WEEKLY",
    "monthly": "RRULE:FREQ=MONTHLY",
}


# ---------------------------------------------------------------------------
# Export items and results
# ---------------------------------------------------------------------------


@dataclass
class ExportItem:
    """One unit of upload: an event, or a task projected into event shape."""
    id: str
    summary: str
    start: str
    end: str
    recurrence: Recurrence | None = None
    source: Literal["event", "task"] = "event"


@dataclass
class ExportOutcome:
    item: ExportItem
    success: bool
    error: str = ""
    event_id: str = ""


@dataclass
class ExportReport:
    outcomes: list[ExportOutcome] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.outcomes)

    @property
    def success_count(self) -> int:
        return sum(1 for o in self.outcomes if o.success)

    @property
    def failures(self) -> list[ExportOutcome]:
        return [o for o in self.outcomes if not o.success]


# ---------------------------------------------------------------------------
# Projection
# ---------------------------------------------------------------------------


def _task_to_item(task: Task) -> ExportItem:
    due = task.due_date or ""
    if "T" in due:
        start = datetime.fromisoformat(due)
        end = (start + timedelta(hours=1)).isoformat()
        return ExportItem(
            id=task.id, summary=task.description, start=due, end=end,
            recurrence=task.recurrence, source="task",
        )
    return ExportItem(
        id=task.id,
        summary=task.description,
        start=f"{due}T{DEFAULT_START_TIME.isoformat()}",
        end=f"{due}T{DEFAULT_END_TIME.isoformat()}",
        recurrence=task.recurrence,
        source="task",
    )


def build_export_items(
    tasks: list[Task],
    events: list[CalendarEvent],
    incomplete_only: bool = True,
) -> list[ExportItem]:
    """Every event, then every eligible task.

    A task is eligible when it has a due date and, with `incomplete_only`,
    is not completed yet.
    """
    items = [
        ExportItem(
            id=e.id, summary=e.summary, start=e.start, end=e.end,
            recurrence=e.recurrence, source="event",
        )
        for e in events
    ]

    for task in tasks:
        if incomplete_only and task.completed:
            continue
        if not task.due_date:
            logger.debug("Task %s has no due date, not exported", task.id)
            continue
        try:
            items.append(_task_to_item(task))
        except (TypeError, ValueError) as exc:
            logger.warning("Task %s has an unusable due date '%s': %s", task.id, task.due_date, exc)

    return items


# ---------------------------------------------------------------------------
# Payload
# ---------------------------------------------------------------------------


def recurrence_rule(recurrence: str | None) -> list[str] | None:
    """Translate a recurrence into Google's RRULE list, or None for no repeat."""
    if not recurrence or recurrence == "none":
        return None
    rule = _RRULES.get(recurrence)
    if rule is None:
        logger.warning("Unknown recurrence '%s', exporting as a one-off", recurrence)
    return [rule] if rule else None


def to_utc_timestamp(value: str, default_time: time, tz: tzinfo) -> str:
    """Normalize a date or date-time string to `YYYY-MM-DDTHH:MM:SSZ`.

    Raises ValueError for values that are neither.
    """
    if "T" in value:
        parsed = datetime.fromisoformat(value)
    else:
        parsed = datetime.combine(date.fromisoformat(value), default_time)

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=tz)
    return parsed.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def build_event_payload(item: ExportItem, tz: tzinfo) -> dict:
    """Construct a Google Calendar API event body from an ExportItem."""
    body: dict = {
        "summary": item.summary,
        "start": {"dateTime": to_utc_timestamp(item.start, DEFAULT_START_TIME, tz)},
        "end": {"dateTime": to_utc_timestamp(item.end, DEFAULT_END_TIME, tz)},
    }
    rule = recurrence_rule(item.recurrence)
    if rule:
        body["recurrence"] = rule
    return body


# ---------------------------------------------------------------------------
# Upload
# ---------------------------------------------------------------------------


async def export_items(
    items: list[ExportItem], calendar: CalendarPort, tz: tzinfo,
) -> ExportReport:
    """Upload items sequentially; every item is attempted exactly once."""
    report = ExportReport()

    for item in items:
        try:
            body = build_event_payload(item, tz)
        except (TypeError, ValueError) as exc:
            logger.warning("Skipping %s %s: bad date (%s)", item.source, item.id, exc)
            report.outcomes.append(ExportOutcome(item=item, success=False, error=str(exc)))
            continue

        try:
            created = await calendar.create_event(body)
        except CalendarError as exc:
            logger.error("Export of %s %s failed: %s", item.source, item.id, exc)
            report.outcomes.append(ExportOutcome(item=item, success=False, error=str(exc)))
            continue

        report.outcomes.append(
            ExportOutcome(item=item, success=True, event_id=str(created.get("id", ""))),
        )

    logger.info("Export finished: %d/%d item(s) uploaded", report.success_count, report.total)
    return report
