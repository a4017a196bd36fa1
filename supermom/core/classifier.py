"""
Supermom Assistant — Intent Classifier.

Brain of the capture flow: sends the user's (often chaotic, half-finished)
sentence to the configured LLM and gets back exactly one structured intent.

The raw JSON is validated once, here, into a tagged union. Downstream code
branches on the intent type and never probes optional fields. Every failure
(missing key, transport error, malformed JSON, schema mismatch) becomes a
ClarificationIntent with a friendly message — nothing raises past classify().
"""

from __future__ import annotations

import json
import logging
from datetime import date
from typing import Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from supermom.core.llm import LLMNotConfiguredError, complete, is_configured
from supermom.data.models import PRIORITIES, RECURRENCES, Priority, Recurrence

logger = logging.getLogger(__name__)

APOLOGY_MESSAGE = (
    "Oops, a speck of dust got into the machinery... 🌸 "
    "Could you say that again, please? I'm right here and listening!"
)
MISSING_KEY_MESSAGE = (
    "Hi! It looks like I haven't received my secret key yet (LLM_API_KEY is missing). "
    "Please ask whoever set me up to add it! 🌸"
)


# ---------------------------------------------------------------------------
# Payload models: the JSON contract with the LLM
# ---------------------------------------------------------------------------


def _blank_to_none(v: Any) -> Any:
    if isinstance(v, str) and not v.strip():
        return None
    return v


def _strip(v: Any) -> Any:
    return v.strip() if isinstance(v, str) else v


def _lenient_choice(v: Any, allowed: tuple[str, ...], field_name: str) -> Any:
    v = _blank_to_none(v)
    if v is None:
        return None
    if isinstance(v, str) and v.strip().lower() in allowed:
        return v.strip().lower()
    logger.warning("Ignoring unknown %s value from LLM: %r", field_name, v)
    return None


class CalendarData(BaseModel):
    """Event payload.

    JSON example:
    {"summary": "Dentist", "start": "2026-10-20T16:00:00", "end": "2026-10-20T17:00:00",
     "recurrence": "none"}
    """
    model_config = ConfigDict(populate_by_name=True)

    summary: str = Field(min_length=1)
    start: str = Field(min_length=1)
    end: str | None = None
    recurrence: Recurrence | None = None

    @field_validator("summary", "start", mode="before")
    @classmethod
    def strip_text(cls, v: Any) -> Any:
        return _strip(v)

    @field_validator("end", mode="before")
    @classmethod
    def blank_end(cls, v: Any) -> Any:
        return _blank_to_none(v)

    @field_validator("recurrence", mode="before")
    @classmethod
    def check_recurrence(cls, v: Any) -> Any:
        return _lenient_choice(v, RECURRENCES, "recurrence")


class TaskData(BaseModel):
    """Task payload.

    JSON example:
    {"description": "Buy diapers", "priority": "high", "dueDate": "2026-10-21",
     "recurrence": "weekly"}
    """
    model_config = ConfigDict(populate_by_name=True)

    description: str = Field(min_length=1)
    priority: Priority | None = None
    due_date: str | None = Field(default=None, alias="dueDate")
    recurrence: Recurrence | None = None

    @field_validator("description", mode="before")
    @classmethod
    def strip_text(cls, v: Any) -> Any:
        return _strip(v)

    @field_validator("due_date", mode="before")
    @classmethod
    def blank_due(cls, v: Any) -> Any:
        return _blank_to_none(v)

    @field_validator("priority", mode="before")
    @classmethod
    def check_priority(cls, v: Any) -> Any:
        return _lenient_choice(v, PRIORITIES, "priority")

    @field_validator("recurrence", mode="before")
    @classmethod
    def check_recurrence(cls, v: Any) -> Any:
        return _lenient_choice(v, RECURRENCES, "recurrence")


class EmailData(BaseModel):
    subject: str
    body: str


class ClassifierResponse(BaseModel):
    """Top-level envelope as returned by the LLM (payloads still unvalidated)."""
    model_config = ConfigDict(populate_by_name=True)

    type: str
    text_response: str = Field(alias="textResponse")
    calendar_data: dict[str, Any] | None = Field(default=None, alias="calendarData")
    task_data: dict[str, Any] | None = Field(default=None, alias="taskData")
    email_data: dict[str, Any] | None = Field(default=None, alias="emailData")


# ---------------------------------------------------------------------------
# Intents, one class per kind
# ---------------------------------------------------------------------------


class _Intent(BaseModel):
    text_response: str
    raw: dict[str, Any] = Field(default_factory=dict)


class TaskIntent(_Intent):
    kind: Literal["task"] = "task"
    task: TaskData


class EventIntent(_Intent):
    kind: Literal["event"] = "event"
    event: CalendarData


class QueryIntent(_Intent):
    kind: Literal["query"] = "query"


class CompletionIntent(_Intent):
    kind: Literal["completion"] = "completion"


class EmailIntent(_Intent):
    kind: Literal["email"] = "email"
    email: EmailData | None = None


class ClarificationIntent(_Intent):
    kind: Literal["clarification"] = "clarification"


Intent = Union[TaskIntent, EventIntent, QueryIntent, CompletionIntent, EmailIntent, ClarificationIntent]


# ---------------------------------------------------------------------------
# System prompt for LLM
# ---------------------------------------------------------------------------

_SYSTEM_PROMPT = """\
You are "Supermom Time-Manager", an endlessly patient, supportive and efficient
assistant for overloaded mothers. Turn the user's speech (often chaotic or
half-finished) into structured data. Recognise REPETITIONS too!

TODAY: {today} ({weekday})

LOGIC:
1. RECURRENCE:
   - "every day" -> "daily"
   - "every Monday/Tuesday/..." -> "weekly"
   - "once a month" -> "monthly"
   - otherwise -> "none"
2. TIME: if a concrete time of day is mentioned ("at noon", "half past four"), it is an "event".
3. DAY ONLY: if only a day is mentioned without a time, it is a "task".

Return ONE JSON object with this schema:
{{
  "type": "task" | "event" | "query" | "completion" | "email" | "clarification",
  "textResponse": "string",
  "calendarData": {{"summary": "string", "start": "string", "end": "string", "recurrence": "daily"|"weekly"|"monthly"|"none"}},
  "taskData": {{"description": "string", "priority": "critical"|"high"|"medium"|"low", "dueDate": "string", "recurrence": "daily"|"weekly"|"monthly"|"none"}},
  "emailData": {{"subject": "string", "body": "string"}}
}}

- "type" and "textResponse" are always required.
- "calendarData" is required for "event" (summary and start at least).
- "taskData" is required for "task" (description and priority at least).
- "emailData" is used only for "email".
- DATE FORMAT: YYYY-MM-DD or YYYY-MM-DDTHH:mm:ss. Interpret relative dates relative to today.
- "textResponse" is a short, warm reply to the user. Use plenty of kind emojis! 🌸✨💕
- Return ONLY the JSON object. No markdown, no explanation, no extra text.
"""


def build_system_prompt(today: date | None = None) -> str:
    if today is None:
        today = date.today()
    return _SYSTEM_PROMPT.format(today=today.isoformat(), weekday=today.strftime("%A"))


# ---------------------------------------------------------------------------
# Response cleaning
# ---------------------------------------------------------------------------


def _clean_llm_response(raw_text: str) -> str:
    """Remove markdown code block delimiters from LLM's raw response."""
    cleaned_text = raw_text.strip()
    if cleaned_text.startswith("```json"):
        cleaned_text = cleaned_text.removeprefix("```json")
    elif cleaned_text.startswith("```"):
        cleaned_text = cleaned_text.removeprefix("```")
    if cleaned_text.endswith("```"):
        cleaned_text = cleaned_text.removesuffix("```")
    return cleaned_text.strip()


def _clarification(text: str, raw: dict[str, Any] | None = None) -> ClarificationIntent:
    return ClarificationIntent(text_response=text or APOLOGY_MESSAGE, raw=raw or {})


# ---------------------------------------------------------------------------
# Intent instantiation
# ---------------------------------------------------------------------------


def _instantiate_intent(data: dict[str, Any]) -> Intent:
    """Turn one decoded LLM response into its typed intent.

    Raises ValidationError if the envelope itself is malformed. A task/event
    without a usable payload falls back to a clarification that still shows
    the model's reply.
    """
    envelope = ClassifierResponse.model_validate(data)
    kind = envelope.type.strip().lower()
    text = envelope.text_response

    if kind == "task":
        if envelope.task_data is None:
            logger.warning("LLM said 'task' but sent no taskData")
            return _clarification(text, data)
        try:
            task = TaskData.model_validate(envelope.task_data)
        except ValidationError as exc:
            logger.warning("Invalid taskData from LLM: %s", exc)
            return _clarification(text, data)
        logger.info("Classified task: '%s' due %s", task.description, task.due_date)
        return TaskIntent(text_response=text, task=task, raw=data)

    if kind == "event":
        if envelope.calendar_data is None:
            logger.warning("LLM said 'event' but sent no calendarData")
            return _clarification(text, data)
        try:
            event = CalendarData.model_validate(envelope.calendar_data)
        except ValidationError as exc:
            logger.warning("Invalid calendarData from LLM: %s", exc)
            return _clarification(text, data)
        logger.info("Classified event: '%s' at %s", event.summary, event.start)
        return EventIntent(text_response=text, event=event, raw=data)

    if kind == "query":
        return QueryIntent(text_response=text, raw=data)
    if kind == "completion":
        return CompletionIntent(text_response=text, raw=data)
    if kind == "email":
        email = None
        if envelope.email_data is not None:
            try:
                email = EmailData.model_validate(envelope.email_data)
            except ValidationError as exc:
                logger.warning("Invalid emailData from LLM: %s", exc)
        return EmailIntent(text_response=text, email=email, raw=data)
    if kind == "clarification":
        return _clarification(text, data)

    logger.warning("LLM returned unknown intent type: '%s'", envelope.type)
    return _clarification(text, data)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


async def classify(user_text: str, context_hint: str | None = None) -> Intent:
    """Classify a user message into exactly one intent. Never raises."""
    if not is_configured():
        logger.warning("Classifier called without an LLM API key")
        return _clarification(MISSING_KEY_MESSAGE)

    prompt = f"CONTEXT: {context_hint}\n\nREQUEST: {user_text}" if context_hint else user_text
    raw_text = ""

    try:
        raw_text = await complete(
            system=build_system_prompt(),
            user_message=prompt,
            max_tokens=1024,
            json_mode=True,
        )
        raw_text = _clean_llm_response(raw_text)
        logger.debug("LLM raw response: %s", raw_text)

        data = json.loads(raw_text)
        if not isinstance(data, dict):
            logger.warning("LLM returned unexpected type: %s", type(data).__name__)
            return _clarification(APOLOGY_MESSAGE)
        return _instantiate_intent(data)

    except LLMNotConfiguredError:
        return _clarification(MISSING_KEY_MESSAGE)
    except json.JSONDecodeError as exc:
        logger.error("Failed to parse LLM response as JSON: %s — raw: '%s'", exc, raw_text)
        return _clarification(APOLOGY_MESSAGE)
    except ValidationError as exc:
        logger.error("LLM response does not match the schema: %s", exc)
        return _clarification(APOLOGY_MESSAGE)
    except Exception as exc:
        logger.error("Unexpected error in classify: %s", exc)
        return _clarification(APOLOGY_MESSAGE)
