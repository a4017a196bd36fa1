"""
Supermom Assistant — Local Store.

Durable key-value persistence: each collection group is one JSON blob in a
single SQLite table, rewritten wholesale on every change. The store is
forgiving on read — corrupted blobs come back as empty collections so the
assistant always starts in a usable state.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from dataclasses import asdict, replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, NamedTuple, TypeVar

from pydantic import TypeAdapter, ValidationError

from supermom.data.models import CalendarEvent, ClientIdConfig, GoogleAccount, Task

logger = logging.getLogger(__name__)

STATE_KEY = "state"
ACCOUNTS_KEY = "google_accounts"
CLIENT_ID_KEY = "client_id"

T = TypeVar("T")


class StoredState(NamedTuple):
    tasks: list[Task]
    events: list[CalendarEvent]
    accounts: list[GoogleAccount]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    """Naive instants in the store were written as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _parse_instant(value: str) -> datetime:
    return _as_utc(datetime.fromisoformat(value))


# ---------------------------------------------------------------------------
# Record (de)serialization
# ---------------------------------------------------------------------------

# Field types are checked on load: a record that decodes as JSON but carries
# the wrong types (e.g. an integer start) must not reach the rest of the app.
_task_schema = TypeAdapter(Task)
_event_schema = TypeAdapter(CalendarEvent)
_account_schema = TypeAdapter(GoogleAccount)


def _task_to_dict(task: Task) -> dict:
    data = asdict(task)
    data["created_at"] = task.created_at.isoformat()
    return data


def _task_from_dict(data: dict) -> Task:
    task = _task_schema.validate_python(data)
    return replace(task, created_at=_as_utc(task.created_at))


def _event_to_dict(event: CalendarEvent) -> dict:
    return asdict(event)


def _event_from_dict(data: dict) -> CalendarEvent:
    return _event_schema.validate_python(data)


def _account_to_dict(account: GoogleAccount) -> dict:
    data = asdict(account)
    data["expires_at"] = account.expires_at.isoformat()
    return data


def _account_from_dict(data: dict) -> GoogleAccount:
    account = _account_schema.validate_python(data)
    return replace(account, expires_at=_as_utc(account.expires_at))


def _decode_collection(
    name: str, raw: Any, factory: Callable[[dict], T],
) -> list[T]:
    """Rebuild one collection; anything malformed resets it to empty."""
    if raw is None:
        return []
    if not isinstance(raw, list):
        logger.warning("Stored %s is not a list (%s) — starting empty", name, type(raw).__name__)
        return []
    try:
        return [factory(item) for item in raw]
    except (ValidationError, TypeError, KeyError, ValueError) as exc:
        logger.warning("Stored %s is malformed (%s) — starting empty", name, exc)
        return []


class LocalStore:
    """SQLite-backed blob storage for tasks, events, accounts and the client id."""

    def __init__(self, db_path: str | None = None) -> None:
        if db_path is None:
            from supermom.config import settings
            db_path = settings.DATABASE_PATH

        self._db_path = db_path
        self._memory_conn: sqlite3.Connection | None = None
        if db_path != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)

        try:
            self._init_db()
        except sqlite3.DatabaseError as exc:
            self._set_aside_corrupt_file(exc)
            self._init_db()

    def _connect(self) -> sqlite3.Connection:
        if self._db_path == ":memory:":
            # every connect() would open a fresh empty database
            if self._memory_conn is None:
                self._memory_conn = sqlite3.connect(self._db_path)
                self._memory_conn.row_factory = sqlite3.Row
            return self._memory_conn
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def _set_aside_corrupt_file(self, exc: sqlite3.DatabaseError) -> None:
        """Rename an unreadable database file so a fresh one can be created."""
        if self._db_path == ":memory:":
            raise exc
        path = Path(self._db_path)
        backup = path.with_name(f"{path.name}.corrupt-{_utc_now().strftime('%Y%m%d%H%M%S')}")
        path.replace(backup)
        logger.warning("Database %s is unreadable (%s), moved to %s; starting empty", path, exc, backup)

    def _init_db(self) -> None:
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS kv (
                    key        TEXT PRIMARY KEY,
                    value      TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """)
        logger.debug("Key-value store initialized at %s", self._db_path)

    # -- raw blob access ----------------------------------------------------

    def _read(self, key: str) -> Any:
        """Return the decoded blob for `key`, or None if missing/corrupt."""
        try:
            with self._connect() as conn:
                row = conn.execute("SELECT value FROM kv WHERE key = ?", (key,)).fetchone()
        except sqlite3.DatabaseError as exc:
            logger.warning("Cannot read '%s' from %s (%s), treating it as empty", key, self._db_path, exc)
            return None
        if row is None:
            return None
        try:
            return json.loads(row["value"])
        except json.JSONDecodeError as exc:
            logger.warning("Stored blob '%s' is not valid JSON (%s) — ignoring it", key, exc)
            return None

    def _write(self, key: str, value: Any) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO kv (key, value, updated_at) VALUES (?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET
                    value = excluded.value,
                    updated_at = excluded.updated_at
                """,
                (key, json.dumps(value, ensure_ascii=False), _utc_now().isoformat()),
            )

    def _delete(self, key: str) -> None:
        with self._connect() as conn:
            conn.execute("DELETE FROM kv WHERE key = ?", (key,))

    # -- tasks & events -----------------------------------------------------

    def load(self, now: datetime | None = None) -> StoredState:
        """Load tasks, events and the non-expired account roster."""
        if now is None:
            now = _utc_now()

        state = self._read(STATE_KEY)
        if not isinstance(state, dict):
            if state is not None:
                logger.warning("Stored state is not an object — starting empty")
            state = {}

        tasks = _decode_collection("tasks", state.get("tasks"), _task_from_dict)
        events = _decode_collection("events", state.get("events"), _event_from_dict)
        accounts = _decode_collection("accounts", self._read(ACCOUNTS_KEY), _account_from_dict)

        active = [acc for acc in accounts if acc.expires_at > now]
        if len(active) != len(accounts):
            logger.debug("Dropped %d expired Google account(s)", len(accounts) - len(active))

        logger.info(
            "Loaded %d task(s), %d event(s), %d account(s)",
            len(tasks), len(events), len(active),
        )
        return StoredState(tasks=tasks, events=events, accounts=active)

    def save(self, tasks: list[Task], events: list[CalendarEvent]) -> None:
        """Overwrite the tasks/events blob."""
        self._write(STATE_KEY, {
            "tasks": [_task_to_dict(t) for t in tasks],
            "events": [_event_to_dict(e) for e in events],
        })
        logger.debug("Saved %d task(s), %d event(s)", len(tasks), len(events))

    def save_accounts(self, accounts: list[GoogleAccount]) -> None:
        """Overwrite the account roster blob."""
        self._write(ACCOUNTS_KEY, [_account_to_dict(a) for a in accounts])
        logger.debug("Saved %d Google account(s)", len(accounts))

    # -- client id ----------------------------------------------------------

    def load_client_id(self, now: datetime | None = None) -> ClientIdConfig | None:
        """Return the stored client id, deleting it if it has expired."""
        if now is None:
            now = _utc_now()

        raw = self._read(CLIENT_ID_KEY)
        if raw is None:
            return None
        try:
            config = ClientIdConfig(
                value=raw["value"],
                expires_at=_parse_instant(raw["expires_at"]),
            )
        except (TypeError, KeyError, ValueError) as exc:
            logger.warning("Stored client id is malformed (%s) — dropping it", exc)
            self._delete(CLIENT_ID_KEY)
            return None

        if config.expires_at <= now:
            logger.info("Stored Google client id expired at %s — dropping it", config.expires_at)
            self._delete(CLIENT_ID_KEY)
            return None
        return config

    def save_client_id(self, config: ClientIdConfig) -> None:
        self._write(CLIENT_ID_KEY, {
            "value": config.value,
            "expires_at": config.expires_at.isoformat(),
        })
        logger.info("Google client id saved, valid until %s", config.expires_at)

    def clear_client_id(self) -> None:
        self._delete(CLIENT_ID_KEY)
