"""
Supermom Assistant — Google client-id acquisition.

Linking a Google account needs an OAuth client id. Where it comes from is a
swappable strategy: either the user sends it to the bot (kept for a limited
time, then forgotten) or it is fixed by configuration.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Callable, Protocol

from supermom.data.models import ClientIdConfig

if TYPE_CHECKING:
    from supermom.data.db import LocalStore

logger = logging.getLogger(__name__)


class ClientIdLockedError(Exception):
    """Raised when trying to change a client id that is fixed by configuration."""


class ClientIdSource(Protocol):
    accepts_input: bool

    def get(self) -> str | None: ...

    def set(self, value: str) -> ClientIdConfig: ...


class StoredClientIdSource:
    """Client id typed in by the user, persisted with an expiry."""

    accepts_input = True

    def __init__(
        self,
        store: LocalStore,
        ttl: timedelta = timedelta(hours=24),
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._store = store
        self._ttl = ttl
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def get(self) -> str | None:
        config = self._store.load_client_id(now=self._clock())
        return config.value if config else None

    def expires_at(self) -> datetime | None:
        config = self._store.load_client_id(now=self._clock())
        return config.expires_at if config else None

    def set(self, value: str) -> ClientIdConfig:
        value = value.strip()
        if not value:
            self._store.clear_client_id()
            raise ValueError("Client id must not be empty")
        config = ClientIdConfig(value=value, expires_at=self._clock() + self._ttl)
        self._store.save_client_id(config)
        return config


class FixedClientIdSource:
    """Client id hard-wired through configuration."""

    accepts_input = False

    def __init__(self, value: str) -> None:
        self._value = value.strip()

    def get(self) -> str | None:
        return self._value or None

    def set(self, value: str) -> ClientIdConfig:
        raise ClientIdLockedError("The Google client id is fixed by configuration")


def create_client_id_source(store: LocalStore) -> ClientIdSource:
    """Return the client-id source matching GOOGLE_CLIENT_ID_MODE."""
    from supermom.config import settings

    mode = settings.GOOGLE_CLIENT_ID_MODE.lower()

    if mode == "prompt":
        return StoredClientIdSource(
            store, ttl=timedelta(hours=settings.GOOGLE_CLIENT_ID_TTL_HOURS),
        )

    if mode == "fixed":
        if not settings.GOOGLE_CLIENT_ID:
            logger.warning("GOOGLE_CLIENT_ID_MODE=fixed but GOOGLE_CLIENT_ID is empty")
        return FixedClientIdSource(settings.GOOGLE_CLIENT_ID)

    raise ValueError(f"Unknown GOOGLE_CLIENT_ID_MODE: {mode!r}")
