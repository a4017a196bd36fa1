"""Calendar port — abstract interface for the export target.

The export pipeline depends on this protocol, never on a specific provider.
"""

from __future__ import annotations

from typing import Protocol


class CalendarError(Exception):
    """Raised when any calendar provider operation fails."""


class CalendarPort(Protocol):
    """Abstract calendar interface used by the export pipeline."""

    async def create_event(self, body: dict) -> dict: ...
