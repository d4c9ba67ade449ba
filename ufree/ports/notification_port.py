"""Notification port — abstract interface for in-app notifications.

Nudges and friend-request notices are written to the recipient's inbox;
core modules depend on this protocol, never on the backend.
"""

from __future__ import annotations

from typing import Protocol

from ufree.data.models import AppNotification


class NotificationError(Exception):
    """Raised when a notification cannot be read or sent."""


class NotificationPort(Protocol):
    """Abstract notification interface used by core modules."""

    async def list_notifications(self, limit: int = 50) -> list[AppNotification]: ...

    async def mark_as_read(self, notification: AppNotification) -> None: ...

    async def send_nudge(self, user_id: str) -> None: ...
