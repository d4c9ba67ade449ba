"""Availability port — abstract interface for schedule storage.

The Local Store, the Remote Store and the Composite Synchronizer all
satisfy this protocol, so they can be substituted for one another.
"""

from __future__ import annotations

from typing import Protocol

from ufree.data.models import DayAvailability, UserSchedule


class AvailabilityError(Exception):
    """Base class for availability failures."""


class StorageError(AvailabilityError):
    """Raised when the on-device store cannot read or write."""


class RemoteError(AvailabilityError):
    """Raised when the cloud store cannot be reached or rejects a request."""


class ValidationError(AvailabilityError):
    """Raised when a requested change is not allowed."""


class PastDateError(ValidationError):
    """Raised when trying to change the status of a day before today."""


class AvailabilityPort(Protocol):
    """Abstract schedule store used by core modules."""

    async def get_my_schedule(self) -> UserSchedule: ...

    async def update_my_schedule(self, day: DayAvailability) -> None: ...

    async def get_schedules(self, user_ids: list[str]) -> list[UserSchedule]: ...
