"""
UFree — Data Models.

A user's week is seven DayAvailability records, one per calendar day.
The owner's records live in SQLite and in Firestore; friends' records
are only ever read from Firestore.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum, IntEnum


class AvailabilityStatus(IntEnum):
    """Closed set of day statuses.

    The integer values are the storage encoding, both in the local
    `days.status` column and in the remote `status` field.
    """

    BUSY = 0
    FREE = 1
    MORNING_ONLY = 2
    AFTERNOON_ONLY = 3
    EVENING_ONLY = 4
    UNKNOWN = 5

    @classmethod
    def from_value(cls, value: int | str | None) -> AvailabilityStatus:
        """Decode a stored integer; anything unrecognised is UNKNOWN."""
        try:
            return cls(int(value))
        except (TypeError, ValueError):
            return cls.UNKNOWN

    @property
    def display_name(self) -> str:
        return _DISPLAY_NAMES[self]

    def next(self) -> AvailabilityStatus:
        """Next status in the UI cycle (UNKNOWN enters the cycle at BUSY)."""
        return _CYCLE[self]


_DISPLAY_NAMES = {
    AvailabilityStatus.BUSY: "Busy",
    AvailabilityStatus.FREE: "Free",
    AvailabilityStatus.MORNING_ONLY: "Morning",
    AvailabilityStatus.AFTERNOON_ONLY: "Afternoon",
    AvailabilityStatus.EVENING_ONLY: "Evening",
    AvailabilityStatus.UNKNOWN: "No Status",
}

_CYCLE = {
    AvailabilityStatus.BUSY: AvailabilityStatus.FREE,
    AvailabilityStatus.FREE: AvailabilityStatus.MORNING_ONLY,
    AvailabilityStatus.MORNING_ONLY: AvailabilityStatus.AFTERNOON_ONLY,
    AvailabilityStatus.AFTERNOON_ONLY: AvailabilityStatus.EVENING_ONLY,
    AvailabilityStatus.EVENING_ONLY: AvailabilityStatus.BUSY,
    AvailabilityStatus.UNKNOWN: AvailabilityStatus.BUSY,
}


@dataclass
class DayAvailability:
    """One calendar day's status for one user.

    `date` is a plain calendar date; a datetime passed in is truncated to
    its date so that lookups are always same-day matches.
    """

    date: date
    status: AvailabilityStatus = AvailabilityStatus.UNKNOWN
    note: str | None = None
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def __post_init__(self) -> None:
        if isinstance(self.date, datetime):
            self.date = self.date.date()
        self.status = AvailabilityStatus(self.status)


@dataclass
class UserSchedule:
    """One user's week: normally exactly seven gapless days."""

    id: str
    name: str
    weekly_status: list[DayAvailability] = field(default_factory=list)
    avatar_url: str | None = None

    def status_for(self, target: date | datetime) -> DayAvailability | None:
        """Find the entry for a calendar day, ignoring time of day."""
        if isinstance(target, datetime):
            target = target.date()
        for day in self.weekly_status:
            if day.date == target:
                return day
        return None


@dataclass
class UserProfile:
    """A user's public profile, used for friend discovery."""

    id: str
    display_name: str
    phone_number: str | None = None
    hashed_phone_number: str | None = None
    friend_ids: list[str] = field(default_factory=list)


class RequestStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    DECLINED = "declined"


@dataclass
class FriendRequest:
    """A pending (or answered) friend request between two users."""

    from_id: str
    from_name: str
    to_id: str
    status: RequestStatus = RequestStatus.PENDING
    timestamp: datetime = field(default_factory=datetime.now)
    id: str | None = None


class NotificationType(str, Enum):
    FRIEND_REQUEST = "friendRequest"
    NUDGE = "nudge"


@dataclass
class AppNotification:
    """An in-app notification stored under the recipient's profile."""

    recipient_id: str
    sender_id: str
    sender_name: str
    type: NotificationType
    date: datetime = field(default_factory=datetime.now)
    is_read: bool = False
    id: str | None = None
