"""
UFree — Friends' schedules and nudges.

Pairs friend profiles with their remote schedules, finds who is free on a
given day, and nudges them all at once. Provider-agnostic: depends only on
the availability, friend and notification ports.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import date
from typing import TYPE_CHECKING

from ufree.data.models import AvailabilityStatus, UserProfile, UserSchedule

if TYPE_CHECKING:
    from ufree.ports.availability_port import AvailabilityPort
    from ufree.ports.notification_port import NotificationPort

logger = logging.getLogger(__name__)


class NudgeError(Exception):
    """Raised when every nudge in a batch failed."""


@dataclass
class FriendScheduleDisplay:
    """A friend's profile combined with their week."""

    id: str
    display_name: str
    schedule: UserSchedule

    def status_for(self, day: date) -> AvailabilityStatus:
        entry = self.schedule.status_for(day)
        return entry.status if entry else AvailabilityStatus.UNKNOWN


@dataclass
class NudgeResult:
    sent: int
    attempted: int

    def message(self) -> str:
        if self.attempted == 0:
            return "No friends are free on that day."
        word = "friend" if self.attempted == 1 else "friends"
        if self.sent == self.attempted:
            return f"All {self.attempted} {word} nudged!"
        return f"Nudged {self.sent} of {self.attempted} {word}."


async def load_friend_schedules(
    friends: list[UserProfile],
    availability: AvailabilityPort,
) -> list[FriendScheduleDisplay]:
    """Fetch friends' schedules (remote) and pair them with their profiles.

    Friends without a schedule are left out. Errors propagate.
    """
    if not friends:
        return []

    schedules = await availability.get_schedules([f.id for f in friends])
    by_id = {s.id: s for s in schedules}

    displays = [
        FriendScheduleDisplay(id=f.id, display_name=f.display_name, schedule=by_id[f.id])
        for f in friends
        if f.id in by_id
    ]
    if not displays:
        logger.warning("No schedules found for %d friend(s)", len(friends))
    return displays


def free_friends_on(displays: list[FriendScheduleDisplay], day: date) -> list[FriendScheduleDisplay]:
    """Friends whose status on `day` is FREE (partial-day statuses don't count)."""
    return [d for d in displays if d.status_for(day) == AvailabilityStatus.FREE]


async def nudge_all_free(
    displays: list[FriendScheduleDisplay],
    day: date,
    notifications: NotificationPort,
) -> NudgeResult:
    """Nudge every friend who is free on `day`, concurrently.

    Raises NudgeError if there was someone to nudge and every nudge failed.
    """
    targets = free_friends_on(displays, day)
    if not targets:
        return NudgeResult(sent=0, attempted=0)

    outcomes = await asyncio.gather(
        *(notifications.send_nudge(t.id) for t in targets),
        return_exceptions=True,
    )
    sent = 0
    for target, outcome in zip(targets, outcomes):
        if isinstance(outcome, Exception):
            logger.warning("Nudge to %s failed: %s", target.id, outcome)
        else:
            sent += 1

    if sent == 0:
        raise NudgeError(f"Failed to nudge {len(targets)} free friend(s)")

    logger.info("Nudged %d of %d free friend(s) for %s", sent, len(targets), day.isoformat())
    return NudgeResult(sent=sent, attempted=len(targets))


class Nudger:
    """Runs batch nudges, ignoring a second request while one is in flight."""

    def __init__(self, notifications: NotificationPort) -> None:
        self._notifications = notifications
        self.is_nudging = False

    async def nudge_all_free(
        self, displays: list[FriendScheduleDisplay], day: date,
    ) -> NudgeResult | None:
        if self.is_nudging:
            logger.info("Batch nudge already in progress, ignoring")
            return None
        self.is_nudging = True
        try:
            return await nudge_all_free(displays, day, self._notifications)
        finally:
            self.is_nudging = False
