"""Status update policy — validates a status change before it is stored.

A day before today cannot be changed. Today itself is always allowed,
whatever the time of day.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import TYPE_CHECKING, Callable

from ufree.core.week import today
from ufree.ports.availability_port import PastDateError

if TYPE_CHECKING:
    from ufree.data.models import DayAvailability
    from ufree.ports.availability_port import AvailabilityPort

logger = logging.getLogger(__name__)


class UpdateMyStatus:
    """Use case: change the status of one of my days."""

    def __init__(
        self,
        repository: AvailabilityPort,
        clock: Callable[[], date] = today,
    ) -> None:
        self._repository = repository
        self._clock = clock

    async def execute(self, day: DayAvailability) -> None:
        start_of_today = self._clock()
        if day.date < start_of_today:
            logger.info("Rejected update for past date %s", day.date.isoformat())
            raise PastDateError(f"Cannot update past date {day.date.isoformat()}")

        await self._repository.update_my_schedule(day)
