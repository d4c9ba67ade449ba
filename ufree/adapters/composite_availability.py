"""Composite availability adapter — offline-first synchronization.

Orchestrates a local and a remote AvailabilityPort:

- update_my_schedule: write local (awaited, this is the result), then
  write remote in a detached background task.
- get_my_schedule: read local (awaited, returned as-is), then refresh
  local from remote in a detached background task. Dates written
  locally after the refresh began, or still being pushed, are skipped.
- get_schedules: friends' data is remote-only, errors propagate.

The caller never waits on the network for its own schedule. A failed
background sync is logged and dropped: nothing is queued and there is
no retry, so a local change stands until the next successful write.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import date
from typing import TYPE_CHECKING, Coroutine

from ufree.data.models import AvailabilityStatus, DayAvailability, UserSchedule

if TYPE_CHECKING:
    from ufree.ports.availability_port import AvailabilityPort

logger = logging.getLogger(__name__)


class CompositeAvailabilityAdapter:
    """Local-first implementation of AvailabilityPort."""

    def __init__(self, local: AvailabilityPort, remote: AvailabilityPort) -> None:
        self._local = local
        self._remote = remote
        # Detached tasks are referenced here until they finish, otherwise
        # the event loop may garbage-collect them mid-flight.
        self._background: set[asyncio.Task] = set()
        # Sequence number of the latest local write per date, and dates whose
        # push is still in flight. A refresh never overwrites either.
        self._write_seq = 0
        self._written_at: dict[date, int] = {}
        self._pushing: dict[date, int] = {}

    def _spawn(self, coro: Coroutine, name: str) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro, name=name)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    @property
    def pending_syncs(self) -> int:
        """Number of background sync tasks still running."""
        return len(self._background)

    async def drain(self) -> None:
        """Wait for all in-flight background syncs (shutdown and tests)."""
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    # -- write-through ------------------------------------------------------

    async def update_my_schedule(self, day: DayAvailability) -> None:
        await self._local.update_my_schedule(day)
        self._write_seq += 1
        self._written_at[day.date] = self._write_seq
        self._pushing[day.date] = self._pushing.get(day.date, 0) + 1
        self._spawn(self._push_remote(day), name=f"remote-sync-{day.date.isoformat()}")

    async def _push_remote(self, day: DayAvailability) -> None:
        try:
            await self._remote.update_my_schedule(day)
            logger.info("Remote sync successful for %s", day.date.isoformat())
        except Exception as exc:
            logger.warning("Remote sync failed for %s: %s", day.date.isoformat(), exc)
        finally:
            remaining = self._pushing[day.date] - 1
            if remaining:
                self._pushing[day.date] = remaining
            else:
                del self._pushing[day.date]

    # -- read-back ----------------------------------------------------------

    async def get_my_schedule(self) -> UserSchedule:
        schedule = await self._local.get_my_schedule()
        self._spawn(self._refresh_local(self._write_seq), name="remote-refresh")
        return schedule

    def _is_newer_locally(self, day: DayAvailability, started_at: int) -> bool:
        """True if a local write to this date is newer than what remote returned."""
        return day.date in self._pushing or self._written_at.get(day.date, 0) > started_at

    async def _refresh_local(self, started_at: int) -> None:
        try:
            remote_schedule = await self._remote.get_my_schedule()
            # UNKNOWN days are gap fillers; never let them overwrite local data
            refreshed = 0
            for day in remote_schedule.weekly_status:
                if day.status == AvailabilityStatus.UNKNOWN:
                    continue
                if self._is_newer_locally(day, started_at):
                    logger.debug("Keeping local %s over remote refresh", day.date.isoformat())
                    continue
                await self._local.update_my_schedule(day)
                refreshed += 1
            logger.info("Local storage refreshed from cloud (%d day(s))", refreshed)
        except Exception as exc:
            logger.warning("Could not refresh from remote: %s", exc)

    # -- friends (remote-first) ---------------------------------------------

    async def get_schedules(self, user_ids: list[str]) -> list[UserSchedule]:
        return await self._remote.get_schedules(user_ids)
