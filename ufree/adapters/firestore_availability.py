"""Firestore availability adapter — the Remote Store.

Implements AvailabilityPort on top of Cloud Firestore. Each day is one
document at users/{userId}/availability/{YYYY-MM-DD}; the date key makes
"days from today on" a simple range query.

Reads always come back as a full 7-day window starting today: days the
backend does not have are filled with UNKNOWN here, so callers never see
gaps.
"""

from __future__ import annotations

import asyncio
import logging

from ufree.core.week import WEEK_LENGTH, date_key, fill_week, parse_date_key, today
from ufree.data.models import AvailabilityStatus, DayAvailability, UserSchedule
from ufree.integrations.firestore import (
    FirestoreClient,
    FirestoreError,
    decode_fields,
    document_id,
    field_filter,
    structured_query,
)
from ufree.ports.availability_port import RemoteError

logger = logging.getLogger(__name__)


def chunked(items: list, size: int) -> list[list]:
    """Split `items` into consecutive lists of at most `size`."""
    return [items[i:i + size] for i in range(0, len(items), size)]


def day_to_fields(day: DayAvailability) -> dict:
    """Domain day → Firestore document fields (updatedAt is set by the server)."""
    return {
        "id": day.id,
        "dateString": date_key(day.date),
        "status": int(day.status),
        "note": day.note,
    }


def document_to_day(document: dict) -> DayAvailability | None:
    """Firestore document → domain day. None if the date is unreadable."""
    fields = decode_fields(document.get("fields", {}))
    raw_date = fields.get("dateString") or document_id(document)
    try:
        day_date = parse_date_key(raw_date)
    except (TypeError, ValueError):
        logger.warning("Skipping availability document with bad date: %r", raw_date)
        return None

    day = DayAvailability(
        date=day_date,
        status=AvailabilityStatus.from_value(fields.get("status")),
        note=fields.get("note"),
    )
    if fields.get("id"):
        day.id = fields["id"]
    return day


class FirestoreAvailabilityAdapter:
    """Cloud Firestore implementation of AvailabilityPort."""

    def __init__(
        self,
        client: FirestoreClient,
        user_id: str,
        display_name: str = "Me",
        batch_size: int = 10,
    ) -> None:
        self._client = client
        self._user_id = user_id
        self._display_name = display_name
        self._batch_size = batch_size

    @staticmethod
    def _day_path(user_id: str, day: DayAvailability) -> str:
        return f"users/{user_id}/availability/{date_key(day.date)}"

    async def _fetch_week(self, user_id: str) -> list[DayAvailability]:
        start = today()
        query = structured_query(
            "availability",
            where=field_filter("dateString", "GREATER_THAN_OR_EQUAL", date_key(start)),
            order_by="dateString",
            limit=WEEK_LENGTH,
        )
        documents = await self._client.run_query(query, parent=f"users/{user_id}")
        days = [d for d in (document_to_day(doc) for doc in documents) if d is not None]
        return fill_week(days, start)

    async def get_my_schedule(self) -> UserSchedule:
        try:
            days = await self._fetch_week(self._user_id)
        except FirestoreError as exc:
            raise RemoteError(f"Failed to fetch remote schedule: {exc}") from exc
        return UserSchedule(id=self._user_id, name=self._display_name, weekly_status=days)

    async def update_my_schedule(self, day: DayAvailability) -> None:
        """Merge-write one day; server-managed fields are left alone."""
        try:
            await self._client.merge(
                self._day_path(self._user_id, day),
                day_to_fields(day),
                server_timestamps=["updatedAt"],
            )
        except FirestoreError as exc:
            raise RemoteError(f"Failed to save {day.date} remotely: {exc}") from exc
        logger.info(
            "Remote update: %s is now %s", day.date.isoformat(), day.status.display_name,
        )

    async def _fetch_batch(self, user_ids: list[str]) -> list[UserSchedule]:
        """Profiles for one batch (a single IN query), then each user's week."""
        query = structured_query(
            "users",
            where=field_filter(
                "__name__", "IN", [self._client.reference(f"users/{uid}") for uid in user_ids],
            ),
        )
        profiles = await self._client.run_query(query)
        found = {document_id(doc): decode_fields(doc.get("fields", {})) for doc in profiles}

        missing = [uid for uid in user_ids if uid not in found]
        if missing:
            logger.info("No profile documents for %d user(s): %s", len(missing), missing)

        uids = [uid for uid in user_ids if uid in found]
        weeks = await asyncio.gather(*(self._fetch_week(uid) for uid in uids))
        return [
            UserSchedule(
                id=uid,
                name=found[uid].get("displayName", ""),
                avatar_url=found[uid].get("avatarURL"),
                weekly_status=week,
            )
            for uid, week in zip(uids, weeks)
        ]

    async def get_schedules(self, user_ids: list[str]) -> list[UserSchedule]:
        """Fetch several users' weeks, batched to the backend's IN limit.

        Batches run concurrently; all results are collected before returning.
        """
        unique_ids = list(dict.fromkeys(user_ids))
        if not unique_ids:
            return []

        batches = chunked(unique_ids, self._batch_size)
        try:
            results = await asyncio.gather(*(self._fetch_batch(b) for b in batches))
        except FirestoreError as exc:
            raise RemoteError(f"Failed to fetch friends' schedules: {exc}") from exc

        schedules = [schedule for batch in results for schedule in batch]
        logger.info(
            "Fetched %d schedule(s) for %d id(s) in %d batch(es)",
            len(schedules), len(unique_ids), len(batches),
        )
        return schedules
