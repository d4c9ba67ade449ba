"""
UFree — Local availability store.

The owner's week persists in SQLite on this device so it can be read and
edited offline. One row per calendar day; rows are overwritten, never
deleted.
"""

from __future__ import annotations

import asyncio
import logging
import sqlite3
from datetime import date, datetime
from pathlib import Path

from ufree.core.week import date_key, generate_week, parse_date_key, today
from ufree.data.models import AvailabilityStatus, DayAvailability, UserSchedule
from ufree.ports.availability_port import StorageError

logger = logging.getLogger(__name__)


class AvailabilityDB:
    """SQLite-backed Local Store. Implements AvailabilityPort.

    Blocking SQLite calls run in a worker thread; writes are serialized by
    an asyncio.Lock so a single writer touches the file at a time.
    """

    def __init__(
        self,
        db_path: str | None = None,
        user_id: str = "local_user",
        display_name: str = "Me",
    ) -> None:
        if db_path is None:
            from ufree.config import settings
            db_path = settings.DATABASE_PATH

        self._db_path = db_path
        self._user_id = user_id
        self._display_name = display_name
        self._write_lock = asyncio.Lock()
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_db(self) -> None:
        """Create the days table if it doesn't exist."""
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS days (
                    id          TEXT PRIMARY KEY,
                    date        TEXT NOT NULL UNIQUE,
                    status      INTEGER NOT NULL DEFAULT 5,
                    note        TEXT,
                    updated_at  TEXT NOT NULL
                )
            """)
        logger.debug("Days table initialized at %s", self._db_path)

    @staticmethod
    def _row_to_day(row: sqlite3.Row) -> DayAvailability:
        return DayAvailability(
            id=row["id"],
            date=parse_date_key(row["date"]),
            status=AvailabilityStatus.from_value(row["status"]),
            note=row["note"],
        )

    # -- sync helpers (run in a worker thread) ------------------------------

    def _fetch_days(self) -> list[DayAvailability]:
        with self._connect() as conn:
            rows = conn.execute("SELECT * FROM days ORDER BY date").fetchall()
        return [self._row_to_day(r) for r in rows]

    def _upsert_day(self, day: DayAvailability) -> bool:
        """Insert or overwrite the row for day.date. Returns True if inserted."""
        key = date_key(day.date)
        now = datetime.now().isoformat()
        with self._connect() as conn:
            existing = conn.execute(
                "SELECT 1 FROM days WHERE date = ?", (key,),
            ).fetchone()
            conn.execute(
                """
                INSERT INTO days (id, date, status, note, updated_at)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(date) DO UPDATE SET
                    id = excluded.id,
                    status = excluded.status,
                    note = excluded.note,
                    updated_at = excluded.updated_at
                """,
                (day.id, key, int(day.status), day.note, now),
            )
        return existing is None

    def _count(self) -> int:
        with self._connect() as conn:
            return conn.execute("SELECT COUNT(*) FROM days").fetchone()[0]

    # -- AvailabilityPort ---------------------------------------------------

    async def get_my_schedule(self) -> UserSchedule:
        """Return every persisted day sorted by date.

        An empty store yields a generated week of UNKNOWN days starting
        today; the generated days are not written.
        """
        try:
            days = await asyncio.to_thread(self._fetch_days)
        except sqlite3.Error as exc:
            logger.error("Local read failed: %s", exc)
            raise StorageError(f"Failed to read local schedule: {exc}") from exc

        if not days:
            days = generate_week(today())

        return UserSchedule(
            id=self._user_id,
            name=self._display_name,
            weekly_status=days,
        )

    async def update_my_schedule(self, day: DayAvailability) -> None:
        """Upsert a day by calendar date, keeping one row per date."""
        async with self._write_lock:
            try:
                inserted = await asyncio.to_thread(self._upsert_day, day)
            except sqlite3.Error as exc:
                logger.error("Local write failed for %s: %s", day.date, exc)
                raise StorageError(f"Failed to save {day.date}: {exc}") from exc

        logger.info(
            "Local %s: %s is now %s",
            "insert" if inserted else "update",
            day.date.isoformat(),
            day.status.display_name,
        )

    async def get_schedules(self, user_ids: list[str]) -> list[UserSchedule]:
        """Friends' schedules are never stored on this device."""
        return []

    async def count(self) -> int:
        """Number of persisted days."""
        return await asyncio.to_thread(self._count)

    async def get_day(self, target: date) -> DayAvailability | None:
        schedule = await self.get_my_schedule()
        return schedule.status_for(target)
