"""Tests for ufree.adapters.firestore_availability — the Remote Store.

The Firestore client is mocked; no network.
"""

from datetime import timedelta
import json
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from ufree.adapters.firestore_availability import (
    FirestoreAvailabilityAdapter,
    chunked,
    day_to_fields,
    document_to_day,
)
from ufree.core.week import date_key, today
from ufree.data.models import AvailabilityStatus, DayAvailability
from ufree.integrations.firestore import FirestoreClient, FirestoreError, encode_fields
from ufree.ports.availability_port import RemoteError


def _day_doc(uid, day, status, note=None):
    key = date_key(day)
    return {
        "name": f"projects/p/databases/(default)/documents/users/{uid}/availability/{key}",
        "fields": encode_fields({"id": f"{uid}-{key}", "dateString": key, "status": status, "note": note}),
    }


def _user_doc(uid, name):
    return {
        "name": f"projects/p/databases/(default)/documents/users/{uid}",
        "fields": encode_fields({"displayName": name}),
    }


def _make_client(run_query=None):
    """Real names/references, mocked I/O."""
    client = FirestoreClient("p")
    client.run_query = run_query or AsyncMock(return_value=[])
    client.merge = AsyncMock(return_value={})
    return client


def _requested_ids(query):
    values = query["where"]["fieldFilter"]["value"]["arrayValue"]["values"]
    return [v["referenceValue"].rsplit("/", 1)[-1] for v in values]


class TestHelpers:
    def test_chunked(self):
        assert chunked(list(range(25)), 10) == [
            list(range(10)), list(range(10, 20)), list(range(20, 25)),
        ]
        assert chunked([], 10) == []

    def test_day_to_fields(self):
        day = DayAvailability(id="d1", date=today(), status=AvailabilityStatus.EVENING_ONLY, note="n")
        fields = day_to_fields(day)
        assert fields == {"id": "d1", "dateString": date_key(today()), "status": 4, "note": "n"}

    def test_document_to_day_bad_date(self):
        doc = {"name": "x/availability/garbage", "fields": encode_fields({"status": 1})}
        assert document_to_day(doc) is None

    def test_document_to_day_unknown_status(self):
        doc = _day_doc("u", today(), 77)
        assert document_to_day(doc).status == AvailabilityStatus.UNKNOWN


class TestGetMySchedule:
    @pytest.mark.asyncio
    async def test_fills_week_from_today(self):
        start = today()
        docs = [_day_doc("me", start + timedelta(days=2), 1, "free!")]
        client = _make_client(AsyncMock(return_value=docs))
        adapter = FirestoreAvailabilityAdapter(client, "me")

        schedule = await adapter.get_my_schedule()

        assert len(schedule.weekly_status) == 7
        assert schedule.weekly_status[0].date == start
        assert schedule.weekly_status[2].status == AvailabilityStatus.FREE
        assert schedule.weekly_status[2].note == "free!"
        assert schedule.weekly_status[0].status == AvailabilityStatus.UNKNOWN

        query = client.run_query.call_args.args[0]
        assert query["where"]["fieldFilter"]["op"] == "GREATER_THAN_OR_EQUAL"
        assert query["limit"] == 7
        assert client.run_query.call_args.kwargs["parent"] == "users/me"

    @pytest.mark.asyncio
    async def test_error_becomes_remote_error(self):
        client = _make_client(AsyncMock(side_effect=FirestoreError("boom", 500)))
        with pytest.raises(RemoteError):
            await FirestoreAvailabilityAdapter(client, "me").get_my_schedule()


class TestUpdateMySchedule:
    @pytest.mark.asyncio
    async def test_merge_writes_date_keyed_doc(self):
        client = _make_client()
        day = DayAvailability(date=today(), status=AvailabilityStatus.FREE)
        await FirestoreAvailabilityAdapter(client, "me").update_my_schedule(day)

        path, data = client.merge.call_args.args
        assert path == f"users/me/availability/{date_key(today())}"
        assert data["status"] == 1
        assert client.merge.call_args.kwargs["server_timestamps"] == ["updatedAt"]

    @pytest.mark.asyncio
    async def test_error_becomes_remote_error(self):
        client = _make_client()
        client.merge.side_effect = FirestoreError("denied", 403)
        with pytest.raises(RemoteError):
            await FirestoreAvailabilityAdapter(client, "me").update_my_schedule(
                DayAvailability(date=today())
            )


class TestGetSchedules:
    @pytest.mark.asyncio
    async def test_empty_ids_no_query(self):
        client = _make_client()
        assert await FirestoreAvailabilityAdapter(client, "me").get_schedules([]) == []
        client.run_query.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_25_ids_in_batches_of_10(self):
        ids = [f"u{i}" for i in range(25)]

        async def run_query(query, parent=""):
            if parent:  # a user's availability subcollection
                uid = parent.split("/")[1]
                return [_day_doc(uid, today(), 1)]
            return [_user_doc(uid, uid.upper()) for uid in _requested_ids(query)]

        client = _make_client(AsyncMock(side_effect=run_query))
        adapter = FirestoreAvailabilityAdapter(client, "me", batch_size=10)

        schedules = await adapter.get_schedules(ids)

        assert sorted(s.id for s in schedules) == sorted(ids)
        assert all(len(s.weekly_status) == 7 for s in schedules)
        assert all(s.weekly_status[0].status == AvailabilityStatus.FREE for s in schedules)

        user_queries = [c.args[0] for c in client.run_query.call_args_list if not c.kwargs.get("parent")]
        assert sorted(len(_requested_ids(q)) for q in user_queries) == [5, 10, 10]

    @pytest.mark.asyncio
    async def test_duplicates_and_missing_profiles(self):
        async def run_query(query, parent=""):
            if parent:
                return []
            return [_user_doc(uid, "Known") for uid in _requested_ids(query) if uid != "ghost"]

        client = _make_client(AsyncMock(side_effect=run_query))
        schedules = await FirestoreAvailabilityAdapter(client, "me").get_schedules(
            ["a", "a", "ghost"]
        )
        assert [s.id for s in schedules] == ["a"]
        assert schedules[0].name == "Known"
        assert all(d.status == AvailabilityStatus.UNKNOWN for d in schedules[0].weekly_status)

    @pytest.mark.asyncio
    async def test_error_becomes_remote_error(self):
        client = _make_client(AsyncMock(side_effect=FirestoreError("offline")))
        with pytest.raises(RemoteError):
            await FirestoreAvailabilityAdapter(client, "me").get_schedules(["a"])

    @pytest.mark.asyncio
    async def test_html_response_becomes_remote_error(self):
        body = "<html>captive portal</html>"
        resp = MagicMock()
        resp.status_code = 200
        resp.text = body
        resp.json.side_effect = json.JSONDecodeError("Expecting value", body, 0)
        http = MagicMock()
        http.return_value.__aenter__ = AsyncMock(
            return_value=MagicMock(request=AsyncMock(return_value=resp)),
        )
        http.return_value.__aexit__ = AsyncMock(return_value=False)

        adapter = FirestoreAvailabilityAdapter(FirestoreClient("p"), "me")
        with patch("ufree.integrations.firestore.httpx.AsyncClient", http):
            with pytest.raises(RemoteError):
                await adapter.get_schedules(["f1"])
