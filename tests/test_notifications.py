"""Tests for ufree.adapters.firestore_notifications."""

from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest

from ufree.adapters.firestore_notifications import FirestoreNotificationAdapter
from ufree.data.models import AppNotification, NotificationType
from ufree.integrations.firestore import FirestoreClient, FirestoreError, encode_fields
from ufree.ports.notification_port import NotificationError


def _note_doc(nid, note_type="nudge", is_read=False):
    return {
        "name": f"projects/p/databases/(default)/documents/users/me/notifications/{nid}",
        "fields": encode_fields({
            "recipientId": "me",
            "senderId": "f1",
            "senderName": "Dana",
            "type": note_type,
            "date": datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc),
            "isRead": is_read,
        }),
    }


def _make_adapter():
    client = FirestoreClient("p")
    client.run_query = AsyncMock(return_value=[])
    client.create_document = AsyncMock(return_value={})
    client.merge = AsyncMock(return_value={})
    return FirestoreNotificationAdapter(client, "me", display_name="Me"), client


class TestListNotifications:
    @pytest.mark.asyncio
    async def test_newest_first_under_my_profile(self):
        adapter, client = _make_adapter()
        client.run_query.return_value = [_note_doc("n1"), _note_doc("n2", "friendRequest")]

        notes = await adapter.list_notifications(limit=5)

        assert [n.id for n in notes] == ["n1", "n2"]
        assert notes[1].type == NotificationType.FRIEND_REQUEST
        query = client.run_query.call_args.args[0]
        assert query["orderBy"][0]["direction"] == "DESCENDING"
        assert query["limit"] == 5
        assert client.run_query.call_args.kwargs["parent"] == "users/me"

    @pytest.mark.asyncio
    async def test_unknown_type_skipped(self):
        adapter, client = _make_adapter()
        client.run_query.return_value = [_note_doc("n1", "birthday")]
        assert await adapter.list_notifications() == []

    @pytest.mark.asyncio
    async def test_error(self):
        adapter, client = _make_adapter()
        client.run_query.side_effect = FirestoreError("x")
        with pytest.raises(NotificationError):
            await adapter.list_notifications()


class TestMarkAsRead:
    @pytest.mark.asyncio
    async def test_marks_document(self):
        adapter, client = _make_adapter()
        note = AppNotification(
            id="n1", recipient_id="me", sender_id="f1", sender_name="Dana",
            type=NotificationType.NUDGE,
        )
        await adapter.mark_as_read(note)
        assert client.merge.call_args.args == ("users/me/notifications/n1", {"isRead": True})
        assert note.is_read is True

    @pytest.mark.asyncio
    async def test_without_id_is_noop(self):
        adapter, client = _make_adapter()
        note = AppNotification(
            recipient_id="me", sender_id="f1", sender_name="Dana", type=NotificationType.NUDGE,
        )
        await adapter.mark_as_read(note)
        client.merge.assert_not_awaited()


class TestSendNudge:
    @pytest.mark.asyncio
    async def test_writes_to_recipient_inbox(self):
        adapter, client = _make_adapter()
        await adapter.send_nudge("f1")
        path, data = client.create_document.call_args.args
        assert path == "users/f1/notifications"
        assert data["type"] == "nudge"
        assert data["senderId"] == "me"
        assert data["isRead"] is False

    @pytest.mark.asyncio
    async def test_error(self):
        adapter, client = _make_adapter()
        client.create_document.side_effect = FirestoreError("x")
        with pytest.raises(NotificationError):
            await adapter.send_nudge("f1")
