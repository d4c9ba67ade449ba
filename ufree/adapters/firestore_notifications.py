"""Firestore notification adapter — implements NotificationPort.

Notifications live in the recipient's subcollection
users/{userId}/notifications; a nudge is written to the friend's inbox,
not the sender's.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from ufree.data.models import AppNotification, NotificationType
from ufree.integrations.firestore import (
    FirestoreClient,
    FirestoreError,
    decode_fields,
    document_id,
    structured_query,
)
from ufree.ports.notification_port import NotificationError

logger = logging.getLogger(__name__)


def _document_to_notification(document: dict) -> AppNotification | None:
    fields = decode_fields(document.get("fields", {}))
    try:
        note_type = NotificationType(fields.get("type"))
    except ValueError:
        logger.debug("Skipping notification with unknown type %r", fields.get("type"))
        return None
    return AppNotification(
        id=document_id(document),
        recipient_id=fields.get("recipientId", ""),
        sender_id=fields.get("senderId", ""),
        sender_name=fields.get("senderName", ""),
        type=note_type,
        date=fields.get("date") or datetime.now(timezone.utc),
        is_read=bool(fields.get("isRead", False)),
    )


class FirestoreNotificationAdapter:
    """Cloud Firestore implementation of NotificationPort."""

    def __init__(self, client: FirestoreClient, user_id: str, display_name: str = "Me") -> None:
        self._client = client
        self._user_id = user_id
        self._display_name = display_name

    async def list_notifications(self, limit: int = 50) -> list[AppNotification]:
        """My notifications, newest first."""
        query = structured_query("notifications", order_by="date", descending=True, limit=limit)
        try:
            documents = await self._client.run_query(query, parent=f"users/{self._user_id}")
        except FirestoreError as exc:
            raise NotificationError(f"Failed to load notifications: {exc}") from exc
        notes = [_document_to_notification(doc) for doc in documents]
        return [n for n in notes if n is not None]

    async def mark_as_read(self, notification: AppNotification) -> None:
        if not notification.id:
            return
        try:
            await self._client.merge(
                f"users/{self._user_id}/notifications/{notification.id}", {"isRead": True},
            )
        except FirestoreError as exc:
            raise NotificationError(f"Failed to mark {notification.id} as read: {exc}") from exc
        notification.is_read = True

    async def send_nudge(self, user_id: str) -> None:
        try:
            await self._client.create_document(f"users/{user_id}/notifications", {
                "recipientId": user_id,
                "senderId": self._user_id,
                "senderName": self._display_name,
                "type": NotificationType.NUDGE.value,
                "date": datetime.now(timezone.utc),
                "isRead": False,
            })
        except FirestoreError as exc:
            raise NotificationError(f"Failed to nudge {user_id}: {exc}") from exc
        logger.info("Nudge sent to %s", user_id)
