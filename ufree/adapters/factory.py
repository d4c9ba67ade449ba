"""Adapter factory — wires the ports from config for one signed-in user."""

from __future__ import annotations

from dataclasses import dataclass

from ufree.adapters.composite_availability import CompositeAvailabilityAdapter
from ufree.adapters.firestore_availability import FirestoreAvailabilityAdapter
from ufree.adapters.firestore_friends import FirestoreFriendAdapter
from ufree.adapters.firestore_notifications import FirestoreNotificationAdapter
from ufree.config import settings
from ufree.core.update_status import UpdateMyStatus
from ufree.data.db import AvailabilityDB
from ufree.integrations.firestore import FirestoreClient, create_firestore_client


@dataclass
class Ports:
    """Everything the user interface needs, keyed the way bot_data stores it."""

    availability: CompositeAvailabilityAdapter
    update_status: UpdateMyStatus
    friends: FirestoreFriendAdapter
    notifications: FirestoreNotificationAdapter

    def as_dict(self) -> dict:
        return {
            "availability": self.availability,
            "update_status": self.update_status,
            "friends": self.friends,
            "notifications": self.notifications,
        }


def create_ports(
    user_id: str,
    client: FirestoreClient | None = None,
    db_path: str | None = None,
) -> Ports:
    """Build local + remote stores, the synchronizer and the social adapters.

    Args:
        user_id: Firebase uid of the signed-in user.
        client: Firestore client. Defaults to one authenticated from the stored session.
        db_path: Local Store path. Defaults to settings.DATABASE_PATH.
    """
    if client is None:
        client = create_firestore_client()

    name = settings.DISPLAY_NAME
    local = AvailabilityDB(db_path=db_path, user_id=user_id, display_name=name)
    remote = FirestoreAvailabilityAdapter(
        client, user_id, display_name=name, batch_size=settings.REMOTE_BATCH_SIZE,
    )
    availability = CompositeAvailabilityAdapter(local=local, remote=remote)

    return Ports(
        availability=availability,
        update_status=UpdateMyStatus(availability),
        friends=FirestoreFriendAdapter(
            client, user_id, display_name=name, batch_size=settings.REMOTE_BATCH_SIZE,
        ),
        notifications=FirestoreNotificationAdapter(client, user_id, display_name=name),
    )
