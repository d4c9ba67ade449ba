"""Firestore friend adapter — implements FriendPort.

Data layout:
    users/{userId}              displayName, hashedPhoneNumber, friendIds
    friendRequests/{requestId}  fromId, fromName, toId, status, timestamp
    users/{userId}/notifications/{id}   friend-request notices

Friendship is symmetric: adding or removing a friend updates both users'
friendIds with array-union / array-remove transforms.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from datetime import datetime, timezone

from ufree.adapters.firestore_availability import chunked
from ufree.core.crypto import hash_phone_number
from ufree.data.models import (
    FriendRequest,
    NotificationType,
    RequestStatus,
    UserProfile,
)
from ufree.integrations.firestore import (
    FirestoreClient,
    FirestoreError,
    all_of,
    decode_fields,
    document_id,
    field_filter,
    structured_query,
)
from ufree.ports.friend_port import FriendError

logger = logging.getLogger(__name__)


def _document_to_profile(document: dict) -> UserProfile:
    fields = decode_fields(document.get("fields", {}))
    return UserProfile(
        id=document_id(document),
        display_name=fields.get("displayName", ""),
        hashed_phone_number=fields.get("hashedPhoneNumber"),
        friend_ids=list(fields.get("friendIds") or []),
    )


def _document_to_request(document: dict) -> FriendRequest:
    fields = decode_fields(document.get("fields", {}))
    try:
        status = RequestStatus(fields.get("status", "pending"))
    except ValueError:
        status = RequestStatus.PENDING
    return FriendRequest(
        id=document_id(document),
        from_id=fields.get("fromId", ""),
        from_name=fields.get("fromName", ""),
        to_id=fields.get("toId", ""),
        status=status,
        timestamp=fields.get("timestamp") or datetime.now(timezone.utc),
    )


class FirestoreFriendAdapter:
    """Cloud Firestore implementation of FriendPort."""

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

    async def _query_users(self, field_path: str, values: list) -> list[UserProfile]:
        """Run one IN query per batch, all batches concurrently."""
        queries = [
            structured_query("users", where=field_filter(field_path, "IN", batch))
            for batch in chunked(values, self._batch_size)
        ]
        try:
            results = await asyncio.gather(*(self._client.run_query(q) for q in queries))
        except FirestoreError as exc:
            raise FriendError(f"Failed to look up users: {exc}") from exc
        return [_document_to_profile(doc) for batch in results for doc in batch]

    # -- profile ------------------------------------------------------------

    async def get_profile(self, user_id: str) -> UserProfile | None:
        try:
            document = await self._client.get_document(f"users/{user_id}")
        except FirestoreError as exc:
            raise FriendError(f"Failed to load profile {user_id}: {exc}") from exc
        return _document_to_profile(document) if document else None

    async def sync_my_profile(self, display_name: str, phone_number: str = "") -> None:
        """Publish my display name and hashed phone number."""
        data: dict = {"displayName": display_name}
        hashed = hash_phone_number(phone_number)
        if hashed:
            data["hashedPhoneNumber"] = hashed
        try:
            await self._client.merge(f"users/{self._user_id}", data)
        except FirestoreError as exc:
            raise FriendError(f"Failed to sync profile: {exc}") from exc
        self._display_name = display_name
        logger.info("Profile synced for %s", self._user_id)

    # -- friends ------------------------------------------------------------

    async def get_my_friends(self) -> list[UserProfile]:
        me = await self.get_profile(self._user_id)
        if me is None or not me.friend_ids:
            return []
        refs = [self._client.reference(f"users/{uid}") for uid in me.friend_ids]
        return await self._query_users("__name__", refs)

    async def find_friends_from_contacts(self, phone_numbers: list[str]) -> list[UserProfile]:
        """Match hashed contact numbers against registered users."""
        hashes = list(dict.fromkeys(
            h for h in (hash_phone_number(p) for p in phone_numbers) if h
        ))
        if not hashes:
            return []
        matches = await self._query_users("hashedPhoneNumber", hashes)
        matches = [m for m in matches if m.id != self._user_id]
        logger.info("Matched %d user(s) from %d contact hash(es)", len(matches), len(hashes))
        return matches

    async def find_user_by_phone_number(self, phone_number: str) -> UserProfile | None:
        hashed = hash_phone_number(phone_number)
        if hashed is None:
            return None
        matches = await self._query_users("hashedPhoneNumber", [hashed])
        return matches[0] if matches else None

    async def add_friend(self, user_id: str) -> None:
        writes = [
            self._client.merge_write(f"users/{self._user_id}", array_union={"friendIds": [user_id]}),
            self._client.merge_write(f"users/{user_id}", array_union={"friendIds": [self._user_id]}),
        ]
        try:
            await self._client.commit(writes)
        except FirestoreError as exc:
            raise FriendError(f"Failed to add friend {user_id}: {exc}") from exc
        logger.info("Friendship added: %s <-> %s", self._user_id, user_id)

    async def remove_friend(self, user_id: str) -> None:
        writes = [
            self._client.merge_write(f"users/{self._user_id}", array_remove={"friendIds": [user_id]}),
            self._client.merge_write(f"users/{user_id}", array_remove={"friendIds": [self._user_id]}),
        ]
        try:
            await self._client.commit(writes)
        except FirestoreError as exc:
            raise FriendError(f"Failed to remove friend {user_id}: {exc}") from exc
        logger.info("Friendship removed: %s <-> %s", self._user_id, user_id)

    # -- requests -----------------------------------------------------------

    async def _find_requests(self, *filters: dict) -> list[FriendRequest]:
        query = structured_query("friendRequests", where=all_of(*filters))
        try:
            documents = await self._client.run_query(query)
        except FirestoreError as exc:
            raise FriendError(f"Failed to load friend requests: {exc}") from exc
        return [_document_to_request(doc) for doc in documents]

    async def send_friend_request(self, user: UserProfile) -> FriendRequest:
        """Create a pending request; an existing pending one is reused."""
        if user.id == self._user_id:
            raise FriendError("Cannot send a friend request to yourself")

        existing = await self._find_requests(
            field_filter("fromId", "EQUAL", self._user_id),
            field_filter("toId", "EQUAL", user.id),
            field_filter("status", "EQUAL", RequestStatus.PENDING.value),
        )
        if existing:
            logger.info("Friend request to %s already pending", user.id)
            return existing[0]

        now = datetime.now(timezone.utc)
        request = FriendRequest(
            id=uuid.uuid4().hex,
            from_id=self._user_id,
            from_name=self._display_name,
            to_id=user.id,
            timestamp=now,
        )
        # Request and recipient notice are committed together or not at all
        writes = [
            self._client.create_write(f"friendRequests/{request.id}", {
                "fromId": request.from_id,
                "fromName": request.from_name,
                "toId": request.to_id,
                "status": request.status.value,
                "timestamp": now,
            }),
            self._client.create_write(f"users/{user.id}/notifications/{uuid.uuid4().hex}", {
                "recipientId": user.id,
                "senderId": self._user_id,
                "senderName": self._display_name,
                "type": NotificationType.FRIEND_REQUEST.value,
                "date": now,
                "isRead": False,
            }),
        ]
        try:
            await self._client.commit(writes)
        except FirestoreError as exc:
            raise FriendError(f"Failed to send friend request to {user.id}: {exc}") from exc

        logger.info("Friend request %s sent to %s", request.id, user.id)
        return request

    async def get_incoming_requests(self) -> list[FriendRequest]:
        return await self._find_requests(
            field_filter("toId", "EQUAL", self._user_id),
            field_filter("status", "EQUAL", RequestStatus.PENDING.value),
        )

    async def _set_request_status(self, request: FriendRequest, status: RequestStatus) -> None:
        if not request.id:
            raise FriendError("Friend request has no id")
        try:
            await self._client.merge(f"friendRequests/{request.id}", {"status": status.value})
        except FirestoreError as exc:
            raise FriendError(f"Failed to update request {request.id}: {exc}") from exc
        request.status = status

    async def accept_friend_request(self, request: FriendRequest) -> None:
        await self._set_request_status(request, RequestStatus.ACCEPTED)
        await self.add_friend(request.from_id)
        logger.info("Accepted friend request %s from %s", request.id, request.from_id)

    async def decline_friend_request(self, request: FriendRequest) -> None:
        await self._set_request_status(request, RequestStatus.DECLINED)
        logger.info("Declined friend request %s from %s", request.id, request.from_id)
