"""Friend port — abstract interface for the social graph.

Covers contact-hash discovery, the friend list and the friend-request
handshake. Core modules depend on this protocol only.
"""

from __future__ import annotations

from typing import Protocol

from ufree.data.models import FriendRequest, UserProfile


class FriendError(Exception):
    """Raised when a friend-graph operation fails."""


class FriendPort(Protocol):
    """Abstract friend-graph interface used by core modules."""

    async def get_my_friends(self) -> list[UserProfile]: ...

    async def find_friends_from_contacts(
        self, phone_numbers: list[str]
    ) -> list[UserProfile]: ...

    async def find_user_by_phone_number(self, phone_number: str) -> UserProfile | None: ...

    async def add_friend(self, user_id: str) -> None: ...

    async def remove_friend(self, user_id: str) -> None: ...

    async def send_friend_request(self, user: UserProfile) -> FriendRequest: ...

    async def get_incoming_requests(self) -> list[FriendRequest]: ...

    async def accept_friend_request(self, request: FriendRequest) -> None: ...

    async def decline_friend_request(self, request: FriendRequest) -> None: ...
