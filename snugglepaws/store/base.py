"""Repository contract shared by the in-memory and Postgres stores."""

from __future__ import annotations

from typing import Protocol

from snugglepaws.filters import PetFilters
from snugglepaws.models import Favorite, Message, Pet, User

USER_UPDATABLE_FIELDS = (
    "email",
    "password_hash",
    "name",
    "user_type",
    "bio",
    "location",
    "profile_image",
    "is_verified",
)

PET_UPDATABLE_FIELDS = (
    "name",
    "type",
    "breed",
    "age",
    "gender",
    "size",
    "description",
    "price",
    "images",
    "status",
    "location",
    "is_featured",
    "listing_type",
)


def pick_fields(changes: dict, allowed: tuple[str, ...]) -> dict:
    """Drop keys a store must never overwrite (ids, owners, timestamps)."""
    return {key: value for key, value in changes.items() if key in allowed}


class Repository(Protocol):
    """CRUD and query operations per entity type.

    Each call is atomic with respect to other calls on the same store.
    User writes raise ``Conflict`` when a username or email is taken.
    """

    def get_user(self, user_id: int) -> User | None: ...

    def get_user_by_username(self, username: str) -> User | None: ...

    def get_user_by_email(self, email: str) -> User | None: ...

    def create_user(
        self,
        username: str,
        email: str,
        password_hash: str,
        name: str,
        user_type: str = "pet_seeker",
        bio: str | None = None,
        location: str | None = None,
        profile_image: str | None = None,
        is_verified: bool = False,
    ) -> User: ...

    def update_user(self, user_id: int, changes: dict) -> User | None: ...

    def list_users(self) -> list[User]: ...

    def get_pet(self, pet_id: int) -> Pet | None: ...

    def list_pets(
        self,
        filters: PetFilters | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> list[Pet]: ...

    def create_pet(self, seller_id: int, name: str, type: str, **fields) -> Pet: ...

    def update_pet(self, pet_id: int, changes: dict) -> Pet | None: ...

    def mark_pet_sold(self, pet_id: int) -> Pet | None:
        """Set status ``sold`` unless already sold; None when nothing changed."""

    def delete_pet(self, pet_id: int) -> bool: ...

    def add_favorite(self, user_id: int, pet_id: int) -> Favorite: ...

    def remove_favorite(self, user_id: int, pet_id: int) -> bool: ...

    def is_favorite(self, user_id: int, pet_id: int) -> bool: ...

    def favorite_pet_ids(self, user_id: int) -> set[int]: ...

    def list_favorite_pets(self, user_id: int) -> list[Pet]: ...

    def list_messages(self, user_id: int) -> list[Message]: ...

    def get_conversation(self, user_a: int, user_b: int) -> list[Message]: ...

    def create_message(
        self,
        sender_id: int,
        receiver_id: int,
        content: str,
        pet_id: int | None = None,
    ) -> Message: ...

    def mark_messages_read(self, receiver_id: int, sender_id: int) -> bool: ...

    def count_unread(self, user_id: int) -> int: ...
