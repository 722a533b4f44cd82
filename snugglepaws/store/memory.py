"""In-memory store backed by dicts keyed by auto-incrementing ids."""

from __future__ import annotations

import functools
import itertools
import threading
from dataclasses import replace
from datetime import datetime
from typing import Callable

from snugglepaws.errors import Conflict
from snugglepaws.filters import PetFilters, select_pets
from snugglepaws.models import Favorite, Message, Pet, User, utc_now
from snugglepaws.store.base import (
    PET_UPDATABLE_FIELDS,
    USER_UPDATABLE_FIELDS,
    pick_fields,
)


def _synchronized(method):
    @functools.wraps(method)
    def wrapper(self, *args, **kwargs):
        with self._lock:
            return method(self, *args, **kwargs)

    return wrapper


class InMemoryStore:
    """Repository implementation holding every record in process memory.

    All operations run under a single re-entrant lock, so a caller never
    observes a partially applied write.
    """

    def __init__(self, clock: Callable[[], datetime] = utc_now):
        self._clock = clock
        self._lock = threading.RLock()
        self._users: dict[int, User] = {}
        self._pets: dict[int, Pet] = {}
        self._favorites: dict[int, Favorite] = {}
        self._favorite_index: dict[tuple[int, int], int] = {}
        self._messages: dict[int, Message] = {}
        self._user_ids = itertools.count(1)
        self._pet_ids = itertools.count(1)
        self._favorite_ids = itertools.count(1)
        self._message_ids = itertools.count(1)

    # Users

    @_synchronized
    def get_user(self, user_id: int) -> User | None:
        return self._users.get(user_id)

    @_synchronized
    def get_user_by_username(self, username: str) -> User | None:
        wanted = (username or "").lower()
        return next(
            (user for user in self._users.values() if user.username.lower() == wanted),
            None,
        )

    @_synchronized
    def get_user_by_email(self, email: str) -> User | None:
        wanted = (email or "").lower()
        return next(
            (user for user in self._users.values() if user.email.lower() == wanted),
            None,
        )

    @_synchronized
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
    ) -> User:
        if self.get_user_by_username(username) is not None:
            raise Conflict("Username already exists")
        if self.get_user_by_email(email) is not None:
            raise Conflict("Email already exists")
        user = User(
            id=next(self._user_ids),
            username=username,
            email=email,
            password_hash=password_hash,
            name=name,
            user_type=user_type,
            bio=bio,
            location=location,
            profile_image=profile_image,
            is_verified=is_verified,
            created_at=self._clock(),
        )
        self._users[user.id] = user
        return user

    @_synchronized
    def update_user(self, user_id: int, changes: dict) -> User | None:
        user = self._users.get(user_id)
        if user is None:
            return None
        owner = self.get_user_by_email(changes.get("email") or "")
        if owner is not None and owner.id != user_id:
            raise Conflict("Email already exists")
        updated = replace(user, **pick_fields(changes, USER_UPDATABLE_FIELDS))
        self._users[user_id] = updated
        return updated

    @_synchronized
    def list_users(self) -> list[User]:
        return sorted(self._users.values(), key=lambda user: user.id)

    # Pets

    @_synchronized
    def get_pet(self, pet_id: int) -> Pet | None:
        return self._pets.get(pet_id)

    @_synchronized
    def list_pets(
        self,
        filters: PetFilters | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> list[Pet]:
        return select_pets(self._pets.values(), filters, limit, offset)

    @_synchronized
    def create_pet(self, seller_id: int, name: str, type: str, **fields) -> Pet:
        fields = pick_fields(fields, PET_UPDATABLE_FIELDS)
        fields.setdefault("status", "available")
        pet = Pet(
            id=next(self._pet_ids),
            name=name,
            type=type,
            seller_id=seller_id,
            created_at=self._clock(),
            **fields,
        )
        self._pets[pet.id] = pet
        return pet

    @_synchronized
    def update_pet(self, pet_id: int, changes: dict) -> Pet | None:
        pet = self._pets.get(pet_id)
        if pet is None:
            return None
        updated = replace(pet, **pick_fields(changes, PET_UPDATABLE_FIELDS))
        self._pets[pet_id] = updated
        return updated

    @_synchronized
    def mark_pet_sold(self, pet_id: int) -> Pet | None:
        pet = self._pets.get(pet_id)
        if pet is None or pet.status == "sold":
            return None
        sold = replace(pet, status="sold")
        self._pets[pet_id] = sold
        return sold

    @_synchronized
    def delete_pet(self, pet_id: int) -> bool:
        # Favorites pointing at the pet are left in place and skipped on read.
        return self._pets.pop(pet_id, None) is not None

    # Favorites

    @_synchronized
    def add_favorite(self, user_id: int, pet_id: int) -> Favorite:
        existing_id = self._favorite_index.get((user_id, pet_id))
        if existing_id is not None:
            return self._favorites[existing_id]
        favorite = Favorite(
            id=next(self._favorite_ids),
            user_id=user_id,
            pet_id=pet_id,
            created_at=self._clock(),
        )
        self._favorites[favorite.id] = favorite
        self._favorite_index[(user_id, pet_id)] = favorite.id
        return favorite

    @_synchronized
    def remove_favorite(self, user_id: int, pet_id: int) -> bool:
        favorite_id = self._favorite_index.pop((user_id, pet_id), None)
        if favorite_id is None:
            return False
        del self._favorites[favorite_id]
        return True

    @_synchronized
    def is_favorite(self, user_id: int, pet_id: int) -> bool:
        return (user_id, pet_id) in self._favorite_index

    @_synchronized
    def favorite_pet_ids(self, user_id: int) -> set[int]:
        return {pet_id for (owner, pet_id) in self._favorite_index if owner == user_id}

    @_synchronized
    def list_favorite_pets(self, user_id: int) -> list[Pet]:
        favorites = sorted(
            (fav for fav in self._favorites.values() if fav.user_id == user_id),
            key=lambda fav: (fav.created_at, fav.id),
            reverse=True,
        )
        return [self._pets[fav.pet_id] for fav in favorites if fav.pet_id in self._pets]

    # Messages

    @_synchronized
    def list_messages(self, user_id: int) -> list[Message]:
        involved = [
            msg
            for msg in self._messages.values()
            if msg.sender_id == user_id or msg.receiver_id == user_id
        ]
        return sorted(involved, key=lambda msg: msg.recency_key, reverse=True)

    @_synchronized
    def get_conversation(self, user_a: int, user_b: int) -> list[Message]:
        thread = [
            msg
            for msg in self._messages.values()
            if (msg.sender_id, msg.receiver_id) in ((user_a, user_b), (user_b, user_a))
        ]
        return sorted(thread, key=lambda msg: msg.recency_key)

    @_synchronized
    def create_message(
        self,
        sender_id: int,
        receiver_id: int,
        content: str,
        pet_id: int | None = None,
    ) -> Message:
        message = Message(
            id=next(self._message_ids),
            sender_id=sender_id,
            receiver_id=receiver_id,
            content=content,
            pet_id=pet_id,
            created_at=self._clock(),
        )
        self._messages[message.id] = message
        return message

    @_synchronized
    def mark_messages_read(self, receiver_id: int, sender_id: int) -> bool:
        unread = [
            msg
            for msg in self._messages.values()
            if msg.receiver_id == receiver_id
            and msg.sender_id == sender_id
            and not msg.is_read
        ]
        for msg in unread:
            self._messages[msg.id] = replace(msg, is_read=True)
        return bool(unread)

    @_synchronized
    def count_unread(self, user_id: int) -> int:
        return sum(
            1
            for msg in self._messages.values()
            if msg.receiver_id == user_id and not msg.is_read
        )
