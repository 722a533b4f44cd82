"""Many-to-many favorite relation between users and pets."""

from __future__ import annotations

import logging
from typing import Iterable

from snugglepaws.errors import NotFound
from snugglepaws.models import Favorite, Pet
from snugglepaws.store.base import Repository

logger = logging.getLogger(__name__)


class FavoriteManager:
    def __init__(self, store: Repository):
        self.store = store

    def add_favorite(self, user_id: int, pet_id: int) -> Favorite:
        """Favorite a pet; repeating the call returns the original record."""
        if self.store.get_pet(pet_id) is None:
            raise NotFound("Pet not found")
        return self.store.add_favorite(user_id, pet_id)

    def remove_favorite(self, user_id: int, pet_id: int) -> bool:
        return self.store.remove_favorite(user_id, pet_id)

    def is_favorite(self, user_id: int, pet_id: int) -> bool:
        return self.store.is_favorite(user_id, pet_id)

    def toggle_favorite(self, user_id: int, pet_id: int) -> bool:
        """Flip the favorite state and return the new state."""
        if self.store.remove_favorite(user_id, pet_id):
            return False
        self.add_favorite(user_id, pet_id)
        return True

    def list_favorite_pets(self, user_id: int) -> list[Pet]:
        """Return favorited pets, most recently favorited first.

        Favorites whose pet was deleted are skipped, not cleaned up.
        """
        return self.store.list_favorite_pets(user_id)

    def annotate(self, user_id: int | None, pets: Iterable[Pet]) -> list[dict]:
        """Serialize pets with an ``is_favorite`` flag for the viewing user.

        Args:
            user_id: Viewing user, or None for anonymous callers.
            pets: Pets to serialize.

        Returns:
            Pet dictionaries; the flag is only attached for a signed-in viewer.
        """
        if user_id is None:
            return [pet.to_dict() for pet in pets]
        favorite_ids = self.store.favorite_pet_ids(user_id)
        return [{**pet.to_dict(), "is_favorite": pet.id in favorite_ids} for pet in pets]
