"""Marketplace service: account, listing, favorite, messaging and purchase flows.

Callers pass the current user id supplied by the session layer (or None for
anonymous requests); the service trusts that id and performs every
authorization and validation check before touching the store.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping

from snugglepaws.auth import hash_password, verify_password
from snugglepaws.config import PAYMENT_CURRENCY
from snugglepaws.conversations import ConversationService
from snugglepaws.errors import (
    Conflict,
    Forbidden,
    NotFound,
    PaymentUnavailable,
    Unauthorized,
    ValidationError,
)
from snugglepaws.favorites import FavoriteManager
from snugglepaws.filters import parse_pet_query
from snugglepaws.models import ConversationSummary, Favorite, Message, Pet, User
from snugglepaws.payments import PaymentProvider
from snugglepaws.store.base import Repository
from snugglepaws.validation import (
    parse_new_message,
    parse_new_pet,
    parse_pet_changes,
    parse_profile_changes,
    parse_registration,
    require_int,
)

logger = logging.getLogger(__name__)


def _require_user_id(user_id: int | None) -> int:
    if user_id is None:
        raise Unauthorized("Not authenticated")
    return user_id


class Marketplace:
    def __init__(self, store: Repository, payments: PaymentProvider | None = None):
        self.store = store
        self.payments = payments
        self.favorites = FavoriteManager(store)
        self.conversations = ConversationService(store)

    # Accounts

    def register(self, payload: Any) -> User:
        data = parse_registration(payload)
        password = data.pop("password")
        user = self.store.create_user(password_hash=hash_password(password), **data)
        logger.info(f"Registered user {user.id} ({user.user_type}).")
        return user

    def authenticate(self, username: str | None, password: str | None) -> User:
        user = self.store.get_user_by_username(username or "")
        if user is None:
            raise Unauthorized("Incorrect username")
        if not verify_password(password or "", user.password_hash):
            raise Unauthorized("Incorrect password")
        return user

    def current_user(self, user_id: int | None) -> User:
        user = self.store.get_user(_require_user_id(user_id))
        if user is None:
            raise Unauthorized("Not authenticated")
        return user

    def get_user(self, user_id: int) -> User:
        user = self.store.get_user(user_id)
        if user is None:
            raise NotFound("User not found")
        return user

    def list_users(self) -> list[User]:
        return self.store.list_users()

    def update_profile(self, user_id: int | None, payload: Any) -> User:
        user = self.current_user(user_id)
        return self.store.update_user(user.id, parse_profile_changes(payload))

    # Pets

    def list_pets(self, query: Mapping, viewer_id: int | None = None) -> list[dict]:
        """Return filtered pet dictionaries for the listing endpoint.

        Args:
            query: Raw query parameters (``parse_qs`` shape or plain strings).
            viewer_id: Signed-in user, used to attach ``is_favorite`` flags.

        Returns:
            Pets newest first, sliced to the requested page.
        """
        filters, limit, offset = parse_pet_query(query)
        pets = self.store.list_pets(filters, limit=limit, offset=offset)
        return self.favorites.annotate(viewer_id, pets)

    def get_pet(self, pet_id: int) -> Pet:
        pet = self.store.get_pet(pet_id)
        if pet is None:
            raise NotFound("Pet not found")
        return pet

    def create_pet(self, user_id: int | None, payload: Any) -> Pet:
        seller = self.current_user(user_id)
        data = parse_new_pet(payload)
        name = data.pop("name")
        species = data.pop("type")
        pet = self.store.create_pet(seller.id, name, species, **data)
        logger.info(f"User {seller.id} listed pet {pet.id} ({pet.listing_type}).")
        return pet

    def _owned_pet(self, user_id: int | None, pet_id: int, action: str) -> Pet:
        user_id = _require_user_id(user_id)
        pet = self.get_pet(pet_id)
        if pet.seller_id != user_id:
            raise Forbidden(f"You don't have permission to {action} this pet")
        return pet

    def update_pet(self, user_id: int | None, pet_id: int, payload: Any) -> Pet:
        pet = self._owned_pet(user_id, pet_id, "update")
        changes = parse_pet_changes(payload)
        updated = self.store.update_pet(pet.id, changes)
        if updated is None:
            raise NotFound("Pet not found")
        return updated

    def delete_pet(self, user_id: int | None, pet_id: int) -> None:
        pet = self._owned_pet(user_id, pet_id, "delete")
        if not self.store.delete_pet(pet.id):
            raise NotFound("Pet not found")
        logger.info(f"User {pet.seller_id} deleted pet {pet.id}.")

    # Favorites

    def favorite_pets(self, user_id: int | None) -> list[Pet]:
        return self.favorites.list_favorite_pets(_require_user_id(user_id))

    def add_favorite(self, user_id: int | None, pet_id: Any) -> Favorite:
        return self.favorites.add_favorite(
            _require_user_id(user_id), require_int(pet_id, "pet_id")
        )

    def remove_favorite(self, user_id: int | None, pet_id: int) -> None:
        if not self.favorites.remove_favorite(_require_user_id(user_id), pet_id):
            raise NotFound("Favorite not found")

    def is_favorite(self, user_id: int | None, pet_id: int) -> bool:
        return self.favorites.is_favorite(_require_user_id(user_id), pet_id)

    # Messages

    def messages(self, user_id: int | None) -> list[Message]:
        return self.store.list_messages(_require_user_id(user_id))

    def conversations_for(self, user_id: int | None) -> list[ConversationSummary]:
        return self.conversations.summaries(_require_user_id(user_id))

    def open_conversation(self, user_id: int | None, other_id: int) -> list[Message]:
        return self.conversations.open_thread(_require_user_id(user_id), other_id)

    def unread_count(self, user_id: int | None) -> int:
        return self.conversations.count_unread(_require_user_id(user_id))

    def send_message(self, user_id: int | None, payload: Any) -> Message:
        sender = self.current_user(user_id)
        data = parse_new_message(payload)
        if data["receiver_id"] == sender.id:
            raise ValidationError("You cannot message yourself")
        if self.store.get_user(data["receiver_id"]) is None:
            raise NotFound("Recipient not found")
        if data["pet_id"] is not None and self.store.get_pet(data["pet_id"]) is None:
            raise NotFound("Pet not found")
        return self.store.create_message(sender.id, **data)

    # Payments

    def _purchasable_pet(self, buyer_id: int, pet_id: Any) -> Pet:
        pet = self.get_pet(require_int(pet_id, "pet_id"))
        if not pet.price:
            raise ValidationError("Pet price is not set")
        if pet.status == "sold":
            raise Conflict("Pet has already been sold")
        if pet.seller_id == buyer_id:
            raise Conflict("You cannot buy your own listing")
        return pet

    def checkout(self, user_id: int | None, pet_id: Any) -> dict:
        """Describe the charge for a listing and open it with the payment provider.

        Returns:
            ``amount`` in cents, ``currency`` and ``metadata`` (pet, buyer,
            seller). With a provider configured the provider's ``payment_id``
            and ``client_secret`` are included for the browser to finish the
            card flow.
        """
        buyer = self.current_user(user_id)
        pet = self._purchasable_pet(buyer.id, pet_id)
        summary = {
            "amount": int(round(pet.price * 100)),
            "currency": PAYMENT_CURRENCY,
            "metadata": {
                "pet_id": pet.id,
                "buyer_id": buyer.id,
                "seller_id": pet.seller_id,
            },
        }
        if self.payments is not None:
            intent = self.payments.create_payment(
                summary["amount"], summary["currency"], summary["metadata"]
            )
            summary.update(payment_id=intent.id, client_secret=intent.client_secret)
            logger.info(f"Opened payment {intent.id} for pet {pet.id}.")
        return summary

    def complete_purchase(self, user_id: int | None, payment_id: Any) -> Message:
        """Apply a settled payment: mark the pet sold and notify the seller.

        The pet, buyer and seller come from the provider's record of the
        payment, never from the request.
        """
        buyer = self.current_user(user_id)
        if self.payments is None:
            raise PaymentUnavailable("Payments are not configured")
        if not isinstance(payment_id, str) or not payment_id.strip():
            raise ValidationError("payment_id is required")
        payment = self.payments.confirm(payment_id.strip())
        if payment is None:
            raise ValidationError("Payment has not succeeded")
        if payment.buyer_id != buyer.id:
            raise Forbidden("This payment belongs to another user")

        pet = self.get_pet(payment.pet_id)
        if self.store.mark_pet_sold(pet.id) is None:
            raise Conflict("Pet has already been sold")
        notice = self.store.create_message(
            buyer.id,
            payment.seller_id,
            f"Payment completed for {pet.name}. Please arrange the handover details.",
            pet_id=pet.id,
        )
        logger.info(f"Pet {pet.id} sold to user {buyer.id} (payment {payment.id}).")
        return notice
