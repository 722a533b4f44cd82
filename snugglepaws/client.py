"""HTTP client for the SnugglePaws API built on ``requests``."""

from __future__ import annotations

import logging
from typing import Any

import requests

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10


class ApiError(Exception):
    """Non-2xx response from the API."""

    def __init__(self, status: int, kind: str, message: str):
        super().__init__(f"{status} {kind}: {message}")
        self.status = status
        self.kind = kind
        self.message = message


def filter_params(filters: dict[str, Any]) -> dict[str, str]:
    """Serialize listing filters into query parameters.

    ``None`` values are dropped and booleans become ``true``/``false``; lists
    (age buckets) are joined with commas.
    """
    params: dict[str, str] = {}
    for key, value in filters.items():
        if value is None:
            continue
        if isinstance(value, bool):
            params[key] = "true" if value else "false"
        elif isinstance(value, (list, tuple)):
            params[key] = ",".join(str(item) for item in value)
        else:
            params[key] = str(value)
    return params


class MarketplaceClient:
    def __init__(
        self,
        base_url: str,
        session: requests.Session | None = None,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        self.base_url = base_url.rstrip("/")
        self.session = session or requests.Session()
        self.timeout = timeout

    def _request(self, method: str, path: str, **kwargs):
        resp = self.session.request(
            method, f"{self.base_url}{path}", timeout=self.timeout, **kwargs
        )
        try:
            payload = resp.json()
        except ValueError:
            payload = None
        if not resp.ok:
            body = payload if isinstance(payload, dict) else {}
            raise ApiError(
                resp.status_code,
                str(body.get("kind") or "error"),
                str(body.get("error") or resp.reason),
            )
        return payload

    # Accounts

    def register(self, **profile) -> dict:
        return self._request("POST", "/api/auth/register", json=profile)

    def login(self, username: str, password: str) -> dict:
        return self._request(
            "POST", "/api/auth/login", json={"username": username, "password": password}
        )

    def logout(self) -> None:
        self._request("POST", "/api/auth/logout")
        self.session.cookies.clear()

    def me(self) -> dict:
        return self._request("GET", "/api/auth/me")

    def users(self) -> list[dict]:
        return self._request("GET", "/api/users")

    def update_profile(self, **changes) -> dict:
        return self._request("PUT", "/api/users/me", json=changes)

    # Pets

    def list_pets(self, limit: int | None = None, offset: int | None = None, **filters) -> list[dict]:
        """Fetch one page of listings.

        Args:
            limit: Page size; server default when omitted.
            offset: Rows to skip.
            **filters: Any of ``type, breed, min_age, max_age, age, min_price,
                max_price, location, seller_id, is_featured, listing_type``.

        Returns:
            Pet dictionaries, newest first. When signed in each carries an
            ``is_favorite`` flag computed by the server.
        """
        params = filter_params({**filters, "limit": limit, "offset": offset})
        return self._request("GET", "/api/pets", params=params)

    def get_pet(self, pet_id: int) -> dict:
        return self._request("GET", f"/api/pets/{pet_id}")

    def create_pet(self, **pet) -> dict:
        return self._request("POST", "/api/pets", json=pet)

    def update_pet(self, pet_id: int, **changes) -> dict:
        return self._request("PUT", f"/api/pets/{pet_id}", json=changes)

    def delete_pet(self, pet_id: int) -> None:
        self._request("DELETE", f"/api/pets/{pet_id}")

    # Favorites

    def favorites(self) -> list[dict]:
        return self._request("GET", "/api/favorites")

    def add_favorite(self, pet_id: int) -> dict:
        return self._request("POST", "/api/favorites", json={"pet_id": pet_id})

    def remove_favorite(self, pet_id: int) -> bool:
        """Return False instead of raising when the pet was not favorited."""
        try:
            self._request("DELETE", f"/api/favorites/{pet_id}")
        except ApiError as exc:
            if exc.status == 404:
                return False
            raise
        return True

    def is_favorite(self, pet_id: int) -> bool:
        return bool(self._request("GET", f"/api/favorites/check/{pet_id}")["is_favorite"])

    def toggle_favorite(self, pet_id: int) -> bool:
        """Flip the favorite state of a pet and return the new state."""
        if self.remove_favorite(pet_id):
            return False
        self.add_favorite(pet_id)
        return True

    # Messages

    def messages(self) -> list[dict]:
        return self._request("GET", "/api/messages")

    def conversations(self) -> list[dict]:
        return self._request("GET", "/api/messages/conversations")

    def conversation(self, user_id: int) -> list[dict]:
        """Open a thread; the server marks the counterparty's messages read."""
        return self._request("GET", f"/api/messages/conversation/{user_id}")

    def send_message(self, receiver_id: int, content: str, pet_id: int | None = None) -> dict:
        return self._request(
            "POST",
            "/api/messages",
            json={"receiver_id": receiver_id, "content": content, "pet_id": pet_id},
        )

    def unread_count(self) -> int:
        return int(self._request("GET", "/api/messages/unread")["count"])

    # Payments

    def checkout(self, pet_id: int) -> dict:
        return self._request("POST", "/api/checkout", json={"pet_id": pet_id})

    def complete_purchase(self, payment_id: str) -> dict:
        """Report a settled provider payment so the listing is marked sold."""
        payload = self._request("POST", "/api/payment-success", json={"payment_id": payment_id})
        logger.info(f"Purchase confirmed for payment {payment_id}.")
        return payload
