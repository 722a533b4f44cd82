"""Request payload validation for users, pets and messages.

Every parser either returns clean values ready for the store or raises
``ValidationError``; nothing is silently coerced.
"""

from __future__ import annotations

import re
from typing import Any, Mapping

from snugglepaws.auth import password_error
from snugglepaws.config import (
    DEFAULT_LISTING_TYPE,
    LISTING_TYPES,
    MAX_MESSAGE_LENGTH,
    PET_STATUSES,
    USERNAME_MAX_LENGTH,
    USERNAME_MIN_LENGTH,
    get_user_types,
)
from snugglepaws.errors import ValidationError

USERNAME_PATTERN = re.compile(r"^[A-Za-z0-9_.-]+$")
EMAIL_PATTERN = re.compile(
    r"^[a-z0-9.!#$%&'*+/=?^_`{|}~-]{1,64}"
    r"@(?:[a-z0-9](?:[a-z0-9-]*[a-z0-9])?\.)+[a-z]{2,}$"
)
MAX_EMAIL_LENGTH = 254
MAX_SHORT_TEXT = 200
MAX_LONG_TEXT = 5000

REGISTRATION_FIELDS = (
    "username",
    "password",
    "email",
    "name",
    "user_type",
    "bio",
    "location",
    "profile_image",
)
PROFILE_FIELDS = ("name", "email", "bio", "location", "profile_image")
PET_FIELDS = (
    "name",
    "type",
    "breed",
    "age",
    "gender",
    "size",
    "description",
    "price",
    "images",
    "location",
    "listing_type",
    "status",
)
MESSAGE_FIELDS = ("receiver_id", "content", "pet_id")


def _require_mapping(payload: Any) -> Mapping:
    if not isinstance(payload, Mapping):
        raise ValidationError("Request body must be a JSON object")
    return payload


def _reject_unknown(payload: Mapping, allowed: tuple[str, ...]) -> None:
    unknown = sorted(key for key in payload if key not in allowed)
    if unknown:
        raise ValidationError(f"Unknown or read-only field '{unknown[0]}'")


def _text(
    payload: Mapping,
    key: str,
    *,
    required: bool = False,
    max_length: int = MAX_SHORT_TEXT,
) -> str | None:
    value = payload.get(key)
    if value is None:
        if required:
            raise ValidationError(f"{key} is required")
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{key} must be a string")
    text = value.strip()
    if not text:
        if required:
            raise ValidationError(f"{key} is required")
        return None
    if len(text) > max_length:
        raise ValidationError(f"{key} must be at most {max_length} characters")
    return text


def _choice(value: str | None, key: str, options: tuple[str, ...]) -> str | None:
    if value is None:
        return None
    normalized = value.lower()
    if normalized not in options:
        raise ValidationError(f"{key} must be one of {list(options)}")
    return normalized


def require_int(value: Any, key: str) -> int:
    """Accept ints and digit strings (path segments); reject bools and floats."""
    if isinstance(value, bool):
        raise ValidationError(f"{key} must be an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().lstrip("-").isdigit():
        return int(value.strip())
    raise ValidationError(f"{key} must be an integer")


def _optional_int(payload: Mapping, key: str, minimum: int = 0) -> int | None:
    value = payload.get(key)
    if value is None:
        return None
    number = require_int(value, key)
    if number < minimum:
        raise ValidationError(f"{key} must be at least {minimum}")
    return number


def _optional_price(payload: Mapping, key: str) -> float | None:
    value = payload.get(key)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError(f"{key} must be a number")
    if value != value or value < 0:
        raise ValidationError(f"{key} must be a non-negative number")
    return float(value)


def _images(payload: Mapping) -> list[str]:
    value = payload.get("images")
    if value is None:
        return []
    if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
        raise ValidationError("images must be a list of URLs")
    return [item.strip() for item in value if item.strip()]


def clean_email(value: str) -> str:
    """Lowercase an address and check it is a single plain mailbox.

    Display names and embedded line breaks are refused.
    """
    email = value.strip().lower()
    if len(email) > MAX_EMAIL_LENGTH or not EMAIL_PATTERN.fullmatch(email):
        raise ValidationError("Enter a valid email address.")
    return email


def _email(payload: Mapping, *, required: bool) -> str | None:
    raw = _text(payload, "email", required=required, max_length=MAX_EMAIL_LENGTH)
    return clean_email(raw) if raw is not None else None


def parse_registration(payload: Any) -> dict:
    payload = _require_mapping(payload)
    _reject_unknown(payload, REGISTRATION_FIELDS)
    username = _text(payload, "username", required=True, max_length=USERNAME_MAX_LENGTH)
    if len(username) < USERNAME_MIN_LENGTH or not USERNAME_PATTERN.fullmatch(username):
        raise ValidationError(
            f"username must be {USERNAME_MIN_LENGTH}-{USERNAME_MAX_LENGTH} letters, "
            "digits, dots, dashes or underscores"
        )
    password = payload.get("password")
    if not isinstance(password, str):
        raise ValidationError("password is required")
    error = password_error(password)
    if error:
        raise ValidationError(error)
    return {
        "username": username,
        "password": password,
        "email": _email(payload, required=True),
        "name": _text(payload, "name", required=True),
        "user_type": _choice(_text(payload, "user_type"), "user_type", get_user_types())
        or "pet_seeker",
        "bio": _text(payload, "bio", max_length=MAX_LONG_TEXT),
        "location": _text(payload, "location"),
        "profile_image": _text(payload, "profile_image", max_length=2048),
    }


def parse_profile_changes(payload: Any) -> dict:
    payload = _require_mapping(payload)
    _reject_unknown(payload, PROFILE_FIELDS)
    changes: dict = {}
    if "name" in payload:
        changes["name"] = _text(payload, "name", required=True)
    if "email" in payload:
        changes["email"] = _email(payload, required=True)
    if "bio" in payload:
        changes["bio"] = _text(payload, "bio", max_length=MAX_LONG_TEXT)
    if "location" in payload:
        changes["location"] = _text(payload, "location")
    if "profile_image" in payload:
        changes["profile_image"] = _text(payload, "profile_image", max_length=2048)
    return changes


def _pet_field(payload: Mapping, key: str):
    if key in ("name", "type"):
        value = _text(payload, key, required=True)
        return value.lower() if key == "type" else value
    if key == "age":
        return _optional_int(payload, key)
    if key == "price":
        return _optional_price(payload, key)
    if key == "images":
        return _images(payload)
    if key == "listing_type":
        return _choice(_text(payload, key), key, LISTING_TYPES)
    if key == "status":
        return _choice(_text(payload, key), key, PET_STATUSES)
    if key == "description":
        return _text(payload, key, max_length=MAX_LONG_TEXT)
    return _text(payload, key)


def parse_new_pet(payload: Any) -> dict:
    payload = _require_mapping(payload)
    _reject_unknown(payload, PET_FIELDS)
    pet = {key: _pet_field(payload, key) for key in PET_FIELDS}
    pet["listing_type"] = pet["listing_type"] or DEFAULT_LISTING_TYPE
    pet["status"] = pet["status"] or "available"
    return pet


def parse_pet_changes(payload: Any) -> dict:
    payload = _require_mapping(payload)
    _reject_unknown(payload, PET_FIELDS)
    changes = {key: _pet_field(payload, key) for key in PET_FIELDS if key in payload}
    if "listing_type" in changes and changes["listing_type"] is None:
        raise ValidationError("listing_type cannot be cleared")
    if "status" in changes and changes["status"] is None:
        raise ValidationError("status cannot be cleared")
    return changes


def parse_new_message(payload: Any) -> dict:
    payload = _require_mapping(payload)
    _reject_unknown(payload, MESSAGE_FIELDS)
    if payload.get("receiver_id") is None:
        raise ValidationError("receiver_id is required")
    return {
        "receiver_id": require_int(payload["receiver_id"], "receiver_id"),
        "content": _text(payload, "content", required=True, max_length=MAX_MESSAGE_LENGTH),
        "pet_id": _optional_int(payload, "pet_id", minimum=1),
    }
