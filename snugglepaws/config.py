"""Configuration and simple helper utilities for SnugglePaws."""

from __future__ import annotations

import os

DEFAULT_LIMIT = 20
MAX_LIMIT = 100
MAX_TEXT_FILTER_LENGTH = 80
MAX_MESSAGE_LENGTH = 5000
USERNAME_MIN_LENGTH = 3
USERNAME_MAX_LENGTH = 40
PASSWORD_MIN_LENGTH = 8
PASSWORD_HASH_ITERATIONS = 200000
SESSION_COOKIE_NAME = "snugglepaws_session"
SESSION_COOKIE_MAX_AGE_SECONDS = 60 * 60 * 24
DEFAULT_SESSION_SECRET = "snugglepaws-dev-session-secret-change-me"
DEFAULT_STORAGE_BACKEND = "memory"
STORAGE_BACKENDS = ("memory", "postgres")
PAYMENT_CURRENCY = "usd"

DEFAULT_USER_TYPES = ("pet_seeker", "breeder", "shelter")
PET_STATUSES = ("available", "pending", "sold")
LISTING_TYPES = ("sale", "adoption", "rehome")
DEFAULT_LISTING_TYPE = "sale"

# Inclusive month ranges; None means unbounded.
AGE_BUCKETS: dict[str, tuple[int, int | None]] = {
    "puppy": (0, 12),
    "young": (13, 36),
    "adult": (37, 96),
    "senior": (97, None),
}


def get_user_types() -> tuple[str, ...]:
    """Return accepted account roles, extended by SNUGGLEPAWS_USER_TYPES."""
    raw = os.environ.get("SNUGGLEPAWS_USER_TYPES", "")
    extra = [item.strip().lower() for item in raw.split(",") if item.strip()]
    return tuple(dict.fromkeys([*DEFAULT_USER_TYPES, *extra]))


def get_storage_backend() -> str:
    """Return the configured store implementation name."""
    backend = (os.environ.get("SNUGGLEPAWS_STORAGE") or DEFAULT_STORAGE_BACKEND).strip().lower()
    if backend not in STORAGE_BACKENDS:
        raise ValueError(
            f"Unknown SNUGGLEPAWS_STORAGE='{backend}'. Options: {list(STORAGE_BACKENDS)}"
        )
    return backend


def get_log_level() -> str:
    return (os.environ.get("LOG_LEVEL") or "INFO").upper()
