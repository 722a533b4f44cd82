from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _coerce_json(value):
    if isinstance(value, datetime):
        return value.isoformat()
    return value


def _jsonify(obj):
    """Recursively convert an object graph to JSON-safe values."""
    if isinstance(obj, dict):
        return {k: _jsonify(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [_jsonify(v) for v in obj]
    return _coerce_json(obj)


@dataclass(frozen=True)
class User:
    id: int
    username: str
    email: str
    password_hash: str
    name: str
    user_type: str = "pet_seeker"
    bio: Optional[str] = None
    location: Optional[str] = None
    profile_image: Optional[str] = None
    is_verified: bool = False
    created_at: datetime = field(default_factory=utc_now)

    def to_dict(self) -> dict:
        """Return the public representation; the password hash never leaves."""
        return _jsonify(
            {
                "id": self.id,
                "username": self.username,
                "email": self.email,
                "name": self.name,
                "user_type": self.user_type,
                "bio": self.bio,
                "location": self.location,
                "profile_image": self.profile_image,
                "is_verified": self.is_verified,
                "created_at": self.created_at,
            }
        )


@dataclass(frozen=True)
class Pet:
    id: int
    name: str
    type: str
    seller_id: int
    breed: Optional[str] = None
    age: Optional[int] = None
    gender: Optional[str] = None
    size: Optional[str] = None
    description: Optional[str] = None
    price: Optional[float] = None
    images: tuple[str, ...] = ()
    status: str = "available"
    location: Optional[str] = None
    is_featured: bool = False
    listing_type: str = "sale"
    created_at: datetime = field(default_factory=utc_now)

    def __post_init__(self) -> None:
        """Normalize species to lowercase and images to a tuple."""
        object.__setattr__(self, "type", str(self.type or "").strip().lower())
        object.__setattr__(self, "images", tuple(self.images or ()))

    @property
    def primary_image(self) -> str | None:
        return self.images[0] if self.images else None

    def to_dict(self) -> dict:
        return _jsonify(
            {
                "id": self.id,
                "name": self.name,
                "type": self.type,
                "breed": self.breed,
                "age": self.age,
                "gender": self.gender,
                "size": self.size,
                "description": self.description,
                "price": self.price,
                "images": list(self.images),
                "primary_image": self.primary_image,
                "seller_id": self.seller_id,
                "status": self.status,
                "location": self.location,
                "is_featured": self.is_featured,
                "listing_type": self.listing_type,
                "created_at": self.created_at,
            }
        )


@dataclass(frozen=True)
class Favorite:
    id: int
    user_id: int
    pet_id: int
    created_at: datetime = field(default_factory=utc_now)

    def to_dict(self) -> dict:
        return _jsonify(
            {
                "id": self.id,
                "user_id": self.user_id,
                "pet_id": self.pet_id,
                "created_at": self.created_at,
            }
        )


@dataclass(frozen=True)
class Message:
    id: int
    sender_id: int
    receiver_id: int
    content: str
    pet_id: Optional[int] = None
    is_read: bool = False
    created_at: datetime = field(default_factory=utc_now)

    def other_party(self, user_id: int) -> int:
        """Return the counterparty of this message relative to ``user_id``."""
        return self.sender_id if self.receiver_id == user_id else self.receiver_id

    @property
    def recency_key(self) -> tuple[datetime, int]:
        """Total order used for "most recent": timestamp, then id."""
        return (self.created_at, self.id)

    def to_dict(self) -> dict:
        return _jsonify(
            {
                "id": self.id,
                "sender_id": self.sender_id,
                "receiver_id": self.receiver_id,
                "content": self.content,
                "pet_id": self.pet_id,
                "is_read": self.is_read,
                "created_at": self.created_at,
            }
        )


@dataclass(frozen=True)
class ConversationSummary:
    counterparty_id: int
    last_message: Message
    unread_count: int = 0

    def to_dict(self) -> dict:
        return {
            "counterparty_id": self.counterparty_id,
            "last_message": self.last_message.to_dict(),
            "unread_count": self.unread_count,
        }
