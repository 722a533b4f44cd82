"""Pet listing filters: query parsing, in-memory matching and SQL compilation."""

from __future__ import annotations

from dataclasses import dataclass, fields
from typing import Iterable, Mapping, Optional

from snugglepaws.config import (
    AGE_BUCKETS,
    DEFAULT_LIMIT,
    MAX_LIMIT,
    MAX_TEXT_FILTER_LENGTH,
)
from snugglepaws.errors import ValidationError
from snugglepaws.models import Pet

TRUE_VALUES = ("true", "1", "yes")
FALSE_VALUES = ("false", "0", "no")


@dataclass(frozen=True)
class PetFilters:
    """Optional predicates over pets; every set field must hold (logical AND)."""

    type: Optional[str] = None
    breed: Optional[str] = None
    min_age: Optional[int] = None
    max_age: Optional[int] = None
    age_ranges: Optional[tuple[tuple[int, Optional[int]], ...]] = None
    min_price: Optional[float] = None
    max_price: Optional[float] = None
    location: Optional[str] = None
    seller_id: Optional[int] = None
    is_featured: Optional[bool] = None
    listing_type: Optional[str] = None

    def active(self) -> dict:
        """Return only the filters that are set."""
        return {
            f.name: getattr(self, f.name)
            for f in fields(self)
            if getattr(self, f.name) is not None
        }

    def matches(self, pet: Pet) -> bool:
        if self.type and pet.type.lower() != self.type.lower():
            return False
        if self.breed and not _contains(pet.breed, self.breed):
            return False
        if self.min_age is not None and (pet.age is None or pet.age < self.min_age):
            return False
        if self.max_age is not None and (pet.age is None or pet.age > self.max_age):
            return False
        if self.age_ranges and not _in_any_range(pet.age, self.age_ranges):
            return False
        if self.min_price is not None and (pet.price is None or pet.price < self.min_price):
            return False
        if self.max_price is not None and (pet.price is None or pet.price > self.max_price):
            return False
        if self.location and not _contains(pet.location, self.location):
            return False
        if self.seller_id is not None and pet.seller_id != self.seller_id:
            return False
        if self.is_featured is not None and pet.is_featured != self.is_featured:
            return False
        if self.listing_type and pet.listing_type != self.listing_type:
            return False
        return True


def _contains(haystack: str | None, needle: str) -> bool:
    return bool(haystack) and needle.lower() in haystack.lower()


def _in_any_range(age: int | None, ranges) -> bool:
    if age is None:
        return False
    return any(low <= age and (high is None or age <= high) for low, high in ranges)


def normalize_text_filter(value: str | None) -> str:
    """Collapse whitespace and cap the length of user-entered filter text."""
    text = " ".join((value or "").split()).strip()
    if not text:
        return ""
    return text[:MAX_TEXT_FILTER_LENGTH]


def clamp_page(limit: int, offset: int) -> tuple[int, int]:
    return max(0, int(limit)), max(0, int(offset))


def newest_first(pets: Iterable[Pet]) -> list[Pet]:
    return sorted(pets, key=lambda pet: (pet.created_at, pet.id), reverse=True)


def select_pets(
    pets: Iterable[Pet],
    filters: PetFilters | None = None,
    limit: int = DEFAULT_LIMIT,
    offset: int = 0,
) -> list[Pet]:
    """Filter, sort newest first, then slice ``[offset, offset + limit)``."""
    active = filters or PetFilters()
    page_limit, page_offset = clamp_page(limit, offset)
    matching = [pet for pet in pets if active.matches(pet)]
    return newest_first(matching)[page_offset : page_offset + page_limit]


def age_bucket_ranges(buckets: Iterable[str]) -> tuple[tuple[int, int | None], ...]:
    """Return the month ranges for the named age buckets.

    A pet matches the selection when its age falls inside any one range, so
    choosing ``puppy`` and ``senior`` never pulls in adults.

    Args:
        buckets: Bucket names such as ``puppy`` or ``senior``.

    Returns:
        Inclusive ``(low, high)`` pairs in bucket order, duplicates dropped;
        ``high`` is None for an open-ended bucket. Empty when no buckets
        were given.

    Raises:
        ValidationError: On an unknown bucket name.
    """
    names = [name.strip().lower() for name in buckets if name and name.strip()]
    unknown = [name for name in names if name not in AGE_BUCKETS]
    if unknown:
        raise ValidationError(
            f"Unknown age bucket '{unknown[0]}'. Options: {list(AGE_BUCKETS)}"
        )
    return tuple(AGE_BUCKETS[name] for name in dict.fromkeys(names))


def _first(query: Mapping, key: str) -> str:
    value = query.get(key)
    if isinstance(value, (list, tuple)):
        value = value[0] if value else ""
    return str(value).strip() if value is not None else ""


def _parse_int(query: Mapping, key: str) -> int | None:
    raw = _first(query, key)
    if not raw:
        return None
    try:
        return int(raw)
    except ValueError:
        raise ValidationError(f"{key} must be an integer") from None


def _parse_float(query: Mapping, key: str) -> float | None:
    raw = _first(query, key)
    if not raw:
        return None
    try:
        value = float(raw)
    except ValueError:
        raise ValidationError(f"{key} must be a number") from None
    if value != value:
        raise ValidationError(f"{key} must be a number")
    return value


def _parse_bool(query: Mapping, key: str) -> bool | None:
    raw = _first(query, key).lower()
    if not raw:
        return None
    if raw in TRUE_VALUES:
        return True
    if raw in FALSE_VALUES:
        return False
    raise ValidationError(f"{key} must be true or false")


def parse_pet_query(query: Mapping) -> tuple[PetFilters, int, int]:
    """Parse listing query parameters into filters and a page window.

    Blank parameters count as absent. Malformed numbers and booleans raise
    ``ValidationError`` instead of being dropped.
    """
    limit = _parse_int(query, "limit")
    if limit is None:
        limit = DEFAULT_LIMIT
    if limit > MAX_LIMIT:
        raise ValidationError(f"limit must be at most {MAX_LIMIT}")
    offset = _parse_int(query, "offset") or 0

    age_ranges = age_bucket_ranges(_first(query, "age").split(","))

    filters = PetFilters(
        type=normalize_text_filter(_first(query, "type")).lower() or None,
        breed=normalize_text_filter(_first(query, "breed")) or None,
        min_age=_parse_int(query, "min_age"),
        max_age=_parse_int(query, "max_age"),
        age_ranges=age_ranges or None,
        min_price=_parse_float(query, "min_price"),
        max_price=_parse_float(query, "max_price"),
        location=normalize_text_filter(_first(query, "location")) or None,
        seller_id=_parse_int(query, "seller_id"),
        is_featured=_parse_bool(query, "is_featured"),
        listing_type=normalize_text_filter(_first(query, "listing_type")).lower() or None,
    )
    return filters, *clamp_page(limit, offset)


def text_like_pattern(value: str) -> str:
    """Escape wildcard characters so text filters match literal text."""
    escaped = (
        value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    )
    return f"%{escaped}%"


def build_pet_where(filters: PetFilters | None) -> tuple[str, list]:
    """Compile filters into a SQL ``WHERE`` body and its parameters."""
    active = filters or PetFilters()
    clauses: list[str] = []
    params: list = []
    if active.type:
        clauses.append("lower(type) = lower(%s)")
        params.append(active.type)
    if active.breed:
        clauses.append("COALESCE(breed, '') ILIKE %s ESCAPE '\\'")
        params.append(text_like_pattern(active.breed))
    if active.min_age is not None:
        clauses.append("age IS NOT NULL AND age >= %s")
        params.append(active.min_age)
    if active.max_age is not None:
        clauses.append("age IS NOT NULL AND age <= %s")
        params.append(active.max_age)
    if active.age_ranges:
        alternatives = []
        for low, high in active.age_ranges:
            if high is None:
                alternatives.append("age >= %s")
                params.append(low)
            else:
                alternatives.append("age BETWEEN %s AND %s")
                params.extend([low, high])
        clauses.append(f"age IS NOT NULL AND ({' OR '.join(alternatives)})")
    if active.min_price is not None:
        clauses.append("price IS NOT NULL AND price >= %s")
        params.append(active.min_price)
    if active.max_price is not None:
        clauses.append("price IS NOT NULL AND price <= %s")
        params.append(active.max_price)
    if active.location:
        clauses.append("COALESCE(location, '') ILIKE %s ESCAPE '\\'")
        params.append(text_like_pattern(active.location))
    if active.seller_id is not None:
        clauses.append("seller_id = %s")
        params.append(active.seller_id)
    if active.is_featured is not None:
        clauses.append("is_featured = %s")
        params.append(active.is_featured)
    if active.listing_type:
        clauses.append("listing_type = %s")
        params.append(active.listing_type)
    if not clauses:
        return "TRUE", params
    return " AND ".join(f"({clause})" for clause in clauses), params
