"""Postgres-backed store; every call runs in its own transaction."""

from __future__ import annotations

import logging
import os
from dataclasses import fields as dataclass_fields
from datetime import datetime
from decimal import Decimal
from typing import Callable

try:
    import psycopg
    from psycopg.types.json import Json
except ModuleNotFoundError as exc:  # Optional dependency for DB features
    psycopg = None
    Json = None
    _PSYCOPG_IMPORT_ERROR = exc
else:
    _PSYCOPG_IMPORT_ERROR = None

from snugglepaws.errors import Conflict
from snugglepaws.filters import PetFilters, build_pet_where, clamp_page
from snugglepaws.models import Favorite, Message, Pet, User, utc_now
from snugglepaws.store.base import (
    PET_UPDATABLE_FIELDS,
    USER_UPDATABLE_FIELDS,
    pick_fields,
)

logger = logging.getLogger(__name__)

USER_COLUMNS = ", ".join(f.name for f in dataclass_fields(User))
PET_COLUMNS = ", ".join(f.name for f in dataclass_fields(Pet))
FAVORITE_COLUMNS = ", ".join(f.name for f in dataclass_fields(Favorite))
MESSAGE_COLUMNS = ", ".join(f.name for f in dataclass_fields(Message))


def _require_psycopg() -> None:
    if psycopg is None:
        raise ModuleNotFoundError(
            "psycopg is required for the Postgres store. Install it to enable storage."
        ) from _PSYCOPG_IMPORT_ERROR


def _get_pg_config() -> dict[str, str | int]:
    return {
        "host": os.environ.get("PGHOST", "localhost"),
        "port": int(os.environ.get("PGPORT", "5432")),
        "user": os.environ.get("PGUSER", "postgres"),
        "password": os.environ.get("PGPASSWORD", "postgres"),
        "dbname": os.environ.get("PGDATABASE", "snugglepaws"),
    }


def _fallback_configs(cfg: dict, error: Exception) -> list[dict]:
    """Alternate hosts/ports worth trying after the configured one failed.

    A compose-style ``postgres`` host that does not resolve falls back to the
    loopback names; a loopback target on 5432 is also tried on 5433.
    """
    message = str(error).lower()
    hosts = [cfg["host"]]
    if cfg["host"] == "postgres" and any(
        hint in message for hint in ("resolve host", "getaddrinfo", "name or service not known")
    ):
        hosts += ["localhost", "127.0.0.1"]
    ports = [cfg["port"], 5433] if cfg["port"] == 5432 else [cfg["port"]]

    candidates = []
    for host in dict.fromkeys(hosts):
        for port in ports:
            if (host, port) == (cfg["host"], cfg["port"]):
                continue
            if port != cfg["port"] and host not in ("localhost", "127.0.0.1"):
                continue
            candidates.append({**cfg, "host": host, "port": port})
    return candidates


def get_connection() -> psycopg.Connection:
    _require_psycopg()
    cfg = _get_pg_config()
    try:
        return psycopg.connect(**cfg)
    except psycopg.OperationalError as exc:
        for candidate in _fallback_configs(cfg, exc):
            try:
                conn = psycopg.connect(**candidate)
            except psycopg.OperationalError:
                continue
            logger.info(f"Connected to Postgres at {candidate['host']}:{candidate['port']}.")
            return conn
        raise


def ensure_schema(conn) -> None:
    """Create tables and indexes for the marketplace if they are missing."""
    with conn.cursor() as cur:
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS users (
                id BIGSERIAL PRIMARY KEY,
                username TEXT NOT NULL,
                email TEXT NOT NULL,
                password_hash TEXT NOT NULL,
                name TEXT NOT NULL,
                user_type TEXT NOT NULL DEFAULT 'pet_seeker',
                bio TEXT,
                location TEXT,
                profile_image TEXT,
                is_verified BOOLEAN NOT NULL DEFAULT FALSE,
                created_at TIMESTAMPTZ NOT NULL
            );
            """
        )
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS pets (
                id BIGSERIAL PRIMARY KEY,
                name TEXT NOT NULL,
                type TEXT NOT NULL,
                seller_id BIGINT NOT NULL REFERENCES users(id),
                breed TEXT,
                age INTEGER,
                gender TEXT,
                size TEXT,
                description TEXT,
                price DOUBLE PRECISION,
                images JSONB NOT NULL DEFAULT '[]'::jsonb,
                status TEXT NOT NULL DEFAULT 'available',
                location TEXT,
                is_featured BOOLEAN NOT NULL DEFAULT FALSE,
                listing_type TEXT NOT NULL DEFAULT 'sale',
                created_at TIMESTAMPTZ NOT NULL
            );
            """
        )
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS favorites (
                id BIGSERIAL PRIMARY KEY,
                user_id BIGINT NOT NULL REFERENCES users(id),
                pet_id BIGINT NOT NULL,
                created_at TIMESTAMPTZ NOT NULL,
                UNIQUE (user_id, pet_id)
            );
            """
        )
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS messages (
                id BIGSERIAL PRIMARY KEY,
                sender_id BIGINT NOT NULL REFERENCES users(id),
                receiver_id BIGINT NOT NULL REFERENCES users(id),
                content TEXT NOT NULL,
                pet_id BIGINT,
                is_read BOOLEAN NOT NULL DEFAULT FALSE,
                created_at TIMESTAMPTZ NOT NULL
            );
            """
        )
        cur.execute(
            """
            CREATE UNIQUE INDEX IF NOT EXISTS idx_users_username_lower
            ON users (lower(username));
            """
        )
        cur.execute(
            """
            CREATE UNIQUE INDEX IF NOT EXISTS idx_users_email_lower
            ON users (lower(email));
            """
        )
        cur.execute(
            """
            CREATE INDEX IF NOT EXISTS idx_pets_created_at
            ON pets (created_at DESC, id DESC);
            """
        )
        cur.execute(
            """
            CREATE INDEX IF NOT EXISTS idx_pets_seller_id
            ON pets (seller_id);
            """
        )
        cur.execute(
            """
            CREATE INDEX IF NOT EXISTS idx_favorites_user_created
            ON favorites (user_id, created_at DESC);
            """
        )
        cur.execute(
            """
            CREATE INDEX IF NOT EXISTS idx_messages_pair
            ON messages (sender_id, receiver_id, created_at);
            """
        )
        cur.execute(
            """
            CREATE INDEX IF NOT EXISTS idx_messages_receiver_unread
            ON messages (receiver_id)
            WHERE is_read = FALSE;
            """
        )
    conn.commit()


def _coerce(value):
    if isinstance(value, Decimal):
        return float(value)
    return value


def _record(cls, cur, row):
    if not row:
        return None
    columns = [col.name for col in cur.description]
    return cls(**{name: _coerce(value) for name, value in zip(columns, row)})


def _records(cls, cur, rows) -> list:
    columns = [col.name for col in cur.description]
    return [cls(**{name: _coerce(value) for name, value in zip(columns, row)}) for row in rows]


def _unique_conflict(exc: Exception) -> Conflict:
    constraint = getattr(exc.diag, "constraint_name", None) or ""
    if "username" in constraint:
        return Conflict("Username already exists")
    return Conflict("Email already exists")


def _adapt(key: str, value):
    if key == "images":
        return Json(list(value or []))
    return value


class PostgresStore:
    """Repository implementation over a psycopg connection factory."""

    def __init__(
        self,
        connection_factory: Callable = get_connection,
        ensure_schema_fn: Callable = ensure_schema,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._connection_factory = connection_factory
        self._ensure_schema_fn = ensure_schema_fn
        self._clock = clock
        self._schema_ready = False

    def _connect(self):
        conn = self._connection_factory()
        if not self._schema_ready:
            self._ensure_schema_fn(conn)
            self._schema_ready = True
        return conn

    def _fetch_one(self, cls, query: str, params: tuple | list, commit: bool = False):
        with self._connect() as conn:
            with conn.cursor() as cur:
                cur.execute(query, params)
                record = _record(cls, cur, cur.fetchone())
            if commit:
                conn.commit()
        return record

    def _write_user(self, query: str, params: tuple | list) -> User | None:
        try:
            return self._fetch_one(User, query, params, commit=True)
        except psycopg.errors.UniqueViolation as exc:
            raise _unique_conflict(exc) from exc

    def _fetch_all(self, cls, query: str, params: tuple | list) -> list:
        with self._connect() as conn:
            with conn.cursor() as cur:
                cur.execute(query, params)
                return _records(cls, cur, cur.fetchall())

    # Users

    def get_user(self, user_id: int) -> User | None:
        return self._fetch_one(
            User, f"SELECT {USER_COLUMNS} FROM users WHERE id = %s;", (user_id,)
        )

    def get_user_by_username(self, username: str) -> User | None:
        return self._fetch_one(
            User,
            f"SELECT {USER_COLUMNS} FROM users WHERE lower(username) = lower(%s);",
            (username,),
        )

    def get_user_by_email(self, email: str) -> User | None:
        return self._fetch_one(
            User,
            f"SELECT {USER_COLUMNS} FROM users WHERE lower(email) = lower(%s);",
            (email,),
        )

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
        return self._write_user(
            f"""
            INSERT INTO users (
                username,
                email,
                password_hash,
                name,
                user_type,
                bio,
                location,
                profile_image,
                is_verified,
                created_at
            )
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
            RETURNING {USER_COLUMNS};
            """,
            (
                username,
                email,
                password_hash,
                name,
                user_type,
                bio,
                location,
                profile_image,
                is_verified,
                self._clock(),
            ),
        )

    def update_user(self, user_id: int, changes: dict) -> User | None:
        updates = pick_fields(changes, USER_UPDATABLE_FIELDS)
        if not updates:
            return self.get_user(user_id)
        assignments = ", ".join(f"{key} = %s" for key in updates)
        return self._write_user(
            f"UPDATE users SET {assignments} WHERE id = %s RETURNING {USER_COLUMNS};",
            [*updates.values(), user_id],
        )

    def list_users(self) -> list[User]:
        return self._fetch_all(User, f"SELECT {USER_COLUMNS} FROM users ORDER BY id;", ())

    # Pets

    def get_pet(self, pet_id: int) -> Pet | None:
        return self._fetch_one(Pet, f"SELECT {PET_COLUMNS} FROM pets WHERE id = %s;", (pet_id,))

    def list_pets(
        self,
        filters: PetFilters | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> list[Pet]:
        where, params = build_pet_where(filters)
        page_limit, page_offset = clamp_page(limit, offset)
        return self._fetch_all(
            Pet,
            f"""
            SELECT {PET_COLUMNS}
            FROM pets
            WHERE {where}
            ORDER BY created_at DESC, id DESC
            LIMIT %s
            OFFSET %s;
            """,
            [*params, page_limit, page_offset],
        )

    def create_pet(self, seller_id: int, name: str, type: str, **fields) -> Pet:
        values = pick_fields(fields, PET_UPDATABLE_FIELDS)
        values.setdefault("status", "available")
        values.setdefault("images", [])
        values.setdefault("is_featured", False)
        values.setdefault("listing_type", "sale")
        columns = ["seller_id", "name", "type", *values, "created_at"]
        params = [
            seller_id,
            name,
            str(type or "").strip().lower(),
            *(_adapt(key, value) for key, value in values.items()),
            self._clock(),
        ]
        column_list = ", ".join(columns)
        placeholders = ", ".join(["%s"] * len(columns))
        return self._fetch_one(
            Pet,
            f"""
            INSERT INTO pets ({column_list})
            VALUES ({placeholders})
            RETURNING {PET_COLUMNS};
            """,
            params,
            commit=True,
        )

    def update_pet(self, pet_id: int, changes: dict) -> Pet | None:
        updates = pick_fields(changes, PET_UPDATABLE_FIELDS)
        if not updates:
            return self.get_pet(pet_id)
        if "type" in updates:
            updates["type"] = str(updates["type"] or "").strip().lower()
        assignments = ", ".join(f"{key} = %s" for key in updates)
        return self._fetch_one(
            Pet,
            f"UPDATE pets SET {assignments} WHERE id = %s RETURNING {PET_COLUMNS};",
            [*(_adapt(key, value) for key, value in updates.items()), pet_id],
            commit=True,
        )

    def mark_pet_sold(self, pet_id: int) -> Pet | None:
        return self._fetch_one(
            Pet,
            f"""
            UPDATE pets
            SET status = 'sold'
            WHERE id = %s
              AND status <> 'sold'
            RETURNING {PET_COLUMNS};
            """,
            (pet_id,),
            commit=True,
        )

    def delete_pet(self, pet_id: int) -> bool:
        with self._connect() as conn:
            with conn.cursor() as cur:
                cur.execute("DELETE FROM pets WHERE id = %s RETURNING id;", (pet_id,))
                row = cur.fetchone()
            conn.commit()
        return bool(row)

    # Favorites

    def add_favorite(self, user_id: int, pet_id: int) -> Favorite:
        with self._connect() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    f"""
                    INSERT INTO favorites (user_id, pet_id, created_at)
                    VALUES (%s, %s, %s)
                    ON CONFLICT (user_id, pet_id) DO NOTHING
                    RETURNING {FAVORITE_COLUMNS};
                    """,
                    (user_id, pet_id, self._clock()),
                )
                favorite = _record(Favorite, cur, cur.fetchone())
                if favorite is None:
                    cur.execute(
                        f"""
                        SELECT {FAVORITE_COLUMNS}
                        FROM favorites
                        WHERE user_id = %s
                          AND pet_id = %s;
                        """,
                        (user_id, pet_id),
                    )
                    favorite = _record(Favorite, cur, cur.fetchone())
            conn.commit()
        return favorite

    def remove_favorite(self, user_id: int, pet_id: int) -> bool:
        with self._connect() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    DELETE FROM favorites
                    WHERE user_id = %s
                      AND pet_id = %s
                    RETURNING id;
                    """,
                    (user_id, pet_id),
                )
                row = cur.fetchone()
            conn.commit()
        return bool(row)

    def is_favorite(self, user_id: int, pet_id: int) -> bool:
        with self._connect() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    SELECT 1
                    FROM favorites
                    WHERE user_id = %s
                      AND pet_id = %s
                    LIMIT 1;
                    """,
                    (user_id, pet_id),
                )
                row = cur.fetchone()
        return bool(row)

    def favorite_pet_ids(self, user_id: int) -> set[int]:
        with self._connect() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    "SELECT pet_id FROM favorites WHERE user_id = %s;",
                    (user_id,),
                )
                rows = cur.fetchall()
        return {int(row[0]) for row in rows}

    def list_favorite_pets(self, user_id: int) -> list[Pet]:
        pet_columns = ", ".join(f"pets.{f.name}" for f in dataclass_fields(Pet))
        # Inner join drops favorites whose pet has been deleted.
        return self._fetch_all(
            Pet,
            f"""
            SELECT {pet_columns}
            FROM favorites
            JOIN pets
              ON pets.id = favorites.pet_id
            WHERE favorites.user_id = %s
            ORDER BY favorites.created_at DESC, favorites.id DESC;
            """,
            (user_id,),
        )

    # Messages

    def list_messages(self, user_id: int) -> list[Message]:
        return self._fetch_all(
            Message,
            f"""
            SELECT {MESSAGE_COLUMNS}
            FROM messages
            WHERE sender_id = %s
               OR receiver_id = %s
            ORDER BY created_at DESC, id DESC;
            """,
            (user_id, user_id),
        )

    def get_conversation(self, user_a: int, user_b: int) -> list[Message]:
        return self._fetch_all(
            Message,
            f"""
            SELECT {MESSAGE_COLUMNS}
            FROM messages
            WHERE (sender_id = %s AND receiver_id = %s)
               OR (sender_id = %s AND receiver_id = %s)
            ORDER BY created_at ASC, id ASC;
            """,
            (user_a, user_b, user_b, user_a),
        )

    def create_message(
        self,
        sender_id: int,
        receiver_id: int,
        content: str,
        pet_id: int | None = None,
    ) -> Message:
        return self._fetch_one(
            Message,
            f"""
            INSERT INTO messages (sender_id, receiver_id, content, pet_id, is_read, created_at)
            VALUES (%s, %s, %s, %s, FALSE, %s)
            RETURNING {MESSAGE_COLUMNS};
            """,
            (sender_id, receiver_id, content, pet_id, self._clock()),
            commit=True,
        )

    def mark_messages_read(self, receiver_id: int, sender_id: int) -> bool:
        with self._connect() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    UPDATE messages
                    SET is_read = TRUE
                    WHERE receiver_id = %s
                      AND sender_id = %s
                      AND is_read = FALSE
                    RETURNING id;
                    """,
                    (receiver_id, sender_id),
                )
                rows = cur.fetchall()
            conn.commit()
        if rows:
            logger.debug(f"Marked {len(rows)} messages read for user {receiver_id}.")
        return bool(rows)

    def count_unread(self, user_id: int) -> int:
        with self._connect() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    SELECT count(*)
                    FROM messages
                    WHERE receiver_id = %s
                      AND is_read = FALSE;
                    """,
                    (user_id,),
                )
                row = cur.fetchone()
        return int(row[0]) if row else 0
