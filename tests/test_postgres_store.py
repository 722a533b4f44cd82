from datetime import datetime, timezone
from decimal import Decimal
from types import SimpleNamespace

import psycopg
import pytest

import snugglepaws.store.postgres as pg
from snugglepaws.errors import Conflict
from snugglepaws.filters import PetFilters
from snugglepaws.models import Favorite, Message, Pet

NOW = datetime(2025, 6, 1, tzinfo=timezone.utc)


class DummyCursor:
    def __init__(self, results=None, error=None):
        # Each execute consumes one (columns, rows) entry.
        self.results = list(results or [])
        self.error = error
        self.executed = []
        self.description = None
        self.rows = []

    def execute(self, query, params=None):
        self.executed.append((query, params))
        if self.error is not None:
            raise self.error
        if self.results:
            columns, rows = self.results.pop(0)
            self.description = [SimpleNamespace(name=name) for name in columns]
            self.rows = list(rows)
        else:
            self.description = None
            self.rows = []

    def fetchone(self):
        return self.rows.pop(0) if self.rows else None

    def fetchall(self):
        rows, self.rows = self.rows, []
        return rows

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        return False


class DummyConn:
    def __init__(self, results=None, error=None):
        self.cursor_obj = DummyCursor(results, error)
        self.commits = 0

    def cursor(self):
        return self.cursor_obj

    def commit(self):
        self.commits += 1

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        return False


def _store(conn, schema_calls=None):
    def ensure(connection):
        if schema_calls is not None:
            schema_calls.append(connection)

    return pg.PostgresStore(
        connection_factory=lambda: conn,
        ensure_schema_fn=ensure,
        clock=lambda: NOW,
    )


def _pet_row(pet_id, name, price=Decimal("99.50")):
    columns = [
        "id",
        "name",
        "type",
        "seller_id",
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
        "created_at",
    ]
    row = (
        pet_id,
        name,
        "dog",
        1,
        "Labrador",
        4,
        "male",
        "large",
        None,
        price,
        ["a.jpg"],
        "available",
        "Bellevue, WA",
        False,
        "sale",
        NOW,
    )
    return columns, row


def test_get_pg_config_defaults(monkeypatch):
    for key in ("PGHOST", "PGPORT", "PGUSER", "PGPASSWORD", "PGDATABASE"):
        monkeypatch.delenv(key, raising=False)
    cfg = pg._get_pg_config()
    assert cfg == {
        "host": "localhost",
        "port": 5432,
        "user": "postgres",
        "password": "postgres",
        "dbname": "snugglepaws",
    }


def test_ensure_schema_creates_tables_and_commits():
    conn = DummyConn()
    pg.ensure_schema(conn)
    sql = "\n".join(query for query, _ in conn.cursor_obj.executed)
    for table in ("users", "pets", "favorites", "messages"):
        assert f"CREATE TABLE IF NOT EXISTS {table}" in sql
    assert "UNIQUE (user_id, pet_id)" in sql
    assert conn.commits == 1


def test_schema_is_ensured_once_per_store():
    conn = DummyConn()
    calls = []
    store = _store(conn, calls)
    store.get_pet(1)
    store.get_pet(2)
    assert len(calls) == 1


def test_get_pet_builds_dataclass_from_row():
    columns, row = _pet_row(3, "Cooper")
    conn = DummyConn([(columns, [row])])
    pet = _store(conn).get_pet(3)
    assert isinstance(pet, Pet)
    assert pet.price == 99.5
    assert pet.images == ("a.jpg",)
    assert conn.cursor_obj.executed[0][1] == (3,)


def test_get_pet_missing_returns_none():
    assert _store(DummyConn()).get_pet(9) is None


def test_list_pets_passes_where_params_then_page():
    columns, row = _pet_row(1, "Max")
    conn = DummyConn([(columns, [row])])
    pets = _store(conn).list_pets(PetFilters(type="dog", max_price=100), limit=5, offset=-2)
    query, params = conn.cursor_obj.executed[0]
    assert "WHERE (lower(type) = lower(%s)) AND (price IS NOT NULL AND price <= %s)" in query
    assert "ORDER BY created_at DESC, id DESC" in query
    assert params == ["dog", 100, 5, 0]
    assert [pet.name for pet in pets] == ["Max"]


def test_create_pet_inserts_defaults_and_commits():
    columns, row = _pet_row(7, "Max")
    conn = DummyConn([(columns, [row])])
    pet = _store(conn).create_pet(1, "Max", "Dog", price=99.5, id=5)
    query, params = conn.cursor_obj.executed[0]
    assert "INSERT INTO pets (seller_id, name, type, price, status, images" in query
    assert params[:4] == [1, "Max", "dog", 99.5]
    assert params[-1] == NOW
    assert conn.commits == 1
    assert pet.id == 7


class DuplicateUsername(psycopg.errors.UniqueViolation):
    diag = SimpleNamespace(constraint_name="idx_users_username_lower")


class DuplicateEmail(psycopg.errors.UniqueViolation):
    diag = SimpleNamespace(constraint_name="idx_users_email_lower")


def test_create_user_maps_unique_violations_to_conflict():
    store = _store(DummyConn(error=DuplicateUsername("duplicate key")))
    with pytest.raises(Conflict, match="Username"):
        store.create_user("dup", "dup@example.com", "hash", "Dup")

    store = _store(DummyConn(error=DuplicateEmail("duplicate key")))
    with pytest.raises(Conflict, match="Email"):
        store.update_user(1, {"email": "taken@example.com"})


def test_mark_pet_sold_only_updates_unsold_rows():
    columns, row = _pet_row(1, "Max")
    conn = DummyConn([(columns, [row])])
    assert _store(conn).mark_pet_sold(1).id == 1
    query, params = conn.cursor_obj.executed[0]
    assert "AND status <> 'sold'" in query
    assert params == (1,)
    assert conn.commits == 1
    assert _store(DummyConn()).mark_pet_sold(1) is None


def test_update_pet_without_changes_reads_current_row():
    columns, row = _pet_row(1, "Max")
    conn = DummyConn([(columns, [row])])
    pet = _store(conn).update_pet(1, {"id": 5})
    assert pet.name == "Max"
    assert conn.cursor_obj.executed[0][0].startswith("SELECT")


def test_update_pet_sets_only_allowed_columns():
    columns, row = _pet_row(1, "Max")
    conn = DummyConn([(columns, [row])])
    _store(conn).update_pet(1, {"status": "sold", "seller_id": 2})
    query, params = conn.cursor_obj.executed[0]
    assert "SET status = %s WHERE id = %s" in query
    assert params == ["sold", 1]
    assert conn.commits == 1


def test_delete_pet_reports_result():
    conn = DummyConn([(["id"], [(4,)])])
    assert _store(conn).delete_pet(4) is True
    assert _store(DummyConn()).delete_pet(4) is False


def test_add_favorite_returns_existing_row_on_conflict():
    columns = ["id", "user_id", "pet_id", "created_at"]
    conn = DummyConn([(columns, []), (columns, [(11, 2, 3, NOW)])])
    favorite = _store(conn).add_favorite(2, 3)
    assert favorite == Favorite(id=11, user_id=2, pet_id=3, created_at=NOW)
    assert "ON CONFLICT (user_id, pet_id) DO NOTHING" in conn.cursor_obj.executed[0][0]
    assert len(conn.cursor_obj.executed) == 2
    assert conn.commits == 1


def test_favorite_pet_ids_and_listing():
    conn = DummyConn([(["pet_id"], [(3,), (5,)])])
    assert _store(conn).favorite_pet_ids(1) == {3, 5}

    columns, row = _pet_row(3, "Cooper")
    conn = DummyConn([(columns, [row])])
    pets = _store(conn).list_favorite_pets(1)
    query = conn.cursor_obj.executed[0][0]
    assert "JOIN pets" in query
    assert "ORDER BY favorites.created_at DESC, favorites.id DESC" in query
    assert [pet.id for pet in pets] == [3]


def test_conversation_query_covers_both_directions():
    columns = ["id", "sender_id", "receiver_id", "content", "pet_id", "is_read", "created_at"]
    conn = DummyConn([(columns, [(1, 2, 1, "hi", None, False, NOW)])])
    thread = _store(conn).get_conversation(1, 2)
    query, params = conn.cursor_obj.executed[0]
    assert params == (1, 2, 2, 1)
    assert "ORDER BY created_at ASC, id ASC" in query
    assert thread == [Message(id=1, sender_id=2, receiver_id=1, content="hi", created_at=NOW)]


def test_mark_messages_read_and_count_unread():
    conn = DummyConn([(["id"], [(1,), (2,)])])
    assert _store(conn).mark_messages_read(1, 2) is True
    assert conn.commits == 1
    assert _store(DummyConn([(["id"], [])])).mark_messages_read(1, 2) is False

    conn = DummyConn([(["count"], [(4,)])])
    assert _store(conn).count_unread(1) == 4


def test_get_connection_requires_psycopg(monkeypatch):
    monkeypatch.setattr(pg, "psycopg", None)
    with pytest.raises(ModuleNotFoundError):
        pg.get_connection()


def test_fallback_configs_for_unresolved_compose_host():
    cfg = {"host": "postgres", "port": 5432, "user": "u", "password": "p", "dbname": "d"}
    error = Exception('could not translate host name "postgres": Name or service not known')
    targets = [(c["host"], c["port"]) for c in pg._fallback_configs(cfg, error)]
    assert targets == [
        ("localhost", 5432),
        ("localhost", 5433),
        ("127.0.0.1", 5432),
        ("127.0.0.1", 5433),
    ]


def test_fallback_configs_for_local_port():
    cfg = {"host": "localhost", "port": 5432, "user": "u", "password": "p", "dbname": "d"}
    targets = [(c["host"], c["port"]) for c in pg._fallback_configs(cfg, Exception("refused"))]
    assert targets == [("localhost", 5433)]
    cfg = {**cfg, "host": "db.internal", "port": 6543}
    assert pg._fallback_configs(cfg, Exception("refused")) == []


def test_healthcheck_ensures_schema(monkeypatch, capsys):
    import snugglepaws.healthcheck as healthcheck

    conn = DummyConn()
    monkeypatch.setattr(healthcheck, "get_connection", lambda: conn)
    healthcheck.main()
    assert conn.commits == 1
    assert capsys.readouterr().out.strip() == "OK"
