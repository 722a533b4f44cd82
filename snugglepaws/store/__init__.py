from __future__ import annotations

from typing import Callable

from .base import Repository
from .memory import InMemoryStore
from .postgres import PostgresStore
from ..config import get_storage_backend


STORE_FACTORIES: dict[str, Callable[[], Repository]] = {
    "memory": InMemoryStore,
    "postgres": PostgresStore,
}


def create_store(backend: str | None = None) -> Repository:
    name = backend or get_storage_backend()
    try:
        return STORE_FACTORIES[name]()
    except KeyError as e:
        raise ValueError(f"Unknown backend='{name}'. Options: {sorted(STORE_FACTORIES)}") from e


__all__ = ["InMemoryStore", "PostgresStore", "Repository", "create_store"]
