from __future__ import annotations

from dotenv import load_dotenv

from .store.postgres import ensure_schema, get_connection


def main() -> None:
    load_dotenv()
    with get_connection() as conn:
        ensure_schema(conn)
    print("OK")


if __name__ == "__main__":
    main()
