"""JSON HTTP API for SnugglePaws.

This module provides a threaded HTTP server exposing account, listing,
favorite, messaging and purchase endpoints on top of a ``Marketplace``.
"""

from __future__ import annotations

import argparse
import json
import logging
import re
from http.cookies import CookieError, SimpleCookie
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from urllib.parse import parse_qs, urlparse

from dotenv import load_dotenv

from snugglepaws.auth import decode_session_value, encode_session_value
from snugglepaws.config import (
    SESSION_COOKIE_MAX_AGE_SECONDS,
    SESSION_COOKIE_NAME,
    get_log_level,
    get_storage_backend,
)
from snugglepaws.errors import MarketplaceError, ValidationError
from snugglepaws.marketplace import Marketplace
from snugglepaws.seed import seed_demo_data
from snugglepaws.store import create_store

logger = logging.getLogger(__name__)

ROUTES: list[tuple[str, re.Pattern, str]] = [
    (method, re.compile(f"^{pattern}$"), name)
    for method, pattern, name in [
        ("GET", r"/api/health", "_health"),
        ("POST", r"/api/auth/register", "_register"),
        ("POST", r"/api/auth/login", "_login"),
        ("POST", r"/api/auth/logout", "_logout"),
        ("GET", r"/api/auth/me", "_me"),
        ("GET", r"/api/users", "_list_users"),
        ("PUT", r"/api/users/me", "_update_profile"),
        ("GET", r"/api/pets", "_list_pets"),
        ("POST", r"/api/pets", "_create_pet"),
        ("GET", r"/api/pets/(\d+)", "_get_pet"),
        ("PUT", r"/api/pets/(\d+)", "_update_pet"),
        ("DELETE", r"/api/pets/(\d+)", "_delete_pet"),
        ("GET", r"/api/favorites", "_list_favorites"),
        ("POST", r"/api/favorites", "_add_favorite"),
        ("DELETE", r"/api/favorites/(\d+)", "_remove_favorite"),
        ("GET", r"/api/favorites/check/(\d+)", "_check_favorite"),
        ("GET", r"/api/messages", "_list_messages"),
        ("POST", r"/api/messages", "_send_message"),
        ("GET", r"/api/messages/conversations", "_conversations"),
        ("GET", r"/api/messages/conversation/(\d+)", "_conversation"),
        ("GET", r"/api/messages/unread", "_unread"),
        ("POST", r"/api/checkout", "_checkout"),
        ("POST", r"/api/payment-success", "_payment_success"),
    ]
]


class AppHandler(BaseHTTPRequestHandler):
    """HTTP handler translating JSON requests into marketplace calls."""

    server_version = "SnugglePaws/0.1"

    @property
    def marketplace(self) -> Marketplace:
        return self.server.marketplace

    def _send_json(self, status: int, payload, headers: dict | None = None) -> None:
        """Write a JSON response.

        Args:
            status: HTTP status code.
            payload: JSON-serializable response payload.
            headers: Optional extra headers such as ``Set-Cookie``.

        Returns:
            None.
        """
        data = json.dumps(payload).encode("utf-8")
        self.send_response(status)
        self.send_header("Content-Type", "application/json")
        self.send_header("Cache-Control", "no-store, no-cache, must-revalidate, max-age=0")
        self.send_header("Content-Length", str(len(data)))
        for key, value in (headers or {}).items():
            self.send_header(key, value)
        self.end_headers()
        self.wfile.write(data)

    def _session_cookie_header(self, value: str, max_age: int) -> str:
        """Build a Set-Cookie value for the session; ``max_age=0`` clears it."""
        jar = SimpleCookie()
        jar[SESSION_COOKIE_NAME] = value
        morsel = jar[SESSION_COOKIE_NAME]
        morsel["path"] = "/"
        morsel["httponly"] = True
        morsel["samesite"] = "Lax"
        morsel["max-age"] = max_age
        if (self.headers.get("X-Forwarded-Proto") or "").strip().lower() == "https":
            morsel["secure"] = True
        return morsel.OutputString()

    def _sign_in_headers(self, user_id: int) -> dict:
        value = encode_session_value(user_id)
        return {"Set-Cookie": self._session_cookie_header(value, SESSION_COOKIE_MAX_AGE_SECONDS)}

    def _current_user_id(self) -> int | None:
        """Resolve the signed-in user id from the session cookie."""
        try:
            jar = SimpleCookie(self.headers.get("Cookie") or "")
        except CookieError:
            return None
        morsel = jar.get(SESSION_COOKIE_NAME)
        user_id = decode_session_value(morsel.value if morsel else None)
        if user_id is None or self.marketplace.store.get_user(user_id) is None:
            return None
        return user_id

    def _read_json(self):
        try:
            length = int(self.headers.get("Content-Length") or 0)
        except ValueError:
            raise ValidationError("Content-Length must be an integer") from None
        if length <= 0:
            return {}
        body = self.rfile.read(length)
        try:
            return json.loads(body.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError):
            raise ValidationError("Request body must be valid UTF-8 JSON") from None

    def _dispatch(self, method: str) -> None:
        parsed = urlparse(self.path)
        path = parsed.path.rstrip("/") or "/"
        allowed: list[str] = []
        for route_method, pattern, name in ROUTES:
            match = pattern.match(path)
            if not match:
                continue
            if route_method != method:
                allowed.append(route_method)
                continue
            query = parse_qs(parsed.query)
            try:
                result = getattr(self, name)(query, *(int(group) for group in match.groups()))
            except MarketplaceError as exc:
                return self._send_json(exc.status, exc.to_dict())
            except Exception as exc:
                logger.exception(f"Unhandled error for {method} {path}")
                return self._send_json(500, {"error": "internal error", "detail": str(exc)})
            status, payload, *extra = result
            return self._send_json(status, payload, extra[0] if extra else None)

        if allowed:
            return self._send_json(
                405,
                {"error": "method not allowed", "kind": "method_not_allowed"},
                {"Allow": ", ".join(sorted(set(allowed)))},
            )
        return self._send_json(404, {"error": "not found", "kind": "not_found"})

    def do_GET(self):
        self._dispatch("GET")

    def do_POST(self):
        self._dispatch("POST")

    def do_PUT(self):
        self._dispatch("PUT")

    def do_DELETE(self):
        self._dispatch("DELETE")

    def log_message(self, fmt, *args):
        logger.debug(f"{self.address_string()} {fmt % args}")

    # Route handlers return (status, payload[, headers]).

    def _health(self, query):
        return 200, {"ok": True}

    def _register(self, query):
        user = self.marketplace.register(self._read_json())
        return 201, user.to_dict(), self._sign_in_headers(user.id)

    def _login(self, query):
        payload = self._read_json()
        if not isinstance(payload, dict):
            raise ValidationError("Request body must be a JSON object")
        user = self.marketplace.authenticate(payload.get("username"), payload.get("password"))
        return 200, user.to_dict(), self._sign_in_headers(user.id)

    def _logout(self, query):
        return (
            200,
            {"message": "Logged out successfully"},
            {"Set-Cookie": self._session_cookie_header("", 0)},
        )

    def _me(self, query):
        return 200, self.marketplace.current_user(self._current_user_id()).to_dict()

    def _list_users(self, query):
        return 200, [user.to_dict() for user in self.marketplace.list_users()]

    def _update_profile(self, query):
        user = self.marketplace.update_profile(self._current_user_id(), self._read_json())
        return 200, user.to_dict()

    def _list_pets(self, query):
        return 200, self.marketplace.list_pets(query, viewer_id=self._current_user_id())

    def _create_pet(self, query):
        pet = self.marketplace.create_pet(self._current_user_id(), self._read_json())
        return 201, pet.to_dict()

    def _get_pet(self, query, pet_id):
        return 200, self.marketplace.get_pet(pet_id).to_dict()

    def _update_pet(self, query, pet_id):
        pet = self.marketplace.update_pet(self._current_user_id(), pet_id, self._read_json())
        return 200, pet.to_dict()

    def _delete_pet(self, query, pet_id):
        self.marketplace.delete_pet(self._current_user_id(), pet_id)
        return 200, {"message": "Pet deleted successfully"}

    def _list_favorites(self, query):
        pets = self.marketplace.favorite_pets(self._current_user_id())
        return 200, [pet.to_dict() for pet in pets]

    def _add_favorite(self, query):
        payload = self._read_json()
        if not isinstance(payload, dict):
            raise ValidationError("Request body must be a JSON object")
        favorite = self.marketplace.add_favorite(self._current_user_id(), payload.get("pet_id"))
        return 201, favorite.to_dict()

    def _remove_favorite(self, query, pet_id):
        self.marketplace.remove_favorite(self._current_user_id(), pet_id)
        return 200, {"message": "Removed from favorites"}

    def _check_favorite(self, query, pet_id):
        return 200, {"is_favorite": self.marketplace.is_favorite(self._current_user_id(), pet_id)}

    def _list_messages(self, query):
        messages = self.marketplace.messages(self._current_user_id())
        return 200, [message.to_dict() for message in messages]

    def _send_message(self, query):
        message = self.marketplace.send_message(self._current_user_id(), self._read_json())
        return 201, message.to_dict()

    def _conversations(self, query):
        summaries = self.marketplace.conversations_for(self._current_user_id())
        return 200, [summary.to_dict() for summary in summaries]

    def _conversation(self, query, other_id):
        thread = self.marketplace.open_conversation(self._current_user_id(), other_id)
        return 200, [message.to_dict() for message in thread]

    def _unread(self, query):
        return 200, {"count": self.marketplace.unread_count(self._current_user_id())}

    def _checkout(self, query):
        payload = self._read_json()
        if not isinstance(payload, dict):
            raise ValidationError("Request body must be a JSON object")
        return 200, self.marketplace.checkout(self._current_user_id(), payload.get("pet_id"))

    def _payment_success(self, query):
        payload = self._read_json()
        if not isinstance(payload, dict):
            raise ValidationError("Request body must be a JSON object")
        notice = self.marketplace.complete_purchase(
            self._current_user_id(), payload.get("payment_id")
        )
        return 200, {"success": True, "message": notice.to_dict()}


def create_server(host: str, port: int, marketplace: Marketplace) -> ThreadingHTTPServer:
    """Bind a threaded HTTP server serving ``marketplace``.

    Args:
        host: Interface to bind.
        port: TCP port; 0 picks a free port.
        marketplace: Service instance shared by all request threads.

    Returns:
        The bound, not yet serving, server.
    """
    server = ThreadingHTTPServer((host, port), AppHandler)
    server.daemon_threads = True
    server.marketplace = marketplace
    return server


def main() -> None:
    """Run the SnugglePaws HTTP server from CLI arguments."""
    load_dotenv()
    logging.basicConfig(
        level=get_log_level(), format="%(asctime)s %(levelname)s %(name)s: %(message)s"
    )
    parser = argparse.ArgumentParser(description="Serve the SnugglePaws API")
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=8000)
    parser.add_argument(
        "--no-seed",
        action="store_true",
        help="Start the in-memory store empty instead of loading demo data",
    )
    args = parser.parse_args()

    backend = get_storage_backend()
    store = create_store(backend)
    if backend == "memory" and not args.no_seed:
        seed_demo_data(store)

    logger.warning("No payment provider configured; purchases cannot be completed.")
    server = create_server(args.host, args.port, Marketplace(store))
    logger.info(f"SnugglePaws ({backend} store) running at http://{args.host}:{args.port}")
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        pass
    finally:
        server.server_close()


if __name__ == "__main__":
    main()
