"""Password hashing and signed session values for SnugglePaws.

Session cookies carry ``<user_id>.<issued_at>.<signature>``; the signature is
an HMAC over the first two parts, so neither can be altered, and values older
than the cookie max-age are refused even if a client keeps sending them.
"""

from __future__ import annotations

import hashlib
import hmac
import os
import time

from snugglepaws.config import (
    DEFAULT_SESSION_SECRET,
    PASSWORD_HASH_ITERATIONS,
    PASSWORD_MIN_LENGTH,
    SESSION_COOKIE_MAX_AGE_SECONDS,
)

HASH_ALGORITHM = "pbkdf2_sha256"


def password_error(password: str) -> str | None:
    if len(password or "") < PASSWORD_MIN_LENGTH:
        return f"Password must be at least {PASSWORD_MIN_LENGTH} characters."
    return None


def _derive(password: str, salt: bytes, iterations: int) -> str:
    return hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, iterations).hex()


def hash_password(password: str, iterations: int = PASSWORD_HASH_ITERATIONS) -> str:
    """Hash a password as ``pbkdf2_sha256$<iterations>$<salt hex>$<digest hex>``."""
    salt = os.urandom(16)
    return f"{HASH_ALGORITHM}${iterations}${salt.hex()}${_derive(password, salt, iterations)}"


def verify_password(password: str, password_hash: str) -> bool:
    """Check ``password`` against a stored hash; malformed hashes never match."""
    parts = (password_hash or "").split("$")
    if len(parts) != 4 or parts[0] != HASH_ALGORITHM:
        return False
    _, iterations_text, salt_hex, expected = parts
    try:
        iterations = int(iterations_text)
        salt = bytes.fromhex(salt_hex)
    except ValueError:
        return False
    if iterations < 1 or not salt or not expected:
        return False
    return hmac.compare_digest(_derive(password or "", salt, iterations), expected)


def session_secret() -> str:
    return os.environ.get("SNUGGLEPAWS_SESSION_SECRET", "").strip() or DEFAULT_SESSION_SECRET


def _sign(payload: str) -> str:
    key = session_secret().encode("utf-8")
    return hmac.new(key, payload.encode("utf-8"), hashlib.sha256).hexdigest()


def encode_session_value(user_id: int, issued_at: int | None = None) -> str:
    issued = int(time.time()) if issued_at is None else int(issued_at)
    payload = f"{user_id}.{issued}"
    return f"{payload}.{_sign(payload)}"


def decode_session_value(raw_value: str | None, now: float | None = None) -> int | None:
    """Return the signed-in user id, or None for missing, forged or expired values."""
    parts = (raw_value or "").strip().split(".")
    if len(parts) != 3 or not parts[0].isdigit() or not parts[1].isdigit():
        return None
    user_id_text, issued_text, signature = parts
    if not hmac.compare_digest(signature, _sign(f"{user_id_text}.{issued_text}")):
        return None
    current = time.time() if now is None else now
    if current - int(issued_text) > SESSION_COOKIE_MAX_AGE_SECONDS:
        return None
    user_id = int(user_id_text)
    return user_id if user_id > 0 else None
