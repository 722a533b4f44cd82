"""Error taxonomy shared by the store, the service layer and the HTTP API."""

from __future__ import annotations


class MarketplaceError(Exception):
    """Base class for user-visible failures.

    Each subclass carries a machine-checkable ``kind`` and the HTTP status the
    API answers with.
    """

    kind = "error"
    status = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"error": self.message, "kind": self.kind}


class NotFound(MarketplaceError):
    kind = "not_found"
    status = 404


class Unauthorized(MarketplaceError):
    kind = "unauthorized"
    status = 401


class Forbidden(MarketplaceError):
    kind = "forbidden"
    status = 403


class ValidationError(MarketplaceError, ValueError):
    kind = "validation_error"
    status = 400


class Conflict(MarketplaceError):
    kind = "conflict"
    status = 409


class PaymentUnavailable(MarketplaceError):
    kind = "payments_unavailable"
    status = 503
