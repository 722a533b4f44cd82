"""Contract for the external card payment provider.

The marketplace never moves money itself. ``checkout`` asks the provider to
open a payment for a listing and hands the client secret to the browser; the
purchase is only applied once the provider reports that payment as settled.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol


@dataclass(frozen=True)
class PaymentIntent:
    id: str
    client_secret: str


@dataclass(frozen=True)
class ConfirmedPayment:
    """A settled payment and the listing metadata it was opened with."""

    id: str
    amount: int
    currency: str
    pet_id: int
    buyer_id: int
    seller_id: int


class PaymentProvider(Protocol):
    def create_payment(self, amount: int, currency: str, metadata: dict) -> PaymentIntent:
        """Open a payment for ``amount`` minor units carrying ``metadata``."""

    def confirm(self, payment_id: str) -> ConfirmedPayment | None:
        """Return the payment if it has succeeded, None for unknown or unsettled ids."""
