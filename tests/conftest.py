from datetime import datetime, timedelta, timezone
from functools import partial
import itertools

import pytest

import snugglepaws.auth as auth
import snugglepaws.marketplace as marketplace
from snugglepaws.payments import ConfirmedPayment, PaymentIntent
import snugglepaws.seed as seed


def make_clock(start=None, step=timedelta(minutes=1)):
    """Return a clock that advances by ``step`` on every call."""
    origin = start or datetime(2025, 1, 1, tzinfo=timezone.utc)
    ticks = itertools.count()
    return lambda: origin + step * next(ticks)


@pytest.fixture(autouse=True)
def fast_password_hashing(monkeypatch):
    fast = partial(auth.hash_password, iterations=1000)
    monkeypatch.setattr(marketplace, "hash_password", fast)
    monkeypatch.setattr(seed, "hash_password", fast)


class FakePayments:
    """Payment provider double; payments succeed only once ``settle`` is called."""

    def __init__(self):
        self.opened = {}
        self.settled = set()

    def create_payment(self, amount, currency, metadata):
        payment_id = f"pi_{len(self.opened) + 1}"
        self.opened[payment_id] = (amount, currency, dict(metadata))
        return PaymentIntent(id=payment_id, client_secret=f"{payment_id}_secret")

    def settle(self, payment_id):
        self.settled.add(payment_id)

    def confirm(self, payment_id):
        if payment_id not in self.settled:
            return None
        amount, currency, metadata = self.opened[payment_id]
        return ConfirmedPayment(id=payment_id, amount=amount, currency=currency, **metadata)
