import http.client
import threading

import pytest
import requests

from snugglepaws.client import ApiError, MarketplaceClient, filter_params
from snugglepaws.marketplace import Marketplace
from snugglepaws.server import create_server
from snugglepaws.store import InMemoryStore

from conftest import FakePayments, make_clock


@pytest.fixture
def payments():
    return FakePayments()


@pytest.fixture
def base_url(payments):
    market = Marketplace(InMemoryStore(clock=make_clock()), payments=payments)
    server = create_server("127.0.0.1", 0, market)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    host, port = server.server_address[:2]
    yield f"http://{host}:{port}"
    server.shutdown()
    server.server_close()


def _client(base_url, username, **profile):
    client = MarketplaceClient(base_url)
    client.register(
        username=username,
        password="password123",
        email=f"{username}@example.com",
        name=username.title(),
        **profile,
    )
    return client


def test_filter_params_serializes_values():
    assert filter_params(
        {"type": "dog", "age": ["puppy", "young"], "is_featured": False, "breed": None, "limit": 5}
    ) == {"type": "dog", "age": "puppy,young", "is_featured": "false", "limit": "5"}


def test_health_and_unknown_routes(base_url):
    assert requests.get(f"{base_url}/api/health", timeout=5).json() == {"ok": True}
    missing = requests.get(f"{base_url}/api/nothing", timeout=5)
    assert missing.status_code == 404
    wrong_method = requests.delete(f"{base_url}/api/users", timeout=5)
    assert wrong_method.status_code == 405
    assert wrong_method.headers["Allow"] == "GET"


def test_register_sets_session_and_me_requires_it(base_url):
    client = _client(base_url, "johndoe")
    me = client.me()
    assert me["username"] == "johndoe"
    assert "password_hash" not in me

    client.logout()
    with pytest.raises(ApiError) as excinfo:
        client.me()
    assert excinfo.value.status == 401
    assert excinfo.value.kind == "unauthorized"

    assert client.login("johndoe", "password123")["username"] == "johndoe"
    assert client.me()["username"] == "johndoe"


def test_forged_cookie_is_ignored(base_url):
    resp = requests.get(
        f"{base_url}/api/auth/me",
        cookies={"snugglepaws_session": "1.1700000000.deadbeef"},
        timeout=5,
    )
    assert resp.status_code == 401


def test_invalid_json_is_a_validation_error(base_url):
    resp = requests.post(
        f"{base_url}/api/auth/register",
        data="{not json",
        headers={"Content-Type": "application/json"},
        timeout=5,
    )
    assert resp.status_code == 400
    assert resp.json()["kind"] == "validation_error"


def test_listing_favorites_and_ownership(base_url):
    seller = _client(base_url, "breeder", user_type="breeder")
    buyer = _client(base_url, "buyer")
    max_pet = seller.create_pet(name="Max", type="dog", age=8, price=1200)
    seller.create_pet(name="Bella", type="dog", age=12, price=850)
    seller.create_pet(name="Whiskers", type="cat", age=36, price=75, listing_type="adoption")

    puppies = MarketplaceClient(base_url).list_pets(age=["puppy"])
    assert [pet["name"] for pet in puppies] == ["Bella", "Max"]
    assert "is_favorite" not in puppies[0]
    assert [p["name"] for p in buyer.list_pets(listing_type="adoption")] == ["Whiskers"]
    assert len(buyer.list_pets(limit=1, offset=1)) == 1

    with pytest.raises(ApiError) as excinfo:
        buyer.list_pets(limit=500)
    assert excinfo.value.status == 400

    assert buyer.toggle_favorite(max_pet["id"]) is True
    assert buyer.is_favorite(max_pet["id"]) is True
    flagged = {pet["name"]: pet["is_favorite"] for pet in buyer.list_pets(type="dog")}
    assert flagged == {"Bella": False, "Max": True}
    assert [pet["name"] for pet in buyer.favorites()] == ["Max"]
    assert buyer.remove_favorite(max_pet["id"]) is True
    assert buyer.remove_favorite(max_pet["id"]) is False

    with pytest.raises(ApiError) as excinfo:
        buyer.update_pet(max_pet["id"], price=1)
    assert excinfo.value.status == 403
    assert buyer.get_pet(max_pet["id"])["price"] == 1200

    assert seller.update_pet(max_pet["id"], price=1100)["price"] == 1100
    seller.delete_pet(max_pet["id"])
    with pytest.raises(ApiError) as excinfo:
        buyer.get_pet(max_pet["id"])
    assert excinfo.value.status == 404


def test_messaging_and_purchase(base_url, payments):
    seller = _client(base_url, "breeder", user_type="breeder")
    buyer = _client(base_url, "buyer")
    seller_id = seller.me()["id"]
    buyer_id = buyer.me()["id"]
    pet = seller.create_pet(name="Luna", type="cat", price=600)

    buyer.send_message(seller_id, "Is Luna available?", pet_id=pet["id"])
    buyer.send_message(seller_id, "I can pick her up Saturday.")
    assert seller.unread_count() == 2
    [summary] = seller.conversations()
    assert summary["counterparty_id"] == buyer_id
    assert summary["unread_count"] == 2
    assert summary["last_message"]["content"] == "I can pick her up Saturday."

    thread = seller.conversation(buyer_id)
    assert [msg["content"] for msg in thread] == [
        "Is Luna available?",
        "I can pick her up Saturday.",
    ]
    assert seller.unread_count() == 0

    intent = buyer.checkout(pet["id"])
    assert intent["amount"] == 60000
    assert intent["metadata"]["seller_id"] == seller_id

    payments.settle(intent["payment_id"])
    result = buyer.complete_purchase(intent["payment_id"])
    assert result["success"] is True
    assert result["message"]["receiver_id"] == seller_id
    assert buyer.get_pet(pet["id"])["status"] == "sold"
    assert seller.unread_count() == 1

    with pytest.raises(ApiError) as excinfo:
        buyer.checkout(pet["id"])
    assert excinfo.value.status == 409


def test_purchase_without_settled_payment_is_refused(base_url):
    seller = _client(base_url, "breeder", user_type="breeder")
    buyer = _client(base_url, "buyer")
    pet = seller.create_pet(name="Luna", type="cat", price=600)

    resp = buyer.session.post(
        f"{base_url}/api/payment-success", json={"pet_id": pet["id"]}, timeout=5
    )
    assert resp.status_code == 400
    intent = buyer.checkout(pet["id"])
    with pytest.raises(ApiError) as excinfo:
        buyer.complete_purchase(intent["payment_id"])
    assert excinfo.value.status == 400
    assert buyer.get_pet(pet["id"])["status"] == "available"
    assert seller.unread_count() == 0


def test_undecodable_body_is_a_validation_error(base_url):
    resp = requests.post(
        f"{base_url}/api/auth/register",
        data=b"\xff\xfe{",
        headers={"Content-Type": "application/json"},
        timeout=5,
    )
    assert resp.status_code == 400
    assert resp.json()["kind"] == "validation_error"


def test_non_numeric_content_length_is_a_validation_error(base_url):
    host, port = base_url.removeprefix("http://").split(":")
    conn = http.client.HTTPConnection(host, int(port), timeout=5)
    try:
        conn.putrequest("POST", "/api/auth/login")
        conn.putheader("Content-Type", "application/json")
        conn.putheader("Content-Length", "ten")
        conn.endheaders()
        resp = conn.getresponse()
        assert resp.status == 400
        assert b"validation_error" in resp.read()
    finally:
        conn.close()


def test_users_and_profile_update(base_url):
    client = _client(base_url, "johndoe")
    _client(base_url, "janesmith")
    assert [user["username"] for user in client.users()] == ["johndoe", "janesmith"]
    updated = client.update_profile(bio="Looking for a calm senior dog")
    assert updated["bio"] == "Looking for a calm senior dog"
    with pytest.raises(ApiError) as excinfo:
        client.update_profile(email="janesmith@example.com")
    assert excinfo.value.status == 409
