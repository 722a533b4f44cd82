import pytest

from snugglepaws.errors import Conflict
from snugglepaws.filters import PetFilters
from snugglepaws.store import InMemoryStore, create_store

from conftest import make_clock


def _store_with_users():
    store = InMemoryStore(clock=make_clock())
    seller = store.create_user("seller", "seller@example.com", "hash", "Seller", user_type="breeder")
    buyer = store.create_user("buyer", "buyer@example.com", "hash", "Buyer")
    return store, seller, buyer


def test_create_store_selects_backend(monkeypatch):
    monkeypatch.delenv("SNUGGLEPAWS_STORAGE", raising=False)
    assert isinstance(create_store(), InMemoryStore)
    assert isinstance(create_store("memory"), InMemoryStore)


def test_ids_increment_per_table():
    store, seller, buyer = _store_with_users()
    assert (seller.id, buyer.id) == (1, 2)
    pet = store.create_pet(seller.id, "Max", "Dog")
    assert pet.id == 1
    assert pet.type == "dog"
    assert pet.status == "available"


def test_user_lookup_is_case_insensitive():
    store, seller, _ = _store_with_users()
    assert store.get_user_by_username("SELLER") == seller
    assert store.get_user_by_email("Seller@Example.com") == seller
    assert store.get_user_by_username("nobody") is None


def test_update_user_ignores_non_updatable_fields():
    store, seller, _ = _store_with_users()
    updated = store.update_user(seller.id, {"bio": "Hello", "username": "hacker"})
    assert updated.bio == "Hello"
    assert updated.username == "seller"
    assert store.update_user(99, {"bio": "x"}) is None


def test_update_and_delete_pet():
    store, seller, _ = _store_with_users()
    pet = store.create_pet(seller.id, "Max", "dog", price=100.0)
    updated = store.update_pet(pet.id, {"price": 150.0, "seller_id": 99})
    assert updated.price == 150.0
    assert updated.seller_id == seller.id
    assert store.get_pet(pet.id) == updated
    assert store.delete_pet(pet.id) is True
    assert store.delete_pet(pet.id) is False
    assert store.update_pet(pet.id, {"price": 1.0}) is None


def test_list_pets_applies_filters_and_paging():
    store, seller, buyer = _store_with_users()
    for index in range(5):
        store.create_pet(seller.id, f"Dog {index}", "dog", age=index * 10)
    store.create_pet(buyer.id, "Cat", "cat", age=5)
    dogs = store.list_pets(PetFilters(type="dog"), limit=2, offset=1)
    assert [pet.name for pet in dogs] == ["Dog 3", "Dog 2"]
    young = store.list_pets(PetFilters(max_age=12))
    assert [pet.name for pet in young] == ["Cat", "Dog 1", "Dog 0"]


def test_messages_sorted_by_recency():
    store, seller, buyer = _store_with_users()
    first = store.create_message(buyer.id, seller.id, "hi")
    second = store.create_message(seller.id, buyer.id, "hello")
    assert store.list_messages(buyer.id) == [second, first]
    assert store.get_conversation(seller.id, buyer.id) == [first, second]
    assert store.list_messages(99) == []


def test_mark_messages_read_only_affects_one_direction():
    store, seller, buyer = _store_with_users()
    store.create_message(buyer.id, seller.id, "one")
    store.create_message(seller.id, buyer.id, "two")
    assert store.mark_messages_read(seller.id, buyer.id) is True
    assert store.mark_messages_read(seller.id, buyer.id) is False
    assert store.count_unread(seller.id) == 0
    assert store.count_unread(buyer.id) == 1


def test_create_user_enforces_unique_username_and_email():
    store, _, _ = _store_with_users()
    with pytest.raises(Conflict, match="Username"):
        store.create_user("SELLER", "new@example.com", "hash", "Copy")
    with pytest.raises(Conflict, match="Email"):
        store.create_user("fresh", "BUYER@example.com", "hash", "Copy")
    assert len(store.list_users()) == 2


def test_update_user_rejects_email_owned_by_someone_else():
    store, seller, buyer = _store_with_users()
    with pytest.raises(Conflict):
        store.update_user(seller.id, {"email": buyer.email})
    assert store.update_user(seller.id, {"email": seller.email}).email == seller.email


def test_mark_pet_sold_applies_once():
    store, seller, _ = _store_with_users()
    pet = store.create_pet(seller.id, "Max", "dog")
    assert store.mark_pet_sold(pet.id).status == "sold"
    assert store.mark_pet_sold(pet.id) is None
    assert store.mark_pet_sold(404) is None


def test_synchronized_methods_keep_their_names():
    assert InMemoryStore.create_user.__name__ == "create_user"
    assert InMemoryStore.mark_pet_sold.__wrapped__.__name__ == "mark_pet_sold"
