"""Demo data for local runs: three accounts, ten listings, a few messages."""

from __future__ import annotations

import logging
import random

from snugglepaws.auth import hash_password
from snugglepaws.store.base import Repository

logger = logging.getLogger(__name__)

DEMO_PASSWORD = "password123"

DEMO_USERS = [
    {
        "username": "johndoe",
        "email": "john@example.com",
        "name": "John Doe",
        "user_type": "pet_seeker",
        "bio": "Animal lover looking for a new furry friend",
        "location": "Seattle, WA",
        "profile_image": "https://randomuser.me/api/portraits/men/1.jpg",
    },
    {
        "username": "janesmith",
        "email": "jane@example.com",
        "name": "Jane Smith",
        "user_type": "breeder",
        "bio": "Certified ethical dog breeder with 10 years of experience",
        "location": "Portland, OR",
        "profile_image": "https://randomuser.me/api/portraits/women/1.jpg",
    },
    {
        "username": "pawshelter",
        "email": "shelter@pawshelter.com",
        "name": "Paws Animal Shelter",
        "user_type": "shelter",
        "bio": "No-kill animal shelter helping pets find forever homes",
        "location": "Vancouver, WA",
        "profile_image": "https://images.unsplash.com/photo-1541888946425-d81bb19240f5?w=500",
    },
]

# (name, type, breed, age in months, gender, size, price, seller index, location, listing type, image)
DEMO_PETS = [
    ("Max", "dog", "Golden Retriever", 8, "male", "large", 1200, 1, "Portland, OR", "sale",
     "https://images.unsplash.com/photo-1587300003388-59208cc962cb?w=500"),
    ("Luna", "cat", "Calico", 3, "female", "small", 600, 1, "Seattle, WA", "sale",
     "https://images.unsplash.com/photo-1526336024174-e58f5cdd8e13?w=500"),
    ("Cooper", "dog", "Labrador", 4, "male", "large", 950, 1, "Bellevue, WA", "sale",
     "https://images.unsplash.com/photo-1586671267731-da2cf3ceeb80?w=500"),
    ("Oliver", "cat", "Siamese", 12, "male", "medium", 750, 1, "Tacoma, WA", "sale",
     "https://images.unsplash.com/photo-1548802673-380ab8ebc7b7?w=500"),
    ("Bella", "dog", "Border Collie", 12, "female", "medium", 850, 1, "Vancouver, WA", "sale",
     "https://images.unsplash.com/photo-1581888227599-779811939961?w=500"),
    ("Whiskers", "cat", "Tabby", 36, "male", "medium", 75, 2, "Seattle, WA", "adoption",
     "https://images.unsplash.com/photo-1592194996308-7b43878e84a6?w=500"),
    ("Buddy", "dog", "Pug", 24, "male", "small", 950, 1, "Portland, OR", "sale",
     "https://images.unsplash.com/photo-1583511655857-d19b40a7a54e?w=500"),
    ("Simba", "cat", "Maine Coon", 12, "male", "large", 800, 1, "Olympia, WA", "sale",
     "https://images.unsplash.com/photo-1543852786-1cf6624b9987?w=500"),
    ("Charlie", "dog", "Beagle", 48, "male", "medium", 400, 0, "Eugene, OR", "rehome",
     "https://images.unsplash.com/photo-1602250798340-c33fb5909efd?w=500"),
    ("Tiger", "cat", "Bengal", 8, "female", "medium", 1200, 1, "Tacoma, WA", "sale",
     "https://images.unsplash.com/photo-1529778873920-4da4926a72c2?w=500"),
]


def seed_demo_data(store: Repository, rng: random.Random | None = None) -> dict[str, int]:
    """Load demo accounts, listings, favorites and messages into ``store``.

    Args:
        store: Empty repository to populate.
        rng: Random source for the featured flags; seeded for repeatable runs.

    Returns:
        Counts of created records by kind.
    """
    rng = rng or random.Random(7)
    password_hash = hash_password(DEMO_PASSWORD)
    users = [
        store.create_user(password_hash=password_hash, is_verified=True, **profile)
        for profile in DEMO_USERS
    ]
    pets = []
    for name, species, breed, age, gender, size, price, seller, location, listing, image in DEMO_PETS:
        pets.append(
            store.create_pet(
                users[seller].id,
                name,
                species,
                breed=breed,
                age=age,
                gender=gender,
                size=size,
                price=float(price),
                images=[image],
                location=location,
                listing_type=listing,
                is_featured=rng.random() > 0.5,
            )
        )

    seeker, breeder, shelter = users
    store.add_favorite(seeker.id, pets[0].id)
    store.add_favorite(seeker.id, pets[2].id)

    store.create_message(
        seeker.id,
        breeder.id,
        "Hi, I'm interested in Max. Is he still available?",
        pet_id=pets[0].id,
    )
    store.create_message(
        breeder.id,
        seeker.id,
        "Yes, Max is still available! Would you like to schedule a visit?",
        pet_id=pets[0].id,
    )
    store.create_message(
        seeker.id,
        shelter.id,
        "Hello, I'm interested in Whiskers. Can I come see him?",
        pet_id=pets[5].id,
    )

    counts = {"users": len(users), "pets": len(pets), "favorites": 2, "messages": 3}
    logger.info(f"Seeded demo data: {counts}")
    return counts
