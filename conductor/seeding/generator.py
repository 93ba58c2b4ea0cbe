"""Deterministic fixture records from a seeded random generator."""

import random
import uuid
from typing import Any

COUNTRIES = [
    "Thailand",
    "Portugal",
    "Mexico",
    "Vietnam",
    "Indonesia",
    "Malaysia",
    "Philippines",
    "Colombia",
    "Peru",
    "Ecuador",
]

CITY_NAMES = [
    "Chiang Mai", "Lisbon", "Oaxaca", "Da Nang", "Canggu", "Penang", "Cebu",
    "Medellin", "Cusco", "Cuenca", "Porto", "Hoi An", "Ubud", "Ipoh", "Bogota",
    "Arequipa", "Quito", "Merida", "Krabi", "Madeira",
]

REGIONS = ["North", "South", "Central", "Coastal", "Highlands", "Valley", "Islands"]

TIMEZONES = [
    "Asia/Bangkok", "Europe/Lisbon", "America/Mexico_City", "Asia/Ho_Chi_Minh",
    "Asia/Makassar", "Asia/Kuala_Lumpur", "Asia/Manila", "America/Bogota",
    "America/Lima", "America/Guayaquil",
]

FIRST_NAMES = [
    "Ana", "Ben", "Chloe", "Diego", "Elena", "Farid", "Grace", "Hiro", "Isla",
    "Jonas", "Kiri", "Luis", "Maya", "Noor", "Omar", "Priya", "Quinn", "Rosa",
]

LAST_NAMES = [
    "Alvarez", "Brooks", "Chen", "Dubois", "Evans", "Fischer", "Garcia", "Haddad",
    "Ito", "Jensen", "Kowalski", "Lopez", "Moreau", "Nguyen", "Okafor", "Patel",
]

WORDS = (
    "lorem ipsum dolor sit amet consectetur adipiscing elit sed do eiusmod tempor "
    "incididunt ut labore et dolore magna aliqua enim ad minim veniam quis nostrud "
    "exercitation ullamco laboris nisi aliquip ex ea commodo consequat"
).split()

ROLES = ["USER", "ADMIN"]


class FixtureGenerator:
    """Builds city, user and review records.

    Every value comes from ``rng``, so the same seed yields the same records.
    """

    def __init__(self, rng: random.Random):
        self.rng = rng

    def uuid(self) -> str:
        return str(uuid.UUID(int=self.rng.getrandbits(128), version=4))

    def chance(self, probability: float) -> bool:
        return self.rng.random() < probability

    def rating(self, low: float = 1.0, high: float = 10.0) -> float:
        return round(self.rng.uniform(low, high), 1)

    def sentence(self, words: int = 8) -> str:
        text = " ".join(self.rng.choice(WORDS) for _ in range(words))
        return text.capitalize() + "."

    def paragraph(self, sentences: int = 3) -> str:
        return " ".join(self.sentence(self.rng.randint(6, 12)) for _ in range(sentences))

    def city(self, index: int) -> dict[str, Any]:
        return {
            "id": self.uuid(),
            "name": f"{self.rng.choice(CITY_NAMES)}-{index}",
            "country": self.rng.choice(COUNTRIES),
            "region": self.rng.choice(REGIONS),
            "latitude": round(self.rng.uniform(-90, 90), 6),
            "longitude": round(self.rng.uniform(-180, 180), 6),
            "population": self.rng.randint(50_000, 10_000_000),
            "timezone": self.rng.choice(TIMEZONES),
            "cost_of_living": self.rng.randint(500, 3000),
            "internet_speed": self.rating(10, 100),
            "safety_rating": self.rating(),
            "walkability": self.rating(),
            "nightlife": self.rating(),
            "culture": self.rating(),
            "weather": self.rating(),
            "description": self.paragraph(),
            "short_description": self.sentence(),
            "image_url": (
                f"https://images.unsplash.com/photo-{self.rng.randint(1_500_000_000_000, 1_700_000_000_000)}"
                "?w=800&h=600&fit=crop"
            ),
            "featured": self.chance(0.3),
            "verified": self.chance(0.8),
        }

    def user(self, index: int) -> dict[str, Any]:
        first = self.rng.choice(FIRST_NAMES)
        last = self.rng.choice(LAST_NAMES)
        # First user is always an admin
        role = "ADMIN" if index == 0 else self.rng.choice(ROLES)
        return {
            "id": self.uuid(),
            "email": f"test-{index}-{first}.{last}@example.test".lower(),
            "name": f"{first} {last}",
            "role": role,
            "bio": self.sentence(),
            "location": self.rng.choice(CITY_NAMES),
            "email_verified": self.chance(0.9),
        }

    def review(self, city_id: str, user_id: str) -> dict[str, Any]:
        return {
            "id": self.uuid(),
            "rating": self.rng.randint(1, 5),
            "title": self.sentence(),
            "content": self.paragraph(),
            "city_id": city_id,
            "user_id": user_id,
            "internet_rating": self.rng.randint(1, 5),
            "cost_rating": self.rng.randint(1, 5),
            "safety_rating": self.rng.randint(1, 5),
            "fun_rating": self.rng.randint(1, 5),
            "helpful": self.rng.randint(0, 50),
            "verified": self.chance(0.7),
        }
