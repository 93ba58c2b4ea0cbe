"""
Deterministic test-data seeding.

Generates users, cities and reviews (in foreign-key order) from a seeded
random generator, persists them through an ``EntityStore`` and records an
immutable snapshot of each run. Integrity checks compare the live store
against the latest snapshot; restoring a snapshot reseeds from its config,
so the restored data is a fresh deterministic re-derivation.

Usage:
    seeder = TestDataSeeder(InMemoryEntityStore())
    data = await seeder.seed(SeedConfig(cities=5, users=3, reviews=10))
    assert await seeder.verify_integrity()
"""

import random
import uuid
from datetime import UTC, datetime
from typing import Optional

import structlog

from ..config import IntegrityMode, SeedConfig
from .generator import FixtureGenerator
from .models import (
    DataSummary,
    SeededCity,
    SeededData,
    SeededDataSnapshot,
    SeededReview,
    SeededUser,
    SnapshotNotFoundError,
)
from .store import CITY, ENTITY_TYPES, REVIEW, USER, EntityStore, InMemoryEntityStore

logger = structlog.get_logger()

MAX_PAIR_ATTEMPTS = 100


class TestDataSeeder:
    """Seeds and verifies fixture data in one store partition."""

    __test__ = False

    def __init__(self, store: Optional[EntityStore] = None):
        self.store = store or InMemoryEntityStore()
        self._snapshots: dict[str, SeededDataSnapshot] = {}
        self._current: Optional[SeededDataSnapshot] = None
        self.log = logger.bind(component="test_data_seeder")

    async def initialize(self) -> None:
        await self.store.connect()
        self.log.info("Test data seeder initialized")

    async def seed(self, config: Optional[SeedConfig] = None, **overrides) -> SeededData:
        """Generate and persist a fixture set.

        Args:
            config: Seed configuration; defaults to SeedConfig()
            **overrides: Field overrides applied on top of ``config``

        Returns:
            The seeded entities. A snapshot of them becomes current.
        """
        config = config or SeedConfig()
        if overrides:
            config = SeedConfig.model_validate({**config.model_dump(), **overrides})

        self.log.info("Seeding test data", **config.model_dump())

        rng = random.Random(config.seed_value) if config.use_fixed_seed else random.Random()
        generator = FixtureGenerator(rng)

        if config.clear_existing:
            await self.clear_all_data()

        users = [SeededUser.from_record(await self.store.create(USER, generator.user(i))) for i in range(config.users)]
        cities = [SeededCity.from_record(await self.store.create(CITY, generator.city(i))) for i in range(config.cities)]
        reviews = await self._seed_reviews(generator, config.reviews, cities, users)

        data = SeededData(cities=tuple(cities), users=tuple(users), reviews=tuple(reviews))
        self._current = self._create_snapshot(config, data)

        self.log.info(
            "Test data seeding completed",
            snapshot_id=self._current.id,
            checksum=self._current.checksum[:12],
            **data.counts(),
        )
        return data

    async def _seed_reviews(
        self,
        generator: FixtureGenerator,
        count: int,
        cities: list[SeededCity],
        users: list[SeededUser],
    ) -> list[SeededReview]:
        reviews: list[SeededReview] = []
        used_pairs: set[tuple[str, str]] = set()

        for i in range(count):
            pair = None
            for _ in range(MAX_PAIR_ATTEMPTS):
                candidate = (generator.rng.choice(users).id, generator.rng.choice(cities).id)
                if candidate not in used_pairs:
                    pair = candidate
                    break

            if pair is None:
                self.log.warning("Skipping review, no unique user-city pair found", review_index=i)
                continue

            used_pairs.add(pair)
            user_id, city_id = pair
            record = await self.store.create(REVIEW, generator.review(city_id=city_id, user_id=user_id))
            reviews.append(SeededReview.from_record(record))

        return reviews

    def _create_snapshot(self, config: SeedConfig, data: SeededData) -> SeededDataSnapshot:
        snapshot = SeededDataSnapshot(
            id=str(uuid.uuid4()),
            timestamp=datetime.now(UTC),
            config=config,
            data=data,
            checksum=data.checksum(),
        )
        self._snapshots[snapshot.id] = snapshot
        return snapshot

    async def clear_all_data(self) -> None:
        """Delete every managed entity, dependents first."""
        removed = {}
        for entity_type in reversed(ENTITY_TYPES):
            removed[entity_type] = await self.store.delete_all(entity_type)
        self.log.info("Test data cleared", **removed)

    def get_current_snapshot(self) -> Optional[SeededDataSnapshot]:
        return self._current

    def get_snapshot(self, snapshot_id: str) -> Optional[SeededDataSnapshot]:
        return self._snapshots.get(snapshot_id)

    @property
    def snapshots(self) -> list[SeededDataSnapshot]:
        return list(self._snapshots.values())

    async def restore_from_snapshot(self, snapshot_id: str) -> SeededData:
        """Clear the store and reseed from a snapshot's config.

        Raises:
            SnapshotNotFoundError: If the snapshot is unknown
        """
        snapshot = self._snapshots.get(snapshot_id)
        if snapshot is None:
            raise SnapshotNotFoundError(snapshot_id)

        self.log.info("Restoring from snapshot", snapshot_id=snapshot_id)
        await self.clear_all_data()
        return await self.seed(snapshot.config)

    async def live_counts(self) -> dict[str, int]:
        return {
            "cities": await self.store.count(CITY),
            "users": await self.store.count(USER),
            "reviews": await self.store.count(REVIEW),
        }

    async def verify_integrity(self, mode: IntegrityMode = IntegrityMode.COUNTS) -> bool:
        """Compare the live store against the current snapshot.

        Counts are the default proxy. ``IntegrityMode.CHECKSUM`` also
        recomputes the checksum from the stored records.
        """
        if self._current is None:
            self.log.warning("No current snapshot to verify against")
            return False

        try:
            expected = self._current.data.counts()
            actual = await self.live_counts()
            if actual != expected:
                self.log.warning("Data integrity check failed", expected=expected, actual=actual)
                return False

            if mode == IntegrityMode.CHECKSUM:
                live = await self._load_live_data()
                if live.checksum() != self._current.checksum:
                    self.log.warning("Data checksum mismatch", snapshot_id=self._current.id)
                    return False
        except Exception as e:
            self.log.error("Failed to verify data integrity", error=str(e))
            return False

        self.log.info("Data integrity verified", mode=mode.value)
        return True

    async def _load_live_data(self) -> SeededData:
        return SeededData(
            cities=tuple(await self.get_seeded_cities()),
            users=tuple(await self.get_seeded_users()),
            reviews=tuple(await self.get_seeded_reviews()),
        )

    async def get_seeded_cities(self, limit: Optional[int] = None) -> list[SeededCity]:
        return [SeededCity.from_record(r) for r in await self.store.find_many(CITY, limit)]

    async def get_seeded_users(self, limit: Optional[int] = None) -> list[SeededUser]:
        return [SeededUser.from_record(r) for r in await self.store.find_many(USER, limit)]

    async def get_seeded_reviews(self, limit: Optional[int] = None) -> list[SeededReview]:
        return [SeededReview.from_record(r) for r in await self.store.find_many(REVIEW, limit)]

    async def generate_data_summary(self, mode: IntegrityMode = IntegrityMode.COUNTS) -> DataSummary:
        return DataSummary(
            counts=await self.live_counts(),
            snapshot=self._current,
            integrity=await self.verify_integrity(mode),
        )

    async def cleanup(self) -> None:
        """Clear all data and release the store."""
        await self.clear_all_data()
        await self.store.close()

    async def disconnect(self) -> None:
        await self.store.close()
