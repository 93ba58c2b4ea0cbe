"""
Seeded, verifiable test data.

Provides:
- TestDataSeeder: deterministic fixture generation with snapshots
- TestDatabaseManager: per-test sessions, optionally isolated per store partition
- EntityStore: persistence collaborator, with an in-memory implementation
"""

from .manager import (
    TEST_CONFIGS,
    SessionState,
    StoreFactory,
    TestDatabaseManager,
    TestDatabaseSession,
    get_test_config,
)
from .models import (
    DataSummary,
    SeededCity,
    SeededData,
    SeededDataSnapshot,
    SeededReview,
    SeededUser,
    SeedingError,
    SessionNotFoundError,
    SnapshotNotFoundError,
)
from .seeder import TestDataSeeder
from .store import CITY, REVIEW, USER, EntityStore, InMemoryEntityStore

__all__ = [
    "TestDataSeeder",
    "TestDatabaseManager",
    "TestDatabaseSession",
    "SessionState",
    "StoreFactory",
    "TEST_CONFIGS",
    "get_test_config",
    "SeededData",
    "SeededCity",
    "SeededUser",
    "SeededReview",
    "SeededDataSnapshot",
    "DataSummary",
    "SeedingError",
    "SnapshotNotFoundError",
    "SessionNotFoundError",
    "EntityStore",
    "InMemoryEntityStore",
    "CITY",
    "USER",
    "REVIEW",
]
