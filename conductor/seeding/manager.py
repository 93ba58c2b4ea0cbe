"""
Isolated test-data sessions.

Each session owns a seeder. With ``isolate_tests`` the seeder gets its own
store partition from the store factory, so concurrent sessions never see
each other's rows. Without isolation sessions share the global seeder.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Callable, Optional

import structlog

from ..config import DatabaseTestConfig, SeedConfig
from .models import DataSummary, SeededData, SeededDataSnapshot, SeedingError, SessionNotFoundError
from .seeder import TestDataSeeder
from .store import EntityStore, InMemoryEntityStore

logger = structlog.get_logger()

StoreFactory = Callable[[str], EntityStore]

GLOBAL_PARTITION = "global"


class SessionState(str, Enum):
    ACTIVE = "active"
    CLEANED = "cleaned"


@dataclass
class TestDatabaseSession:
    """One test run's view of seeded data."""

    __test__ = False

    id: str
    seeder: TestDataSeeder
    config: DatabaseTestConfig
    data: Optional[SeededData] = None
    start_time: datetime = field(default_factory=lambda: datetime.now(UTC))
    state: SessionState = SessionState.ACTIVE

    @property
    def snapshot(self) -> Optional[SeededDataSnapshot]:
        return self.seeder.get_current_snapshot()


# Named seed sizes for common kinds of test runs
TEST_CONFIGS: dict[str, SeedConfig] = {
    "MINIMAL": SeedConfig(cities=3, users=2, reviews=5),
    "STANDARD": SeedConfig(cities=10, users=5, reviews=20),
    "COMPREHENSIVE": SeedConfig(cities=25, users=10, reviews=50),
    "AUTH_FOCUSED": SeedConfig(cities=5, users=8, reviews=15),
    "CITY_FOCUSED": SeedConfig(cities=20, users=3, reviews=40),
}


def get_test_config(name: str, **overrides) -> DatabaseTestConfig:
    """Session config using a named seed preset.

    Raises:
        KeyError: If the preset name is unknown
    """
    return DatabaseTestConfig(seed_config=TEST_CONFIGS[name.upper()], **overrides)


class TestDatabaseManager:
    """Creates, verifies and tears down test-data sessions.

    Example:
        manager = TestDatabaseManager()
        session = await manager.setup_session("login-flow", get_test_config("AUTH_FOCUSED"))
        ...
        await manager.cleanup_session("login-flow")
    """

    __test__ = False

    def __init__(self, store_factory: Optional[StoreFactory] = None):
        self.store_factory: StoreFactory = store_factory or InMemoryEntityStore
        self.sessions: dict[str, TestDatabaseSession] = {}
        self._reserved: set[str] = set()
        self._global_seeder: Optional[TestDataSeeder] = None
        self.log = logger.bind(component="test_database_manager")

    @property
    def is_initialized(self) -> bool:
        return self._global_seeder is not None

    async def initialize(self) -> None:
        if self._global_seeder is not None:
            return
        seeder = TestDataSeeder(self.store_factory(GLOBAL_PARTITION))
        await seeder.initialize()
        self._global_seeder = seeder
        self.log.info("Test database manager initialized")

    async def setup_session(
        self,
        session_id: str,
        config: Optional[DatabaseTestConfig] = None,
    ) -> TestDatabaseSession:
        """Create a session and seed it.

        A failing integrity check is logged and does not fail the setup. If
        seeding fails the session's own store is released and the id can be
        used again.

        Raises:
            SeedingError: If a session with this id exists or is being set up
        """
        if session_id in self.sessions or session_id in self._reserved:
            raise SeedingError(f"Session {session_id} already exists")
        self._reserved.add(session_id)
        try:
            return await self._create_session(session_id, config or DatabaseTestConfig())
        finally:
            self._reserved.discard(session_id)

    async def _create_session(self, session_id: str, config: DatabaseTestConfig) -> TestDatabaseSession:
        await self.initialize()

        log = self.log.bind(session_id=session_id, isolated=config.isolate_tests)
        log.info("Setting up test session")

        if config.isolate_tests:
            seeder = TestDataSeeder(self.store_factory(session_id))
        else:
            seeder = self._global_seeder

        session = TestDatabaseSession(id=session_id, seeder=seeder, config=config)
        try:
            if config.isolate_tests:
                await seeder.initialize()
            if config.use_seeded_data:
                session.data = await seeder.seed(config.seed_config)
                if config.verify_integrity and not await seeder.verify_integrity(config.integrity_mode):
                    log.warning("Data integrity verification failed, continuing")
        except Exception as e:
            log.error("Test session setup failed", error=str(e))
            if config.isolate_tests:
                await seeder.disconnect()
            raise

        self.sessions[session_id] = session
        log.info("Test session ready", **(session.data.counts() if session.data else {}))
        return session

    def get_session(self, session_id: str) -> Optional[TestDatabaseSession]:
        return self.sessions.get(session_id)

    async def cleanup_session(self, session_id: str) -> None:
        session = self.sessions.get(session_id)
        if session is None:
            self.log.warning("Session not found for cleanup", session_id=session_id)
            return

        if session.config.cleanup_after_test:
            await session.seeder.clear_all_data()
        if session.config.isolate_tests:
            await session.seeder.disconnect()

        session.state = SessionState.CLEANED
        del self.sessions[session_id]
        self.log.info("Test session cleaned up", session_id=session_id)

    async def cleanup_all_sessions(self) -> None:
        """Clean every session (failures are logged), then the global seeder."""
        session_ids = list(self.sessions)
        results = await asyncio.gather(
            *(self.cleanup_session(sid) for sid in session_ids),
            return_exceptions=True,
        )
        for session_id, result in zip(session_ids, results):
            if isinstance(result, Exception):
                self.log.error("Session cleanup failed", session_id=session_id, error=str(result))

        if self._global_seeder is not None:
            await self._global_seeder.cleanup()
            self._global_seeder = None
        self.log.info("All test sessions cleaned up")

    async def get_session_summary(self, session_id: str) -> DataSummary:
        session = self.sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return await session.seeder.generate_data_summary(session.config.integrity_mode)

    async def verify_all_sessions(self) -> dict[str, bool]:
        results: dict[str, bool] = {}
        for session_id, session in self.sessions.items():
            results[session_id] = await session.seeder.verify_integrity(session.config.integrity_mode)
        return results
