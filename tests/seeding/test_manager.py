"""Tests for TestDatabaseManager sessions."""

import pytest


@pytest.fixture
def manager():
    from conductor.seeding import TestDatabaseManager

    return TestDatabaseManager()


class TestSessions:
    """Tests for session setup and teardown."""

    @pytest.mark.asyncio
    async def test_setup_session_seeds_preset(self, manager):
        from conductor.seeding import SessionState, get_test_config

        session = await manager.setup_session("login-flow", get_test_config("minimal"))

        assert session.state == SessionState.ACTIVE
        assert session.data.counts() == {"cities": 3, "users": 2, "reviews": 5}
        assert session.snapshot is not None
        assert manager.get_session("login-flow") is session

    @pytest.mark.asyncio
    async def test_isolated_sessions_do_not_share_data(self, manager):
        from conductor.seeding import get_test_config

        first = await manager.setup_session("a", get_test_config("MINIMAL"))
        second = await manager.setup_session("b", get_test_config("STANDARD"))

        assert await first.seeder.live_counts() == {"cities": 3, "users": 2, "reviews": 5}
        assert await second.seeder.live_counts() == {"cities": 10, "users": 5, "reviews": 20}
        assert await manager.verify_all_sessions() == {"a": True, "b": True}

    @pytest.mark.asyncio
    async def test_shared_session_uses_global_store(self, manager):
        from conductor.seeding import get_test_config

        session = await manager.setup_session("shared", get_test_config("MINIMAL", isolate_tests=False))

        assert session.seeder is manager._global_seeder

    @pytest.mark.asyncio
    async def test_duplicate_session_rejected(self, manager):
        from conductor.seeding import SeedingError

        await manager.setup_session("dup")

        with pytest.raises(SeedingError, match="already exists"):
            await manager.setup_session("dup")

    @pytest.mark.asyncio
    async def test_session_without_seeding(self, manager):
        from conductor.config import DatabaseTestConfig

        session = await manager.setup_session("empty", DatabaseTestConfig(use_seeded_data=False))

        assert session.data is None
        assert session.snapshot is None

    @pytest.mark.asyncio
    async def test_cleanup_session_clears_data(self, manager):
        from conductor.seeding import SessionState

        session = await manager.setup_session("to-clean")

        await manager.cleanup_session("to-clean")

        assert session.state == SessionState.CLEANED
        assert manager.get_session("to-clean") is None
        assert await session.seeder.live_counts() == {"cities": 0, "users": 0, "reviews": 0}

    @pytest.mark.asyncio
    async def test_cleanup_unknown_session_is_noop(self, manager):
        await manager.cleanup_session("ghost")

    @pytest.mark.asyncio
    async def test_cleanup_all_sessions(self, manager):
        await manager.setup_session("a")
        await manager.setup_session("b")

        await manager.cleanup_all_sessions()

        assert manager.sessions == {}
        assert manager.is_initialized is False

    @pytest.mark.asyncio
    async def test_session_summary(self, manager):
        from conductor.seeding import SessionNotFoundError, get_test_config

        await manager.setup_session("summary", get_test_config("AUTH_FOCUSED"))

        summary = await manager.get_session_summary("summary")
        assert summary.integrity is True
        assert summary.counts["users"] == 8

        with pytest.raises(SessionNotFoundError):
            await manager.get_session_summary("missing")

    def test_unknown_preset(self):
        from conductor.seeding import get_test_config

        with pytest.raises(KeyError):
            get_test_config("HUGE")


class TestSetupFailures:
    """Tests for sessions whose setup goes wrong."""

    @staticmethod
    def tracking_factory(failing_partition: str):
        from conductor.seeding import InMemoryEntityStore

        class TrackingStore(InMemoryEntityStore):
            def __init__(self, partition):
                super().__init__(partition)
                self.closed = False

            async def create(self, entity_type, record):
                if self.partition == failing_partition:
                    raise RuntimeError("disk full")
                return await super().create(entity_type, record)

            async def close(self):
                self.closed = True

        stores = {}

        def factory(partition):
            stores[partition] = TrackingStore(partition)
            return stores[partition]

        return factory, stores

    @pytest.mark.asyncio
    async def test_failed_seed_releases_isolated_store(self):
        from conductor.seeding import TestDatabaseManager

        factory, stores = self.tracking_factory("s1")
        manager = TestDatabaseManager(store_factory=factory)

        with pytest.raises(RuntimeError, match="disk full"):
            await manager.setup_session("s1")

        assert stores["s1"].closed is True
        assert manager.get_session("s1") is None
        assert stores["global"].closed is False

    @pytest.mark.asyncio
    async def test_id_is_free_again_after_failed_setup(self):
        from conductor.config import DatabaseTestConfig
        from conductor.seeding import TestDatabaseManager

        factory, _ = self.tracking_factory("s1")
        manager = TestDatabaseManager(store_factory=factory)

        with pytest.raises(RuntimeError):
            await manager.setup_session("s1")

        session = await manager.setup_session("s1", DatabaseTestConfig(use_seeded_data=False))

        assert manager.get_session("s1") is session

    @pytest.mark.asyncio
    async def test_concurrent_setup_with_same_id(self, manager):
        import asyncio

        from conductor.seeding import SeedingError

        results = await asyncio.gather(
            manager.setup_session("race"),
            manager.setup_session("race"),
            return_exceptions=True,
        )

        assert sum(isinstance(r, SeedingError) for r in results) == 1
        assert manager.get_session("race") in results
