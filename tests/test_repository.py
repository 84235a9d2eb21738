"""
Tests for the local SQLite mirror.
"""

import pytest

from conftest import make_enrollment, make_payment, make_pool
from swapclient.datastore.models import RoscaPoolCacheDB


class TestPools:
    @pytest.mark.asyncio
    async def test_save_replaces_and_keeps_order(self, repository):
        await repository.save_pools([make_pool("a"), make_pool("b")])
        await repository.save_pools([make_pool("c"), make_pool("a"), make_pool("d")])

        assert [pool.id for pool in await repository.get_pools()] == ["c", "a", "d"]

    @pytest.mark.asyncio
    async def test_empty_save_clears(self, repository):
        await repository.save_pools([make_pool("a")])
        await repository.save_pools([])

        assert await repository.get_pools() == []
        assert await repository.get_pools_cache_timestamp() is not None

    @pytest.mark.asyncio
    async def test_timestamp_tracks_last_save(self, repository, clock):
        assert await repository.get_pools_cache_timestamp() is None

        await repository.save_pools([make_pool("a")])
        assert await repository.get_pools_cache_timestamp() == clock.now

        clock.advance(60)
        await repository.save_pools([make_pool("a")])
        assert await repository.get_pools_cache_timestamp() == clock.now

        await repository.clear_pools_cache_timestamp()
        assert await repository.get_pools_cache_timestamp() is None

    @pytest.mark.asyncio
    async def test_unknown_fields_round_trip(self, repository):
        await repository.save_pools([make_pool("a", poolBadge="new")])

        [pool] = await repository.get_pools()
        assert pool.to_wire()["poolBadge"] == "new"

    @pytest.mark.asyncio
    async def test_unreadable_rows_are_skipped(self, repository, session_factory):
        await repository.save_pools([make_pool("a")])
        async with session_factory() as session, session.begin():
            session.add(RoscaPoolCacheDB(id="broken", position=1, data="{not json"))

        assert [pool.id for pool in await repository.get_pools()] == ["a"]


class TestEnrollments:
    @pytest.mark.asyncio
    async def test_isolated_per_entity(self, repository):
        await repository.save_enrollments([make_enrollment("e1")], "entity-1")
        await repository.save_enrollments([make_enrollment("e2")], "entity-2")

        assert [e.id for e in await repository.get_enrollments("entity-1")] == ["e1"]
        assert [e.id for e in await repository.get_enrollments("entity-2")] == ["e2"]
        assert await repository.get_enrollments("entity-3") == []

    @pytest.mark.asyncio
    async def test_newest_first(self, repository):
        await repository.save_enrollments(
            [
                make_enrollment("old", joined_at="2024-01-01T00:00:00Z"),
                make_enrollment("new", joined_at="2025-06-01T00:00:00Z"),
            ],
            "entity-1",
        )

        assert [e.id for e in await repository.get_enrollments("entity-1")] == ["new", "old"]

    @pytest.mark.asyncio
    async def test_save_upserts(self, repository):
        await repository.save_enrollments([make_enrollment("e1")], "entity-1")
        await repository.save_enrollments([make_enrollment("e1", total_contributed=150.0)], "entity-1")

        [enrollment] = await repository.get_enrollments("entity-1")
        assert enrollment.total_contributed == 150.0
        assert (await repository.get_enrollment_by_id("e1")).total_contributed == 150.0
        assert await repository.get_enrollment_by_id("missing") is None

    @pytest.mark.asyncio
    async def test_empty_save_is_a_no_op(self, repository):
        await repository.save_enrollments([make_enrollment("e1")], "entity-1")
        await repository.clear_enrollments_cache_timestamp("entity-1")

        await repository.save_enrollments([], "entity-1")

        assert [e.id for e in await repository.get_enrollments("entity-1")] == ["e1"]
        assert await repository.get_enrollments_cache_timestamp("entity-1") is None

    @pytest.mark.asyncio
    async def test_timestamps_per_entity(self, repository, clock):
        await repository.save_enrollments([make_enrollment("e1")], "entity-1")

        assert await repository.get_enrollments_cache_timestamp("entity-1") == clock.now
        assert await repository.get_enrollments_cache_timestamp("entity-2") is None

    @pytest.mark.asyncio
    async def test_clear_entity(self, repository):
        await repository.save_enrollments([make_enrollment("e1")], "entity-1")
        await repository.save_enrollments([make_enrollment("e2")], "entity-2")

        await repository.clear_enrollments("entity-1")

        assert await repository.get_enrollments("entity-1") == []
        assert len(await repository.get_enrollments("entity-2")) == 1


class TestPayments:
    @pytest.mark.asyncio
    async def test_payments_by_enrollment_newest_due_first(self, repository):
        await repository.save_payments(
            [
                make_payment("p1", "e1", due_date="2025-01-01"),
                make_payment("p2", "e1", due_date="2025-01-08"),
                make_payment("p3", "e2"),
            ]
        )

        assert [p.id for p in await repository.get_payments("e1")] == ["p2", "p1"]
        assert [p.id for p in await repository.get_payments("e2")] == ["p3"]

    @pytest.mark.asyncio
    async def test_payment_status_updates(self, repository):
        await repository.save_payments([make_payment("p1", "e1", status="pending")])
        await repository.save_payments([make_payment("p1", "e1", status="paid")])

        [payment] = await repository.get_payments("e1")
        assert payment.status == "paid"
