"""
Tests for the RefreshCoordinator: single-flight refresh and FIFO settlement.
"""

import asyncio

import pytest

from swapclient.services.errors import TokenRefreshError
from swapclient.services.events import AuthEvent, AuthEventBus
from swapclient.services.refresh import RefreshCoordinator, RefreshState


class GatedRefresh:
    """Refresh function that blocks until released."""

    def __init__(self, result: str | None = "tok2", error: Exception | None = None):
        self.result = result
        self.error = error
        self.calls = 0
        self.release = asyncio.Event()

    async def __call__(self) -> str | None:
        self.calls += 1
        await self.release.wait()
        if self.error:
            raise self.error
        return self.result


async def settle() -> None:
    for _ in range(5):
        await asyncio.sleep(0)


class TestSingleFlight:
    @pytest.mark.asyncio
    async def test_concurrent_callers_share_one_refresh(self):
        refresh = GatedRefresh()
        coordinator = RefreshCoordinator(refresh)

        tasks = [asyncio.create_task(coordinator.acquire_or_wait()) for _ in range(5)]
        await settle()

        assert refresh.calls == 1
        assert coordinator.state == RefreshState.REFRESHING
        assert coordinator.pending_count == 4
        assert not any(task.done() for task in tasks)

        refresh.release.set()
        results = await asyncio.gather(*tasks)

        assert results == ["tok2"] * 5
        assert refresh.calls == 1
        assert coordinator.state == RefreshState.IDLE
        assert coordinator.pending_count == 0

    @pytest.mark.asyncio
    async def test_next_refresh_after_settle_starts_new_flight(self):
        refresh = GatedRefresh()
        refresh.release.set()
        coordinator = RefreshCoordinator(refresh)

        await coordinator.acquire_or_wait()
        await coordinator.acquire_or_wait()

        assert refresh.calls == 2
        assert coordinator.refresh_count == 2


class TestFifoSettlement:
    @pytest.mark.asyncio
    async def test_waiters_resume_in_enqueue_order(self):
        refresh = GatedRefresh()
        coordinator = RefreshCoordinator(refresh)
        order: list[str] = []

        async def call(name: str) -> None:
            await coordinator.acquire_or_wait()
            order.append(name)

        driver = asyncio.create_task(call("driver"))
        await settle()
        waiters = []
        for name in ("A", "B", "C"):
            waiters.append(asyncio.create_task(call(name)))
            await settle()

        refresh.release.set()
        await asyncio.gather(driver, *waiters)

        assert order == ["driver", "A", "B", "C"]

    @pytest.mark.asyncio
    async def test_failure_rejects_driver_and_every_waiter(self):
        refresh = GatedRefresh(result=None)
        coordinator = RefreshCoordinator(refresh)

        tasks = [asyncio.create_task(coordinator.acquire_or_wait()) for _ in range(3)]
        await settle()
        refresh.release.set()
        results = await asyncio.gather(*tasks, return_exceptions=True)

        assert all(isinstance(result, TokenRefreshError) for result in results)
        assert coordinator.failure_count == 1
        assert coordinator.state == RefreshState.IDLE

    @pytest.mark.asyncio
    async def test_refresh_exception_is_treated_as_failure(self):
        refresh = GatedRefresh(error=RuntimeError("storage unavailable"))
        refresh.release.set()
        coordinator = RefreshCoordinator(refresh)

        with pytest.raises(TokenRefreshError):
            await coordinator.acquire_or_wait()
        assert coordinator.state == RefreshState.IDLE

    @pytest.mark.asyncio
    async def test_cancelled_waiter_does_not_block_others(self):
        refresh = GatedRefresh()
        coordinator = RefreshCoordinator(refresh)

        driver = asyncio.create_task(coordinator.acquire_or_wait())
        await settle()
        cancelled = asyncio.create_task(coordinator.acquire_or_wait())
        survivor = asyncio.create_task(coordinator.acquire_or_wait())
        await settle()

        cancelled.cancel()
        await settle()
        refresh.release.set()

        assert await driver == "tok2"
        assert await survivor == "tok2"
        assert cancelled.cancelled()

    @pytest.mark.asyncio
    async def test_wait_without_refresh_in_progress(self):
        coordinator = RefreshCoordinator(GatedRefresh())
        with pytest.raises(RuntimeError):
            await coordinator.wait()


class TestEventsAndBackground:
    @pytest.mark.asyncio
    async def test_success_emits_token_refreshed_once(self):
        events = AuthEventBus()
        received = []
        events.subscribe(AuthEvent.TOKEN_REFRESHED, lambda kind, reason: received.append(kind))
        refresh = GatedRefresh()
        coordinator = RefreshCoordinator(refresh, events=events)

        tasks = [asyncio.create_task(coordinator.acquire_or_wait()) for _ in range(3)]
        await settle()
        refresh.release.set()
        await asyncio.gather(*tasks)

        assert received == [AuthEvent.TOKEN_REFRESHED]

    @pytest.mark.asyncio
    async def test_background_refresh_is_single_flight(self):
        refresh = GatedRefresh()
        coordinator = RefreshCoordinator(refresh)

        assert coordinator.schedule_background_refresh() is True
        await settle()
        assert coordinator.is_refreshing
        assert coordinator.schedule_background_refresh() is False

        refresh.release.set()
        await settle()

        assert refresh.calls == 1
        assert coordinator.get_status()["state"] == "IDLE"
        assert coordinator.get_status()["refresh_count"] == 1
