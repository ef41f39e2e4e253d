"""
Tests for services/resource_locks.py
"""
import asyncio

import pytest

from services.resource_locks import ResourceLocks, booking_key, driver_key, vehicle_key


class TestResourceLocks:

    def test_key_helpers(self):
        assert booking_key(7) == "booking:7"
        assert vehicle_key(7) == "vehicle:7"
        assert driver_key(7) == "driver:7"

    @pytest.mark.asyncio
    async def test_hold_sorts_and_skips_none(self):
        locks = ResourceLocks()
        async with locks.hold("vehicle:2", None, "driver:9", "vehicle:2") as held:
            assert held == ["driver:9", "vehicle:2"]
            assert locks.is_held("driver:9")
            assert locks.is_held("vehicle:2")
        assert not locks.is_held("driver:9")
        assert list(locks.active_keys()) == []

    @pytest.mark.asyncio
    async def test_hold_with_no_keys(self):
        locks = ResourceLocks()
        async with locks.hold(None, None) as held:
            assert held == []

    @pytest.mark.asyncio
    async def test_same_key_serialises(self):
        locks = ResourceLocks()
        order = []

        async def worker(name):
            async with locks.hold("vehicle:1"):
                order.append(f"{name}-in")
                await asyncio.sleep(0.01)
                order.append(f"{name}-out")

        await asyncio.gather(worker("a"), worker("b"))

        assert order in (
            ["a-in", "a-out", "b-in", "b-out"],
            ["b-in", "b-out", "a-in", "a-out"],
        )
        assert list(locks.active_keys()) == []

    @pytest.mark.asyncio
    async def test_opposite_order_requests_do_not_deadlock(self):
        locks = ResourceLocks()

        async def worker(first, second):
            async with locks.hold(first, second):
                await asyncio.sleep(0.01)

        await asyncio.wait_for(
            asyncio.gather(
                worker("driver:1", "driver:2"),
                worker("driver:2", "driver:1"),
            ),
            timeout=2
        )

    @pytest.mark.asyncio
    async def test_released_on_error(self):
        locks = ResourceLocks()
        with pytest.raises(RuntimeError):
            async with locks.hold("booking:1"):
                raise RuntimeError("boom")
        assert not locks.is_held("booking:1")
        assert list(locks.active_keys()) == []
