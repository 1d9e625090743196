# tests/test_resources.py
import asyncio

import pytest

from cbt_prep.resources import SingleFlight


def test_concurrent_first_callers_share_one_init():
    calls = []

    async def factory():
        calls.append(1)
        await asyncio.sleep(0)
        return object()

    async def scenario():
        handle = SingleFlight(factory, name="test handle")
        values = await asyncio.gather(*(handle.get() for _ in range(5)))
        return handle, values

    handle, values = asyncio.run(scenario())
    assert len(calls) == 1
    assert all(v is values[0] for v in values)
    assert handle.ready


def test_failed_init_is_retried():
    attempts = []

    async def factory():
        attempts.append(1)
        if len(attempts) == 1:
            raise RuntimeError("first open fails")
        return "connection"

    async def scenario():
        handle = SingleFlight(factory)
        with pytest.raises(RuntimeError):
            await handle.get()
        assert not handle.ready
        return await handle.get()

    assert asyncio.run(scenario()) == "connection"
    assert len(attempts) == 2


def test_reset_builds_a_fresh_value():
    counter = iter(range(10))

    async def factory():
        return next(counter)

    async def scenario():
        handle = SingleFlight(factory)
        first = await handle.get()
        again = await handle.get()
        handle.reset()
        return first, again, await handle.get()

    assert asyncio.run(scenario()) == (0, 0, 1)


def test_reset_during_pending_init_discards_stale_value():
    values = iter(["before reset", "after reset"])

    async def scenario():
        gate = asyncio.Event()

        async def factory():
            value = next(values)
            if value == "before reset":
                await gate.wait()
            return value

        handle = SingleFlight(factory)
        waiting = asyncio.ensure_future(handle.get())
        await asyncio.sleep(0)
        handle.reset()
        gate.set()
        stale = await waiting
        assert not handle.ready
        return stale, await handle.get(), handle.ready

    assert asyncio.run(scenario()) == ("before reset", "after reset", True)
