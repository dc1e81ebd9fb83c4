import asyncio

import pytest

from devices.command_queue import DeviceCommandQueue


async def test_same_ip_operations_run_in_submission_order():
    queue = DeviceCommandQueue()
    log = []

    def make(label, delay):
        async def op():
            log.append(f"{label}-start")
            await asyncio.sleep(delay)
            log.append(f"{label}-end")
            return label
        return op

    results = await asyncio.gather(
        queue.run("10.0.0.5", make("a", 0.03)),
        queue.run("10.0.0.5", make("b", 0.01)),
        queue.run("10.0.0.5", make("c", 0)),
    )

    assert results == ["a", "b", "c"]
    assert log == ["a-start", "a-end", "b-start", "b-end", "c-start", "c-end"]
    assert queue.pending_keys() == []


async def test_different_ips_run_concurrently():
    queue = DeviceCommandQueue()
    first_started = asyncio.Event()

    async def waits_for_other():
        await asyncio.wait_for(first_started.wait(), timeout=1)
        return "a"

    async def signals():
        first_started.set()
        return "b"

    results = await asyncio.gather(
        queue.run("10.0.0.1", waits_for_other),
        queue.run("10.0.0.2", signals),
    )
    assert results == ["a", "b"]


async def test_failure_does_not_block_next_operation():
    queue = DeviceCommandQueue()

    async def boom():
        raise RuntimeError("device fault")

    async def ok():
        return "done"

    results = await asyncio.gather(
        queue.run("10.0.0.5", boom),
        queue.run("10.0.0.5", ok),
        return_exceptions=True,
    )
    assert isinstance(results[0], RuntimeError)
    assert results[1] == "done"
    assert queue.pending_keys() == []


async def test_blank_ip_bypasses_queue():
    queue = DeviceCommandQueue()
    seen = []

    async def op():
        seen.append(list(queue.pending_keys()))
        return 1

    assert await queue.run("  ", op) == 1
    assert seen == [[]]


async def test_key_is_held_while_operation_runs():
    queue = DeviceCommandQueue()
    release = asyncio.Event()

    async def op():
        await release.wait()

    task = asyncio.ensure_future(queue.run("10.0.0.9", op))
    await asyncio.sleep(0)
    assert queue.pending_keys() == ["10.0.0.9"]
    release.set()
    await task
    assert queue.pending_keys() == []


async def test_cancelled_waiter_keeps_order():
    queue = DeviceCommandQueue()
    release = asyncio.Event()
    log = []

    async def slow():
        await release.wait()
        log.append("slow")

    async def fast():
        log.append("fast")

    first = asyncio.ensure_future(queue.run("10.0.0.7", slow))
    await asyncio.sleep(0)
    second = asyncio.ensure_future(queue.run("10.0.0.7", fast))
    await asyncio.sleep(0)
    second.cancel()
    third = asyncio.ensure_future(queue.run("10.0.0.7", fast))
    await asyncio.sleep(0.01)
    assert log == []

    release.set()
    await first
    await third
    with pytest.raises(asyncio.CancelledError):
        await second
    assert log == ["slow", "fast"]
