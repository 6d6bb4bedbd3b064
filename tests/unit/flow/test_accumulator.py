"""
Unit tests for BatchAccumulator.
"""

import asyncio

import pytest

from stream_connectors.flow import BatchAccumulator, WriteRequest


def _requests(n: int) -> list[WriteRequest]:
    return [WriteRequest(id=str(i), payload={"v": i}, pass_through=i) for i in range(n)]


@pytest.mark.asyncio
async def test_full_batches_then_partial_tail():
    """Test 7 requests with batch size 5 give batches of 5 and 2."""
    acc = BatchAccumulator(_requests(7), batch_size=5)

    first = await acc.next_batch()
    second = await acc.next_batch()
    third = await acc.next_batch()

    assert [r.pass_through for r in first] == [0, 1, 2, 3, 4]
    assert [r.pass_through for r in second] == [5, 6]
    assert third is None
    assert acc.exhausted


@pytest.mark.asyncio
async def test_async_source():
    """Test async iterables are consumed like sync ones."""

    async def source():
        for r in _requests(3):
            await asyncio.sleep(0)
            yield r

    acc = BatchAccumulator(source(), batch_size=2)
    assert len(await acc.next_batch()) == 2
    assert len(await acc.next_batch()) == 1
    assert await acc.next_batch() is None


@pytest.mark.asyncio
async def test_empty_source():
    """Test an empty source yields no batch."""
    acc = BatchAccumulator([], batch_size=3)
    assert await acc.next_batch() is None


@pytest.mark.asyncio
async def test_upstream_error_raised_after_buffered_batch():
    """Test buffered requests are flushed before the upstream error surfaces."""

    def source():
        yield from _requests(3)
        raise RuntimeError("upstream broke")

    acc = BatchAccumulator(source(), batch_size=5)
    batch = await acc.next_batch()
    assert len(batch) == 3

    with pytest.raises(RuntimeError, match="upstream broke"):
        await acc.next_batch()
    assert await acc.next_batch() is None


@pytest.mark.asyncio
async def test_upstream_pulled_only_while_buffer_has_room():
    """Test backpressure: upstream is not drained ahead of the consumer."""
    pulled = 0

    def source():
        nonlocal pulled
        for r in _requests(100):
            pulled += 1
            yield r

    acc = BatchAccumulator(source(), batch_size=5)
    acc.start()
    await asyncio.sleep(0.05)

    # queue holds batch_size, the pump holds at most one more
    assert pulled <= 6
    await acc.aclose()


@pytest.mark.asyncio
async def test_flush_interval_emits_partial_batch():
    """Test linger flush hands out a partial batch from a slow upstream."""
    release = asyncio.Event()

    async def source():
        for r in _requests(2):
            yield r
        await release.wait()
        yield WriteRequest(id="late", payload={})

    acc = BatchAccumulator(source(), batch_size=10, flush_interval=0.05)
    batch = await asyncio.wait_for(acc.next_batch(), timeout=1.0)
    assert [r.id for r in batch] == ["0", "1"]

    release.set()
    batch = await asyncio.wait_for(acc.next_batch(), timeout=1.0)
    assert [r.id for r in batch] == ["late"]
    assert await acc.next_batch() is None


@pytest.mark.asyncio
async def test_without_flush_interval_waits_for_full_batch():
    """Test no linger means a partial batch waits for more input."""
    release = asyncio.Event()

    async def source():
        yield WriteRequest(id="a", payload={})
        await release.wait()

    acc = BatchAccumulator(source(), batch_size=10)
    task = asyncio.create_task(acc.next_batch())
    await asyncio.sleep(0.05)
    assert not task.done()

    release.set()
    batch = await asyncio.wait_for(task, timeout=1.0)
    assert [r.id for r in batch] == ["a"]


@pytest.mark.asyncio
async def test_aclose_wakes_blocked_consumer():
    """Test aclose releases a consumer waiting on a silent upstream."""
    never = asyncio.Event()

    async def source():
        await never.wait()
        yield WriteRequest(id="never", payload={})

    acc = BatchAccumulator(source(), batch_size=3)
    task = asyncio.create_task(acc.next_batch())
    await asyncio.sleep(0.01)

    await acc.aclose()
    assert await asyncio.wait_for(task, timeout=1.0) is None


def test_batch_size_must_be_positive():
    with pytest.raises(ValueError):
        BatchAccumulator([], batch_size=0)
