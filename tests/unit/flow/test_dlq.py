"""
Unit tests for Dead Letter Queue (DLQ).
"""

import asyncio

import pytest
from pydantic import BaseModel

from stream_connectors.flow import DeadLetterQueue, WriteRequest


class Book(BaseModel):
    title: str


@pytest.mark.asyncio
async def test_file_dlq_save_and_replay(tmp_path):
    """Test DLQ can save and replay records."""
    p = tmp_path / "dlq.ndjson"
    dlq = DeadLetterQueue[WriteRequest](p)

    await dlq.save(
        [WriteRequest(id="1", payload=Book(title="a"), pass_through=1), WriteRequest.delete("2")],
        RuntimeError("boom"),
        {"k": "v"},
    )
    await dlq.save([WriteRequest(id="3", payload={"x": 1})], "kapow", {})

    recs = await dlq.replay(10)
    assert len(recs) == 2
    assert recs[0].metadata.get("k") == "v"
    assert len(recs[0].items) == 2
    assert recs[0].items[0]["payload"] == {"title": "a"}
    assert recs[0].items[1]["payload"] is None
    assert "boom" in recs[0].error.lower()
    assert recs[1].error == "kapow"


@pytest.mark.asyncio
async def test_dlq_replay_limit(tmp_path):
    """Test DLQ replay respects max_records limit."""
    dlq = DeadLetterQueue[WriteRequest](tmp_path / "dlq.ndjson")

    for i in range(10):
        await dlq.save([WriteRequest(id=str(i), payload={})], f"error-{i}", {})

    recs = await dlq.replay(5)
    assert len(recs) == 5
    assert recs[0].error == "error-0"


@pytest.mark.asyncio
async def test_dlq_replay_empty(tmp_path):
    """Test DLQ replay handles non-existent file."""
    dlq = DeadLetterQueue(tmp_path / "nonexistent.ndjson", mkdirs=False)
    assert await dlq.replay(10) == []


@pytest.mark.asyncio
async def test_dlq_concurrent_writes(tmp_path):
    """Test DLQ serializes concurrent writes."""
    dlq = DeadLetterQueue[WriteRequest](tmp_path / "nested" / "dlq.ndjson")

    await asyncio.gather(
        *[dlq.save([WriteRequest(id=str(i), payload={})], f"error-{i}", {}) for i in range(20)]
    )

    recs = await dlq.replay(100)
    assert len(recs) == 20


@pytest.mark.asyncio
async def test_dlq_items_use_bulk_payload_encoding(tmp_path):
    """Test saved requests carry the same payload the bulk call would send."""
    dlq = DeadLetterQueue[WriteRequest](tmp_path / "dlq.ndjson")

    await dlq.save(
        [
            WriteRequest(id="1", payload=Book(title="a"), expected_version=2, pass_through=7),
            WriteRequest(id="2", payload='{"title": "b"}'),
            WriteRequest(id="3", payload="not json"),
        ],
        "failed",
    )

    (rec,) = await dlq.replay(10)
    assert rec.items[0] == {"id": "1", "payload": {"title": "a"}, "expected_version": 2, "pass_through": 7}
    assert rec.items[1]["payload"] == {"title": "b"}
    assert rec.items[2]["payload"] == "not json"
