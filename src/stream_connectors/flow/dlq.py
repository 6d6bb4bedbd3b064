"""
File-based dead letter queue (NDJSON) for writes that reached a terminal failure.
"""

from __future__ import annotations

import asyncio
import dataclasses
import json
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Generic, Sequence, TypeVar, Union

from loguru import logger
from pydantic import BaseModel

from .dispatcher import encode_payload
from .types import WriteRequest

T = TypeVar("T")


@dataclass(frozen=True)
class DLQRecord:
    """One saved group of failed items."""

    ts: float
    error: str
    items: list[Any]
    metadata: dict[str, Any] = field(default_factory=dict)


def _encode_request(request: WriteRequest) -> dict[str, Any]:
    try:
        payload: Any = encode_payload(request.payload)
    except (TypeError, ValueError):
        payload = request.payload if isinstance(request.payload, str) else repr(request.payload)
    return {
        "id": request.id,
        "payload": payload,
        "expected_version": request.expected_version,
        "pass_through": request.pass_through,
    }


def _to_jsonable(obj: Any) -> Any:
    if isinstance(obj, WriteRequest):
        return _encode_request(obj)
    if isinstance(obj, BaseModel):
        return obj.model_dump(mode="json")
    if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
        return {f.name: getattr(obj, f.name) for f in dataclasses.fields(obj)}
    return str(obj)


class DeadLetterQueue(Generic[T]):
    """Append-only NDJSON file of failed items.

    Example:
        dlq = DeadLetterQueue[WriteRequest]("var/dlq/books.ndjson")
        await dlq.save(requests, "version conflict", {"flow": "books"})
        records = await dlq.replay(100)
    """

    def __init__(self, path: Union[str, Path], *, mkdirs: bool = True):
        self.path = Path(path)
        if mkdirs:
            self.path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = asyncio.Lock()

    async def save(
        self,
        items: Sequence[T],
        error: Union[BaseException, str],
        metadata: dict[str, Any] | None = None,
    ) -> None:
        """Append one record holding ``items``."""
        line = json.dumps(
            {
                "ts": time.time(),
                "error": error if isinstance(error, str) else f"{type(error).__name__}: {error}",
                "items": list(items),
                "metadata": metadata or {},
            },
            default=_to_jsonable,
        )
        async with self._lock:
            await asyncio.to_thread(self._append, line)
        logger.debug(f"DLQ: saved {len(items)} item(s) to {self.path}")

    async def replay(self, max_records: int = 1000) -> list[DLQRecord]:
        """Read back up to ``max_records`` records, oldest first."""
        if not self.path.exists():
            return []
        async with self._lock:
            lines = await asyncio.to_thread(self._read, max_records)
        records = []
        for raw in lines:
            data = json.loads(raw)
            records.append(
                DLQRecord(
                    ts=data["ts"],
                    error=data["error"],
                    items=data["items"],
                    metadata=data.get("metadata", {}),
                )
            )
        return records

    def _append(self, line: str) -> None:
        with self.path.open("a", encoding="utf-8") as fh:
            fh.write(line + "\n")

    def _read(self, max_records: int) -> list[str]:
        out: list[str] = []
        with self.path.open("r", encoding="utf-8") as fh:
            for raw in fh:
                raw = raw.strip()
                if not raw:
                    continue
                out.append(raw)
                if len(out) >= max_records:
                    break
        return out
