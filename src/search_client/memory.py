from __future__ import annotations

import asyncio
import copy
from typing import Optional, Sequence

from loguru import logger

from .models import BulkAction, BulkItemResponse, StoredDocument


class InMemoryDocumentStore:
    """
    Versioned in-process document store with compare-and-set writes.

    Semantics per bulk item:
      - index without version: stored, version becomes current + 1 (new docs get 1)
      - index with version: accepted only if it equals the current version,
        otherwise 409 version_conflict_engine_exception
      - delete of a missing document: 404 with no error (idempotent)

    Usage:
        store = InMemoryDocumentStore()
        store.seed("1", {"title": "b"}, version=5)
        await store.bulk([BulkAction("1", {"title": "c"}, version=5)])
        (await store.get("1")).version  # 6
    """

    def __init__(self) -> None:
        self._docs: dict[str, StoredDocument] = {}
        self.bulk_calls = 0

    def seed(self, doc_id: str, source: dict, version: int = 1) -> None:
        """Put a document directly, bypassing version checks."""
        if version <= 0:
            raise ValueError("version must be > 0")
        self._docs[doc_id] = StoredDocument(id=doc_id, source=copy.deepcopy(source), version=version)

    async def bulk(self, actions: Sequence[BulkAction]) -> list[BulkItemResponse]:
        await asyncio.sleep(0)  # simulate I/O
        self.bulk_calls += 1
        return [self._apply(action) for action in actions]

    async def get(self, doc_id: str) -> Optional[StoredDocument]:
        await asyncio.sleep(0)
        doc = self._docs.get(doc_id)
        return doc.model_copy(deep=True) if doc else None

    def __len__(self) -> int:
        return len(self._docs)

    # --------------- internals

    def _apply(self, action: BulkAction) -> BulkItemResponse:
        current = self._docs.get(action.id)
        current_version = current.version if current else 0

        if action.version is not None and action.version != current_version:
            logger.debug(
                f"Version conflict on {action.id}: expected={action.version} current={current_version}"
            )
            return BulkItemResponse(
                id=action.id,
                status=409,
                error_type="version_conflict_engine_exception",
                reason=(
                    f"[{action.id}]: version conflict, current version [{current_version}] "
                    f"is different than the one provided [{action.version}]"
                ),
                version=current_version or None,
            )

        if action.is_delete:
            if current is None:
                return BulkItemResponse(id=action.id, status=404)
            del self._docs[action.id]
            return BulkItemResponse(id=action.id, status=200, version=current_version + 1)

        new_version = current_version + 1
        self._docs[action.id] = StoredDocument(
            id=action.id, source=copy.deepcopy(action.payload), version=new_version
        )
        return BulkItemResponse(
            id=action.id, status=201 if current is None else 200, version=new_version
        )
