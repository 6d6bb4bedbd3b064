from __future__ import annotations

from typing import Any, Literal, Optional, Sequence

from elasticsearch import AsyncElasticsearch, NotFoundError
from loguru import logger

from .errors import MalformedBulkResponse, map_es_error
from .models import BulkAction, BulkItemResponse, StoredDocument

VersionType = Literal["external", "external_gte"]
Refresh = Literal[False, True, "wait_for"]


class ElasticsearchBulkStore:
    """
    Bulk store backed by ``AsyncElasticsearch``.

    Each ``BulkAction`` becomes an ``index`` (or ``delete``) operation against
    ``index``. Expected versions are sent as ``version`` + ``version_type``;
    Elasticsearch only accepts external version types on index operations, so
    the stored version becomes the one sent by the caller.

    Usage:
        store = ElasticsearchBulkStore.from_url("http://localhost:9200", "books")
        responses = await store.bulk([BulkAction("1", {"title": "Dune"})])
        await store.aclose()
    """

    def __init__(
        self,
        client: AsyncElasticsearch,
        index: str,
        *,
        version_type: VersionType = "external",
        refresh: Refresh = False,
    ):
        if not index:
            raise ValueError("index required")
        self._client = client
        self.index = index
        self._version_type = version_type
        self._refresh = refresh

    @classmethod
    def from_url(
        cls,
        url: str,
        index: str,
        *,
        api_key: Optional[str] = None,
        request_timeout: float = 30.0,
        **kwargs: Any,
    ) -> "ElasticsearchBulkStore":
        client = AsyncElasticsearch(url, api_key=api_key, request_timeout=request_timeout)
        return cls(client, index, **kwargs)

    async def aclose(self) -> None:
        await self._client.close()

    # --------------- bulk

    def build_operations(self, actions: Sequence[BulkAction]) -> list[dict[str, Any]]:
        """Build the NDJSON operation list for the ``_bulk`` endpoint."""
        operations: list[dict[str, Any]] = []
        for action in actions:
            meta: dict[str, Any] = {"_index": self.index, "_id": action.id}
            if action.version is not None:
                meta["version"] = action.version
                meta["version_type"] = self._version_type
            if action.is_delete:
                operations.append({"delete": meta})
            else:
                operations.append({"index": meta})
                operations.append(action.payload)
        return operations

    async def bulk(self, actions: Sequence[BulkAction]) -> list[BulkItemResponse]:
        if not actions:
            return []
        kwargs: dict[str, Any] = {"operations": self.build_operations(actions)}
        if self._refresh:
            kwargs["refresh"] = self._refresh
        try:
            resp = await self._client.bulk(**kwargs)
        except Exception as e:
            raise map_es_error(e) from e

        items = resp["items"]
        if len(items) != len(actions):
            raise MalformedBulkResponse(
                f"bulk response has {len(items)} items for {len(actions)} actions"
            )
        if resp["errors"]:
            logger.debug(f"Bulk response for index={self.index} reported item errors")
        return [parse_bulk_item(entry) for entry in items]

    # --------------- reads (verification only)

    async def get(self, doc_id: str) -> Optional[StoredDocument]:
        try:
            resp = await self._client.get(index=self.index, id=doc_id)
        except NotFoundError:
            return None
        except Exception as e:
            raise map_es_error(e) from e
        return StoredDocument(id=resp["_id"], source=resp["_source"], version=resp["_version"])

    async def refresh(self) -> None:
        await self._client.indices.refresh(index=self.index)


def parse_bulk_item(entry: dict[str, Any]) -> BulkItemResponse:
    """Parse one element of the bulk ``items`` array, e.g. ``{"index": {...}}``."""
    try:
        (body,) = entry.values()
    except ValueError:
        raise MalformedBulkResponse(f"unexpected bulk item shape: {entry!r}")

    error = body.get("error")
    if isinstance(error, dict):
        error_type = error.get("type")
        reason = error.get("reason")
    elif error is not None:
        error_type, reason = None, str(error)
    else:
        error_type = reason = None

    return BulkItemResponse(
        id=str(body.get("_id", "")),
        status=int(body["status"]),
        error_type=error_type,
        reason=reason,
        version=body.get("_version"),
    )
