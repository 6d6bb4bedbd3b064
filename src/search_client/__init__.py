"""
Search Store Client Library

Bulk-capable stores that the write flow dispatches to.

Usage:
    from search_client import ElasticsearchBulkStore, InMemoryDocumentStore, BulkAction

    store = ElasticsearchBulkStore.from_url("http://localhost:9200", "books")
    await store.bulk([BulkAction("1", {"title": "Dune"})])
"""

from .errors import SearchClientError, TransportFailure, MalformedBulkResponse, map_es_error
from .models import BulkAction, BulkItemResponse, StoredDocument
from .memory import InMemoryDocumentStore
from .es_store import ElasticsearchBulkStore, parse_bulk_item

__version__ = "0.1.0"
__all__ = [
    "BulkAction",
    "BulkItemResponse",
    "StoredDocument",
    "InMemoryDocumentStore",
    "ElasticsearchBulkStore",
    "parse_bulk_item",
    "SearchClientError",
    "TransportFailure",
    "MalformedBulkResponse",
    "map_es_error",
]
