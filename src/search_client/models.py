"""
Data models for the bulk store boundary.

A ``BulkAction`` is what goes over the wire for one item, a ``BulkItemResponse``
is what comes back for it.
"""

from dataclasses import dataclass
from typing import Any, Optional

from pydantic import BaseModel


@dataclass(frozen=True)
class BulkAction:
    """One encoded item of a bulk call. ``payload=None`` deletes the document."""

    id: str
    payload: Optional[dict[str, Any]] = None
    version: Optional[int] = None

    @property
    def is_delete(self) -> bool:
        return self.payload is None


class BulkItemResponse(BaseModel):
    """Per-item entry of a bulk response, HTTP-style status."""

    id: str
    status: int
    error_type: Optional[str] = None
    reason: Optional[str] = None
    version: Optional[int] = None

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300


class StoredDocument(BaseModel):
    """Document as read back from a store."""

    id: str
    source: dict[str, Any]
    version: int
