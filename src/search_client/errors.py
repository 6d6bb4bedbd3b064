"""
Custom exceptions for the search store clients.

Per-item bulk failures are data (see ``BulkItemResponse``). These exceptions
cover the cases where a call to the store did not produce a usable response.
"""


class SearchClientError(Exception):
    """Base error for search store clients."""

    pass


class TransportFailure(SearchClientError):
    """The request could not be completed (connection, timeout, rejected request)."""

    pass


class MalformedBulkResponse(SearchClientError):
    """Bulk response does not line up with the submitted actions."""

    pass


def map_es_error(e: Exception) -> SearchClientError:
    import elasticsearch

    if isinstance(e, (elasticsearch.ConnectionError, elasticsearch.ConnectionTimeout)):
        return TransportFailure(f"connection failed: {e}")
    if isinstance(e, elasticsearch.ApiError):
        return TransportFailure(f"bulk request rejected ({e.meta.status}): {e.message}")
    if isinstance(e, elasticsearch.TransportError):
        return TransportFailure(str(e))
    return SearchClientError(str(e))
