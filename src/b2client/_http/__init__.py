"""Shared HTTP infrastructure for the B2 clients."""

from .clients import (
    create_headers_async_client,
    create_headers_client,
)
from .iter_coroutine import iter_coroutine
from .transport import (
    AsyncTransport,
    BaseTransport,
    BlockingTransport,
    BytesBody,
    JSONBody,
    RawBody,
    RequestBody,
    http_error_from_response,
)

__all__ = [
    "iter_coroutine",
    "BaseTransport",
    "BlockingTransport",
    "AsyncTransport",
    "JSONBody",
    "BytesBody",
    "RawBody",
    "RequestBody",
    "http_error_from_response",
    "create_headers_client",
    "create_headers_async_client",
]
