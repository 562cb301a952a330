from __future__ import annotations

import copy
import inspect
from collections.abc import AsyncIterator, Awaitable, Callable, Iterator
from dataclasses import dataclass, field
from typing import Any, Literal, TypedDict

ResponseType = Literal["json", "text", "bytes", "blob", "stream"]
BucketType = Literal["allPrivate", "allPublic"]


@dataclass(frozen=True, slots=True)
class RequestConfig:
    url: str
    method: str


@dataclass(slots=True)
class B2Response:
    """Envelope returned by every operation."""

    status: int
    status_text: str
    headers: dict[str, str]
    data: Any
    config: RequestConfig


@dataclass(frozen=True, slots=True)
class Blob:
    """Opaque binary container returned for ``response_type="blob"``."""

    data: bytes
    content_type: str

    @property
    def size(self) -> int:
        return len(self.data)


class ResponseStream:
    """Lazy chunk sequence returned for ``response_type="stream"``.

    The caller owns the underlying response and must close it once done,
    either by exhausting the iterator or calling ``close()`` / ``aclose()``.
    """

    def __init__(
        self,
        chunks: Iterator[bytes] | AsyncIterator[bytes],
        close: Callable[[], Any],
    ) -> None:
        self._chunks = chunks
        self._close = close
        self._closed = False

    def __iter__(self) -> Iterator[bytes]:
        try:
            yield from self._chunks  # type: ignore[misc]
        finally:
            self.close()

    async def __aiter__(self) -> AsyncIterator[bytes]:
        try:
            async for chunk in self._chunks:  # type: ignore[union-attr]
                yield chunk
        finally:
            await self.aclose()

    def read(self) -> bytes:
        return b"".join(self)

    async def aread(self) -> bytes:
        return b"".join([chunk async for chunk in self])

    def close(self) -> None:
        if not self._closed:
            self._closed = True
            self._close()

    async def aclose(self) -> None:
        if not self._closed:
            self._closed = True
            result = self._close()
            if inspect.isawaitable(result):
                await result


@dataclass(frozen=True, slots=True)
class ProgressEvent:
    loaded: int
    total: int
    length_computable: bool
    progress: float
    percentage: float


ProgressCallback = (
    Callable[[ProgressEvent], None] | Callable[[ProgressEvent], Awaitable[None]]
)


@dataclass(frozen=True, slots=True)
class Credentials:
    application_key_id: str
    application_key: str = field(repr=False)


@dataclass(frozen=True, slots=True)
class Session:
    """Snapshot of the authenticated session.

    Instances are immutable; ``allowed`` is a private copy of the capability
    block the service returned.
    """

    authorization_token: str | None = field(default=None, repr=False)
    api_url: str | None = None
    download_url: str | None = None
    account_id: str | None = None
    recommended_part_size: int | None = None
    absolute_minimum_part_size: int | None = None
    allowed: dict[str, Any] | None = None
    authenticated: bool = False

    @property
    def capabilities(self) -> frozenset[str]:
        if not self.allowed:
            return frozenset()
        return frozenset(self.allowed.get("capabilities") or ())

    def snapshot(self) -> Session:
        return Session(
            authorization_token=self.authorization_token,
            api_url=self.api_url,
            download_url=self.download_url,
            account_id=self.account_id,
            recommended_part_size=self.recommended_part_size,
            absolute_minimum_part_size=self.absolute_minimum_part_size,
            allowed=copy.deepcopy(self.allowed),
            authenticated=self.authenticated,
        )


@dataclass(frozen=True, slots=True)
class UploadSlot:
    """A (URL, token) pair usable for one successful upload."""

    target_id: str
    upload_url: str
    authorization_token: str = field(repr=False)


@dataclass(slots=True)
class LargeFileHandle:
    file_id: str
    file_name: str
    part_sha1s: dict[int, str] = field(default_factory=dict)

    def ordered_sha1s(self) -> list[str]:
        return [self.part_sha1s[number] for number in sorted(self.part_sha1s)]


@dataclass(frozen=True, slots=True)
class RetryContext:
    attempt: int
    error: BaseException
    delay: float


class BucketRecord(TypedDict, total=False):
    accountId: str
    bucketId: str
    bucketName: str
    bucketType: str
    bucketInfo: dict[str, str]
    revision: int


class FileRecord(TypedDict, total=False):
    fileId: str
    fileName: str
    contentType: str
    contentLength: int
    contentSha1: str
    uploadTimestamp: int
    fileInfo: dict[str, str]
    action: str


class KeyRecord(TypedDict, total=False):
    applicationKeyId: str
    applicationKey: str
    keyName: str
    capabilities: list[str]
    bucketId: str | None
    namePrefix: str | None
    expirationTimestamp: int | None


__all__ = [
    "ResponseType",
    "BucketType",
    "RequestConfig",
    "B2Response",
    "Blob",
    "ResponseStream",
    "ProgressEvent",
    "ProgressCallback",
    "Credentials",
    "Session",
    "UploadSlot",
    "LargeFileHandle",
    "RetryContext",
    "BucketRecord",
    "FileRecord",
    "KeyRecord",
]
