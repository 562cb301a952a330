from __future__ import annotations

import inspect
from collections.abc import AsyncIterator, Awaitable, Callable, Iterable, Iterator
from typing import Any, Protocol, cast

import anyio

from .cancellation import CancelToken, raise_if_cancelled
from .constants import STREAM_CHUNK_SIZE
from .types import ProgressCallback, ProgressEvent
from .utils import compute_body_length, debug


def make_progress_event(loaded: int, total: int) -> ProgressEvent:
    length_computable = total > 0
    if length_computable:
        fraction = min(loaded / total, 1.0)
    else:
        fraction = 0.0
    return ProgressEvent(
        loaded=loaded,
        total=total,
        length_computable=length_computable,
        progress=fraction,
        percentage=round(fraction * 100, 2),
    )


class ProgressTracker:
    """Accumulates byte counts and reports them to a user callback.

    Callback failures are logged and otherwise ignored so they never break
    the transfer they observe.
    """

    def __init__(
        self,
        on_progress: ProgressCallback | None,
        total: int = 0,
        *,
        debug_enabled: bool = False,
    ) -> None:
        self._on_progress = on_progress
        self._total = max(0, total)
        self._loaded = 0
        self._debug = debug_enabled

    @property
    def loaded(self) -> int:
        return self._loaded

    @property
    def total(self) -> int:
        return self._total

    def advance(self, size: int) -> None:
        self._loaded += size
        if self._on_progress is None:
            return
        try:
            self._on_progress(make_progress_event(self._loaded, self._total))
        except Exception as exc:
            debug("progress callback failed", repr(exc), enabled=self._debug)

    async def aadvance(self, size: int) -> None:
        self._loaded += size
        if self._on_progress is None:
            return
        try:
            result = self._on_progress(make_progress_event(self._loaded, self._total))
            if inspect.isawaitable(result):
                await cast(Awaitable[None], result)
        except Exception as exc:
            debug("progress callback failed", repr(exc), enabled=self._debug)


class SupportsRead(Protocol):
    def read(self, size: int = -1) -> bytes:  # pragma: no cover - Protocol
        ...


class StreamingBodyWithProgress:
    """Wrap a bytes/str/file-like or iterable body to provide progress callbacks.

    This wrapper yields bytes in chunks of at most ``chunk_size`` and reports
    the cumulative count after each one. The cancel token is checked before
    every chunk so a blocking upload stops at the next chunk boundary.
    """

    def __init__(
        self,
        body: bytes | bytearray | memoryview | str | SupportsRead | Iterable[bytes],
        on_progress: ProgressCallback | None,
        chunk_size: int = STREAM_CHUNK_SIZE,
        total: int | None = None,
        *,
        cancel: CancelToken | None = None,
        debug_enabled: bool = False,
    ) -> None:
        self._source = body
        self._chunk_size = max(1024, chunk_size)
        self._cancel = cancel
        length = total if total is not None else compute_body_length(body)
        self._tracker = ProgressTracker(on_progress, length, debug_enabled=debug_enabled)

    @property
    def total(self) -> int:
        return self._tracker.total

    def _iter_source(self) -> Iterator[bytes]:
        if isinstance(self._source, str):
            yield from self._slice(self._source.encode("utf-8"))
            return
        if isinstance(self._source, (bytes, bytearray, memoryview)):
            yield from self._slice(bytes(self._source))
            return
        if hasattr(self._source, "read"):
            # file-like
            while True:
                chunk = self._source.read(self._chunk_size)  # type: ignore[union-attr]
                if not chunk:
                    break
                yield bytes(chunk)
            return
        # assume iterable of bytes
        for chunk in self._source:  # type: ignore[union-attr]
            if isinstance(chunk, str):
                chunk = chunk.encode("utf-8")
            yield from self._slice(bytes(chunk))

    def _slice(self, data: bytes) -> Iterator[bytes]:
        view = memoryview(data)
        offset = 0
        while offset < len(view):
            end = min(offset + self._chunk_size, len(view))
            yield view[offset:end].tobytes()
            offset = end

    def __iter__(self) -> Iterator[bytes]:
        for chunk in self._iter_source():
            raise_if_cancelled(self._cancel)
            self._tracker.advance(len(chunk))
            yield chunk

    async def __aiter__(self) -> AsyncIterator[bytes]:
        if hasattr(self._source, "__aiter__"):
            async for chunk in self._source:  # type: ignore[union-attr]
                for piece in self._slice(bytes(chunk)):
                    raise_if_cancelled(self._cancel)
                    await self._tracker.aadvance(len(piece))
                    yield piece
            return
        for chunk in self._iter_source():
            raise_if_cancelled(self._cancel)
            await self._tracker.aadvance(len(chunk))
            yield chunk
            await anyio.sleep(0)


def _pending(chunk: bytes, tracker: ProgressTracker, measure: Callable[[], int] | None) -> int:
    if measure is None:
        return len(chunk)
    return measure() - tracker.loaded


def iter_with_progress(
    chunks: Iterable[bytes],
    tracker: ProgressTracker,
    cancel: CancelToken | None = None,
    measure: Callable[[], int] | None = None,
) -> Iterator[bytes]:
    """Report progress for each chunk passing through.

    When ``measure`` is given it returns the cumulative byte count to report
    (for a response, the bytes read off the wire before content decoding),
    so ``loaded`` stays comparable with a Content-Length total.
    """
    for chunk in chunks:
        raise_if_cancelled(cancel)
        size = _pending(chunk, tracker, measure)
        if size > 0:
            tracker.advance(size)
        yield chunk
    if measure is not None and measure() > tracker.loaded:
        tracker.advance(measure() - tracker.loaded)


async def aiter_with_progress(
    chunks: AsyncIterator[bytes],
    tracker: ProgressTracker,
    cancel: CancelToken | None = None,
    measure: Callable[[], int] | None = None,
) -> AsyncIterator[bytes]:
    async for chunk in chunks:
        raise_if_cancelled(cancel)
        size = _pending(chunk, tracker, measure)
        if size > 0:
            await tracker.aadvance(size)
        yield chunk
    if measure is not None and measure() > tracker.loaded:
        await tracker.aadvance(measure() - tracker.loaded)


def content_length_from_headers(headers: Any) -> int:
    value = headers.get("content-length") if headers is not None else None
    try:
        return max(0, int(value)) if value is not None else 0
    except (TypeError, ValueError):
        return 0


__all__ = [
    "make_progress_event",
    "ProgressTracker",
    "StreamingBodyWithProgress",
    "iter_with_progress",
    "aiter_with_progress",
    "content_length_from_headers",
]
