"""Concurrent part uploads for the large-file helper.

The per-part logic is a coroutine shared by both runtimes. The async runtime
runs K workers in an anyio task group; the blocking runtime runs K workers in
a thread pool and drives the same coroutine with ``iter_coroutine``. Workers
pull parts from one shared iterator and each keeps its own upload slot.
"""

from __future__ import annotations

import contextlib
import threading
from collections.abc import AsyncIterator, Iterable, Iterator
from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import anyio
from anyio.abc import TaskGroup

from ._http.iter_coroutine import iter_coroutine
from .cancellation import CancelToken, raise_if_cancelled
from .constants import MAX_PART_NUMBER
from .errors import B2Error, B2NetworkError, B2TimeoutError, B2ValidationError
from .files import UploadPayload
from .progress import make_progress_event
from .session import SessionController
from .types import B2Response, LargeFileHandle, ProgressCallback, ProgressEvent, UploadSlot
from .utils import await_if_necessary, debug, sha1_hex

if TYPE_CHECKING:
    from .large_files import LargeFileOps


@dataclass(slots=True)
class PartUploadJob:
    handle: LargeFileHandle
    body: Any
    part_size: int
    total: int
    concurrency: int
    seed: dict[int, str] = field(default_factory=dict)
    on_upload_progress: ProgressCallback | None = None
    cancel: CancelToken | None = None
    retries: int | None = None
    debug_enabled: bool = False


@dataclass(slots=True)
class _WorkerState:
    slot: UploadSlot | None = None


# ---------------------------------------------------------------------------
# Part-byte iterators
# ---------------------------------------------------------------------------


def _slice(data: bytes, part_size: int) -> Iterator[bytes]:
    view = memoryview(data)
    offset = 0
    while offset < len(view):
        end = min(offset + part_size, len(view))
        yield bytes(view[offset:end])
        offset = end


def _iter_part_bytes(body: Any, part_size: int) -> Iterator[bytes]:
    if isinstance(body, str):
        yield from _slice(body.encode("utf-8"), part_size)
        return
    if isinstance(body, (bytes, bytearray, memoryview)):
        yield from _slice(bytes(body), part_size)
        return
    # file-like object
    if hasattr(body, "read"):
        while True:
            chunk = body.read(part_size)
            if not chunk:
                break
            yield bytes(chunk)
        return
    # Iterable[bytes]
    buffer = bytearray()
    for chunk in body:
        buffer.extend(chunk.encode("utf-8") if isinstance(chunk, str) else chunk)
        while len(buffer) >= part_size:
            yield bytes(buffer[:part_size])
            del buffer[:part_size]
    if buffer:
        yield bytes(buffer)


async def _aiter_part_bytes(body: Any, part_size: int) -> AsyncIterator[bytes]:
    if hasattr(body, "__aiter__"):
        buffer = bytearray()
        async for chunk in body:
            buffer.extend(chunk.encode("utf-8") if isinstance(chunk, str) else chunk)
            while len(buffer) >= part_size:
                yield bytes(buffer[:part_size])
                del buffer[:part_size]
        if buffer:
            yield bytes(buffer)
        return
    for chunk in _iter_part_bytes(body, part_size):
        yield chunk


def _check_part_number(number: int) -> None:
    if number > MAX_PART_NUMBER:
        raise B2ValidationError(
            f"Data needs more than {MAX_PART_NUMBER} parts; increase part_size"
        )


def _number_parts(chunks: Iterable[bytes]) -> Iterator[tuple[int, bytes]]:
    for number, chunk in enumerate(chunks, start=1):
        _check_part_number(number)
        yield number, chunk


async def _anumber_parts(chunks: AsyncIterator[bytes]) -> AsyncIterator[tuple[int, bytes]]:
    number = 0
    async for chunk in chunks:
        number += 1
        _check_part_number(number)
        yield number, chunk


# ---------------------------------------------------------------------------
# Aggregated progress
# ---------------------------------------------------------------------------


class PartProgress:
    """Folds per-part progress into one monotone stream of events.

    A retried part restarts its own count, so the reported total never
    moves backwards.
    """

    def __init__(
        self,
        on_progress: ProgressCallback | None,
        total: int,
        *,
        debug_enabled: bool = False,
    ) -> None:
        self._on_progress = on_progress
        self._total = total
        self._debug = debug_enabled
        self._loaded_per_part: dict[int, int] = {}
        self._emitted = 0
        self._lock = threading.Lock()

    def _event(self, number: int, loaded: int) -> ProgressEvent:
        with self._lock:
            self._loaded_per_part[number] = loaded
            current = max(self._emitted, sum(self._loaded_per_part.values()))
            if self._total:
                current = min(current, self._total)
            self._emitted = current
            return make_progress_event(current, self._total)

    def for_part(self, number: int) -> ProgressCallback | None:
        if self._on_progress is None:
            return None
        on_progress = self._on_progress

        def callback(event: ProgressEvent) -> Any:
            return on_progress(self._event(number, event.loaded))

        return callback

    async def _emit(self, event: ProgressEvent) -> None:
        if self._on_progress is None:
            return
        try:
            await await_if_necessary(self._on_progress(event))
        except Exception as exc:
            debug("progress callback failed", repr(exc), enabled=self._debug)

    async def complete(self, number: int, size: int) -> None:
        if self._on_progress is not None:
            await self._emit(self._event(number, size))

    async def finish(self) -> None:
        if self._on_progress is None:
            return
        with self._lock:
            loaded = self._total or max(self._emitted, sum(self._loaded_per_part.values()))
        await self._emit(make_progress_event(loaded, self._total))


# ---------------------------------------------------------------------------
# Per-part upload
# ---------------------------------------------------------------------------


def _discards_slot(error: BaseException) -> bool:
    if isinstance(error, (B2NetworkError, B2TimeoutError)):
        return True
    if SessionController.is_auth_expired(error):
        return True
    status = getattr(error, "status", None)
    return status is not None and status >= 500


async def upload_numbered_part(
    ops: LargeFileOps,
    job: PartUploadJob,
    state: _WorkerState,
    number: int,
    content: bytes,
    progress: PartProgress,
) -> None:
    sha1 = sha1_hex(content)
    if job.seed.get(number) == sha1:
        debug(f"part {number} already uploaded, skipping", enabled=job.debug_enabled)
        job.handle.part_sha1s[number] = sha1
        await progress.complete(number, len(content))
        return

    payload = UploadPayload(content, len(content), sha1)
    on_part_progress = progress.for_part(number)

    async def attempt() -> B2Response:
        if state.slot is None:
            # the enclosing part retry owns the attempt budget
            state.slot = await ops._acquire_part_slot(job.handle.file_id, cancel=job.cancel, retries=0)
        slot = state.slot
        try:
            return await ops._send_part(
                slot,
                number,
                payload,
                on_upload_progress=on_part_progress,
                cancel=job.cancel,
            )
        except B2Error as exc:
            if _discards_slot(exc):
                debug(
                    f"part {number}: discarding upload slot after {exc.kind}",
                    enabled=job.debug_enabled,
                )
                state.slot = None
            raise

    await ops._retry_part(attempt, cancel=job.cancel, retries=job.retries)
    job.handle.part_sha1s[number] = sha1


# ---------------------------------------------------------------------------
# Upload runtime classes
# ---------------------------------------------------------------------------


class _BlockingPartUploadRuntime:
    def shield(self) -> contextlib.AbstractContextManager[Any]:
        return contextlib.nullcontext()

    def upload(self, *, ops: LargeFileOps, job: PartUploadJob) -> None:
        parts = _number_parts(_iter_part_bytes(job.body, job.part_size))
        progress = PartProgress(job.on_upload_progress, job.total, debug_enabled=job.debug_enabled)
        parts_lock = threading.Lock()
        stop = threading.Event()
        failures: list[BaseException] = []

        def next_part() -> tuple[int, bytes] | None:
            with parts_lock:
                if stop.is_set():
                    return None
                return next(parts, None)

        def worker() -> None:
            state = _WorkerState()
            try:
                while (item := next_part()) is not None:
                    iter_coroutine(upload_numbered_part(ops, job, state, *item, progress))
            except BaseException as exc:
                with parts_lock:
                    failures.append(exc)
                stop.set()

        remove = job.cancel.add_callback(stop.set) if job.cancel is not None else None
        try:
            with ThreadPoolExecutor(max_workers=job.concurrency) as executor:
                wait([executor.submit(worker) for _ in range(job.concurrency)])
        finally:
            if remove is not None:
                remove()

        if failures:
            raise failures[0]
        raise_if_cancelled(job.cancel)
        iter_coroutine(progress.finish())


class _AsyncPartUploadRuntime:
    def shield(self) -> anyio.CancelScope:
        return anyio.CancelScope(shield=True)

    async def upload(self, *, ops: LargeFileOps, job: PartUploadJob) -> None:
        parts = _anumber_parts(_aiter_part_bytes(job.body, job.part_size))
        progress = PartProgress(job.on_upload_progress, job.total, debug_enabled=job.debug_enabled)
        parts_lock = anyio.Lock()
        failures: list[BaseException] = []

        async def next_part() -> tuple[int, bytes] | None:
            async with parts_lock:
                return await anext(parts, None)

        async def worker(task_group: TaskGroup) -> None:
            state = _WorkerState()
            try:
                while (item := await next_part()) is not None:
                    await upload_numbered_part(ops, job, state, *item, progress)
            except Exception as exc:
                failures.append(exc)
                task_group.cancel_scope.cancel()

        remove = None
        try:
            async with anyio.create_task_group() as task_group:
                if job.cancel is not None:
                    remove = job.cancel.add_callback(task_group.cancel_scope.cancel)
                for _ in range(job.concurrency):
                    task_group.start_soon(worker, task_group)
        finally:
            if remove is not None:
                remove()

        if failures:
            raise failures[0]
        raise_if_cancelled(job.cancel)
        await progress.finish()


def create_blocking_part_upload_runtime() -> _BlockingPartUploadRuntime:
    return _BlockingPartUploadRuntime()


def create_async_part_upload_runtime() -> _AsyncPartUploadRuntime:
    return _AsyncPartUploadRuntime()


__all__ = [
    "PartUploadJob",
    "PartProgress",
    "upload_numbered_part",
    "create_blocking_part_upload_runtime",
    "create_async_part_upload_runtime",
]
