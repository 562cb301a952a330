"""B2 clients: ``AsyncB2Client`` and its blocking twin ``B2Client``."""

from __future__ import annotations

import functools
from collections.abc import AsyncIterator, Callable, Iterator, Mapping
from typing import Any

import httpx

from ._core import B2Core
from ._http.clients import create_headers_async_client, create_headers_client
from ._http.iter_coroutine import iter_coroutine
from ._http.transport import AsyncTransport, BlockingTransport
from ._inputs import normalize_input
from ._pipeline import create_async_part_upload_runtime, create_blocking_part_upload_runtime
from .buckets import BucketOps
from .cancellation import CancelToken
from .config import ClientConfig
from .constants import MAX_LIST_COUNT
from .files import FileOps
from .keys import KeyOps
from .large_files import LargeFileOps
from .retry import async_sleep, blocking_sleep
from .types import B2Response, FileRecord


class B2Ops(BucketOps, FileOps, KeyOps, LargeFileOps, B2Core):
    """Every operation, implemented once as a coroutine."""


def _resolve_page_limit(
    *,
    page_size: int | None,
    limit: int | None,
    yielded_count: int,
) -> tuple[bool, int | None]:
    page_limit = page_size
    if limit is None:
        return False, page_limit

    remaining = limit - yielded_count
    if remaining <= 0:
        return True, None
    if page_limit is None or page_limit > remaining:
        page_limit = min(remaining, MAX_LIST_COUNT)
    return False, page_limit


def _next_start(page: B2Response, *fields: str) -> dict[str, Any] | None:
    """Cursor keywords for the following page, or None on the last page."""
    data = page.data or {}
    if data.get("nextFileName") is None and data.get("nextFileId") is None:
        return None
    cursor = {"start_file_name": data.get("nextFileName")}
    if "start_file_id" in fields:
        cursor["start_file_id"] = data.get("nextFileId")
    return cursor


def _listing_options(
    bucket_id: str | Mapping[str, Any] | None,
    *,
    prefix: str | None,
    delimiter: str | None,
    start_file_name: str | None,
    start_file_id: str | None,
    page_size: int | None,
    limit: int | None,
    cancel: CancelToken | None,
    retries: int | None,
) -> dict[str, Any]:
    return normalize_input(
        bucket_id,
        "bucket_id",
        bucket_id=bucket_id,
        prefix=prefix,
        delimiter=delimiter,
        start_file_name=start_file_name,
        start_file_id=start_file_id,
        page_size=page_size,
        limit=limit,
        cancel=cancel,
        retries=retries,
    )


class AsyncB2Client(B2Ops):
    """Asynchronous Backblaze B2 client.

    Accepts a ``ClientConfig`` or its fields as keyword arguments; a
    caller-owned ``httpx.AsyncClient`` may be passed as ``client``.

    Example:
        async with AsyncB2Client(application_key_id="...", application_key="...") as b2:
            await b2.authorize()
            buckets = await b2.list_buckets()
    """

    def __init__(
        self,
        config: ClientConfig | None = None,
        *,
        client: httpx.AsyncClient | None = None,
        **options: Any,
    ) -> None:
        config = ClientConfig.from_kwargs(config, **options)
        http_client = create_headers_async_client(config.headers, config.timeout, client=client)
        super().__init__(
            config=config,
            transport=AsyncTransport(http_client, debug_enabled=config.debug),
            sleep_fn=async_sleep,
            pipeline_runtime=create_async_part_upload_runtime(),
        )

    async def __aenter__(self) -> AsyncB2Client:
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.aclose()

    async def _iter_files(
        self,
        list_page: Callable[..., Any],
        cursor_fields: tuple[str, ...],
        options: dict[str, Any],
    ) -> AsyncIterator[FileRecord]:
        limit = options.pop("limit", None)
        page_size = options.pop("page_size", None)
        fallback_size = options.pop("max_file_count", None)
        if page_size is None:
            page_size = fallback_size
        yielded_count = 0

        while True:
            done, effective_limit = _resolve_page_limit(
                page_size=page_size, limit=limit, yielded_count=yielded_count
            )
            if done:
                break

            page = await list_page(**options, max_file_count=effective_limit)

            for item in (page.data or {}).get("files") or []:
                yield item
                if limit is not None:
                    yielded_count += 1
                    if yielded_count >= limit:
                        return

            cursor = _next_start(page, *cursor_fields)
            if cursor is None:
                break
            options.update(cursor)

    def iter_file_names(
        self,
        bucket_id: str | Mapping[str, Any] | None = None,
        *,
        prefix: str | None = None,
        delimiter: str | None = None,
        start_file_name: str | None = None,
        page_size: int | None = None,
        limit: int | None = None,
        cancel: CancelToken | None = None,
        retries: int | None = None,
    ) -> AsyncIterator[FileRecord]:
        """Yield file records across pages, following ``nextFileName``."""
        options = _listing_options(
            bucket_id,
            prefix=prefix,
            delimiter=delimiter,
            start_file_name=start_file_name,
            start_file_id=None,
            page_size=page_size,
            limit=limit,
            cancel=cancel,
            retries=retries,
        )
        options.pop("start_file_id", None)
        return self._iter_files(self.list_file_names, ("start_file_name",), options)

    def iter_file_versions(
        self,
        bucket_id: str | Mapping[str, Any] | None = None,
        *,
        prefix: str | None = None,
        delimiter: str | None = None,
        start_file_name: str | None = None,
        start_file_id: str | None = None,
        page_size: int | None = None,
        limit: int | None = None,
        cancel: CancelToken | None = None,
        retries: int | None = None,
    ) -> AsyncIterator[FileRecord]:
        """Yield every file version across pages, following ``nextFileName``/``nextFileId``."""
        options = _listing_options(
            bucket_id,
            prefix=prefix,
            delimiter=delimiter,
            start_file_name=start_file_name,
            start_file_id=start_file_id,
            page_size=page_size,
            limit=limit,
            cancel=cancel,
            retries=retries,
        )
        return self._iter_files(
            self.list_file_versions, ("start_file_name", "start_file_id"), options
        )


def _blocking(name: str) -> Callable[..., Any]:
    operation = getattr(B2Ops, name)

    @functools.wraps(operation)
    def method(self: B2Client, *args: Any, **kwargs: Any) -> Any:
        return iter_coroutine(getattr(self._ops, name)(*args, **kwargs))

    return method


class B2Client:
    """Synchronous Backblaze B2 client.

    Runs the same operations as ``AsyncB2Client`` over ``httpx.Client``;
    large-file parts are uploaded from a thread pool.

    Example:
        with B2Client(application_key_id="...", application_key="...") as b2:
            b2.authorize()
            slot = b2.get_upload_url(bucket_id).data
            b2.upload_file(slot, file_name="a.txt", data=b"hi")
    """

    def __init__(
        self,
        config: ClientConfig | None = None,
        *,
        client: httpx.Client | None = None,
        **options: Any,
    ) -> None:
        config = ClientConfig.from_kwargs(config, **options)
        http_client = create_headers_client(config.headers, config.timeout, client=client)
        self._ops = B2Ops(
            config=config,
            transport=BlockingTransport(http_client, debug_enabled=config.debug),
            sleep_fn=blocking_sleep,
            pipeline_runtime=create_blocking_part_upload_runtime(),
        )

    @property
    def config(self) -> ClientConfig:
        return self._ops.config

    def close(self) -> None:
        self._ops.close()

    def __enter__(self) -> B2Client:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    def is_authenticated(self) -> bool:
        return self._ops.is_authenticated()

    def get_session(self) -> Any:
        return self._ops.get_session()

    def save_session(self, session: Any) -> Any:
        return self._ops.save_session(session)

    def clear(self) -> None:
        self._ops.clear()

    authorize = _blocking("authorize")
    refresh = _blocking("refresh")

    create_bucket = _blocking("create_bucket")
    delete_bucket = _blocking("delete_bucket")
    list_buckets = _blocking("list_buckets")
    get_bucket = _blocking("get_bucket")
    update_bucket = _blocking("update_bucket")
    get_upload_url = _blocking("get_upload_url")

    upload_file = _blocking("upload_file")
    download_file_by_name = _blocking("download_file_by_name")
    download_file_by_id = _blocking("download_file_by_id")
    list_file_names = _blocking("list_file_names")
    list_file_versions = _blocking("list_file_versions")
    get_file_info = _blocking("get_file_info")
    delete_file_version = _blocking("delete_file_version")
    hide_file = _blocking("hide_file")
    get_download_authorization = _blocking("get_download_authorization")

    start_large_file = _blocking("start_large_file")
    get_upload_part_url = _blocking("get_upload_part_url")
    upload_part = _blocking("upload_part")
    finish_large_file = _blocking("finish_large_file")
    cancel_large_file = _blocking("cancel_large_file")
    list_parts = _blocking("list_parts")
    list_unfinished_large_files = _blocking("list_unfinished_large_files")
    upload_large_file = _blocking("upload_large_file")

    create_key = _blocking("create_key")
    delete_key = _blocking("delete_key")
    list_keys = _blocking("list_keys")

    def _iter_files(
        self,
        list_page: Callable[..., Any],
        cursor_fields: tuple[str, ...],
        options: dict[str, Any],
    ) -> Iterator[FileRecord]:
        limit = options.pop("limit", None)
        page_size = options.pop("page_size", None)
        fallback_size = options.pop("max_file_count", None)
        if page_size is None:
            page_size = fallback_size
        yielded_count = 0

        while True:
            done, effective_limit = _resolve_page_limit(
                page_size=page_size, limit=limit, yielded_count=yielded_count
            )
            if done:
                break

            page = list_page(**options, max_file_count=effective_limit)

            for item in (page.data or {}).get("files") or []:
                yield item
                if limit is not None:
                    yielded_count += 1
                    if yielded_count >= limit:
                        return

            cursor = _next_start(page, *cursor_fields)
            if cursor is None:
                break
            options.update(cursor)

    def iter_file_names(
        self,
        bucket_id: str | Mapping[str, Any] | None = None,
        *,
        prefix: str | None = None,
        delimiter: str | None = None,
        start_file_name: str | None = None,
        page_size: int | None = None,
        limit: int | None = None,
        cancel: CancelToken | None = None,
        retries: int | None = None,
    ) -> Iterator[FileRecord]:
        options = _listing_options(
            bucket_id,
            prefix=prefix,
            delimiter=delimiter,
            start_file_name=start_file_name,
            start_file_id=None,
            page_size=page_size,
            limit=limit,
            cancel=cancel,
            retries=retries,
        )
        options.pop("start_file_id", None)
        return self._iter_files(self.list_file_names, ("start_file_name",), options)

    def iter_file_versions(
        self,
        bucket_id: str | Mapping[str, Any] | None = None,
        *,
        prefix: str | None = None,
        delimiter: str | None = None,
        start_file_name: str | None = None,
        start_file_id: str | None = None,
        page_size: int | None = None,
        limit: int | None = None,
        cancel: CancelToken | None = None,
        retries: int | None = None,
    ) -> Iterator[FileRecord]:
        options = _listing_options(
            bucket_id,
            prefix=prefix,
            delimiter=delimiter,
            start_file_name=start_file_name,
            start_file_id=start_file_id,
            page_size=page_size,
            limit=limit,
            cancel=cancel,
            retries=retries,
        )
        return self._iter_files(
            self.list_file_versions, ("start_file_name", "start_file_id"), options
        )


__all__ = ["AsyncB2Client", "B2Client", "B2Ops"]
