"""HTTP transport implementations for sync and async clients.

A transport performs exactly one exchange: it encodes the body, arms the
deadline, forwards progress, decodes the response according to the
requested shape and classifies every failure into the client's error kinds.
Retrying is the retry engine's job, not the transport's.
"""

from __future__ import annotations

import abc
import contextlib
import json
import time
from collections.abc import AsyncIterator, Iterable, Iterator
from dataclasses import dataclass
from typing import Any

import anyio
import httpx

from ..cancellation import CancelToken, raise_if_cancelled
from ..constants import (
    AUTH_EXPIRED_CODES,
    CONTENT_TYPE_JSON,
    CONTENT_TYPE_OCTET_STREAM,
    STREAM_CHUNK_SIZE,
    STREAM_THRESHOLD,
)
from ..errors import (
    B2AuthError,
    B2CancelledError,
    B2HTTPError,
    B2NetworkError,
    B2TimeoutError,
)
from ..progress import (
    ProgressTracker,
    StreamingBodyWithProgress,
    aiter_with_progress,
    content_length_from_headers,
    iter_with_progress,
)
from ..retry import is_retryable_error
from ..types import B2Response, Blob, ProgressCallback, RequestConfig, ResponseStream, ResponseType
from ..utils import debug


@dataclass(frozen=True, slots=True)
class JSONBody:
    """JSON request body; sets Content-Type to application/json unless given."""

    data: Any


@dataclass(frozen=True, slots=True)
class BytesBody:
    """In-memory body sent as-is."""

    data: bytes
    content_type: str | None = None


@dataclass(frozen=True, slots=True)
class RawBody:
    """Lazy body forwarded unbuffered: a binary file or an iterable of bytes.

    ``length`` is the declared size when known; it feeds Content-Length and
    the progress total.
    """

    content: Any
    length: int | None = None


RequestBody = JSONBody | BytesBody | RawBody | None


def coerce_body(body: Any) -> RequestBody:
    if body is None or isinstance(body, (JSONBody, BytesBody, RawBody)):
        return body
    if isinstance(body, str):
        return BytesBody(body.encode("utf-8"))
    if isinstance(body, (bytes, bytearray, memoryview)):
        return BytesBody(bytes(body))
    if isinstance(body, (dict, list)):
        return JSONBody(body)
    return RawBody(body)


@contextlib.contextmanager
def map_transport_errors(timeout: float | None) -> Iterator[None]:
    """Translate httpx and deadline failures into client errors."""
    try:
        yield
    except httpx.TimeoutException as exc:
        raise B2TimeoutError(timeout) from exc
    except TimeoutError as exc:
        raise B2TimeoutError(timeout) from exc
    except httpx.TransportError as exc:
        raise B2NetworkError(f"Network error: {exc}") from exc


def within_deadline(chunks: Iterable[bytes], deadline: float | None) -> Iterator[bytes]:
    """Stop a blocking read once the per-call deadline has passed."""
    for chunk in chunks:
        if deadline is not None and time.monotonic() > deadline:
            raise TimeoutError("deadline exceeded while reading the response")
        yield chunk


def _parse_json(content: bytes) -> Any:
    if not content:
        return None
    try:
        return json.loads(content)
    except ValueError:
        return None


def http_error_from_response(
    status: int,
    status_text: str,
    headers: dict[str, str],
    content: bytes,
    config: RequestConfig,
) -> B2HTTPError:
    """Build the error for a non-2xx response from its (possibly JSON) body."""
    payload = _parse_json(content)
    code: str | None = None
    message: str | None = None
    if isinstance(payload, dict):
        code = payload.get("code") or None
        message = payload.get("message") or None
    data = payload if payload is not None else content.decode("utf-8", errors="replace")
    envelope = B2Response(
        status=status,
        status_text=status_text,
        headers=headers,
        data=data,
        config=config,
    )
    error_cls = B2AuthError if status == 401 or code in AUTH_EXPIRED_CODES else B2HTTPError
    error = error_cls(
        message or status_text or f"Request failed with status code {status}",
        status=status,
        status_text=status_text,
        code=code,
        response=envelope,
    )
    error.retryable = is_retryable_error(error)
    return error


def decode_body(
    content: bytes,
    response_type: ResponseType,
    response: httpx.Response,
) -> Any:
    if response_type == "json":
        if not content:
            return None
        try:
            return json.loads(content)
        except ValueError as exc:
            raise B2HTTPError(
                "Response body is not valid JSON",
                status=response.status_code,
                status_text=response.reason_phrase,
            ) from exc
    if response_type == "text":
        return content.decode(response.charset_encoding or "utf-8", errors="replace")
    if response_type == "blob":
        return Blob(content, response.headers.get("content-type", CONTENT_TYPE_OCTET_STREAM))
    return content


class BaseTransport(abc.ABC):
    """Shared request building and response shaping."""

    def __init__(self, client: httpx.Client | httpx.AsyncClient, *, debug_enabled: bool = False):
        self._client = client
        self._debug = debug_enabled

    @property
    def client(self) -> httpx.Client | httpx.AsyncClient:
        return self._client

    @abc.abstractmethod
    def _stream_content(self, body: StreamingBodyWithProgress) -> Any: ...

    def _encode_body(
        self,
        body: RequestBody,
        headers: httpx.Headers,
        on_upload_progress: ProgressCallback | None,
        cancel: CancelToken | None,
    ) -> Any:
        if body is None:
            return None

        if isinstance(body, RawBody):
            if body.length is not None and "content-length" not in headers:
                headers["Content-Length"] = str(body.length)
            return self._stream_content(
                StreamingBodyWithProgress(
                    body.content,
                    on_upload_progress,
                    STREAM_CHUNK_SIZE,
                    total=body.length,
                    cancel=cancel,
                    debug_enabled=self._debug,
                )
            )

        if isinstance(body, JSONBody):
            data = json.dumps(body.data, separators=(",", ":")).encode("utf-8")
            if "content-type" not in headers:
                headers["Content-Type"] = CONTENT_TYPE_JSON
        else:
            data = body.data
            if body.content_type and "content-type" not in headers:
                headers["Content-Type"] = body.content_type

        if on_upload_progress is None and len(data) <= STREAM_THRESHOLD:
            return data

        # Large or observed bodies go out in bounded chunks.
        if "content-length" not in headers:
            headers["Content-Length"] = str(len(data))
        return self._stream_content(
            StreamingBodyWithProgress(
                data,
                on_upload_progress,
                STREAM_CHUNK_SIZE,
                total=len(data),
                cancel=cancel,
                debug_enabled=self._debug,
            )
        )

    def _build_request(
        self,
        method: str,
        url: str,
        *,
        params: dict[str, Any] | None,
        body: Any,
        headers: dict[str, str] | None,
        timeout: float | None,
        on_upload_progress: ProgressCallback | None,
        cancel: CancelToken | None,
    ) -> httpx.Request:
        request_headers = httpx.Headers(headers or {})
        content = self._encode_body(coerce_body(body), request_headers, on_upload_progress, cancel)
        debug(f"{method} {url}", enabled=self._debug)
        return self._client.build_request(
            method,
            url,
            params=params or None,
            content=content,
            headers=request_headers,
            timeout=httpx.Timeout(timeout) if timeout is not None else httpx.USE_CLIENT_DEFAULT,
        )

    @staticmethod
    def _config(request: httpx.Request) -> RequestConfig:
        return RequestConfig(url=str(request.url), method=request.method)

    @staticmethod
    def _envelope(response: httpx.Response, data: Any, config: RequestConfig) -> B2Response:
        return B2Response(
            status=response.status_code,
            status_text=response.reason_phrase,
            headers=dict(response.headers),
            data=data,
            config=config,
        )

    def _tracker(
        self, response: httpx.Response, on_download_progress: ProgressCallback | None
    ) -> ProgressTracker:
        return ProgressTracker(
            on_download_progress,
            content_length_from_headers(response.headers),
            debug_enabled=self._debug,
        )

    @staticmethod
    def _error(response: httpx.Response, content: bytes, config: RequestConfig) -> B2HTTPError:
        return http_error_from_response(
            response.status_code,
            response.reason_phrase,
            dict(response.headers),
            content,
            config,
        )

    @abc.abstractmethod
    async def send(
        self,
        method: str,
        url: str,
        *,
        params: dict[str, Any] | None = None,
        body: Any = None,
        headers: dict[str, str] | None = None,
        timeout: float | None = None,
        response_type: ResponseType = "json",
        on_upload_progress: ProgressCallback | None = None,
        on_download_progress: ProgressCallback | None = None,
        cancel: CancelToken | None = None,
    ) -> B2Response:
        """Perform one HTTP exchange and return the response envelope."""
        ...


class BlockingTransport(BaseTransport):
    """
    Synchronous HTTP transport using httpx.Client.

    ``send`` is declared async but never awaits anything that suspends,
    allowing it to be executed via iter_coroutine(). Cancellation is
    observed before sending and between streamed chunks.
    """

    _client: httpx.Client

    def __init__(self, client: httpx.Client, *, debug_enabled: bool = False) -> None:
        super().__init__(client, debug_enabled=debug_enabled)

    def _stream_content(self, body: StreamingBodyWithProgress) -> Any:
        return iter(body)

    async def send(
        self,
        method: str,
        url: str,
        *,
        params: dict[str, Any] | None = None,
        body: Any = None,
        headers: dict[str, str] | None = None,
        timeout: float | None = None,
        response_type: ResponseType = "json",
        on_upload_progress: ProgressCallback | None = None,
        on_download_progress: ProgressCallback | None = None,
        cancel: CancelToken | None = None,
    ) -> B2Response:
        raise_if_cancelled(cancel)
        request = self._build_request(
            method,
            url,
            params=params,
            body=body,
            headers=headers,
            timeout=timeout,
            on_upload_progress=on_upload_progress,
            cancel=cancel,
        )
        config = self._config(request)
        # httpx timeouts apply per phase; the deadline bounds the whole exchange
        deadline = time.monotonic() + timeout if timeout is not None else None
        with map_transport_errors(timeout):
            response = self._client.send(request, stream=True)

        if not response.is_success:
            try:
                with map_transport_errors(timeout):
                    content = response.read()
            finally:
                response.close()
            raise self._error(response, content, config)

        tracker = self._tracker(response, on_download_progress)
        if response_type == "stream":
            stream = ResponseStream(self._iter_chunks(response, tracker, cancel, timeout), response.close)
            return self._envelope(response, stream, config)

        try:
            with map_transport_errors(timeout):
                chunks = within_deadline(response.iter_bytes(), deadline)
                content = b"".join(
                    iter_with_progress(chunks, tracker, cancel, lambda: response.num_bytes_downloaded)
                )
        finally:
            response.close()
        return self._envelope(response, decode_body(content, response_type, response), config)

    @staticmethod
    def _iter_chunks(
        response: httpx.Response,
        tracker: ProgressTracker,
        cancel: CancelToken | None,
        timeout: float | None,
    ) -> Iterator[bytes]:
        with map_transport_errors(timeout):
            yield from iter_with_progress(
                response.iter_bytes(), tracker, cancel, lambda: response.num_bytes_downloaded
            )

    def close(self) -> None:
        self._client.close()


class AsyncTransport(BaseTransport):
    """Asynchronous HTTP transport using httpx.AsyncClient.

    The whole exchange runs inside an anyio cancel scope that the caller's
    cancel token can trip, and under a ``fail_after`` deadline.
    """

    _client: httpx.AsyncClient

    def __init__(self, client: httpx.AsyncClient, *, debug_enabled: bool = False) -> None:
        super().__init__(client, debug_enabled=debug_enabled)

    def _stream_content(self, body: StreamingBodyWithProgress) -> Any:
        return body.__aiter__()

    async def send(
        self,
        method: str,
        url: str,
        *,
        params: dict[str, Any] | None = None,
        body: Any = None,
        headers: dict[str, str] | None = None,
        timeout: float | None = None,
        response_type: ResponseType = "json",
        on_upload_progress: ProgressCallback | None = None,
        on_download_progress: ProgressCallback | None = None,
        cancel: CancelToken | None = None,
    ) -> B2Response:
        raise_if_cancelled(cancel)
        request = self._build_request(
            method,
            url,
            params=params,
            body=body,
            headers=headers,
            timeout=timeout,
            on_upload_progress=on_upload_progress,
            cancel=cancel,
        )
        config = self._config(request)

        with anyio.CancelScope() as scope:
            remove = cancel.add_callback(scope.cancel) if cancel is not None else None
            try:
                with map_transport_errors(timeout), anyio.fail_after(timeout):
                    response = await self._client.send(request, stream=True)
                    return await self._read(
                        response, config, response_type, on_download_progress, cancel, timeout
                    )
            finally:
                if remove is not None:
                    remove()
        raise B2CancelledError(cancel.reason if cancel and cancel.reason else "Operation was cancelled")

    async def _read(
        self,
        response: httpx.Response,
        config: RequestConfig,
        response_type: ResponseType,
        on_download_progress: ProgressCallback | None,
        cancel: CancelToken | None,
        timeout: float | None,
    ) -> B2Response:
        if not response.is_success:
            try:
                content = await response.aread()
            finally:
                with anyio.CancelScope(shield=True):
                    await response.aclose()
            raise self._error(response, content, config)

        tracker = self._tracker(response, on_download_progress)
        if response_type == "stream":
            stream = ResponseStream(self._aiter_chunks(response, tracker, cancel, timeout), response.aclose)
            return self._envelope(response, stream, config)

        try:
            chunks = [
                chunk
                async for chunk in aiter_with_progress(
                    response.aiter_bytes(), tracker, cancel, lambda: response.num_bytes_downloaded
                )
            ]
        finally:
            with anyio.CancelScope(shield=True):
                await response.aclose()
        return self._envelope(response, decode_body(b"".join(chunks), response_type, response), config)

    @staticmethod
    async def _aiter_chunks(
        response: httpx.Response,
        tracker: ProgressTracker,
        cancel: CancelToken | None,
        timeout: float | None,
    ) -> AsyncIterator[bytes]:
        with map_transport_errors(timeout):
            async for chunk in aiter_with_progress(
                response.aiter_bytes(), tracker, cancel, lambda: response.num_bytes_downloaded
            ):
                yield chunk

    async def aclose(self) -> None:
        await self._client.aclose()


__all__ = [
    "BaseTransport",
    "BlockingTransport",
    "AsyncTransport",
    "JSONBody",
    "BytesBody",
    "RawBody",
    "RequestBody",
    "coerce_body",
    "decode_body",
    "http_error_from_response",
    "map_transport_errors",
    "within_deadline",
]
