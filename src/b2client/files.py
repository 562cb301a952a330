"""File operations: upload, download, listing and metadata."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any
from urllib.parse import quote

from ._http.transport import BytesBody, RawBody, RequestBody
from ._inputs import normalize_input
from .cancellation import CancelToken
from .constants import (
    CONTENT_TYPE_OCTET_STREAM,
    FILE_NOT_PRESENT,
    HEADER_AUTHORIZATION,
    HEADER_CONTENT_LENGTH,
    HEADER_CONTENT_SHA1,
    HEADER_CONTENT_TYPE,
    HEADER_FILE_NAME,
    HEADER_INFO_PREFIX,
    INVALID_BUCKET_ID,
    MAX_DOWNLOAD_AUTH_DURATION,
    NOT_ALLOWED,
)
from .endpoints import download_by_id_url, download_by_name_url, encode_file_name
from .errors import (
    B2HTTPError,
    B2InvalidBucketIdError,
    B2NotAllowedError,
    B2NotFoundError,
    B2ValidationError,
    ErrorRule,
)
from .types import B2Response, ProgressCallback
from .utils import compute_body_length, is_seekable, sha1_hex, sha1_of_file
from .validation import (
    optional_string,
    require_string,
    validate_bucket_id,
    validate_content_type,
    validate_download_duration,
    validate_file_id,
    validate_file_info,
    validate_file_name,
    validate_max_count,
    validate_response_type,
    validate_sha1,
    validate_upload_data,
    validate_upload_target,
)

UPLOAD_ERRORS = (
    ErrorRule(B2HTTPError, "File upload failed: {message}", 400, FILE_NOT_PRESENT),
    ErrorRule(B2NotAllowedError, "Upload not allowed: {message}", None, NOT_ALLOWED),
)
LIST_FILES_ERRORS = (
    ErrorRule(B2InvalidBucketIdError, "Invalid bucket ID: {bucket_id}", 400, INVALID_BUCKET_ID),
)
FILE_NOT_FOUND_ERRORS = (
    ErrorRule(B2NotFoundError, "File not found: {file_id}", 400, FILE_NOT_PRESENT),
)
HIDE_FILE_ERRORS = (
    ErrorRule(B2InvalidBucketIdError, "Invalid bucket ID: {bucket_id}", 400, INVALID_BUCKET_ID),
    ErrorRule(B2NotFoundError, "File not found: {file_name}", 400, FILE_NOT_PRESENT),
)
DOWNLOAD_ERRORS = (
    ErrorRule(B2NotFoundError, "File not found: {file}", 404, None, as_code=FILE_NOT_PRESENT),
)
DOWNLOAD_AUTHORIZATION_ERRORS = (
    ErrorRule(B2InvalidBucketIdError, "Invalid bucket ID: {bucket_id}", 400, INVALID_BUCKET_ID),
    ErrorRule(
        B2NotAllowedError,
        "Download authorization not allowed: {message}",
        400,
        NOT_ALLOWED,
    ),
)


def _to_bytes(chunk: Any) -> bytes:
    if isinstance(chunk, str):
        return chunk.encode("utf-8")
    return bytes(chunk)


@dataclass(slots=True)
class UploadPayload:
    """An upload body ready to be (re)sent on every attempt.

    In-memory content is kept as bytes. A seekable file is streamed and
    rewound to ``start`` before each attempt.
    """

    content: Any
    length: int
    sha1: str
    start: int | None = None

    def body(self) -> RequestBody:
        if self.start is not None:
            self.content.seek(self.start)
            return RawBody(self.content, self.length)
        return BytesBody(self.content)


async def prepare_payload(data: Any, content_sha1: str | None = None) -> UploadPayload:
    """Resolve length and SHA-1 for an upload body.

    One-shot sources (non-seekable files, iterables, async iterables) are
    buffered so they can be hashed and sent again on retry.
    """
    validate_upload_data(data)
    sha1 = validate_sha1(content_sha1) if content_sha1 is not None else None

    if isinstance(data, str):
        data = data.encode("utf-8")
    if isinstance(data, (bytes, bytearray, memoryview)):
        content = bytes(data)
        return UploadPayload(content, len(content), sha1 or sha1_hex(content))

    if is_seekable(data):
        start = data.tell()
        if sha1 is None:
            sha1, length = sha1_of_file(data)
        else:
            length = compute_body_length(data)
        return UploadPayload(data, length, sha1, start)

    if hasattr(data, "read"):
        content = _to_bytes(data.read())
    elif hasattr(data, "__aiter__"):
        content = b"".join([_to_bytes(chunk) async for chunk in data])
    elif hasattr(data, "__iter__"):
        content = b"".join(_to_bytes(chunk) for chunk in data)
    else:
        raise B2ValidationError("data must be bytes, a string, a binary file or an iterable of bytes")
    return UploadPayload(content, len(content), sha1 or sha1_hex(content))


def upload_headers(
    *,
    authorization_token: str,
    content_type: str,
    payload: UploadPayload,
    file_name: str | None = None,
    file_info: Mapping[str, str] | None = None,
) -> dict[str, str]:
    headers = {
        HEADER_AUTHORIZATION: authorization_token,
        HEADER_CONTENT_TYPE: content_type,
        HEADER_CONTENT_LENGTH: str(payload.length),
        HEADER_CONTENT_SHA1: payload.sha1,
    }
    if file_name is not None:
        headers[HEADER_FILE_NAME] = encode_file_name(file_name)
    for key, value in (file_info or {}).items():
        headers[f"{HEADER_INFO_PREFIX}{key}"] = quote(value)
    return headers


def _download_headers(extra: Mapping[str, str] | None, auth: Mapping[str, str]) -> dict[str, str]:
    # the session token always authorizes the download
    headers = {k: v for k, v in (extra or {}).items() if k.lower() != HEADER_AUTHORIZATION.lower()}
    headers.update(auth)
    return headers


class FileOps:
    """Single-request file operations."""

    async def upload_file(
        self,
        upload_url: str | Mapping[str, Any] | None = None,
        authorization_token: str | None = None,
        file_name: str | None = None,
        data: Any = None,
        *,
        content_type: str | None = None,
        content_sha1: str | None = None,
        file_info: Mapping[str, str] | None = None,
        on_upload_progress: ProgressCallback | None = None,
        cancel: CancelToken | None = None,
        retries: int | None = None,
    ) -> B2Response:
        """Upload a whole file to a slot obtained from ``get_upload_url``.

        The SHA-1 is computed locally when ``content_sha1`` is not given.
        ``data`` may be bytes, a string (sent as UTF-8), a binary file or an
        iterable of bytes.
        """
        params = normalize_input(
            upload_url,
            "upload_url",
            upload_url=upload_url,
            authorization_token=authorization_token,
            file_name=file_name,
            data=data,
            content_type=content_type,
            content_sha1=content_sha1,
            file_info=file_info,
            on_upload_progress=on_upload_progress,
            cancel=cancel,
            retries=retries,
        )
        url = params.get("upload_url")
        token = params.get("authorization_token")
        validate_upload_target(url, token)
        name = validate_file_name(params.get("file_name"))
        resolved_type = validate_content_type(params.get("content_type") or CONTENT_TYPE_OCTET_STREAM)
        info = validate_file_info(params.get("file_info"))
        payload = await prepare_payload(params.get("data"), params.get("content_sha1"))
        progress = params.get("on_upload_progress")
        call_cancel = params.get("cancel")
        headers = upload_headers(
            authorization_token=token,
            content_type=resolved_type,
            payload=payload,
            file_name=name,
            file_info=info,
        )

        async def send() -> B2Response:
            return await self._transport.send(  # type: ignore[attr-defined]
                "POST",
                url,
                body=payload.body(),
                headers=headers,
                timeout=self._config.upload_timeout,  # type: ignore[attr-defined]
                on_upload_progress=progress,
                cancel=call_cancel,
            )

        return await self._execute(  # type: ignore[attr-defined]
            "upload_file",
            send,
            cancel=call_cancel,
            retries=params.get("retries"),
            rules=UPLOAD_ERRORS,
            context={"file_name": name},
            session_token=False,
        )

    async def _download(
        self,
        operation: str,
        build_url: Any,
        label: str,
        *,
        response_type: str,
        headers: Mapping[str, str] | None,
        on_download_progress: ProgressCallback | None,
        cancel: CancelToken | None,
        retries: int | None,
    ) -> B2Response:
        async def send() -> B2Response:
            return await self._transport.send(  # type: ignore[attr-defined]
                "GET",
                build_url(self._session.current),  # type: ignore[attr-defined]
                headers=_download_headers(headers, self._session.auth_headers()),  # type: ignore[attr-defined]
                timeout=self._config.effective_download_timeout,  # type: ignore[attr-defined]
                response_type=response_type,
                on_download_progress=on_download_progress,
                cancel=cancel,
            )

        return await self._execute(  # type: ignore[attr-defined]
            operation,
            send,
            cancel=cancel,
            retries=retries,
            rules=DOWNLOAD_ERRORS,
            context={"file": label},
        )

    async def download_file_by_name(
        self,
        bucket_name: str | Mapping[str, Any] | None = None,
        file_name: str | None = None,
        *,
        response_type: str | None = None,
        headers: Mapping[str, str] | None = None,
        on_download_progress: ProgressCallback | None = None,
        cancel: CancelToken | None = None,
        retries: int | None = None,
    ) -> B2Response:
        params = normalize_input(
            bucket_name,
            "bucket_name",
            bucket_name=bucket_name,
            file_name=file_name,
            response_type=response_type,
            headers=headers,
            on_download_progress=on_download_progress,
            cancel=cancel,
            retries=retries,
        )
        bucket = require_string(params.get("bucket_name"), "bucket_name")
        name = validate_file_name(params.get("file_name"))
        shape = validate_response_type(params.get("response_type") or "bytes")
        return await self._download(
            "download_file_by_name",
            lambda session: download_by_name_url(session, bucket, name),
            f"{bucket}/{name}",
            response_type=shape,
            headers=validate_file_info(params.get("headers"), "headers"),
            on_download_progress=params.get("on_download_progress"),
            cancel=params.get("cancel"),
            retries=params.get("retries"),
        )

    async def download_file_by_id(
        self,
        file_id: str | Mapping[str, Any] | None = None,
        *,
        response_type: str | None = None,
        headers: Mapping[str, str] | None = None,
        on_download_progress: ProgressCallback | None = None,
        cancel: CancelToken | None = None,
        retries: int | None = None,
    ) -> B2Response:
        params = normalize_input(
            file_id,
            "file_id",
            file_id=file_id,
            response_type=response_type,
            headers=headers,
            on_download_progress=on_download_progress,
            cancel=cancel,
            retries=retries,
        )
        identifier = validate_file_id(params.get("file_id"))
        shape = validate_response_type(params.get("response_type") or "bytes")
        return await self._download(
            "download_file_by_id",
            lambda session: download_by_id_url(session, identifier),
            identifier,
            response_type=shape,
            headers=validate_file_info(params.get("headers"), "headers"),
            on_download_progress=params.get("on_download_progress"),
            cancel=params.get("cancel"),
            retries=params.get("retries"),
        )

    async def list_file_names(
        self,
        bucket_id: str | Mapping[str, Any] | None = None,
        *,
        start_file_name: str | None = None,
        max_file_count: int | None = None,
        prefix: str | None = None,
        delimiter: str | None = None,
        cancel: CancelToken | None = None,
        retries: int | None = None,
    ) -> B2Response:
        params = normalize_input(
            bucket_id,
            "bucket_id",
            bucket_id=bucket_id,
            start_file_name=start_file_name,
            max_file_count=max_file_count,
            prefix=prefix,
            delimiter=delimiter,
            cancel=cancel,
            retries=retries,
        )
        bucket = validate_bucket_id(params.get("bucket_id"))
        body: dict[str, Any] = {"bucketId": bucket}
        for field, key in (
            ("start_file_name", "startFileName"),
            ("prefix", "prefix"),
            ("delimiter", "delimiter"),
        ):
            value = optional_string(params.get(field), field)
            if value is not None:
                body[key] = value
        count = validate_max_count(params.get("max_file_count"), "max_file_count")
        if count is not None:
            body["maxFileCount"] = count
        return await self._api_post(  # type: ignore[attr-defined]
            "list_file_names",
            body,
            cancel=params.get("cancel"),
            retries=params.get("retries"),
            rules=LIST_FILES_ERRORS,
            context={"bucket_id": bucket},
        )

    async def list_file_versions(
        self,
        bucket_id: str | Mapping[str, Any] | None = None,
        *,
        start_file_name: str | None = None,
        start_file_id: str | None = None,
        max_file_count: int | None = None,
        prefix: str | None = None,
        delimiter: str | None = None,
        cancel: CancelToken | None = None,
        retries: int | None = None,
    ) -> B2Response:
        params = normalize_input(
            bucket_id,
            "bucket_id",
            bucket_id=bucket_id,
            start_file_name=start_file_name,
            start_file_id=start_file_id,
            max_file_count=max_file_count,
            prefix=prefix,
            delimiter=delimiter,
            cancel=cancel,
            retries=retries,
        )
        bucket = validate_bucket_id(params.get("bucket_id"))
        body: dict[str, Any] = {"bucketId": bucket}
        for field, key in (
            ("start_file_name", "startFileName"),
            ("start_file_id", "startFileId"),
            ("prefix", "prefix"),
            ("delimiter", "delimiter"),
        ):
            value = optional_string(params.get(field), field)
            if value is not None:
                body[key] = value
        count = validate_max_count(params.get("max_file_count"), "max_file_count")
        if count is not None:
            body["maxFileCount"] = count
        return await self._api_post(  # type: ignore[attr-defined]
            "list_file_versions",
            body,
            cancel=params.get("cancel"),
            retries=params.get("retries"),
            rules=LIST_FILES_ERRORS,
            context={"bucket_id": bucket},
        )

    async def get_file_info(
        self,
        file_id: str | Mapping[str, Any] | None = None,
        *,
        cancel: CancelToken | None = None,
        retries: int | None = None,
    ) -> B2Response:
        params = normalize_input(file_id, "file_id", file_id=file_id, cancel=cancel, retries=retries)
        identifier = validate_file_id(params.get("file_id"))
        return await self._api_post(  # type: ignore[attr-defined]
            "get_file_info",
            {"fileId": identifier},
            cancel=params.get("cancel"),
            retries=params.get("retries"),
            rules=FILE_NOT_FOUND_ERRORS,
            context={"file_id": identifier},
        )

    async def delete_file_version(
        self,
        file_id: str | Mapping[str, Any] | None = None,
        file_name: str | None = None,
        *,
        cancel: CancelToken | None = None,
        retries: int | None = None,
    ) -> B2Response:
        params = normalize_input(
            file_id,
            "file_id",
            file_id=file_id,
            file_name=file_name,
            cancel=cancel,
            retries=retries,
        )
        identifier = validate_file_id(params.get("file_id"))
        name = validate_file_name(params.get("file_name"))
        return await self._api_post(  # type: ignore[attr-defined]
            "delete_file_version",
            {"fileId": identifier, "fileName": name},
            cancel=params.get("cancel"),
            retries=params.get("retries"),
            rules=FILE_NOT_FOUND_ERRORS,
            context={"file_id": identifier},
        )

    async def hide_file(
        self,
        bucket_id: str | Mapping[str, Any] | None = None,
        file_name: str | None = None,
        *,
        cancel: CancelToken | None = None,
        retries: int | None = None,
    ) -> B2Response:
        params = normalize_input(
            bucket_id,
            "bucket_id",
            bucket_id=bucket_id,
            file_name=file_name,
            cancel=cancel,
            retries=retries,
        )
        bucket = validate_bucket_id(params.get("bucket_id"))
        name = validate_file_name(params.get("file_name"))
        return await self._api_post(  # type: ignore[attr-defined]
            "hide_file",
            {"bucketId": bucket, "fileName": name},
            cancel=params.get("cancel"),
            retries=params.get("retries"),
            rules=HIDE_FILE_ERRORS,
            context={"bucket_id": bucket, "file_name": name},
        )

    async def get_download_authorization(
        self,
        bucket_id: str | Mapping[str, Any] | None = None,
        file_name_prefix: str | None = None,
        valid_duration_in_seconds: int | None = None,
        *,
        b2_content_disposition: str | None = None,
        cancel: CancelToken | None = None,
        retries: int | None = None,
    ) -> B2Response:
        """Issue a token for downloading files under ``file_name_prefix``.

        The duration defaults to the maximum of seven days.
        """
        params = normalize_input(
            bucket_id,
            "bucket_id",
            bucket_id=bucket_id,
            file_name_prefix=file_name_prefix,
            valid_duration_in_seconds=valid_duration_in_seconds,
            b2_content_disposition=b2_content_disposition,
            cancel=cancel,
            retries=retries,
        )
        bucket = validate_bucket_id(params.get("bucket_id"))
        prefix = require_string(params.get("file_name_prefix"), "file_name_prefix", allow_empty=True)
        duration = params.get("valid_duration_in_seconds")
        body: dict[str, Any] = {
            "bucketId": bucket,
            "fileNamePrefix": prefix,
            "validDurationInSeconds": validate_download_duration(
                MAX_DOWNLOAD_AUTH_DURATION if duration is None else duration
            ),
        }
        disposition = optional_string(params.get("b2_content_disposition"), "b2_content_disposition")
        if disposition is not None:
            body["b2ContentDisposition"] = disposition
        return await self._api_post(  # type: ignore[attr-defined]
            "get_download_authorization",
            body,
            cancel=params.get("cancel"),
            retries=params.get("retries"),
            rules=DOWNLOAD_AUTHORIZATION_ERRORS,
            context={"bucket_id": bucket},
        )


__all__ = ["FileOps", "UploadPayload", "prepare_payload", "upload_headers"]
