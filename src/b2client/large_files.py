"""Large-file protocol: start, upload parts, finish or cancel.

``upload_large_file`` orchestrates the whole protocol over the pipeline
runtime the client was built with.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Mapping
from typing import Any, TypeVar

from ._inputs import normalize_input
from ._pipeline import PartUploadJob
from .cancellation import CancelToken, raise_if_cancelled
from .constants import (
    CONTENT_TYPE_OCTET_STREAM,
    DEFAULT_RECOMMENDED_PART_SIZE,
    FILE_NOT_PRESENT,
    HEADER_PART_NUMBER,
    INVALID_BUCKET_ID,
    MAX_LIST_COUNT,
    MAX_PART_NUMBER,
    MAX_PART_SIZE,
    MIN_PART_SIZE,
    NOT_ALLOWED,
)
from .errors import (
    B2Error,
    B2InvalidBucketIdError,
    B2NotAllowedError,
    B2NotFoundError,
    B2ValidationError,
    ErrorRule,
)
from .files import UploadPayload, prepare_payload, upload_headers
from .retry import execute_with_retry, is_retryable_error
from .session import SessionController
from .types import B2Response, LargeFileHandle, ProgressCallback, UploadSlot
from .utils import await_if_necessary, compute_body_length, debug
from .validation import (
    optional_string,
    validate_bucket_id,
    validate_content_type,
    validate_file_id,
    validate_file_info,
    validate_file_name,
    validate_int_range,
    validate_max_count,
    validate_part_number,
    validate_part_size,
    validate_sha1_array,
    validate_upload_data,
    validate_upload_target,
)

_T = TypeVar("_T")

START_LARGE_FILE_ERRORS = (
    ErrorRule(B2InvalidBucketIdError, "Invalid bucket ID: {bucket_id}", 400, INVALID_BUCKET_ID),
    ErrorRule(B2NotAllowedError, "Large file upload not allowed: {message}", 400, NOT_ALLOWED),
)
LARGE_FILE_ERRORS = (
    ErrorRule(B2NotFoundError, "Large file not found: {file_id}", 400, FILE_NOT_PRESENT),
)
UPLOAD_PART_ERRORS = (
    ErrorRule(B2NotFoundError, "Large file upload failed: {message}", 400, FILE_NOT_PRESENT),
    ErrorRule(B2NotAllowedError, "Upload not allowed: {message}", None, NOT_ALLOWED),
)
LIST_UNFINISHED_ERRORS = (
    ErrorRule(B2InvalidBucketIdError, "Invalid bucket ID: {bucket_id}", 400, INVALID_BUCKET_ID),
)


def ordered_part_sha1s(handle: LargeFileHandle) -> list[str]:
    """Hashes ordered by part number; parts must run 1..N with no gaps."""
    numbers = sorted(handle.part_sha1s)
    if not numbers:
        raise B2ValidationError("A large file needs at least one part")
    if numbers != list(range(1, len(numbers) + 1)):
        raise B2Error(f"Large file {handle.file_id} has missing parts: got {numbers}")
    return handle.ordered_sha1s()


class LargeFileOps:
    async def start_large_file(
        self,
        bucket_id: str | Mapping[str, Any] | None = None,
        file_name: str | None = None,
        content_type: str | None = None,
        *,
        file_info: Mapping[str, str] | None = None,
        cancel: CancelToken | None = None,
        retries: int | None = None,
    ) -> B2Response:
        params = normalize_input(
            bucket_id,
            "bucket_id",
            bucket_id=bucket_id,
            file_name=file_name,
            content_type=content_type,
            file_info=file_info,
            cancel=cancel,
            retries=retries,
        )
        bucket = validate_bucket_id(params.get("bucket_id"))
        body: dict[str, Any] = {
            "bucketId": bucket,
            "fileName": validate_file_name(params.get("file_name")),
            "contentType": validate_content_type(
                params.get("content_type") or CONTENT_TYPE_OCTET_STREAM
            ),
        }
        info = validate_file_info(params.get("file_info"))
        if info is not None:
            body["fileInfo"] = info
        return await self._api_post(  # type: ignore[attr-defined]
            "start_large_file",
            body,
            cancel=params.get("cancel"),
            retries=params.get("retries"),
            rules=START_LARGE_FILE_ERRORS,
            context={"bucket_id": bucket},
        )

    async def _file_id_call(
        self,
        operation: str,
        file_id: Any,
        *,
        cancel: CancelToken | None,
        retries: int | None,
        extra: Mapping[str, Any] | None = None,
    ) -> B2Response:
        identifier = validate_file_id(file_id)
        return await self._api_post(  # type: ignore[attr-defined]
            operation,
            {"fileId": identifier, **(extra or {})},
            cancel=cancel,
            retries=retries,
            rules=LARGE_FILE_ERRORS,
            context={"file_id": identifier},
        )

    async def get_upload_part_url(
        self,
        file_id: str | Mapping[str, Any] | None = None,
        *,
        cancel: CancelToken | None = None,
        retries: int | None = None,
    ) -> B2Response:
        params = normalize_input(file_id, "file_id", file_id=file_id, cancel=cancel, retries=retries)
        return await self._file_id_call(
            "get_upload_part_url",
            params.get("file_id"),
            cancel=params.get("cancel"),
            retries=params.get("retries"),
        )

    async def _send_part(
        self,
        slot: UploadSlot,
        part_number: int,
        payload: UploadPayload,
        *,
        on_upload_progress: ProgressCallback | None,
        cancel: CancelToken | None,
    ) -> B2Response:
        headers = upload_headers(
            authorization_token=slot.authorization_token,
            content_type=CONTENT_TYPE_OCTET_STREAM,
            payload=payload,
        )
        headers[HEADER_PART_NUMBER] = str(part_number)
        return await self._transport.send(  # type: ignore[attr-defined]
            "POST",
            slot.upload_url,
            body=payload.body(),
            headers=headers,
            timeout=self._config.upload_timeout,  # type: ignore[attr-defined]
            on_upload_progress=on_upload_progress,
            cancel=cancel,
        )

    async def upload_part(
        self,
        upload_url: str | Mapping[str, Any] | None = None,
        authorization_token: str | None = None,
        part_number: int | None = None,
        data: Any = None,
        *,
        content_sha1: str | None = None,
        on_upload_progress: ProgressCallback | None = None,
        cancel: CancelToken | None = None,
        retries: int | None = None,
    ) -> B2Response:
        """Upload one part to a slot from ``get_upload_part_url``."""
        params = normalize_input(
            upload_url,
            "upload_url",
            upload_url=upload_url,
            authorization_token=authorization_token,
            part_number=part_number,
            data=data,
            content_sha1=content_sha1,
            on_upload_progress=on_upload_progress,
            cancel=cancel,
            retries=retries,
        )
        url = params.get("upload_url")
        token = params.get("authorization_token")
        validate_upload_target(url, token)
        number = validate_part_number(params.get("part_number"))
        payload = await prepare_payload(params.get("data"), params.get("content_sha1"))
        validate_part_size(payload.length)
        slot = UploadSlot(target_id=params.get("file_id") or "", upload_url=url, authorization_token=token)
        call_cancel = params.get("cancel")
        progress = params.get("on_upload_progress")

        async def send() -> B2Response:
            return await self._send_part(
                slot, number, payload, on_upload_progress=progress, cancel=call_cancel
            )

        return await self._execute(  # type: ignore[attr-defined]
            "upload_part",
            send,
            cancel=call_cancel,
            retries=params.get("retries"),
            rules=UPLOAD_PART_ERRORS,
            session_token=False,
        )

    async def finish_large_file(
        self,
        file_id: str | Mapping[str, Any] | None = None,
        part_sha1_array: list[str] | None = None,
        *,
        cancel: CancelToken | None = None,
        retries: int | None = None,
    ) -> B2Response:
        params = normalize_input(
            file_id,
            "file_id",
            file_id=file_id,
            part_sha1_array=part_sha1_array,
            cancel=cancel,
            retries=retries,
        )
        return await self._file_id_call(
            "finish_large_file",
            params.get("file_id"),
            cancel=params.get("cancel"),
            retries=params.get("retries"),
            extra={"partSha1Array": validate_sha1_array(params.get("part_sha1_array"))},
        )

    async def cancel_large_file(
        self,
        file_id: str | Mapping[str, Any] | None = None,
        *,
        cancel: CancelToken | None = None,
        retries: int | None = None,
    ) -> B2Response:
        params = normalize_input(file_id, "file_id", file_id=file_id, cancel=cancel, retries=retries)
        return await self._file_id_call(
            "cancel_large_file",
            params.get("file_id"),
            cancel=params.get("cancel"),
            retries=params.get("retries"),
        )

    async def list_parts(
        self,
        file_id: str | Mapping[str, Any] | None = None,
        *,
        start_part_number: int | None = None,
        max_part_count: int | None = None,
        cancel: CancelToken | None = None,
        retries: int | None = None,
    ) -> B2Response:
        params = normalize_input(
            file_id,
            "file_id",
            file_id=file_id,
            start_part_number=start_part_number,
            max_part_count=max_part_count,
            cancel=cancel,
            retries=retries,
        )
        extra: dict[str, Any] = {}
        if params.get("start_part_number") is not None:
            extra["startPartNumber"] = validate_part_number(
                params["start_part_number"], "start_part_number"
            )
        count = validate_max_count(params.get("max_part_count"), "max_part_count")
        if count is not None:
            extra["maxPartCount"] = count
        return await self._file_id_call(
            "list_parts",
            params.get("file_id"),
            cancel=params.get("cancel"),
            retries=params.get("retries"),
            extra=extra,
        )

    async def list_unfinished_large_files(
        self,
        bucket_id: str | Mapping[str, Any] | None = None,
        *,
        start_file_id: str | None = None,
        max_file_count: int | None = None,
        cancel: CancelToken | None = None,
        retries: int | None = None,
    ) -> B2Response:
        params = normalize_input(
            bucket_id,
            "bucket_id",
            bucket_id=bucket_id,
            start_file_id=start_file_id,
            max_file_count=max_file_count,
            cancel=cancel,
            retries=retries,
        )
        bucket = validate_bucket_id(params.get("bucket_id"))
        body: dict[str, Any] = {"bucketId": bucket}
        start = optional_string(params.get("start_file_id"), "start_file_id")
        if start is not None:
            body["startFileId"] = start
        count = validate_max_count(params.get("max_file_count"), "max_file_count")
        if count is not None:
            body["maxFileCount"] = count
        return await self._api_post(  # type: ignore[attr-defined]
            "list_unfinished_large_files",
            body,
            cancel=params.get("cancel"),
            retries=params.get("retries"),
            rules=LIST_UNFINISHED_ERRORS,
            context={"bucket_id": bucket},
        )

    # Pipeline support

    async def _acquire_part_slot(
        self,
        file_id: str,
        *,
        cancel: CancelToken | None,
        retries: int | None,
    ) -> UploadSlot:
        response = await self.get_upload_part_url(file_id, cancel=cancel, retries=retries)
        data = response.data or {}
        return UploadSlot(
            target_id=data.get("fileId") or file_id,
            upload_url=data["uploadUrl"],
            authorization_token=data["authorizationToken"],
        )

    async def _retry_part(
        self,
        fn: Callable[[], Awaitable[_T]],
        *,
        cancel: CancelToken | None,
        retries: int | None,
    ) -> _T:
        """Retry a part upload; an expired upload token is retried with a new slot."""
        policy = self._policy_for(retries)  # type: ignore[attr-defined]
        if policy.should_retry is None:
            policy = policy.with_overrides(
                should_retry=lambda err, attempt: (
                    is_retryable_error(err) or SessionController.is_auth_expired(err)
                )
            )
        return await execute_with_retry(
            fn,
            policy,
            cancel=cancel,
            sleep_fn=self._sleep_fn,  # type: ignore[attr-defined]
            debug_enabled=self._debug,  # type: ignore[attr-defined]
        )

    def _resolve_part_size(self, requested: Any) -> int:
        session = self._session.current  # type: ignore[attr-defined]
        minimum = session.absolute_minimum_part_size or MIN_PART_SIZE
        if requested is None:
            recommended = session.recommended_part_size or DEFAULT_RECOMMENDED_PART_SIZE
            return validate_part_size(max(minimum, recommended))
        return validate_int_range(requested, "part_size", minimum, MAX_PART_SIZE)

    async def _collect_parts(
        self,
        file_id: str,
        *,
        cancel: CancelToken | None,
        retries: int | None,
    ) -> dict[int, str]:
        seed: dict[int, str] = {}
        start: int | None = None
        while True:
            page = await self.list_parts(
                file_id,
                start_part_number=start,
                max_part_count=MAX_LIST_COUNT,
                cancel=cancel,
                retries=retries,
            )
            data = page.data or {}
            for part in data.get("parts") or []:
                seed[int(part["partNumber"])] = str(part["contentSha1"]).lower()
            start = data.get("nextPartNumber")
            if start is None:
                return seed

    async def _abandon_large_file(self, file_id: str, cause: BaseException) -> None:
        debug(
            f"abandoning large file {file_id} after {getattr(cause, 'kind', type(cause).__name__)}",
            enabled=self._debug,  # type: ignore[attr-defined]
        )
        with self._pipeline_runtime.shield():  # type: ignore[attr-defined]
            try:
                await self.cancel_large_file(file_id)
            except B2Error as exc:
                debug(f"cancel_large_file {file_id} failed", repr(exc), enabled=self._debug)  # type: ignore[attr-defined]

    async def upload_large_file(
        self,
        bucket_id: str | Mapping[str, Any] | None = None,
        file_name: str | None = None,
        data: Any = None,
        *,
        content_type: str | None = None,
        file_info: Mapping[str, str] | None = None,
        part_size: int | None = None,
        max_concurrency: int | None = None,
        large_file_id: str | None = None,
        on_upload_progress: ProgressCallback | None = None,
        cancel: CancelToken | None = None,
        retries: int | None = None,
    ) -> B2Response:
        """Upload ``data`` as a large file and return the finished file record.

        Parts of ``part_size`` bytes (default: the account's recommended
        size) are uploaded by up to ``max_concurrency`` workers. Passing
        ``large_file_id`` resumes an unfinished upload, skipping parts the
        service already holds with a matching SHA-1. On failure or
        cancellation the large file is cancelled and the cause is raised.
        """
        params = normalize_input(
            bucket_id,
            "bucket_id",
            bucket_id=bucket_id,
            file_name=file_name,
            data=data,
            content_type=content_type,
            file_info=file_info,
            part_size=part_size,
            max_concurrency=max_concurrency,
            large_file_id=large_file_id,
            on_upload_progress=on_upload_progress,
            cancel=cancel,
            retries=retries,
        )
        bucket = validate_bucket_id(params.get("bucket_id"))
        name = validate_file_name(params.get("file_name"))
        resolved_type = validate_content_type(params.get("content_type") or CONTENT_TYPE_OCTET_STREAM)
        info = validate_file_info(params.get("file_info"))
        body = params.get("data")
        validate_upload_data(body)
        if isinstance(body, (bytes, bytearray, memoryview, str)) and not body:
            raise B2ValidationError("data cannot be empty")
        concurrency = validate_int_range(
            params.get("max_concurrency") or self._config.max_concurrency,  # type: ignore[attr-defined]
            "max_concurrency",
            1,
            MAX_PART_NUMBER,
        )
        resume_id = optional_string(params.get("large_file_id"), "large_file_id")
        requested_size = params.get("part_size")
        if requested_size is not None:
            validate_int_range(requested_size, "part_size", 1, MAX_PART_SIZE)
        call_cancel: CancelToken | None = params.get("cancel")
        call_retries: int | None = params.get("retries")

        raise_if_cancelled(call_cancel)
        await self._ensure_session(cancel=call_cancel, retries=call_retries)  # type: ignore[attr-defined]
        # the lower bound depends on the session
        size = self._resolve_part_size(requested_size)

        seed: dict[int, str] = {}
        if resume_id is not None:
            file_id = validate_file_id(resume_id)
            seed = await self._collect_parts(file_id, cancel=call_cancel, retries=call_retries)
        else:
            started = await self.start_large_file(
                bucket,
                name,
                resolved_type,
                file_info=info,
                cancel=call_cancel,
                retries=call_retries,
            )
            file_id = started.data["fileId"]

        job = PartUploadJob(
            handle=LargeFileHandle(file_id, name),
            body=body,
            part_size=size,
            total=compute_body_length(body),
            concurrency=concurrency,
            seed=seed,
            on_upload_progress=params.get("on_upload_progress"),
            cancel=call_cancel,
            retries=call_retries,
            debug_enabled=self._debug,  # type: ignore[attr-defined]
        )
        try:
            await await_if_necessary(self._pipeline_runtime.upload(ops=self, job=job))  # type: ignore[attr-defined]
            part_sha1s = ordered_part_sha1s(job.handle)
        except BaseException as exc:
            await self._abandon_large_file(file_id, exc)
            raise

        return await self.finish_large_file(
            file_id, part_sha1s, cancel=call_cancel, retries=call_retries
        )


__all__ = ["LargeFileOps", "ordered_part_sha1s"]
