"""Application key operations."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from ._inputs import normalize_input
from .cancellation import CancelToken
from .constants import INVALID_BUCKET_ID, NOT_ALLOWED
from .errors import B2InvalidBucketIdError, B2NotAllowedError, ErrorRule
from .types import B2Response
from .validation import (
    optional_string,
    require_string,
    validate_bucket_id,
    validate_capabilities,
    validate_key_duration,
    validate_key_name,
    validate_max_count,
)

CREATE_KEY_ERRORS = (
    ErrorRule(B2InvalidBucketIdError, "Invalid bucket ID: {bucket_id}", 400, INVALID_BUCKET_ID),
    ErrorRule(B2NotAllowedError, "Key creation not allowed: {message}", 400, NOT_ALLOWED),
)
# Any rejection of a delete means the key id is unusable.
DELETE_KEY_ERRORS = (
    ErrorRule(B2NotAllowedError, "Invalid application key ID", 400, None, as_code=NOT_ALLOWED),
)


class KeyOps:
    async def create_key(
        self,
        key_name: str | Mapping[str, Any] | None = None,
        capabilities: list[str] | None = None,
        *,
        bucket_id: str | None = None,
        name_prefix: str | None = None,
        valid_duration_in_seconds: int | None = None,
        cancel: CancelToken | None = None,
        retries: int | None = None,
    ) -> B2Response:
        """Create an application key.

        The secret (``applicationKey``) is only ever returned by this call.
        """
        params = normalize_input(
            key_name,
            "key_name",
            key_name=key_name,
            capabilities=capabilities,
            bucket_id=bucket_id,
            name_prefix=name_prefix,
            valid_duration_in_seconds=valid_duration_in_seconds,
            cancel=cancel,
            retries=retries,
        )
        body: dict[str, Any] = {
            "keyName": validate_key_name(params.get("key_name")),
            "capabilities": validate_capabilities(params.get("capabilities")),
        }
        bucket = params.get("bucket_id")
        if bucket is not None:
            body["bucketId"] = validate_bucket_id(bucket)
        prefix = optional_string(params.get("name_prefix"), "name_prefix")
        if prefix is not None:
            body["namePrefix"] = prefix
        duration = validate_key_duration(params.get("valid_duration_in_seconds"))
        if duration is not None:
            body["validDurationInSeconds"] = duration
        return await self._api_post(  # type: ignore[attr-defined]
            "create_key",
            body,
            cancel=params.get("cancel"),
            retries=params.get("retries"),
            rules=CREATE_KEY_ERRORS,
            context={"bucket_id": bucket},
            with_account=True,
        )

    async def delete_key(
        self,
        application_key_id: str | Mapping[str, Any] | None = None,
        *,
        cancel: CancelToken | None = None,
        retries: int | None = None,
    ) -> B2Response:
        params = normalize_input(
            application_key_id,
            "application_key_id",
            application_key_id=application_key_id,
            cancel=cancel,
            retries=retries,
        )
        key_id = require_string(params.get("application_key_id"), "application_key_id")
        return await self._api_post(  # type: ignore[attr-defined]
            "delete_key",
            {"applicationKeyId": key_id},
            cancel=params.get("cancel"),
            retries=params.get("retries"),
            rules=DELETE_KEY_ERRORS,
        )

    async def list_keys(
        self,
        params: Mapping[str, Any] | None = None,
        *,
        max_key_count: int | None = None,
        start_application_key_id: str | None = None,
        cancel: CancelToken | None = None,
        retries: int | None = None,
    ) -> B2Response:
        values = normalize_input(
            params,
            "params",
            max_key_count=max_key_count,
            start_application_key_id=start_application_key_id,
            cancel=cancel,
            retries=retries,
        )
        body: dict[str, Any] = {}
        count = validate_max_count(values.get("max_key_count"), "max_key_count")
        if count is not None:
            body["maxKeyCount"] = count
        start = optional_string(values.get("start_application_key_id"), "start_application_key_id")
        if start is not None:
            body["startApplicationKeyId"] = start
        return await self._api_post(  # type: ignore[attr-defined]
            "list_keys",
            body,
            cancel=values.get("cancel"),
            retries=values.get("retries"),
            with_account=True,
        )


__all__ = ["KeyOps", "CREATE_KEY_ERRORS", "DELETE_KEY_ERRORS"]
