"""Bucket operations."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from ._inputs import normalize_input
from .cancellation import CancelToken
from .constants import BUCKET_NOT_EMPTY, DUPLICATE_BUCKET_NAME, INVALID_BUCKET_ID, INVALID_BUCKET_NAME
from .errors import B2HTTPError, B2InvalidBucketIdError, B2NotFoundError, B2ValidationError, ErrorRule
from .types import B2Response, BucketType
from .utils import drop_none
from .validation import (
    validate_bucket_id,
    validate_bucket_name,
    validate_bucket_type,
    validate_bucket_types,
    validate_optional_list,
    validate_optional_mapping,
)

CREATE_BUCKET_ERRORS = (
    ErrorRule(B2HTTPError, "Bucket name already exists: {bucket_name}", 400, DUPLICATE_BUCKET_NAME),
    ErrorRule(B2HTTPError, "Invalid bucket name: {bucket_name}", 400, INVALID_BUCKET_NAME),
)
BUCKET_ID_ERRORS = (
    ErrorRule(B2InvalidBucketIdError, "Invalid bucket ID: {bucket_id}", 400, INVALID_BUCKET_ID),
)
DELETE_BUCKET_ERRORS = BUCKET_ID_ERRORS + (
    ErrorRule(B2HTTPError, "Bucket is not empty: {bucket_id}", 400, BUCKET_NOT_EMPTY),
)


class BucketOps:
    """Create, list, update and delete buckets; hand out upload slots."""

    async def create_bucket(
        self,
        bucket_name: str | Mapping[str, Any] | None = None,
        bucket_type: BucketType | None = None,
        *,
        bucket_info: Mapping[str, Any] | None = None,
        cors_rules: list[Any] | None = None,
        lifecycle_rules: list[Any] | None = None,
        cancel: CancelToken | None = None,
        retries: int | None = None,
    ) -> B2Response:
        params = normalize_input(
            bucket_name,
            "bucket_name",
            bucket_name=bucket_name,
            bucket_type=bucket_type,
            bucket_info=bucket_info,
            cors_rules=cors_rules,
            lifecycle_rules=lifecycle_rules,
            cancel=cancel,
            retries=retries,
        )
        name = validate_bucket_name(params.get("bucket_name"))
        body = {
            "bucketName": name,
            "bucketType": validate_bucket_type(params.get("bucket_type")),
            "bucketInfo": validate_optional_mapping(params.get("bucket_info"), "bucket_info"),
            "corsRules": validate_optional_list(params.get("cors_rules"), "cors_rules"),
            "lifecycleRules": validate_optional_list(params.get("lifecycle_rules"), "lifecycle_rules"),
        }
        return await self._api_post(  # type: ignore[attr-defined]
            "create_bucket",
            drop_none(body),
            cancel=params.get("cancel"),
            retries=params.get("retries"),
            rules=CREATE_BUCKET_ERRORS,
            context={"bucket_name": name},
            with_account=True,
        )

    async def delete_bucket(
        self,
        bucket_id: str | Mapping[str, Any] | None = None,
        *,
        cancel: CancelToken | None = None,
        retries: int | None = None,
    ) -> B2Response:
        params = normalize_input(
            bucket_id, "bucket_id", bucket_id=bucket_id, cancel=cancel, retries=retries
        )
        bucket = validate_bucket_id(params.get("bucket_id"))
        return await self._api_post(  # type: ignore[attr-defined]
            "delete_bucket",
            {"bucketId": bucket},
            cancel=params.get("cancel"),
            retries=params.get("retries"),
            rules=DELETE_BUCKET_ERRORS,
            context={"bucket_id": bucket},
            with_account=True,
        )

    async def list_buckets(
        self,
        params: Mapping[str, Any] | None = None,
        *,
        bucket_name: str | None = None,
        bucket_id: str | None = None,
        bucket_types: list[str] | None = None,
        cancel: CancelToken | None = None,
        retries: int | None = None,
    ) -> B2Response:
        """List the account's buckets, optionally filtered by name, id or type."""
        values = normalize_input(
            params,
            "params",
            bucket_name=bucket_name,
            bucket_id=bucket_id,
            bucket_types=bucket_types,
            cancel=cancel,
            retries=retries,
        )
        body: dict[str, Any] = {}
        if values.get("bucket_name") is not None:
            body["bucketName"] = validate_bucket_name(values["bucket_name"])
        if values.get("bucket_id") is not None:
            body["bucketId"] = validate_bucket_id(values["bucket_id"])
        if values.get("bucket_types") is not None:
            body["bucketTypes"] = validate_bucket_types(values["bucket_types"])
        return await self._api_post(  # type: ignore[attr-defined]
            "list_buckets",
            body,
            cancel=values.get("cancel"),
            retries=values.get("retries"),
            with_account=True,
        )

    async def get_bucket(
        self,
        params: Mapping[str, Any] | None = None,
        *,
        bucket_name: str | None = None,
        bucket_id: str | None = None,
        cancel: CancelToken | None = None,
        retries: int | None = None,
    ) -> B2Response:
        """Look up a single bucket by name or id.

        The response ``data`` is the bucket record itself. Raises
        ``B2NotFoundError`` when no bucket matches.
        """
        values = normalize_input(
            params,
            "params",
            bucket_name=bucket_name,
            bucket_id=bucket_id,
            cancel=cancel,
            retries=retries,
        )
        name = values.get("bucket_name")
        identifier = values.get("bucket_id")
        if (name is None) == (identifier is None):
            raise B2ValidationError("Exactly one of bucket_name or bucket_id is required")

        response = await self.list_buckets(
            bucket_name=name,
            bucket_id=identifier,
            cancel=values.get("cancel"),
            retries=values.get("retries"),
        )
        buckets = (response.data or {}).get("buckets") or []
        for bucket in buckets:
            if (name is not None and bucket.get("bucketName") == name) or (
                identifier is not None and bucket.get("bucketId") == identifier
            ):
                response.data = bucket
                return response
        label = f"name {name}" if name is not None else f"ID {identifier}"
        raise B2NotFoundError(f"Bucket not found with {label}", status=404, response=response)

    async def update_bucket(
        self,
        bucket_id: str | Mapping[str, Any] | None = None,
        bucket_type: BucketType | None = None,
        *,
        bucket_info: Mapping[str, Any] | None = None,
        cors_rules: list[Any] | None = None,
        lifecycle_rules: list[Any] | None = None,
        if_revision_is: int | None = None,
        cancel: CancelToken | None = None,
        retries: int | None = None,
    ) -> B2Response:
        params = normalize_input(
            bucket_id,
            "bucket_id",
            bucket_id=bucket_id,
            bucket_type=bucket_type,
            bucket_info=bucket_info,
            cors_rules=cors_rules,
            lifecycle_rules=lifecycle_rules,
            if_revision_is=if_revision_is,
            cancel=cancel,
            retries=retries,
        )
        bucket = validate_bucket_id(params.get("bucket_id"))
        body: dict[str, Any] = {"bucketId": bucket}
        if params.get("bucket_type") is not None:
            body["bucketType"] = validate_bucket_type(params["bucket_type"])
        body.update(
            drop_none(
                {
                    "bucketInfo": validate_optional_mapping(params.get("bucket_info"), "bucket_info"),
                    "corsRules": validate_optional_list(params.get("cors_rules"), "cors_rules"),
                    "lifecycleRules": validate_optional_list(
                        params.get("lifecycle_rules"), "lifecycle_rules"
                    ),
                    "ifRevisionIs": params.get("if_revision_is"),
                }
            )
        )
        return await self._api_post(  # type: ignore[attr-defined]
            "update_bucket",
            body,
            cancel=params.get("cancel"),
            retries=params.get("retries"),
            rules=BUCKET_ID_ERRORS,
            context={"bucket_id": bucket},
            with_account=True,
        )

    async def get_upload_url(
        self,
        bucket_id: str | Mapping[str, Any] | None = None,
        *,
        cancel: CancelToken | None = None,
        retries: int | None = None,
    ) -> B2Response:
        """Obtain an upload slot (``uploadUrl`` and ``authorizationToken``)."""
        params = normalize_input(
            bucket_id, "bucket_id", bucket_id=bucket_id, cancel=cancel, retries=retries
        )
        bucket = validate_bucket_id(params.get("bucket_id"))
        return await self._api_post(  # type: ignore[attr-defined]
            "get_upload_url",
            {"bucketId": bucket},
            cancel=params.get("cancel"),
            retries=params.get("retries"),
            rules=BUCKET_ID_ERRORS,
            context={"bucket_id": bucket},
        )


__all__ = ["BucketOps", "CREATE_BUCKET_ERRORS", "BUCKET_ID_ERRORS", "DELETE_BUCKET_ERRORS"]
