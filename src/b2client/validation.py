"""Input checks shared by every operation.

Each validator raises ``B2ValidationError`` and never touches the network,
so operations call them before building a request.
"""

from __future__ import annotations

import re
from collections.abc import Mapping, Sequence
from typing import Any, NoReturn

from .constants import (
    BUCKET_TYPES,
    KEY_CAPABILITIES,
    MAX_DOWNLOAD_AUTH_DURATION,
    MAX_FILE_NAME_BYTES,
    MAX_KEY_DURATION,
    MAX_LIST_COUNT,
    MAX_PART_NUMBER,
    MAX_PART_SIZE,
    MIN_PART_NUMBER,
)
from .errors import B2ValidationError

RESPONSE_TYPES = frozenset({"json", "text", "bytes", "blob", "stream"})

_BUCKET_NAME = re.compile(r"^[A-Za-z0-9-]{6,50}$")
_CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f]")
_SHA1 = re.compile(r"^[A-Fa-f0-9]{40}$")
_CONTENT_TYPE = re.compile(
    r"^[a-zA-Z0-9][a-zA-Z0-9!#$&\-^_]*/[a-zA-Z0-9][a-zA-Z0-9!#$&\-^_.+]*(\s*;.*)?$"
)
_KEY_NAME = re.compile(r"^[A-Za-z0-9._-]{1,100}$")


def _fail(message: str) -> NoReturn:
    raise B2ValidationError(message)


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def require_string(value: Any, name: str, *, allow_empty: bool = False) -> str:
    if not isinstance(value, str):
        _fail(f"{name} is required and must be a string")
    if not allow_empty and not value.strip():
        _fail(f"{name} cannot be empty")
    return value


def optional_string(value: Any, name: str) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        _fail(f"{name} must be a string")
    return value


def validate_int_range(value: Any, name: str, minimum: int, maximum: int) -> int:
    if not _is_int(value):
        _fail(f"{name} must be an integer")
    if value < minimum or value > maximum:
        _fail(f"{name} must be between {minimum} and {maximum}")
    return value


def validate_credentials(application_key_id: Any, application_key: Any) -> None:
    # The secret itself never appears in a message.
    if not isinstance(application_key_id, str) or not application_key_id:
        _fail("application_key_id is required and must be a non-empty string")
    if not isinstance(application_key, str) or not application_key:
        _fail("application_key is required and must be a non-empty string")


def validate_bucket_name(bucket_name: Any) -> str:
    require_string(bucket_name, "bucket_name")
    if not _BUCKET_NAME.match(bucket_name):
        _fail(
            "bucket_name must be 6-50 characters of letters, digits and hyphens"
        )
    if bucket_name.startswith("-") or bucket_name.endswith("-"):
        _fail("bucket_name cannot start or end with a hyphen")
    if "--" in bucket_name:
        _fail("bucket_name cannot contain consecutive hyphens")
    return bucket_name


def validate_bucket_type(bucket_type: Any) -> str:
    if bucket_type not in BUCKET_TYPES:
        _fail(f"bucket_type must be one of: {', '.join(sorted(BUCKET_TYPES))}")
    return bucket_type


def validate_bucket_types(bucket_types: Any) -> list[str]:
    if isinstance(bucket_types, str) or not isinstance(bucket_types, Sequence):
        _fail("bucket_types must be a list of strings")
    for bucket_type in bucket_types:
        if not isinstance(bucket_type, str) or not bucket_type:
            _fail("bucket_types must be a list of strings")
    return list(bucket_types)


def validate_bucket_id(bucket_id: Any) -> str:
    return require_string(bucket_id, "bucket_id")


def validate_file_id(file_id: Any) -> str:
    return require_string(file_id, "file_id")


def validate_file_name(file_name: Any, name: str = "file_name") -> str:
    if not isinstance(file_name, str):
        _fail(f"{name} is required and must be a string")
    size = len(file_name.encode("utf-8"))
    if size < 1 or size > MAX_FILE_NAME_BYTES:
        _fail(f"{name} must be between 1 and {MAX_FILE_NAME_BYTES} bytes")
    if _CONTROL_CHARS.search(file_name):
        _fail(f"{name} contains invalid control characters")
    if file_name.startswith("/"):
        _fail(f"{name} cannot start with a forward slash")
    return file_name


def validate_sha1(value: Any, name: str = "content_sha1") -> str:
    if not isinstance(value, str) or not _SHA1.match(value):
        _fail(f"{name} must be a 40-character hexadecimal SHA-1")
    return value.lower()


def validate_content_type(content_type: Any) -> str:
    require_string(content_type, "content_type")
    if len(content_type) > 1024 or not _CONTENT_TYPE.match(content_type):
        _fail("content_type format is invalid")
    return content_type


def validate_file_info(file_info: Any, name: str = "file_info") -> dict[str, str] | None:
    if file_info is None:
        return None
    if not isinstance(file_info, Mapping):
        _fail(f"{name} must be a mapping of strings")
    for key, value in file_info.items():
        if not isinstance(key, str) or not key:
            _fail(f"{name} keys must be non-empty strings")
        if not isinstance(value, str):
            _fail(f"{name} values must be strings")
    return dict(file_info)


def validate_optional_mapping(value: Any, name: str) -> dict[str, Any] | None:
    if value is None:
        return None
    if not isinstance(value, Mapping):
        _fail(f"{name} must be a mapping")
    return dict(value)


def validate_optional_list(value: Any, name: str) -> list[Any] | None:
    if value is None:
        return None
    if isinstance(value, (str, bytes)) or not isinstance(value, Sequence):
        _fail(f"{name} must be a list")
    return list(value)


def validate_max_count(value: Any, name: str) -> int | None:
    if value is None:
        return None
    return validate_int_range(value, name, 1, MAX_LIST_COUNT)


def validate_part_number(part_number: Any, name: str = "part_number") -> int:
    return validate_int_range(part_number, name, MIN_PART_NUMBER, MAX_PART_NUMBER)


def validate_part_size(size: int) -> int:
    if size > MAX_PART_SIZE:
        _fail(f"Part size cannot exceed {MAX_PART_SIZE} bytes (5 GiB)")
    return size


def validate_sha1_array(values: Any) -> list[str]:
    if isinstance(values, (str, bytes)) or not isinstance(values, Sequence):
        _fail("part_sha1_array must be a list of SHA-1 strings")
    if not values:
        _fail("part_sha1_array cannot be empty")
    if len(values) > MAX_PART_NUMBER:
        _fail(f"part_sha1_array cannot have more than {MAX_PART_NUMBER} parts")
    return [validate_sha1(value, f"part_sha1_array[{index}]") for index, value in enumerate(values)]


def validate_key_name(key_name: Any) -> str:
    if not isinstance(key_name, str) or not _KEY_NAME.match(key_name):
        _fail("key_name must be 1-100 characters of letters, digits, '.', '_' or '-'")
    return key_name


def validate_capabilities(capabilities: Any) -> list[str]:
    if isinstance(capabilities, (str, bytes)) or not isinstance(capabilities, Sequence):
        _fail("capabilities must be a list")
    if not capabilities:
        _fail("At least one capability is required")
    for capability in capabilities:
        if not isinstance(capability, str):
            _fail("All capabilities must be strings")
        if capability not in KEY_CAPABILITIES:
            _fail(f"Invalid capability: {capability}")
    if len(set(capabilities)) != len(capabilities):
        _fail("Duplicate capabilities are not allowed")
    return list(capabilities)


def validate_key_duration(seconds: Any) -> int | None:
    if seconds is None:
        return None
    return validate_int_range(seconds, "valid_duration_in_seconds", 1, MAX_KEY_DURATION)


def validate_download_duration(seconds: Any) -> int:
    return validate_int_range(seconds, "valid_duration_in_seconds", 1, MAX_DOWNLOAD_AUTH_DURATION)


def validate_response_type(response_type: Any) -> str:
    if response_type not in RESPONSE_TYPES:
        _fail(f"response_type must be one of: {', '.join(sorted(RESPONSE_TYPES))}")
    return response_type


def validate_upload_target(upload_url: Any, authorization_token: Any) -> None:
    require_string(upload_url, "upload_url")
    if not isinstance(authorization_token, str) or not authorization_token:
        _fail("upload authorization token is required and must be a string")


def validate_upload_data(data: Any) -> None:
    if data is None:
        _fail("data is required")
    if isinstance(data, (dict, list)):
        _fail("data must be bytes, a string, a binary file or an iterable of bytes")


__all__ = [
    "RESPONSE_TYPES",
    "require_string",
    "optional_string",
    "validate_int_range",
    "validate_credentials",
    "validate_bucket_name",
    "validate_bucket_type",
    "validate_bucket_types",
    "validate_bucket_id",
    "validate_file_id",
    "validate_file_name",
    "validate_sha1",
    "validate_content_type",
    "validate_file_info",
    "validate_optional_mapping",
    "validate_optional_list",
    "validate_max_count",
    "validate_part_number",
    "validate_part_size",
    "validate_sha1_array",
    "validate_key_name",
    "validate_capabilities",
    "validate_key_duration",
    "validate_download_duration",
    "validate_response_type",
    "validate_upload_target",
    "validate_upload_data",
]
