"""Static lookup tables for the B2 native API."""

from __future__ import annotations

DEFAULT_AUTH_URL = "https://api.backblazeb2.com"

API_ENDPOINTS: dict[str, str] = {
    # Authentication
    "authorize_account": "/b2api/v4/b2_authorize_account",
    # Buckets
    "create_bucket": "/b2api/v2/b2_create_bucket",
    "delete_bucket": "/b2api/v2/b2_delete_bucket",
    "list_buckets": "/b2api/v2/b2_list_buckets",
    "update_bucket": "/b2api/v2/b2_update_bucket",
    "get_upload_url": "/b2api/v2/b2_get_upload_url",
    # Files
    "list_file_names": "/b2api/v2/b2_list_file_names",
    "list_file_versions": "/b2api/v2/b2_list_file_versions",
    "get_file_info": "/b2api/v2/b2_get_file_info",
    "delete_file_version": "/b2api/v2/b2_delete_file_version",
    "hide_file": "/b2api/v2/b2_hide_file",
    "get_download_authorization": "/b2api/v2/b2_get_download_authorization",
    "download_file_by_id": "/b2api/v2/b2_download_file_by_id",
    "download_file_by_name": "/file",
    # Large files
    "start_large_file": "/b2api/v2/b2_start_large_file",
    "get_upload_part_url": "/b2api/v2/b2_get_upload_part_url",
    "upload_part": "/b2api/v2/b2_upload_part",
    "finish_large_file": "/b2api/v2/b2_finish_large_file",
    "cancel_large_file": "/b2api/v2/b2_cancel_large_file",
    "list_parts": "/b2api/v2/b2_list_parts",
    "list_unfinished_large_files": "/b2api/v2/b2_list_unfinished_large_files",
    # Keys
    "create_key": "/b2api/v2/b2_create_key",
    "delete_key": "/b2api/v2/b2_delete_key",
    "list_keys": "/b2api/v2/b2_list_keys",
}

BUCKET_TYPE_PRIVATE = "allPrivate"
BUCKET_TYPE_PUBLIC = "allPublic"
BUCKET_TYPES = frozenset({BUCKET_TYPE_PRIVATE, BUCKET_TYPE_PUBLIC})

KEY_CAPABILITIES = frozenset(
    {
        "listKeys",
        "writeKeys",
        "deleteKeys",
        "listBuckets",
        "writeBuckets",
        "deleteBuckets",
        "listAllBucketNames",
        "readBuckets",
        "listFiles",
        "readFiles",
        "shareFiles",
        "writeFiles",
        "deleteFiles",
    }
)

# Service error codes
BAD_AUTH_TOKEN = "bad_auth_token"
EXPIRED_AUTH_TOKEN = "expired_auth_token"
INVALID_BUCKET_ID = "invalid_bucket_id"
INVALID_BUCKET_NAME = "invalid_bucket_name"
BUCKET_NOT_EMPTY = "bucket_not_empty"
DUPLICATE_BUCKET_NAME = "duplicate_bucket_name"
FILE_NOT_PRESENT = "file_not_present"
NOT_ALLOWED = "not_allowed"
REQUEST_TIMEOUT = "request_timeout"
TOO_MANY_REQUESTS = "too_many_requests"

AUTH_EXPIRED_CODES = frozenset({BAD_AUTH_TOKEN, EXPIRED_AUTH_TOKEN})
RETRYABLE_ERROR_CODES = frozenset({REQUEST_TIMEOUT, TOO_MANY_REQUESTS})
RETRYABLE_STATUS_CODES = frozenset({408, 429, 500, 502, 503, 504})

CONTENT_TYPE_JSON = "application/json"
CONTENT_TYPE_OCTET_STREAM = "application/octet-stream"

HEADER_AUTHORIZATION = "Authorization"
HEADER_CONTENT_TYPE = "Content-Type"
HEADER_CONTENT_LENGTH = "Content-Length"
HEADER_CONTENT_SHA1 = "X-Bz-Content-Sha1"
HEADER_FILE_NAME = "X-Bz-File-Name"
HEADER_PART_NUMBER = "X-Bz-Part-Number"
HEADER_INFO_PREFIX = "X-Bz-Info-"

# Limits
MAX_FILE_NAME_BYTES = 1024
MIN_PART_NUMBER = 1
MAX_PART_NUMBER = 10000
MIN_PART_SIZE = 5 * 1024 * 1024  # 5 MiB; the final part may be smaller
MAX_PART_SIZE = 5 * 1024 * 1024 * 1024  # 5 GiB
DEFAULT_RECOMMENDED_PART_SIZE = 100 * 1000 * 1000
MAX_LIST_COUNT = 10000
MAX_DOWNLOAD_AUTH_DURATION = 7 * 24 * 60 * 60  # 604800 s
MAX_KEY_DURATION = 1000 * 24 * 60 * 60

# Retry defaults (seconds)
DEFAULT_RETRIES = 3
DEFAULT_RETRY_DELAY = 1.0
DEFAULT_RETRY_DELAY_MULTIPLIER = 2.0
DEFAULT_MAX_RETRY_DELAY = 30.0

# Request defaults (seconds)
DEFAULT_TIMEOUT = 30.0
DEFAULT_UPLOAD_TIMEOUT = 300.0

DEFAULT_MAX_CONCURRENCY = 4

# In-memory bodies above this size are streamed in STREAM_CHUNK_SIZE chunks
STREAM_THRESHOLD = 10 * 1024 * 1024
STREAM_CHUNK_SIZE = 64 * 1024
