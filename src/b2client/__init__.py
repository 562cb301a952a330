from .errors import (
    B2Error,
    B2ValidationError,
    B2HTTPError,
    B2AuthError,
    B2NotFoundError,
    B2InvalidBucketIdError,
    B2NotAllowedError,
    B2NetworkError,
    B2TimeoutError,
    B2CancelledError,
)

from .client import AsyncB2Client, B2Client
from .config import ClientConfig
from .cancellation import CancelToken
from .retry import RetryPolicy
from .endpoints import encode_file_name, decode_file_name
from .types import (
    B2Response,
    Blob,
    ResponseStream,
    ProgressEvent,
    Credentials,
    Session,
    UploadSlot,
    LargeFileHandle,
    RetryContext,
    BucketRecord,
    FileRecord,
    KeyRecord,
)

__all__ = [
    "B2Error",
    "B2ValidationError",
    "B2HTTPError",
    "B2AuthError",
    "B2NotFoundError",
    "B2InvalidBucketIdError",
    "B2NotAllowedError",
    "B2NetworkError",
    "B2TimeoutError",
    "B2CancelledError",
    "AsyncB2Client",
    "B2Client",
    "ClientConfig",
    "CancelToken",
    "RetryPolicy",
    "encode_file_name",
    "decode_file_name",
    "B2Response",
    "Blob",
    "ResponseStream",
    "ProgressEvent",
    "Credentials",
    "Session",
    "UploadSlot",
    "LargeFileHandle",
    "RetryContext",
    "BucketRecord",
    "FileRecord",
    "KeyRecord",
]
