"""Absolute URLs for every operation, derived from a session snapshot."""

from __future__ import annotations

from urllib.parse import quote, unquote

from .constants import API_ENDPOINTS
from .errors import B2AuthError
from .types import Session

# Characters left unescaped in a path segment, matching JavaScript's
# encodeURIComponent so names round-trip with other B2 clients.
_SEGMENT_SAFE = "!~*'()"


def encode_file_name(file_name: str) -> str:
    """Percent-encode each path segment of ``file_name``, keeping ``/``."""
    return "/".join(quote(segment, safe=_SEGMENT_SAFE) for segment in file_name.split("/"))


def decode_file_name(encoded: str) -> str:
    return "/".join(unquote(segment) for segment in encoded.split("/"))


def _join(base: str, path: str) -> str:
    return base.rstrip("/") + path


def _require(value: str | None, name: str) -> str:
    if not value:
        raise B2AuthError(f"Not authenticated: session has no {name}. Call authorize() first.")
    return value


def authorize_url(auth_base: str) -> str:
    return _join(auth_base, API_ENDPOINTS["authorize_account"])


def api_url(session: Session, operation: str) -> str:
    try:
        path = API_ENDPOINTS[operation]
    except KeyError:
        raise ValueError(f"Unknown operation: {operation}") from None
    return _join(_require(session.api_url, "apiUrl"), path)


def download_by_name_url(session: Session, bucket_name: str, file_name: str) -> str:
    base = _require(session.download_url, "downloadUrl")
    bucket = quote(bucket_name, safe="")
    return _join(base, f"{API_ENDPOINTS['download_file_by_name']}/{bucket}/{encode_file_name(file_name)}")


def download_by_id_url(session: Session, file_id: str) -> str:
    base = _require(session.api_url, "apiUrl")
    return _join(base, f"{API_ENDPOINTS['download_file_by_id']}?fileId={quote(file_id, safe='')}")


__all__ = [
    "encode_file_name",
    "decode_file_name",
    "authorize_url",
    "api_url",
    "download_by_name_url",
    "download_by_id_url",
]
