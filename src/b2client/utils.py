from __future__ import annotations

import hashlib
import inspect
import os
import re
from collections.abc import Awaitable, Mapping
from typing import Any, cast

_CAMEL_BOUNDARY = re.compile(r"(?<!^)(?=[A-Z])")


def is_debug_enabled(enabled: bool = False) -> bool:
    if enabled:
        return True
    debug_env = os.getenv("DEBUG", "")
    return "b2" in debug_env


def debug(message: str, *args: Any, enabled: bool = False) -> None:
    try:
        if is_debug_enabled(enabled):
            print(f"b2client: {message}", *args)
    except Exception:
        pass


async def await_if_necessary(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await cast(Awaitable[Any], value)
    return value


def sha1_hex(data: bytes | bytearray | memoryview | str) -> str:
    if isinstance(data, str):
        data = data.encode("utf-8")
    return hashlib.sha1(data).hexdigest()


def sha1_of_file(fileobj: Any, chunk_size: int = 64 * 1024) -> tuple[str, int]:
    """Hash a seekable binary file from its current position, then rewind."""
    start = fileobj.tell()
    digest = hashlib.sha1()
    length = 0
    while True:
        chunk = fileobj.read(chunk_size)
        if not chunk:
            break
        digest.update(chunk)
        length += len(chunk)
    fileobj.seek(start)
    return digest.hexdigest(), length


def compute_body_length(body: Any) -> int:
    if body is None:
        return 0
    # str -> utf-8 byte length
    if isinstance(body, str):
        return len(body.encode("utf-8"))
    # bytes-like
    if isinstance(body, (bytes, bytearray, memoryview)):
        return len(body)
    # file-like object with seek/tell
    if hasattr(body, "read"):
        try:
            pos = body.tell()
            body.seek(0, 2)
            end = body.tell()
            body.seek(pos)
            return int(end - pos)
        except Exception:
            return 0
    # iterable/generator unknown length
    return 0


def is_seekable(body: Any) -> bool:
    if not hasattr(body, "read"):
        return False
    try:
        return bool(body.seekable())
    except Exception:
        return False


def parse_retry_after(value: str | None) -> float | None:
    if not value:
        return None
    try:
        seconds = float(value)
    except ValueError:
        return None
    return seconds if seconds >= 0 else None


def to_snake_case(name: str) -> str:
    return _CAMEL_BOUNDARY.sub("_", name).lower()


def snake_keys(values: Mapping[str, Any]) -> dict[str, Any]:
    return {to_snake_case(key): value for key, value in values.items()}


def drop_none(values: Mapping[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in values.items() if value is not None}


__all__ = [
    "is_debug_enabled",
    "debug",
    "await_if_necessary",
    "sha1_hex",
    "sha1_of_file",
    "compute_body_length",
    "is_seekable",
    "parse_retry_after",
    "to_snake_case",
    "snake_keys",
    "drop_none",
]
