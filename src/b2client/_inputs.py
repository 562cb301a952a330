"""Normalize the accepted call shapes into one keyword mapping.

Operations accept keyword arguments, a mapping passed as the first
positional argument (camelCase or snake_case keys), and a few legacy
positional forms. Everything funnels through ``normalize_input`` so the
operation body sees a single canonical dict.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from .utils import to_snake_case

# Alternative spellings accepted in mapping input.
_ALIASES = {
    "key_id": "application_key_id",
    "secret": "application_key",
    "type": "bucket_type",
    "info": "file_info",
    "upload_auth_token": "authorization_token",
    "sha1": "content_sha1",
}


def canonical_key(key: str) -> str:
    snake = to_snake_case(key)
    return _ALIASES.get(snake, snake)


def normalize_input(first: Any, first_field: str, **fields: Any) -> dict[str, Any]:
    """Merge a leading mapping with explicit keyword fields.

    When ``first`` is a mapping it is folded in and ``first_field`` is left
    unset unless the mapping provides it; explicit non-None keywords win
    over mapping entries.
    """
    if not isinstance(first, Mapping):
        return dict(fields)

    merged = {canonical_key(str(key)): value for key, value in first.items()}
    fields.pop(first_field, None)
    for key, value in fields.items():
        if value is not None or key not in merged:
            merged[key] = value
    return merged


__all__ = ["normalize_input", "canonical_key"]
