"""Client configuration."""

from __future__ import annotations

import os
from dataclasses import dataclass, field, fields
from typing import Any

from .constants import (
    DEFAULT_AUTH_URL,
    DEFAULT_MAX_CONCURRENCY,
    DEFAULT_MAX_RETRY_DELAY,
    DEFAULT_RETRIES,
    DEFAULT_RETRY_DELAY,
    DEFAULT_RETRY_DELAY_MULTIPLIER,
    DEFAULT_TIMEOUT,
    DEFAULT_UPLOAD_TIMEOUT,
)
from .retry import RetryPolicy
from .types import Credentials


def _env_int(name: str) -> int | None:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return None
    try:
        return int(value)
    except ValueError:
        return None


@dataclass
class ClientConfig:
    """SDK configuration.

    Durations are in seconds. Credentials and the retry budget fall back to
    ``B2_APPLICATION_KEY_ID``, ``B2_APPLICATION_KEY`` and ``B2_RETRIES``.
    """

    application_key_id: str | None = None
    application_key: str | None = field(default=None, repr=False)
    timeout: float = DEFAULT_TIMEOUT
    upload_timeout: float = DEFAULT_UPLOAD_TIMEOUT
    download_timeout: float | None = None
    retries: int | None = None
    retry_delay: float = DEFAULT_RETRY_DELAY
    retry_delay_multiplier: float = DEFAULT_RETRY_DELAY_MULTIPLIER
    max_retry_delay: float = DEFAULT_MAX_RETRY_DELAY
    headers: dict[str, str] = field(default_factory=dict)
    debug: bool = False
    max_concurrency: int = DEFAULT_MAX_CONCURRENCY
    auth_url: str = DEFAULT_AUTH_URL

    def __post_init__(self) -> None:
        if self.application_key_id is None:
            self.application_key_id = os.getenv("B2_APPLICATION_KEY_ID") or None
        if self.application_key is None:
            self.application_key = os.getenv("B2_APPLICATION_KEY") or None
        if self.retries is None:
            env_retries = _env_int("B2_RETRIES")
            self.retries = env_retries if env_retries is not None else DEFAULT_RETRIES
        if self.max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")

    @classmethod
    def from_kwargs(cls, config: ClientConfig | None = None, **kwargs: Any) -> ClientConfig:
        """Build a config from keyword arguments, or copy ``config`` with them applied."""
        known = {f.name for f in fields(cls)}
        unknown = set(kwargs) - known
        if unknown:
            raise TypeError(f"Unknown client option(s): {', '.join(sorted(unknown))}")
        values = {key: value for key, value in kwargs.items() if value is not None}
        if config is None:
            return cls(**values)
        merged = {f.name: getattr(config, f.name) for f in fields(cls)}
        merged.update(values)
        merged["headers"] = dict(merged["headers"] or {})
        return cls(**merged)

    @property
    def effective_download_timeout(self) -> float:
        return self.download_timeout if self.download_timeout is not None else self.timeout

    def credentials(self) -> Credentials | None:
        if self.application_key_id and self.application_key:
            return Credentials(self.application_key_id, self.application_key)
        return None

    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(
            retries=self.retries if self.retries is not None else DEFAULT_RETRIES,
            base_delay=self.retry_delay,
            multiplier=self.retry_delay_multiplier,
            max_delay=self.max_retry_delay,
        )


__all__ = ["ClientConfig"]
