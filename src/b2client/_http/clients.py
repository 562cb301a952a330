"""Factories for the httpx clients owned by the B2 transports."""

from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence

import httpx

from ..constants import DEFAULT_TIMEOUT


def _create_static_headers_hook(
    headers: Mapping[str, str],
) -> Callable[[httpx.Request], None]:
    """Request hook adding the client's always-on headers.

    Uses setdefault so per-request headers (such as an upload token) win.
    """
    frozen = dict(headers)

    def hook(request: httpx.Request) -> None:
        for key, value in frozen.items():
            request.headers.setdefault(key, value)

    return hook


def _async_hook(
    hook: Callable[[httpx.Request], None],
) -> Callable[[httpx.Request], object]:
    async def wrapper(request: httpx.Request) -> None:
        hook(request)

    return wrapper


def _prepend_request_hooks(
    client: httpx.Client | httpx.AsyncClient,
    hooks: Sequence[Callable[[httpx.Request], object]],
) -> None:
    """Prepend request hooks so user-configured hooks run after ours."""
    existing_hooks = list(client.event_hooks.get("request", []))
    client.event_hooks["request"] = list(hooks) + existing_hooks


def create_headers_client(
    headers: Mapping[str, str] | None = None,
    timeout: float | None = None,
    *,
    client: httpx.Client | None = None,
) -> httpx.Client:
    """Create or configure a sync httpx client carrying static headers.

    Args:
        headers: Headers added to every request unless the request sets them.
        timeout: Default timeout in seconds. Ignored if client is provided.
        client: Optional caller-owned client; the header hook is prepended
            to its existing request hooks.
    """
    hooks = [_create_static_headers_hook(headers)] if headers else []

    if client is not None:
        if hooks:
            _prepend_request_hooks(client, hooks)
        return client

    effective_timeout = timeout if timeout is not None else DEFAULT_TIMEOUT
    return httpx.Client(
        timeout=httpx.Timeout(effective_timeout),
        event_hooks={"request": hooks},
    )


def create_headers_async_client(
    headers: Mapping[str, str] | None = None,
    timeout: float | None = None,
    *,
    client: httpx.AsyncClient | None = None,
) -> httpx.AsyncClient:
    """Async counterpart of :func:`create_headers_client`.

    httpx.AsyncClient awaits its event hooks, so the header hook is wrapped
    in a coroutine function.
    """
    hooks = [_async_hook(_create_static_headers_hook(headers))] if headers else []

    if client is not None:
        if hooks:
            _prepend_request_hooks(client, hooks)
        return client

    effective_timeout = timeout if timeout is not None else DEFAULT_TIMEOUT
    return httpx.AsyncClient(
        timeout=httpx.Timeout(effective_timeout),
        event_hooks={"request": hooks},
    )


__all__ = [
    "create_headers_client",
    "create_headers_async_client",
]
