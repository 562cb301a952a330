"""Shared async core behind both the blocking and the async client.

Every operation is written once as a coroutine against ``B2Core``. The
blocking client hands it a ``BlockingTransport`` and a blocking sleep so
no coroutine ever suspends, then drives each call with ``iter_coroutine``.
"""

from __future__ import annotations

import json
from collections.abc import Awaitable, Callable, Mapping, Sequence
from typing import Any, TypeVar

from ._http.transport import AsyncTransport, BaseTransport, BlockingTransport, JSONBody
from ._inputs import normalize_input
from .cancellation import CancelToken, raise_if_cancelled
from .config import ClientConfig
from .endpoints import api_url
from .errors import B2AuthError, B2Error, ErrorRule, translate_error
from .retry import RetryPolicy, SleepFn, async_sleep, execute_with_retry
from .session import SessionController
from .types import B2Response, Credentials, Session
from .utils import debug

_T = TypeVar("_T")


class B2Core:
    _transport: BaseTransport
    _sleep_fn: SleepFn

    def __init__(
        self,
        *,
        config: ClientConfig,
        transport: BaseTransport,
        sleep_fn: SleepFn = async_sleep,
        pipeline_runtime: Any = None,
    ) -> None:
        self._config = config
        self._transport = transport
        self._sleep_fn = sleep_fn
        self._pipeline_runtime = pipeline_runtime
        self._debug = config.debug
        self._policy = config.retry_policy()
        self._session = SessionController(
            transport,
            auth_url=config.auth_url,
            timeout=config.timeout,
            debug_enabled=config.debug,
        )
        self._session.credentials = config.credentials()

    @property
    def config(self) -> ClientConfig:
        return self._config

    @property
    def transport(self) -> BaseTransport:
        return self._transport

    def close(self) -> None:
        if isinstance(self._transport, BlockingTransport):
            self._transport.close()

    async def aclose(self) -> None:
        if isinstance(self._transport, AsyncTransport):
            await self._transport.aclose()

    # Session utilities

    def is_authenticated(self) -> bool:
        return self._session.is_authenticated()

    def get_session(self) -> Session:
        return self._session.snapshot()

    def save_session(self, session: Session | Mapping[str, Any]) -> Session:
        return self._session.save(session)

    def clear(self) -> None:
        self._session.clear()

    async def authorize(
        self,
        application_key_id: str | Mapping[str, Any] | None = None,
        application_key: str | None = None,
        *,
        cancel: CancelToken | None = None,
        retries: int | None = None,
    ) -> B2Response:
        """Authorize the account and cache the credentials for later refreshes.

        Without arguments the configured (or environment) credentials are used.
        """
        params = normalize_input(
            application_key_id,
            "application_key_id",
            application_key_id=application_key_id,
            application_key=application_key,
            cancel=cancel,
            retries=retries,
        )
        application_key_id = params.get("application_key_id")
        application_key = params.get("application_key")
        cancel = params.get("cancel")
        retries = params.get("retries")
        if application_key_id is None and application_key is None:
            credentials = self._session.credentials
            if credentials is None:
                raise B2AuthError(
                    "No credentials provided. Pass application_key_id and application_key, "
                    "or set B2_APPLICATION_KEY_ID and B2_APPLICATION_KEY."
                )
        else:
            credentials = Credentials(application_key_id or "", application_key or "")
        return await self._call(
            "authorize_account",
            lambda: self._session.authenticate(credentials, cancel=cancel),
            cancel=cancel,
            retries=retries,
        )

    async def refresh(
        self,
        *,
        cancel: CancelToken | None = None,
        retries: int | None = None,
    ) -> B2Response:
        return await self._call(
            "authorize_account",
            lambda: self._session.refresh(cancel=cancel),
            cancel=cancel,
            retries=retries,
        )

    # Plumbing shared by the operation modules

    def _policy_for(self, retries: int | None) -> RetryPolicy:
        return self._policy.with_overrides(retries=retries)

    async def _retry(
        self,
        fn: Callable[[], Awaitable[_T]],
        *,
        cancel: CancelToken | None,
        retries: int | None,
    ) -> _T:
        return await execute_with_retry(
            fn,
            self._policy_for(retries),
            cancel=cancel,
            sleep_fn=self._sleep_fn,
            debug_enabled=self._debug,
        )

    async def _call(
        self,
        operation: str,
        fn: Callable[[], Awaitable[_T]],
        *,
        cancel: CancelToken | None,
        retries: int | None,
    ) -> _T:
        """Run a call that needs no session, surfacing errors the usual way."""
        try:
            return await self._retry(fn, cancel=cancel, retries=retries)
        except B2Error as exc:
            self._report(operation, exc)
            raise

    async def _ensure_session(
        self,
        *,
        cancel: CancelToken | None,
        retries: int | None,
    ) -> None:
        if self._session.is_authenticated():
            return
        credentials = self._session.credentials
        if credentials is None:
            raise B2AuthError("Not authenticated. Call authorize() first.")
        debug("authorizing before first request", enabled=self._debug)
        await self._retry(
            lambda: self._session.authenticate(credentials, cancel=cancel),
            cancel=cancel,
            retries=retries,
        )

    async def _execute(
        self,
        operation: str,
        fn: Callable[[], Awaitable[_T]],
        *,
        cancel: CancelToken | None,
        retries: int | None,
        rules: Sequence[ErrorRule] = (),
        context: Mapping[str, Any] | None = None,
        session_token: bool = True,
    ) -> _T:
        """Run one authenticated operation.

        ``fn`` must read the session on every attempt. An auth-expired
        failure with cached credentials triggers exactly one refresh followed
        by one more run. ``session_token=False`` marks calls authorized with
        an upload token, which a session refresh cannot fix.
        """
        try:
            raise_if_cancelled(cancel)
            if session_token:
                await self._ensure_session(cancel=cancel, retries=retries)
            try:
                return await self._retry(fn, cancel=cancel, retries=retries)
            except B2Error as exc:
                if (
                    not session_token
                    or self._session.credentials is None
                    or not SessionController.is_auth_expired(exc)
                ):
                    raise
                debug(f"{operation}: authorization expired, refreshing", enabled=self._debug)
                await self._retry(
                    lambda: self._session.refresh(cancel=cancel),
                    cancel=cancel,
                    retries=retries,
                )
                return await self._retry(fn, cancel=cancel, retries=retries)
        except B2Error as exc:
            error = translate_error(exc, rules, **(context or {}))
            if session_token and isinstance(error, B2AuthError):
                self._session.clear()
            self._report(operation, error)
            if error is exc:
                raise
            raise error from exc

    def _report(self, operation: str, error: B2Error) -> None:
        debug(f"{operation} failed:", json.dumps(error.to_dict(), default=str), enabled=self._debug)

    async def _api_post(
        self,
        operation: str,
        body: Mapping[str, Any],
        *,
        cancel: CancelToken | None,
        retries: int | None,
        rules: Sequence[ErrorRule] = (),
        context: Mapping[str, Any] | None = None,
        with_account: bool = False,
    ) -> B2Response:
        """POST a JSON body to a native API operation.

        The URL, token and (optionally) ``accountId`` come from the session
        as it stands at each attempt, so a refresh is picked up.
        """

        async def send() -> B2Response:
            session = self._session.current
            payload = dict(body)
            if with_account:
                payload = {"accountId": self._session.account_id(), **payload}
            return await self._transport.send(
                "POST",
                api_url(session, operation),
                body=JSONBody(payload),
                headers=self._session.auth_headers(),
                timeout=self._config.timeout,
                cancel=cancel,
            )

        return await self._execute(
            operation,
            send,
            cancel=cancel,
            retries=retries,
            rules=rules,
            context=context,
        )


__all__ = ["B2Core"]
