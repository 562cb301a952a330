"""Session state: acquisition, refresh and the discovered endpoint set."""

from __future__ import annotations

import base64
import copy
from collections.abc import Mapping
from typing import Any

from ._http.transport import BaseTransport
from .cancellation import CancelToken
from .constants import AUTH_EXPIRED_CODES, DEFAULT_AUTH_URL, DEFAULT_TIMEOUT
from .endpoints import authorize_url
from .errors import B2AuthError, B2ValidationError
from .types import B2Response, Credentials, Session
from .utils import debug, snake_keys
from .validation import validate_credentials

_REQUIRED_FIELDS = ("authorizationToken", "apiUrl", "downloadUrl", "accountId")
_SESSION_FIELDS = (
    "authorization_token",
    "api_url",
    "download_url",
    "account_id",
    "recommended_part_size",
    "absolute_minimum_part_size",
    "allowed",
)


def parse_session(data: Any) -> Session:
    """Normalize an authorize response into a session.

    Newer API versions nest the endpoint fields under ``apiInfo.storageApi``;
    older ones return them at the top level. Nested values win.
    """
    if not isinstance(data, Mapping):
        raise B2AuthError("Invalid authorization response")
    api_info = data.get("apiInfo")
    storage = api_info.get("storageApi") if isinstance(api_info, Mapping) else None
    if not isinstance(storage, Mapping):
        storage = {}

    def pick(key: str) -> Any:
        value = storage.get(key)
        return value if value is not None else data.get(key)

    missing = [key for key in _REQUIRED_FIELDS if not pick(key)]
    if missing:
        raise B2AuthError(
            f"Authorization response is missing required fields: {', '.join(missing)}"
        )
    allowed = pick("allowed")
    return Session(
        authorization_token=pick("authorizationToken"),
        api_url=pick("apiUrl"),
        download_url=pick("downloadUrl"),
        account_id=pick("accountId"),
        recommended_part_size=pick("recommendedPartSize"),
        absolute_minimum_part_size=pick("absoluteMinimumPartSize"),
        allowed=copy.deepcopy(dict(allowed)) if isinstance(allowed, Mapping) else None,
        authenticated=True,
    )


def session_from_value(value: Session | Mapping[str, Any]) -> Session:
    if isinstance(value, Session):
        fields = {name: getattr(value, name) for name in _SESSION_FIELDS}
    elif isinstance(value, Mapping):
        normalized = snake_keys(value)
        fields = {name: normalized.get(name) for name in _SESSION_FIELDS}
    else:
        raise B2ValidationError("session must be a Session or a mapping")
    allowed = fields.get("allowed")
    fields["allowed"] = copy.deepcopy(dict(allowed)) if isinstance(allowed, Mapping) else None
    authenticated = bool(
        fields["authorization_token"] and fields["api_url"] and fields["download_url"]
    )
    return Session(**fields, authenticated=authenticated)


class SessionController:
    """Single source of truth for the token and the discovered base URLs.

    The state is an immutable ``Session`` replaced wholesale by
    ``authenticate``, ``save`` and ``clear``; readers get a snapshot.
    """

    def __init__(
        self,
        transport: BaseTransport,
        *,
        auth_url: str = DEFAULT_AUTH_URL,
        timeout: float | None = DEFAULT_TIMEOUT,
        debug_enabled: bool = False,
    ) -> None:
        self._transport = transport
        self._auth_url = auth_url
        self._timeout = timeout
        self._debug = debug_enabled
        self._state = Session()
        self._credentials: Credentials | None = None

    @property
    def credentials(self) -> Credentials | None:
        return self._credentials

    @credentials.setter
    def credentials(self, value: Credentials | None) -> None:
        self._credentials = value

    @property
    def current(self) -> Session:
        return self._state

    def is_authenticated(self) -> bool:
        return self._state.authenticated

    def snapshot(self) -> Session:
        return self._state.snapshot()

    async def authenticate(
        self,
        credentials: Credentials,
        *,
        cancel: CancelToken | None = None,
    ) -> B2Response:
        validate_credentials(credentials.application_key_id, credentials.application_key)
        basic = base64.b64encode(
            f"{credentials.application_key_id}:{credentials.application_key}".encode()
        ).decode("ascii")
        try:
            response = await self._transport.send(
                "GET",
                authorize_url(self._auth_url),
                headers={"Authorization": f"Basic {basic}"},
                timeout=self._timeout,
                cancel=cancel,
            )
            session = parse_session(response.data)
        except B2AuthError:
            self.clear()
            raise
        self._state = session
        self._credentials = credentials
        debug(f"authorized account {session.account_id}", enabled=self._debug)
        return response

    async def refresh(self, *, cancel: CancelToken | None = None) -> B2Response:
        if self._credentials is None:
            raise B2AuthError("No cached credentials available to refresh the session")
        debug("refreshing session", enabled=self._debug)
        self.clear()
        return await self.authenticate(self._credentials, cancel=cancel)

    def clear(self) -> None:
        self._state = Session()

    def save(self, session: Session | Mapping[str, Any]) -> Session:
        self._state = session_from_value(session)
        return self.snapshot()

    @staticmethod
    def is_auth_expired(error: BaseException) -> bool:
        status = getattr(error, "status", None)
        code = getattr(error, "code", None)
        return status == 401 or code in AUTH_EXPIRED_CODES

    def auth_headers(self) -> dict[str, str]:
        state = self._state
        if not state.authenticated or not state.authorization_token:
            raise B2AuthError("Not authenticated. Call authorize() first.")
        return {"Authorization": state.authorization_token}

    def account_id(self) -> str:
        state = self._state
        if not state.authenticated or not state.account_id:
            raise B2AuthError("Not authenticated. Call authorize() first.")
        return state.account_id


__all__ = ["SessionController", "parse_session", "session_from_value"]
