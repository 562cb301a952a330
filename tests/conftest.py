"""Shared fixtures for all tests."""

from collections.abc import Generator
from typing import Any

import pytest

AUTH_URL = "https://api.backblazeb2.com/b2api/v4/b2_authorize_account"
API_URL = "https://api001.backblazeb2.test"
DOWNLOAD_URL = "https://f001.backblazeb2.test"


def api(operation: str) -> str:
    return f"{API_URL}/b2api/v2/b2_{operation}"


@pytest.fixture
def mock_env_clear(monkeypatch: pytest.MonkeyPatch) -> Generator[None, None, None]:
    """Clear all B2-related environment variables for testing.

    This ensures tests don't accidentally use real credentials from the environment.
    """
    env_vars_to_clear = [
        "B2_APPLICATION_KEY_ID",
        "B2_APPLICATION_KEY",
        "B2_RETRIES",
        "DEBUG",
    ]
    for var in env_vars_to_clear:
        monkeypatch.delenv(var, raising=False)
    yield


@pytest.fixture
def mock_credentials() -> dict[str, str]:
    return {"application_key_id": "key_test123", "application_key": "secret_test456"}


def auth_response(token: str = "T", *, nested: bool = True) -> dict[str, Any]:
    """Authorize-account payload in either the nested or the flat layout."""
    storage = {
        "apiUrl": API_URL,
        "downloadUrl": DOWNLOAD_URL,
        "recommendedPartSize": 100000000,
        "absoluteMinimumPartSize": 5000000,
        "allowed": {"capabilities": ["listBuckets", "writeFiles"]},
    }
    if nested:
        return {
            "apiInfo": {"storageApi": storage},
            "authorizationToken": token,
            "accountId": "acc",
        }
    return {**storage, "authorizationToken": token, "accountId": "acc"}


@pytest.fixture
def mock_auth_response() -> dict[str, Any]:
    return auth_response()


@pytest.fixture
def saved_session() -> dict[str, Any]:
    """A session that lets tests skip authorize_account."""
    return {
        "authorizationToken": "T",
        "apiUrl": API_URL,
        "downloadUrl": DOWNLOAD_URL,
        "accountId": "acc",
        "recommendedPartSize": 100000000,
        "absoluteMinimumPartSize": 5000000,
    }
