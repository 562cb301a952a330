"""Tests for authorization, session handling and retries through both clients."""

import base64
import json

import anyio
import httpx
import pytest
import respx

from b2client import AsyncB2Client, B2Client, CancelToken, ClientConfig
from b2client.errors import B2AuthError, B2CancelledError, B2HTTPError, B2TimeoutError, B2ValidationError

from conftest import API_URL, AUTH_URL, api, auth_response

EXPIRED = {"status": 401, "code": "expired_auth_token", "message": "Authorization token has expired"}


@pytest.fixture
def b2_mock():
    with respx.mock(assert_all_called=False) as mock:
        mock.get(AUTH_URL, name="auth").mock(return_value=httpx.Response(200, json=auth_response("T")))
        mock.post(api("list_buckets"), name="list_buckets").mock(
            return_value=httpx.Response(200, json={"buckets": [{"bucketId": "B1", "bucketName": "my-bucket"}]})
        )
        yield mock


class TestAuthorize:
    def test_authorize_sync(self, mock_env_clear, b2_mock):
        with B2Client() as b2:
            response = b2.authorize("key_test123", "secret_test456")

            assert response.status == 200
            assert b2.is_authenticated()
            session = b2.get_session()

        assert session.api_url == API_URL
        assert session.authorization_token == "T"
        assert session.account_id == "acc"
        expected = base64.b64encode(b"key_test123:secret_test456").decode()
        assert b2_mock.calls[0].request.headers["Authorization"] == f"Basic {expected}"

    @pytest.mark.asyncio
    async def test_authorize_async_with_mapping(self, mock_env_clear, b2_mock):
        async with AsyncB2Client() as b2:
            await b2.authorize({"keyId": "k", "secret": "s"})
            assert b2.is_authenticated()

        expected = base64.b64encode(b"k:s").decode()
        assert b2_mock.calls[0].request.headers["Authorization"] == f"Basic {expected}"

    def test_authorize_uses_configured_credentials(self, mock_env_clear, b2_mock, mock_credentials):
        with B2Client(ClientConfig(**mock_credentials)) as b2:
            b2.authorize()
            assert b2.is_authenticated()

    def test_authorize_without_credentials(self, mock_env_clear, b2_mock):
        with B2Client() as b2:
            with pytest.raises(B2AuthError, match="No credentials"):
                b2.authorize()
        assert not b2_mock.calls

    def test_invalid_credentials_fail_before_network(self, mock_env_clear, b2_mock):
        with B2Client() as b2:
            with pytest.raises(B2ValidationError):
                b2.authorize("", "secret_test456")
        assert not b2_mock.calls

    def test_rejected_credentials_clear_session(self, mock_env_clear, saved_session):
        with respx.mock:
            respx.get(AUTH_URL).mock(
                return_value=httpx.Response(401, json={"status": 401, "code": "unauthorized", "message": "bad"})
            )
            with B2Client() as b2:
                b2.save_session(saved_session)
                with pytest.raises(B2AuthError) as exc_info:
                    b2.authorize("key", "wrong-secret")
                assert not b2.is_authenticated()

        assert "wrong-secret" not in str(exc_info.value)
        assert "wrong-secret" not in json.dumps(exc_info.value.to_dict(), default=str)

    def test_lazy_authorization_on_first_call(self, mock_env_clear, b2_mock, mock_credentials):
        with B2Client(**mock_credentials) as b2:
            b2.list_buckets()
            b2.list_buckets()

        assert b2_mock["auth"].call_count == 1
        assert b2_mock["list_buckets"].call_count == 2

    def test_operation_without_session_or_credentials(self, mock_env_clear, b2_mock):
        with B2Client() as b2:
            with pytest.raises(B2AuthError, match="authorize"):
                b2.list_buckets()
        assert not b2_mock.calls


class TestSessionUtilities:
    def test_save_then_get_round_trips(self, mock_env_clear, saved_session):
        with B2Client() as b2:
            b2.save_session(saved_session)
            session = b2.get_session()

        assert session.authorization_token == saved_session["authorizationToken"]
        assert session.api_url == saved_session["apiUrl"]
        assert session.download_url == saved_session["downloadUrl"]
        assert session.account_id == saved_session["accountId"]
        assert session.recommended_part_size == saved_session["recommendedPartSize"]
        assert session.absolute_minimum_part_size == saved_session["absoluteMinimumPartSize"]

    def test_clear(self, mock_env_clear, saved_session):
        with B2Client() as b2:
            b2.save_session(saved_session)
            assert b2.is_authenticated()
            b2.clear()
            assert not b2.is_authenticated()


class TestAuthRecovery:
    def test_expired_token_refreshes_once_sync(self, mock_env_clear, mock_credentials):
        with respx.mock:
            auth = respx.get(AUTH_URL).mock(
                side_effect=[
                    httpx.Response(200, json=auth_response("T1")),
                    httpx.Response(200, json=auth_response("T2")),
                ]
            )
            listing = respx.post(api("list_buckets")).mock(
                side_effect=[
                    httpx.Response(401, json=EXPIRED),
                    httpx.Response(200, json={"buckets": []}),
                ]
            )
            with B2Client(**mock_credentials) as b2:
                b2.authorize()
                response = b2.list_buckets()

                assert response.data == {"buckets": []}
                assert b2.get_session().authorization_token == "T2"

        assert auth.call_count == 2
        assert listing.call_count == 2
        assert listing.calls[0].request.headers["Authorization"] == "T1"
        assert listing.calls[1].request.headers["Authorization"] == "T2"

    @pytest.mark.asyncio
    async def test_expired_token_refreshes_once_async(self, mock_env_clear, mock_credentials):
        with respx.mock:
            respx.get(AUTH_URL).mock(
                side_effect=[
                    httpx.Response(200, json=auth_response("T1")),
                    httpx.Response(200, json=auth_response("T2")),
                ]
            )
            listing = respx.post(api("list_buckets")).mock(
                side_effect=[
                    httpx.Response(401, json=EXPIRED),
                    httpx.Response(200, json={"buckets": []}),
                ]
            )
            async with AsyncB2Client(**mock_credentials) as b2:
                await b2.authorize()
                response = await b2.list_buckets()

        assert response.status == 200
        assert listing.calls[1].request.headers["Authorization"] == "T2"

    def test_second_expiry_surfaces_and_clears_session(self, mock_env_clear, mock_credentials):
        with respx.mock:
            respx.get(AUTH_URL).mock(return_value=httpx.Response(200, json=auth_response("T")))
            listing = respx.post(api("list_buckets")).mock(
                return_value=httpx.Response(401, json=EXPIRED)
            )
            with B2Client(**mock_credentials) as b2:
                with pytest.raises(B2AuthError):
                    b2.list_buckets()
                assert not b2.is_authenticated()

        assert listing.call_count == 2

    def test_expiry_without_credentials_is_surfaced(self, mock_env_clear, saved_session):
        with respx.mock:
            listing = respx.post(api("list_buckets")).mock(
                return_value=httpx.Response(401, json=EXPIRED)
            )
            with B2Client() as b2:
                b2.save_session(saved_session)
                with pytest.raises(B2AuthError) as exc_info:
                    b2.list_buckets()
                assert not b2.is_authenticated()

        assert listing.call_count == 1
        assert exc_info.value.code == "expired_auth_token"


class TestRetries:
    def test_transient_503_then_success(self, mock_env_clear, saved_session):
        with respx.mock:
            route = respx.post(api("list_file_names")).mock(
                side_effect=[
                    httpx.Response(503, json={"status": 503, "code": "service_unavailable", "message": "busy"}),
                    httpx.Response(200, json={"files": [], "nextFileName": None}),
                ]
            )
            with B2Client(retries=3, retry_delay=0.01, retry_delay_multiplier=2.0) as b2:
                b2.save_session(saved_session)
                response = b2.list_file_names("B1")

        assert route.call_count == 2
        assert response.data == {"files": [], "nextFileName": None}

    @pytest.mark.asyncio
    async def test_budget_exhausted_async(self, mock_env_clear, saved_session):
        with respx.mock:
            route = respx.post(api("list_file_names")).mock(
                return_value=httpx.Response(500, json={"status": 500, "code": "internal_error", "message": "oops"})
            )
            async with AsyncB2Client(retries=2, retry_delay=0.001) as b2:
                b2.save_session(saved_session)
                with pytest.raises(B2HTTPError) as exc_info:
                    await b2.list_file_names("B1")

        assert route.call_count == 3
        assert exc_info.value.status == 500
        assert exc_info.value.retry_exhausted is True

    def test_per_call_retry_override(self, mock_env_clear, saved_session):
        with respx.mock:
            route = respx.post(api("list_file_names")).mock(return_value=httpx.Response(503))
            with B2Client(retries=5, retry_delay=0.001) as b2:
                b2.save_session(saved_session)
                with pytest.raises(B2HTTPError):
                    b2.list_file_names("B1", retries=0)

        assert route.call_count == 1

    def test_network_error_is_retried(self, mock_env_clear, saved_session):
        with respx.mock:
            route = respx.post(api("list_file_names")).mock(
                side_effect=[
                    httpx.ConnectError("connection reset"),
                    httpx.Response(200, json={"files": []}),
                ]
            )
            with B2Client(retry_delay=0.001) as b2:
                b2.save_session(saved_session)
                b2.list_file_names("B1")

        assert route.call_count == 2

    def test_read_timeout_exhausts_budget_sync(self, mock_env_clear, saved_session):
        with respx.mock:
            route = respx.post(api("list_file_names")).mock(
                side_effect=[httpx.ReadTimeout("read timed out"), httpx.ReadTimeout("read timed out")]
            )
            with B2Client(timeout=5, retries=1, retry_delay=0.001) as b2:
                b2.save_session(saved_session)
                with pytest.raises(B2TimeoutError) as exc_info:
                    b2.list_file_names("B1")

        assert route.call_count == 2
        assert exc_info.value.timeout == 5
        assert exc_info.value.retry_exhausted is True

    @pytest.mark.asyncio
    async def test_slow_response_times_out_async(self, mock_env_clear, saved_session):
        async def stall(request):
            await anyio.sleep(1)
            return httpx.Response(200, json={"files": []})

        with respx.mock:
            route = respx.post(api("list_file_names")).mock(side_effect=stall)
            async with AsyncB2Client(timeout=0.05, retries=1, retry_delay=0.001) as b2:
                b2.save_session(saved_session)
                with anyio.fail_after(5):
                    with pytest.raises(B2TimeoutError) as exc_info:
                        await b2.list_file_names("B1")

        assert route.call_count == 2
        assert exc_info.value.timeout == 0.05
        assert exc_info.value.retry_exhausted is True


class TestCancellation:
    def test_cancel_before_first_attempt_sync(self, mock_env_clear, b2_mock, mock_credentials):
        token = CancelToken()
        token.cancel()
        with B2Client(**mock_credentials) as b2:
            with pytest.raises(B2CancelledError):
                b2.list_buckets(cancel=token)
        assert not b2_mock.calls

    @pytest.mark.asyncio
    async def test_cancel_before_first_attempt_async(self, mock_env_clear, b2_mock, mock_credentials):
        token = CancelToken()
        token.cancel("stop")
        async with AsyncB2Client(**mock_credentials) as b2:
            with pytest.raises(B2CancelledError, match="stop"):
                await b2.list_buckets(cancel=token)
        assert not b2_mock.calls


class TestClientOptions:
    def test_static_headers_are_sent(self, mock_env_clear, b2_mock, saved_session):
        with B2Client(headers={"X-App-Name": "my-app"}) as b2:
            b2.save_session(saved_session)
            b2.list_buckets()

        assert b2_mock.calls[0].request.headers["X-App-Name"] == "my-app"

    def test_caller_owned_client(self, mock_env_clear, b2_mock, saved_session):
        http_client = httpx.Client()
        b2 = B2Client(client=http_client)
        b2.save_session(saved_session)
        b2.list_buckets()
        b2.close()
        assert http_client.is_closed

    def test_unknown_option(self, mock_env_clear):
        with pytest.raises(TypeError):
            B2Client(colour="blue")
