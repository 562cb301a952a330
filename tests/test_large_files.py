"""Tests for the large-file protocol and the concurrent part pipeline."""

import io
import json
import threading

import anyio
import httpx
import pytest
import respx

from b2client import AsyncB2Client, B2Client, CancelToken
from b2client.errors import B2CancelledError, B2Error, B2HTTPError, B2ValidationError
from b2client.large_files import ordered_part_sha1s
from b2client.types import LargeFileHandle
from b2client.utils import sha1_hex

from conftest import API_URL, DOWNLOAD_URL, api

PART_URL = "https://pod-000-1001-00.backblaze.test/b2api/v2/b2_upload_part/L1/c001"
DATA = b"aaaaabbbbbccc"
PARTS = [b"aaaaa", b"bbbbb", b"ccc"]
SHA1S = [sha1_hex(part) for part in PARTS]

# Tiny part sizes keep the payloads small.
SMALL_PART_SESSION = {
    "authorizationToken": "T",
    "apiUrl": API_URL,
    "downloadUrl": DOWNLOAD_URL,
    "accountId": "acc",
    "recommendedPartSize": 5,
    "absoluteMinimumPartSize": 5,
}


def _body(call) -> dict:
    return json.loads(call.request.content)


def _part_response(request: httpx.Request) -> httpx.Response:
    return httpx.Response(
        200,
        json={
            "fileId": "L1",
            "partNumber": int(request.headers["X-Bz-Part-Number"]),
            "contentSha1": request.headers["X-Bz-Content-Sha1"],
            "contentLength": len(request.content),
        },
    )


@pytest.fixture
def large_file_mock():
    with respx.mock(assert_all_called=False) as mock:
        mock.post(api("start_large_file"), name="start").mock(
            return_value=httpx.Response(200, json={"fileId": "L1", "fileName": "big.bin"})
        )
        mock.post(api("get_upload_part_url"), name="part_url").mock(
            return_value=httpx.Response(
                200, json={"fileId": "L1", "uploadUrl": PART_URL, "authorizationToken": "PT"}
            )
        )
        mock.post(PART_URL, name="part").mock(side_effect=_part_response)
        mock.post(api("finish_large_file"), name="finish").mock(
            return_value=httpx.Response(200, json={"fileId": "L1", "fileName": "big.bin", "action": "upload"})
        )
        mock.post(api("cancel_large_file"), name="cancel").mock(
            return_value=httpx.Response(200, json={"fileId": "L1"})
        )
        mock.post(api("list_parts"), name="list_parts").mock(
            return_value=httpx.Response(200, json={"parts": [], "nextPartNumber": None})
        )
        yield mock


@pytest.fixture
def client(mock_env_clear):
    with B2Client(retry_delay=0.001) as b2:
        b2.save_session(SMALL_PART_SESSION)
        yield b2


def test_ordered_part_sha1s_sorts_by_part_number():
    handle = LargeFileHandle("L1", "big.bin")
    # completion order 2, 1, 3
    handle.part_sha1s[2] = SHA1S[1]
    handle.part_sha1s[1] = SHA1S[0]
    handle.part_sha1s[3] = SHA1S[2]

    assert ordered_part_sha1s(handle) == SHA1S


def test_ordered_part_sha1s_rejects_gaps():
    handle = LargeFileHandle("L1", "big.bin", {1: SHA1S[0], 3: SHA1S[2]})
    with pytest.raises(B2Error, match="missing parts"):
        ordered_part_sha1s(handle)
    with pytest.raises(B2ValidationError):
        ordered_part_sha1s(LargeFileHandle("L1", "big.bin"))


class TestManualProtocol:
    def test_start_upload_finish(self, client, large_file_mock):
        started = client.start_large_file("B1", "big.bin", "application/zip", file_info={"k": "v"})
        slot = client.get_upload_part_url(started.data["fileId"]).data
        for number, part in enumerate(PARTS, start=1):
            client.upload_part(slot, part_number=number, data=part)
        client.finish_large_file("L1", SHA1S)

        assert _body(large_file_mock["start"].calls[0]) == {
            "bucketId": "B1",
            "fileName": "big.bin",
            "contentType": "application/zip",
            "fileInfo": {"k": "v"},
        }
        part_calls = large_file_mock["part"].calls
        assert [call.request.headers["X-Bz-Part-Number"] for call in part_calls] == ["1", "2", "3"]
        assert all(call.request.headers["Authorization"] == "PT" for call in part_calls)
        assert _body(large_file_mock["finish"].calls[0]) == {"fileId": "L1", "partSha1Array": SHA1S}

    def test_upload_part_validates_number(self, client):
        with pytest.raises(B2ValidationError):
            client.upload_part(PART_URL, "PT", 0, b"x")
        with pytest.raises(B2ValidationError):
            client.upload_part(PART_URL, "PT", 10001, b"x")

    def test_list_parts_and_unfinished(self, client, large_file_mock):
        unfinished = large_file_mock.post(api("list_unfinished_large_files")).mock(
            return_value=httpx.Response(200, json={"files": [], "nextFileId": None})
        )

        client.list_parts("L1", start_part_number=2, max_part_count=100)
        client.list_unfinished_large_files("B1", max_file_count=10)

        assert _body(large_file_mock["list_parts"].calls[0]) == {
            "fileId": "L1",
            "startPartNumber": 2,
            "maxPartCount": 100,
        }
        assert _body(unfinished.calls[0]) == {"bucketId": "B1", "maxFileCount": 10}


class TestUploadLargeFileSync:
    def test_parts_finish_in_order(self, client, large_file_mock):
        events = []

        response = client.upload_large_file(
            "B1",
            "big.bin",
            DATA,
            part_size=5,
            max_concurrency=3,
            on_upload_progress=events.append,
        )

        assert response.data["fileId"] == "L1"
        assert large_file_mock["part"].call_count == 3
        assert _body(large_file_mock["finish"].calls[0])["partSha1Array"] == SHA1S
        assert not large_file_mock["cancel"].called

        loaded = [event.loaded for event in events]
        assert loaded == sorted(loaded)
        assert events[-1].loaded == events[-1].total == len(DATA)

    def test_file_object_source(self, client, large_file_mock):
        client.upload_large_file("B1", "big.bin", io.BytesIO(DATA), max_concurrency=2)

        assert _body(large_file_mock["finish"].calls[0])["partSha1Array"] == SHA1S

    def test_part_size_below_minimum(self, client, large_file_mock):
        with pytest.raises(B2ValidationError):
            client.upload_large_file("B1", "big.bin", DATA, part_size=4)
        assert not large_file_mock.calls

    def test_empty_data(self, client, large_file_mock):
        with pytest.raises(B2ValidationError):
            client.upload_large_file("B1", "big.bin", b"")
        assert not large_file_mock.calls

    def test_resume_skips_matching_parts(self, client, large_file_mock):
        large_file_mock["list_parts"].mock(
            return_value=httpx.Response(
                200,
                json={
                    "parts": [
                        {"partNumber": 1, "contentSha1": SHA1S[0]},
                        {"partNumber": 2, "contentSha1": "0" * 40},
                    ],
                    "nextPartNumber": None,
                },
            )
        )

        client.upload_large_file("B1", "big.bin", DATA, large_file_id="L1", max_concurrency=1)

        assert not large_file_mock["start"].called
        sent = [call.request.headers["X-Bz-Part-Number"] for call in large_file_mock["part"].calls]
        assert sent == ["2", "3"]
        assert _body(large_file_mock["finish"].calls[0])["partSha1Array"] == SHA1S

    def test_failed_part_cancels_large_file(self, client, large_file_mock):
        large_file_mock["part"].mock(
            side_effect=None,
            return_value=httpx.Response(
                400, json={"status": 400, "code": "bad_request", "message": "checksum did not match"}
            ),
        )

        with pytest.raises(B2HTTPError, match="checksum"):
            client.upload_large_file("B1", "big.bin", DATA, max_concurrency=1)

        assert large_file_mock["cancel"].called
        assert _body(large_file_mock["cancel"].calls[0]) == {"fileId": "L1"}
        assert not large_file_mock["finish"].called

    def test_transient_part_failure_gets_new_slot(self, client, large_file_mock):
        attempts = []
        lock = threading.Lock()

        def flaky(request):
            with lock:
                attempts.append(request.headers["X-Bz-Part-Number"])
                first = len(attempts) == 1
            if first:
                return httpx.Response(503, json={"status": 503, "code": "service_unavailable", "message": "busy"})
            return _part_response(request)

        large_file_mock["part"].mock(side_effect=flaky)

        client.upload_large_file("B1", "big.bin", DATA, max_concurrency=1)

        assert len(attempts) == 4
        # initial slot plus a replacement after the 503
        assert large_file_mock["part_url"].call_count == 2
        assert _body(large_file_mock["finish"].calls[0])["partSha1Array"] == SHA1S

    def test_cancel_before_start(self, client, large_file_mock):
        token = CancelToken()
        token.cancel()

        with pytest.raises(B2CancelledError):
            client.upload_large_file("B1", "big.bin", DATA, cancel=token)
        assert not large_file_mock.calls

    def test_part_url_failures_share_one_retry_budget(self, mock_env_clear, large_file_mock):
        large_file_mock["part_url"].mock(
            return_value=httpx.Response(
                503, json={"status": 503, "code": "service_unavailable", "message": "busy"}
            )
        )

        with B2Client(retries=3, retry_delay=0.001) as b2:
            b2.save_session(SMALL_PART_SESSION)
            with pytest.raises(B2HTTPError) as exc_info:
                b2.upload_large_file("B1", "big.bin", DATA, max_concurrency=1)

        assert exc_info.value.status == 503
        assert exc_info.value.retry_exhausted is True
        # one initial attempt plus three retries
        assert large_file_mock["part_url"].call_count == 4
        assert not large_file_mock["part"].called
        assert large_file_mock["cancel"].called

    def test_part_size_above_maximum_checked_before_authorizing(self, mock_env_clear):
        with respx.mock:
            with B2Client(application_key_id="k", application_key="s") as b2:
                with pytest.raises(B2ValidationError, match="part_size"):
                    b2.upload_large_file("B1", "big.bin", DATA, part_size=5 * 1024**3 + 1)
            assert not respx.calls


class TestUploadLargeFileAsync:
    @pytest.mark.asyncio
    async def test_parts_finish_in_order_despite_completion_order(self, mock_env_clear, large_file_mock):
        # part 2 finishes first, then 1, then 3
        delays = {1: 0.02, 2: 0.0, 3: 0.04}
        completed = []

        async def slow_parts(request):
            number = int(request.headers["X-Bz-Part-Number"])
            await anyio.sleep(delays[number])
            completed.append(number)
            return _part_response(request)

        large_file_mock["part"].mock(side_effect=slow_parts)

        async with AsyncB2Client() as b2:
            b2.save_session(SMALL_PART_SESSION)
            response = await b2.upload_large_file("B1", "big.bin", DATA, max_concurrency=3)

        assert response.status == 200
        assert completed == [2, 1, 3]
        assert _body(large_file_mock["finish"].calls[0])["partSha1Array"] == SHA1S

    @pytest.mark.asyncio
    async def test_async_iterable_source(self, mock_env_clear, large_file_mock):
        async def chunks():
            for piece in (b"aaa", b"aabbb", b"bbccc"):
                yield piece

        async with AsyncB2Client() as b2:
            b2.save_session(SMALL_PART_SESSION)
            await b2.upload_large_file("B1", "big.bin", chunks(), part_size=5)

        assert _body(large_file_mock["finish"].calls[0])["partSha1Array"] == SHA1S

    @pytest.mark.asyncio
    async def test_cancel_mid_upload_abandons_large_file(self, mock_env_clear, large_file_mock):
        token = CancelToken()

        async def cancel_on_first_part(request):
            token.cancel("user abort")
            await anyio.sleep(1)
            return _part_response(request)

        large_file_mock["part"].mock(side_effect=cancel_on_first_part)

        async with AsyncB2Client() as b2:
            b2.save_session(SMALL_PART_SESSION)
            with anyio.fail_after(5):
                with pytest.raises(B2CancelledError):
                    await b2.upload_large_file("B1", "big.bin", DATA, max_concurrency=2, cancel=token)

        assert large_file_mock["cancel"].called
        assert not large_file_mock["finish"].called
