"""Boundary tests for input validation."""

import pytest

from b2client.errors import B2ValidationError
from b2client.validation import (
    validate_bucket_name,
    validate_capabilities,
    validate_content_type,
    validate_credentials,
    validate_download_duration,
    validate_file_info,
    validate_file_name,
    validate_part_number,
    validate_part_size,
    validate_sha1,
    validate_sha1_array,
)

SHA1 = "0a4d55a8d778e5022fab701977c5d840bbc486d0"


class TestFileName:
    @pytest.mark.parametrize("name", ["a", "a" * 1024, "dir/sub/file.txt", "ünïcode.txt"])
    def test_accepted(self, name):
        assert validate_file_name(name) == name

    @pytest.mark.parametrize("name", ["", "a" * 1025, "/leading", "bad\x00name", "tab\there"])
    def test_rejected(self, name):
        with pytest.raises(B2ValidationError):
            validate_file_name(name)

    def test_length_is_measured_in_utf8_bytes(self):
        # 512 two-byte characters is exactly the limit
        assert validate_file_name("é" * 512)
        with pytest.raises(B2ValidationError):
            validate_file_name("é" * 513)

    def test_non_string_rejected(self):
        with pytest.raises(B2ValidationError):
            validate_file_name(None)


class TestPartLimits:
    @pytest.mark.parametrize("number", [1, 10000])
    def test_part_number_accepted(self, number):
        assert validate_part_number(number) == number

    @pytest.mark.parametrize("number", [0, 10001, -1, True, "3"])
    def test_part_number_rejected(self, number):
        with pytest.raises(B2ValidationError):
            validate_part_number(number)

    def test_part_size_limit(self):
        assert validate_part_size(5 * 1024**3) == 5 * 1024**3
        with pytest.raises(B2ValidationError):
            validate_part_size(5 * 1024**3 + 1)


class TestDownloadDuration:
    @pytest.mark.parametrize("seconds", [1, 604800])
    def test_accepted(self, seconds):
        assert validate_download_duration(seconds) == seconds

    @pytest.mark.parametrize("seconds", [0, 604801])
    def test_rejected(self, seconds):
        with pytest.raises(B2ValidationError):
            validate_download_duration(seconds)


class TestBucketName:
    @pytest.mark.parametrize("name", ["abcdef", "my-bucket-01", "A" * 50])
    def test_accepted(self, name):
        assert validate_bucket_name(name) == name

    @pytest.mark.parametrize("name", ["short", "A" * 51, "-bucket", "bucket-", "my--bucket", "b2_bucket"])
    def test_rejected(self, name):
        with pytest.raises(B2ValidationError):
            validate_bucket_name(name)


class TestSha1:
    def test_uppercase_is_normalized(self):
        assert validate_sha1(SHA1.upper()) == SHA1

    @pytest.mark.parametrize("value", ["", "xyz", SHA1[:-1], SHA1 + "0"])
    def test_rejected(self, value):
        with pytest.raises(B2ValidationError):
            validate_sha1(value)

    def test_array_must_not_be_empty(self):
        with pytest.raises(B2ValidationError):
            validate_sha1_array([])

    def test_array_reports_offending_index(self):
        with pytest.raises(B2ValidationError, match=r"part_sha1_array\[1\]"):
            validate_sha1_array([SHA1, "nope"])


class TestMisc:
    def test_capabilities(self):
        assert validate_capabilities(["listBuckets", "readFiles"]) == ["listBuckets", "readFiles"]
        with pytest.raises(B2ValidationError, match="Invalid capability"):
            validate_capabilities(["flyToTheMoon"])
        with pytest.raises(B2ValidationError, match="Duplicate"):
            validate_capabilities(["readFiles", "readFiles"])
        with pytest.raises(B2ValidationError):
            validate_capabilities([])

    def test_content_type(self):
        assert validate_content_type("text/plain; charset=utf-8")
        assert validate_content_type("b2/x-auto")
        with pytest.raises(B2ValidationError):
            validate_content_type("not a type")

    def test_file_info_values_must_be_strings(self):
        assert validate_file_info({"author": "me"}) == {"author": "me"}
        with pytest.raises(B2ValidationError):
            validate_file_info({"size": 3})

    def test_credentials_message_never_contains_secret(self):
        with pytest.raises(B2ValidationError) as exc_info:
            validate_credentials("", "super-secret")
        assert "super-secret" not in str(exc_info.value)
