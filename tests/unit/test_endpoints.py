import pytest

from b2client.endpoints import (
    api_url,
    authorize_url,
    decode_file_name,
    download_by_id_url,
    download_by_name_url,
    encode_file_name,
)
from b2client.errors import B2AuthError
from b2client.types import Session

SESSION = Session(
    authorization_token="T",
    api_url="https://api.example.test/",
    download_url="https://f.example.test",
    account_id="acc",
    authenticated=True,
)


@pytest.mark.parametrize(
    "name",
    [
        "plain.txt",
        "dir/sub dir/file name.txt",
        "ünïcödé/файл.bin",
        "weird+chars&more=%20;#?.txt",
        "emoji-😀.png",
        "trailing/",
    ],
)
def test_file_name_encoding_round_trips(name):
    assert decode_file_name(encode_file_name(name)) == name


def test_encoding_keeps_slashes_and_escapes_spaces():
    assert encode_file_name("a b/c+d") == "a%20b/c%2Bd"
    assert encode_file_name("it's (fine)!") == "it's%20(fine)!"


def test_authorize_url_uses_v4():
    assert authorize_url("https://api.backblazeb2.com") == (
        "https://api.backblazeb2.com/b2api/v4/b2_authorize_account"
    )


def test_api_url_joins_without_double_slash():
    assert api_url(SESSION, "list_buckets") == "https://api.example.test/b2api/v2/b2_list_buckets"


def test_api_url_rejects_unknown_operation():
    with pytest.raises(ValueError):
        api_url(SESSION, "b2_make_coffee")


def test_api_url_requires_session():
    with pytest.raises(B2AuthError):
        api_url(Session(), "list_buckets")


def test_download_urls():
    assert download_by_name_url(SESSION, "my-bucket", "a b/c.txt") == (
        "https://f.example.test/file/my-bucket/a%20b/c.txt"
    )
    assert download_by_id_url(SESSION, "4_z+id") == (
        "https://api.example.test/b2api/v2/b2_download_file_by_id?fileId=4_z%2Bid"
    )
