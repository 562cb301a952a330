import json

from b2client.buckets import BUCKET_ID_ERRORS
from b2client.errors import (
    B2AuthError,
    B2HTTPError,
    B2InvalidBucketIdError,
    B2NotAllowedError,
    B2TimeoutError,
    B2ValidationError,
    ErrorRule,
    translate_error,
)
from b2client.keys import DELETE_KEY_ERRORS


def test_kinds():
    assert B2ValidationError("x").kind == "validation-error"
    assert B2AuthError("x").kind == "auth-error"
    assert B2TimeoutError(2.0).kind == "timeout"
    assert isinstance(B2ValidationError("x"), ValueError)


def test_description():
    error = B2HTTPError(
        "try later",
        status=503,
        status_text="Service Unavailable",
        code="service_unavailable",
    )
    assert error.description == "HTTP 503 Service Unavailable (service_unavailable): try later"
    assert B2ValidationError("bad input").description == "validation-error: bad input"


def test_to_dict_is_json_serializable():
    error = B2TimeoutError(30.0)
    error.retry_attempts = 4
    error.retry_exhausted = True

    data = json.loads(json.dumps(error.to_dict()))

    assert data["name"] == "B2TimeoutError"
    assert data["kind"] == "timeout"
    assert data["retryable"] is True
    assert data["retryAttempts"] == 4
    assert data["retryExhausted"] is True
    assert data["timeout"] == 30.0


def test_translate_bucket_id_error():
    error = B2HTTPError("bad bucket", status=400, code="invalid_bucket_id")
    error.retry_attempts = 1

    translated = translate_error(error, BUCKET_ID_ERRORS, bucket_id="B1")

    assert isinstance(translated, B2InvalidBucketIdError)
    assert translated.message == "Invalid bucket ID: B1"
    assert translated.code == "invalid_bucket_id"
    assert translated.status == 400
    assert translated.retry_attempts == 1


def test_translate_overrides_code():
    error = B2HTTPError("key not found", status=400, code="bad_request")
    translated = translate_error(error, DELETE_KEY_ERRORS)
    assert isinstance(translated, B2NotAllowedError)
    assert translated.code == "not_allowed"


def test_translate_includes_service_message():
    rules = (ErrorRule(B2NotAllowedError, "Upload not allowed: {message}", None, "not_allowed"),)
    error = B2HTTPError("cap exceeded", status=403, code="not_allowed")
    assert translate_error(error, rules).message == "Upload not allowed: cap exceeded"


def test_unmatched_and_auth_errors_pass_through():
    unmatched = B2HTTPError("boom", status=500, code="internal_error")
    auth = B2AuthError("expired", status=401, code="expired_auth_token")

    assert translate_error(unmatched, BUCKET_ID_ERRORS, bucket_id="B1") is unmatched
    assert translate_error(auth, DELETE_KEY_ERRORS) is auth
