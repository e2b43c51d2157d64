import json

import httpx
import pytest

from gateway_core.domain.exceptions import (
    AuthError,
    GatewayError,
    InvalidInputError,
    PermissionDeniedError,
    ProviderProtocolError,
    UnavailableError,
)
from gateway_core.providers.classifier import classify_status, classify_transport_error, raise_for_status


@pytest.mark.parametrize(
    "status, cls, http_status",
    [
        (401, AuthError, 401),
        (403, PermissionDeniedError, 403),
        (404, ProviderProtocolError, 500),
        (422, ProviderProtocolError, 500),
        (429, UnavailableError, 500),
        (503, UnavailableError, 500),
    ],
)
def test_classify_status(status, cls, http_status):
    err = classify_status(status, "upstream said: token abc123 invalid")
    assert isinstance(err, cls)
    assert err.http_status == http_status
    assert err.cause["status"] == status
    # 原始响应只进入 cause，不进入用户可见信息
    assert "abc123" not in err.message
    assert "abc123" in err.cause["detail"]


def test_classify_status_success_is_none():
    assert classify_status(200) is None
    raise_for_status(201)


def test_classify_transport_errors():
    request = httpx.Request("GET", "https://example.test")
    assert isinstance(classify_transport_error(httpx.ConnectError("refused", request=request)), UnavailableError)
    timeout = classify_transport_error(httpx.ReadTimeout("slow", request=request))
    assert isinstance(timeout, UnavailableError)
    assert timeout.code == "TIMEOUT"
    try:
        json.loads("{oops")
    except json.JSONDecodeError as e:
        assert isinstance(classify_transport_error(e), ProviderProtocolError)


def test_invalid_url_is_invalid_input():
    err = classify_transport_error(httpx.InvalidURL("Invalid non-printable ASCII character in URL"))
    assert isinstance(err, InvalidInputError)
    assert err.http_status == 400
    assert err.code == "BAD_URL"


def test_classify_passes_gateway_errors_through():
    original = AuthError("nope")
    assert classify_transport_error(original) is original


def test_gateway_error_payload_and_repr():
    err = UnavailableError("Provider is unreachable", cause={"status": None, "detail": "boom"})
    assert err.to_payload() == {"error": "Provider is unreachable"}
    assert err.code == "UNAVAILABLE"
    assert "Unavailable" in repr(err)
    assert isinstance(err, GatewayError)
