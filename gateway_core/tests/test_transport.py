import json
import logging

import httpx
import pytest

from gateway_core.domain.exceptions import (
    AuthError,
    ConfigurationError,
    InvalidInputError,
    ProviderProtocolError,
    UnavailableError,
)
from gateway_core.providers import create_transport
from gateway_core.providers.transport import TransportClient, redact_path


class SettingsStub:
    playlab_api_key = "secret-key-123"
    playlab_project_id = "proj-1"
    playlab_base_url = "https://example.test/api/v1"
    http_timeout = 1.0


class MissingKeySettings(SettingsStub):
    playlab_api_key = None


class MissingProjectSettings(SettingsStub):
    playlab_project_id = ""


def _client(handler, cfg=None):
    return TransportClient(cfg or SettingsStub(), transport=httpx.MockTransport(handler))


def test_post_attaches_credential_and_project_prefix():
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json={"conversation": {"id": "c1"}})

    with _client(handler) as tc:
        resp = tc.post("/conversations", {"metadata": {}})
    assert resp.status == 200
    assert resp.json_body == {"conversation": {"id": "c1"}}
    req = seen[0]
    assert str(req.url) == "https://example.test/api/v1/projects/proj-1/conversations"
    assert req.headers["authorization"] == "Bearer secret-key-123"
    assert json.loads(req.content) == {"metadata": {}}


def test_get_parses_json():
    def handler(request):
        assert request.method == "GET"
        return httpx.Response(200, json={"messages": []})

    assert _client(handler).get("/conversations/c1/messages").json_body == {"messages": []}


@pytest.mark.parametrize("cfg", [MissingKeySettings(), MissingProjectSettings()])
def test_missing_configuration_fails_fast_without_network(cfg):
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(200, json={})

    tc = _client(handler, cfg)
    assert not tc.configured
    with pytest.raises(ConfigurationError) as exc:
        tc.post("/conversations", {})
    assert exc.value.http_status == 500
    with pytest.raises(ConfigurationError):
        tc.get("/conversations/c1/messages")
    with pytest.raises(ConfigurationError):
        with tc.post_stream("/conversations/c1/messages", {}):
            pass
    assert calls == []


def test_http_errors_are_classified():
    def handler(request):
        return httpx.Response(401, text="invalid token secret-key-123")

    with pytest.raises(AuthError) as exc:
        _client(handler).post("/conversations", {})
    assert exc.value.cause["status"] == 401
    assert "secret" not in exc.value.message


def test_network_failure_is_unavailable():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(UnavailableError):
        _client(handler).post("/conversations", {})


def test_invalid_json_is_protocol_error():
    def handler(request):
        return httpx.Response(200, content=b"<html>oops</html>")

    with pytest.raises(ProviderProtocolError):
        _client(handler).get("/conversations/c1/messages")


def test_post_stream_yields_bytes_and_releases_connection():
    chunks = [b'data: {"delta": "a"}\n', b'data: {"delta": "b"}\n']

    def handler(request):
        return httpx.Response(200, content=iter(chunks))

    tc = _client(handler)
    with tc.post_stream("/conversations/c1/messages", {"input": {"message": "hi"}}) as resp:
        assert resp.status == 200
        assert b"".join(resp.iter_bytes()) == b"".join(chunks)
        stream = resp
    assert stream.is_closed


def test_post_stream_error_status():
    def handler(request):
        return httpx.Response(404, text="no such conversation")

    tc = _client(handler)
    with pytest.raises(ProviderProtocolError) as exc:
        with tc.post_stream("/conversations/missing/messages", {}):
            pass
    assert exc.value.cause["status"] == 404


def test_post_stream_mid_stream_failure():
    def body():
        yield b'data: {"delta": "a"}\n'
        raise httpx.ReadError("reset")

    def handler(request):
        return httpx.Response(200, content=body())

    tc = _client(handler)
    with pytest.raises(UnavailableError):
        with tc.post_stream("/conversations/c1/messages", {}) as resp:
            list(resp.iter_bytes())


def test_logging_hides_credential_and_conversation_id(caplog):
    def handler(request):
        return httpx.Response(200, json={"messages": []})

    caplog.set_level(logging.INFO, logger="gateway_core")
    _client(handler).get("/conversations/c-secret-42/messages")
    records = [r for r in caplog.records if r.getMessage() == "provider request"]
    assert records
    extra = records[-1].extra
    assert extra["path"] == "/conversations/<redacted>/messages"
    assert extra["has_body"] is False
    dump = " ".join(str(r.__dict__) for r in caplog.records)
    assert "secret-key-123" not in dump
    assert "c-secret-42" not in dump


def test_redact_path():
    assert redact_path("/conversations") == "/conversations"
    assert redact_path("/conversations/abc/messages") == "/conversations/<redacted>/messages"


def test_create_transport_factory():
    tc = create_transport(SettingsStub())
    assert isinstance(tc, TransportClient)
    assert tc.name == "playlab"
    tc.close()


def test_unbuildable_url_is_invalid_input_and_not_sent(caplog):
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(200, json={"messages": []})

    caplog.set_level(logging.INFO, logger="gateway_core")
    tc = _client(handler)
    with pytest.raises(InvalidInputError):
        tc.get("/conversations/c1\x00/messages")
    with pytest.raises(InvalidInputError):
        with tc.post_stream("/conversations/c1\n/messages", {}):
            pass
    assert calls == []
    assert not [r for r in caplog.records if r.getMessage() == "provider request"]
