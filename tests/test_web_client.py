"""
Tests for HTTP response classification in the web client.
"""

import json

import httpx
import pytest

from cipherise.common.errors import RequestTimeoutError, SessionExpiredError, TransportError
from cipherise.web_client import WebClient


def _response(status: int, body=None, text=None) -> httpx.Response:
    if text is None:
        text = json.dumps(body) if body is not None else ""
    return httpx.Response(status, text=text)


@pytest.mark.parametrize("status", [408, 502, 504])
def test_proxy_statuses_are_timeouts(status) -> None:
    with pytest.raises(RequestTimeoutError):
        WebClient.classify(_response(status, {"ok": True}))


def test_empty_body_is_timeout_unless_no_content() -> None:
    with pytest.raises(RequestTimeoutError):
        WebClient.classify(_response(200))
    assert WebClient.classify(_response(204)) == {}


def test_request_timeout_message_is_timeout() -> None:
    with pytest.raises(RequestTimeoutError):
        WebClient.classify(_response(200, {"error_message": "Request timeout"}))


@pytest.mark.parametrize("message", ["Invalid Session", "the session has EXPIRED SESSION state"])
def test_session_messages_are_session_expiry(message) -> None:
    with pytest.raises(SessionExpiredError):
        WebClient.classify(_response(200, {"error_message": message}))


def test_other_messages_are_transport_errors() -> None:
    with pytest.raises(TransportError, match="user not found"):
        WebClient.classify(_response(400, {"error_message": "user not found"}))


def test_invalid_json_is_transport_error() -> None:
    with pytest.raises(TransportError, match="Invalid response"):
        WebClient.classify(_response(200, text="<html>"))


def test_success_body_is_returned() -> None:
    assert WebClient.classify(_response(200, {"serviceId": "abc"})) == {"serviceId": "abc"}


@pytest.mark.asyncio
async def test_requests_carry_session_header_and_json() -> None:
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"ok": True})

    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    web = WebClient("https://cipherise.example.com//", http_client=http)
    assert web.url == "https://cipherise.example.com/"

    assert await web.post_uri("sp/revoke-service", {"a": 1}, "session-1") == {"ok": True}
    assert await web.get_uri("info", None) == {"ok": True}
    await http.aclose()

    assert str(seen[0].url) == "https://cipherise.example.com/sp/revoke-service"
    assert seen[0].headers["SessionId"] == "session-1"
    assert json.loads(seen[0].content) == {"a": 1}
    assert "SessionId" not in seen[1].headers


@pytest.mark.asyncio
async def test_network_timeout_is_classified() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("slow", request=request)

    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    web = WebClient("https://cipherise.example.com", http_client=http)
    with pytest.raises(RequestTimeoutError):
        await web.get_uri("info", None)

    await http.aclose()


@pytest.mark.asyncio
async def test_network_failure_is_transport_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    web = WebClient("https://cipherise.example.com", http_client=http)
    with pytest.raises(TransportError):
        await web.get_uri("info", None)

    await http.aclose()


def test_empty_url_is_rejected() -> None:
    with pytest.raises(ValueError):
        WebClient("   ")
