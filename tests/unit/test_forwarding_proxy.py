"""Unit tests for the certificate-status forwarding proxy.

Tests the proxy through the FastAPI test client with an injected record
source and an httpx.MockTransport standing in for the origin.
"""

from __future__ import annotations

import gzip
from typing import Any

import httpx
import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from mtls_edge.client_auth import ClientAuthRecord, StaticClientAuthSource
from mtls_edge.main import create_app
from mtls_edge.routing.proxy import build_target_url
from mtls_edge.settings import EdgeSettings


def _origin_response(status: int, body: bytes = b"", headers=None) -> httpx.Response:
    """Origin response whose body is still unread, as a real transport returns it."""
    return httpx.Response(status, headers=headers, stream=httpx.ByteStream(body))


class RecordingOrigin:
    """MockTransport handler that records every request it receives."""

    def __init__(self, respond=None):
        self.requests: list[httpx.Request] = []
        self.bodies: list[bytes] = []
        self._respond = respond or (lambda request: _origin_response(200, b"origin ok"))

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        self.bodies.append(request.content)
        return self._respond(request)

    @property
    def last(self) -> httpx.Request:
        return self.requests[-1]


def _create_test_app(
    origin: Any,
    record: ClientAuthRecord | None = None,
    settings: EdgeSettings | None = None,
) -> FastAPI:
    http_client = httpx.AsyncClient(
        transport=httpx.MockTransport(origin), follow_redirects=True,
    )
    return create_app(
        settings or EdgeSettings(disconnect_poll_interval=0.01),
        http_client=http_client,
        client_auth_source=StaticClientAuthSource(record),
    )


def _client_headers(request: httpx.Request) -> dict[str, list[str]]:
    names = {k for k in request.headers.keys() if k.startswith("x-ssl-client-")}
    return {name: request.headers.get_list(name) for name in sorted(names)}


VERIFIED = ClientAuthRecord.from_mapping({
    "certPresented": "1",
    "certVerified": "SUCCESS",
    "certSubjectDN": "CN=alice",
})


# ── Test: header injection ────────────────────────────────────────


def test_no_record_forwards_verify_none_only():
    origin = RecordingOrigin()
    client = TestClient(_create_test_app(origin, record=None))

    resp = client.get("/orders")

    assert resp.status_code == 200
    assert _client_headers(origin.last) == {"x-ssl-client-verify": ["NONE"]}


def test_verified_record_forwards_success_and_subject():
    origin = RecordingOrigin()
    client = TestClient(_create_test_app(origin, record=VERIFIED))

    client.get("/orders")

    assert _client_headers(origin.last) == {
        "x-ssl-client-dn": ["CN=alice"],
        "x-ssl-client-verify": ["SUCCESS"],
    }


def test_failed_record_forwards_failure_reason():
    origin = RecordingOrigin()
    record = ClientAuthRecord(cert_presented="1", cert_verified="FAILED:expired")
    client = TestClient(_create_test_app(origin, record=record))

    client.get("/orders")

    assert origin.last.headers.get_list("x-ssl-client-verify") == ["FAILED:expired"]


def test_spoofed_verify_header_is_replaced():
    origin = RecordingOrigin()
    client = TestClient(_create_test_app(origin, record=None))

    client.get(
        "/orders",
        headers=[("X-SSL-Client-Verify", "SUCCESS"), ("x-ssl-client-verify", "SUCCESS")],
    )

    assert origin.last.headers.get_list("x-ssl-client-verify") == ["NONE"]


def test_spoofed_detail_header_stripped_when_configured():
    origin = RecordingOrigin()
    settings = EdgeSettings(strip_inbound_client_headers=True, disconnect_poll_interval=0.01)
    client = TestClient(_create_test_app(origin, record=None, settings=settings))

    client.get("/orders", headers={"X-SSL-Client-DN": "CN=mallory"})

    assert _client_headers(origin.last) == {"x-ssl-client-verify": ["NONE"]}


def test_other_inbound_headers_pass_through():
    origin = RecordingOrigin()
    client = TestClient(_create_test_app(origin, record=VERIFIED))

    client.get(
        "/orders",
        headers={
            "Authorization": "Bearer abc",
            "X-Forwarded-For": "203.0.113.9",
            "CF-Ray": "7d1f2a3b4c5d6e7f-AMS",
            "X-Request-ID": "req-12345678",
        },
    )

    forwarded = origin.last.headers
    assert forwarded["authorization"] == "Bearer abc"
    assert forwarded["x-forwarded-for"] == "203.0.113.9"
    assert forwarded["cf-ray"] == "7d1f2a3b4c5d6e7f-AMS"
    assert forwarded["x-request-id"] == "req-12345678"


def test_request_id_not_injected_into_outbound_request():
    origin = RecordingOrigin()
    client = TestClient(_create_test_app(origin))

    client.get("/orders")

    assert "x-request-id" not in origin.last.headers


# ── Test: method, URL, body ───────────────────────────────────────


@pytest.mark.parametrize("method", ["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"])
def test_method_preserved(method):
    origin = RecordingOrigin()
    client = TestClient(_create_test_app(origin))

    resp = client.request(method, "/resource")

    assert resp.status_code == 200
    assert origin.last.method == method


def test_head_forwarded():
    origin = RecordingOrigin(lambda r: _origin_response(200, headers={"X-Origin": "yes"}))
    client = TestClient(_create_test_app(origin))

    resp = client.head("/resource")

    assert origin.last.method == "HEAD"
    assert resp.headers["x-origin"] == "yes"


def test_same_url_including_query():
    origin = RecordingOrigin()
    client = TestClient(_create_test_app(origin))

    client.get("/api/v1/orders?limit=10&sort=desc")

    assert str(origin.last.url) == "http://testserver/api/v1/orders?limit=10&sort=desc"


def test_origin_url_rebases_path_and_query():
    origin = RecordingOrigin()
    settings = EdgeSettings(origin_url="https://origin.internal:8443", disconnect_poll_interval=0.01)
    client = TestClient(_create_test_app(origin, settings=settings))

    client.get("/api/v1/orders?limit=10")

    assert str(origin.last.url) == "https://origin.internal:8443/api/v1/orders?limit=10"
    assert origin.last.headers["host"] == "origin.internal:8443"


def test_request_body_streamed_to_origin():
    origin = RecordingOrigin()
    client = TestClient(_create_test_app(origin))

    payload = b'{"order": 42}' * 1000
    client.post("/orders", content=payload, headers={"Content-Type": "application/json"})

    assert origin.bodies[-1] == payload
    assert origin.last.headers["content-type"] == "application/json"


def test_get_without_body_sends_no_body():
    origin = RecordingOrigin()
    client = TestClient(_create_test_app(origin))

    client.get("/orders")

    assert origin.bodies[-1] == b""
    assert "transfer-encoding" not in origin.last.headers


def test_custom_method_forwarded():
    origin = RecordingOrigin(lambda r: _origin_response(207, b"<multistatus/>"))
    client = TestClient(_create_test_app(origin))

    resp = client.request("PROPFIND", "/dav/folder", headers={"Depth": "1"})

    assert resp.status_code == 207
    assert resp.content == b"<multistatus/>"
    assert origin.last.method == "PROPFIND"
    assert origin.last.headers["depth"] == "1"


def test_root_path_forwarded():
    origin = RecordingOrigin()
    client = TestClient(_create_test_app(origin))

    client.get("/")

    assert origin.last.url.path == "/"


def test_docs_paths_belong_to_origin():
    origin = RecordingOrigin()
    client = TestClient(_create_test_app(origin))

    client.get("/docs")
    client.get("/openapi.json")

    assert [r.url.path for r in origin.requests] == ["/docs", "/openapi.json"]


# ── Test: redirects ───────────────────────────────────────────────


def test_redirects_followed():
    def respond(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/old":
            return _origin_response(302, headers={"Location": "/new"})
        return _origin_response(200, b"moved here")

    origin = RecordingOrigin(respond)
    client = TestClient(_create_test_app(origin, record=VERIFIED))

    resp = client.get("/old", follow_redirects=False)

    assert resp.status_code == 200
    assert resp.text == "moved here"
    assert [r.url.path for r in origin.requests] == ["/old", "/new"]
    assert origin.requests[-1].headers["x-ssl-client-verify"] == "SUCCESS"


# ── Test: response pass-through ───────────────────────────────────


def test_response_status_headers_and_body_pass_through():
    def respond(request: httpx.Request) -> httpx.Response:
        return _origin_response(
            418,
            b"short and stout",
            headers=[
                ("Content-Type", "text/plain"),
                ("Set-Cookie", "a=1; Path=/"),
                ("Set-Cookie", "b=2; Path=/"),
                ("X-SSL-Client-Verify", "echoed"),
                ("Server", "origin/1.0"),
            ],
        )

    client = TestClient(_create_test_app(RecordingOrigin(respond)))

    resp = client.get("/teapot")

    assert resp.status_code == 418
    assert resp.content == b"short and stout"
    assert resp.headers["content-type"] == "text/plain"
    assert resp.headers.get_list("set-cookie") == ["a=1; Path=/", "b=2; Path=/"]
    assert resp.headers["x-ssl-client-verify"] == "echoed"
    assert resp.headers["server"] == "origin/1.0"
    assert "x-request-id" not in resp.headers


def test_compressed_body_passed_through_undecoded():
    compressed = gzip.compress(b"hello from origin" * 100)

    def respond(request: httpx.Request) -> httpx.Response:
        return _origin_response(
            200,
            compressed,
            headers={
                "Content-Encoding": "gzip",
                "Content-Type": "text/plain",
                "Content-Length": str(len(compressed)),
            },
        )

    client = TestClient(_create_test_app(RecordingOrigin(respond)))

    resp = client.get("/big")

    assert resp.headers["content-encoding"] == "gzip"
    assert resp.headers["content-length"] == str(len(compressed))
    assert resp.content == b"hello from origin" * 100


def test_error_status_from_origin_not_masked():
    origin = RecordingOrigin(lambda r: _origin_response(
        503, b'{"origin": "down"}', headers={"Content-Type": "application/json"},
    ))
    client = TestClient(_create_test_app(origin))

    resp = client.get("/orders")

    assert resp.status_code == 503
    assert resp.json() == {"origin": "down"}


# ── Test: failures ────────────────────────────────────────────────


def test_connect_error_returns_502_without_retry():
    calls = []

    def respond(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        raise httpx.ConnectError("connection refused", request=request)

    client = TestClient(_create_test_app(respond))

    resp = client.get("/orders", headers={"X-Request-ID": "req-abcdef12"})

    assert resp.status_code == 502
    body = resp.json()
    assert body["code"] == "UPSTREAM_UNAVAILABLE"
    assert body["request_id"] == "req-abcdef12"
    assert len(calls) == 1


def test_timeout_returns_504():
    def respond(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("origin too slow", request=request)

    client = TestClient(_create_test_app(respond))

    resp = client.get("/orders")

    assert resp.status_code == 504
    assert resp.json()["code"] == "UPSTREAM_TIMEOUT"


def test_too_many_redirects_returns_502():
    def respond(request: httpx.Request) -> httpx.Response:
        return _origin_response(302, headers={"Location": "/loop"})

    client = TestClient(_create_test_app(respond))

    resp = client.get("/loop")

    assert resp.status_code == 502
    assert resp.json()["code"] == "UPSTREAM_UNAVAILABLE"


# ── Test: target URL helper ───────────────────────────────────────


@pytest.mark.parametrize(
    "request_url,origin_url,expected",
    [
        ("https://edge.example/a?b=1", "", "https://edge.example/a?b=1"),
        ("https://edge.example/a?b=1", "http://origin:8080", "http://origin:8080/a?b=1"),
        ("https://edge.example/a", "http://origin:8080/base/", "http://origin:8080/base/a"),
        ("https://edge.example", "http://origin", "http://origin/"),
    ],
)
def test_build_target_url(request_url, origin_url, expected):
    assert build_target_url(request_url, origin_url) == expected
