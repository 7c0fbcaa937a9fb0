from __future__ import annotations

import asyncio
import hashlib
import json
from typing import Any

import httpx
import pytest

from scraper_client.core.errors import CapabilityError, SubmitError, TransportError
from scraper_client.services.server_conn import ServerConnection, build_auth_header
from scraper_client.services.transport import RetryPolicy

SERVER = "https://rtcv.example.com"


async def _no_sleep(_: float) -> None:
    return None


def _run_with_server(handler, call) -> Any:
    async def run() -> Any:
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            connection = ServerConnection(SERVER + "/", "key-id", "secret", client=client, sleep=_no_sleep)
            return await call(connection)

    return asyncio.run(run())


def test_auth_header_uses_sha512_hex_digest_of_api_key() -> None:
    expected = hashlib.sha512(b"secret").hexdigest()

    assert build_auth_header("key-id", "secret") == f"Basic key-id:{expected}"
    connection = ServerConnection(SERVER, "key-id", "secret")
    assert connection.auth_header == f"Basic key-id:{expected}"
    assert "secret" not in vars(connection).values()


def test_verify_scraper_capability_accepts_scraper_role() -> None:
    captured: dict[str, Any] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["method"] = request.method
        captured["url"] = str(request.url)
        captured["headers"] = request.headers
        return httpx.Response(status_code=200, json={"roles": [{"role": 4}, {"role": 1}]}, request=request)

    _run_with_server(handler, lambda conn: conn.verify_scraper_capability())

    assert captured["method"] == "GET"
    assert captured["url"] == "https://rtcv.example.com/api/v1/auth/keyinfo"
    assert captured["headers"]["content-type"] == "application/json"
    assert captured["headers"]["authorization"] == build_auth_header("key-id", "secret")


def test_verify_scraper_capability_rejects_missing_role() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(status_code=200, json={"roles": [{"role": 2}]}, request=request)

    with pytest.raises(CapabilityError) as exc_info:
        _run_with_server(handler, lambda conn: conn.verify_scraper_capability())

    assert exc_info.value.server_location == SERVER
    assert SERVER in str(exc_info.value)


def test_verify_scraper_capability_rejects_error_status() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(status_code=401, json={"error": "invalid api key"}, request=request)

    with pytest.raises(CapabilityError) as exc_info:
        _run_with_server(handler, lambda conn: conn.verify_scraper_capability())

    assert exc_info.value.status_code == 401


def test_verify_scraper_capability_propagates_transport_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(TransportError) as exc_info:
        _run_with_server(handler, lambda conn: conn.verify_scraper_capability())

    assert exc_info.value.server_location == SERVER


def test_submit_record_posts_cv_wrapped_in_json_body() -> None:
    captured: dict[str, Any] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["method"] = request.method
        captured["url"] = str(request.url)
        captured["headers"] = request.headers
        captured["body"] = json.loads(request.content)
        return httpx.Response(status_code=200, json={"hasMatches": True}, request=request)

    record = {"referenceNumber": "ref-1", "personalDetails": {"zip": "1234AB"}}
    result = _run_with_server(handler, lambda conn: conn.submit_record(record))

    assert result == {"hasMatches": True}
    assert captured["method"] == "POST"
    assert captured["url"] == "https://rtcv.example.com/api/v1/scraper/scanCV"
    assert captured["headers"]["content-type"] == "application/json"
    assert captured["headers"]["authorization"].startswith("Basic key-id:")
    assert captured["body"] == {"cv": record}


def test_submit_record_raises_submit_error_with_response_details() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(status_code=400, text="referenceNumber missing", request=request)

    with pytest.raises(SubmitError) as exc_info:
        _run_with_server(handler, lambda conn: conn.submit_record({"referenceNumber": "ref-1"}))

    error = exc_info.value
    assert error.server_location == SERVER
    assert error.status_code == 400
    assert error.status_text == "Bad Request"
    assert error.body == "referenceNumber missing"


def test_submit_record_wraps_exhausted_retries_in_submit_error() -> None:
    calls: list[int] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(1)
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(SubmitError) as exc_info:
        _run_with_server(handler, lambda conn: conn.submit_record({"referenceNumber": "ref-1"}))

    assert len(calls) == 5
    assert exc_info.value.status_code is None
    assert isinstance(exc_info.value.__cause__, TransportError)


def test_submit_record_accepts_empty_response_body() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(status_code=204, request=request)

    result = _run_with_server(handler, lambda conn: conn.submit_record({"referenceNumber": "ref-1"}))

    assert result == {}


def test_submit_records_posts_full_cv_list() -> None:
    captured: dict[str, Any] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["url"] = str(request.url)
        captured["body"] = json.loads(request.content)
        return httpx.Response(status_code=200, json={}, request=request)

    records = [{"referenceNumber": "a"}, {"referenceNumber": "b"}]
    _run_with_server(handler, lambda conn: conn.submit_records(records))

    assert captured["url"] == "https://rtcv.example.com/api/v1/scraper/allCVs"
    assert captured["body"] == {"cvs": records}


def test_connection_without_shared_client_uses_configured_timeout(monkeypatch) -> None:
    captured: dict[str, Any] = {}
    real_async_client = httpx.AsyncClient

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(status_code=200, json={"roles": [{"role": 1}]}, request=request)

    def fake_async_client(*args: Any, **kwargs: Any) -> httpx.AsyncClient:
        captured.update(kwargs)
        return real_async_client(transport=httpx.MockTransport(handler))

    monkeypatch.setattr(httpx, "AsyncClient", fake_async_client)
    connection = ServerConnection(SERVER, "key-id", "secret", timeout_seconds=2.5, retry_policy=RetryPolicy(max_attempts=1))
    asyncio.run(connection.verify_scraper_capability())

    assert captured["timeout"] == 2.5


def test_verify_scraper_capability_wraps_undecodable_response() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(status_code=200, headers={"Content-Encoding": "gzip"}, content=b"not gzip", request=request)

    with pytest.raises(CapabilityError) as exc_info:
        _run_with_server(handler, lambda conn: conn.verify_scraper_capability())

    assert exc_info.value.server_location == SERVER
    assert isinstance(exc_info.value.__cause__, httpx.DecodingError)


def test_submit_record_wraps_undecodable_response() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(status_code=200, headers={"Content-Encoding": "gzip"}, content=b"not gzip", request=request)

    with pytest.raises(SubmitError) as exc_info:
        _run_with_server(handler, lambda conn: conn.submit_record({"referenceNumber": "ref-1"}))

    assert exc_info.value.status_code is None
    assert isinstance(exc_info.value.__cause__, httpx.DecodingError)
