"""
Tests for the API client: URL resolution, headers, retry and normalization.
"""

import asyncio
import json

import httpx
import pytest
from pydantic import ValidationError
from structlog.testing import capture_logs

from healwright.api.client import (
    ApiClient,
    ApiRequestOptions,
    ApiResponseData,
    HttpxTransport,
    TransportError,
)

from conftest import RecordingTransport, json_response

BASE_URL = "https://api.example"


def make_client(transport, **kwargs) -> ApiClient:
    kwargs.setdefault("base_url", BASE_URL)
    kwargs.setdefault("default_timeout_ms", 15000)
    kwargs.setdefault("retry_backoff_ms", 1000)
    return ApiClient(transport, **kwargs)


class TestRequestBuilding:
    async def test_post_scenario(self):
        transport = RecordingTransport(json_response(201, '{"id":101,"title":"t"}'))
        client = make_client(transport)

        result = await client.post("/posts", body={"title": "t", "userId": 1})

        assert result.status == 201
        assert result.body == {"id": 101, "title": "t"}
        assert result.method == "POST"
        assert result.url == f"{BASE_URL}/posts"
        assert transport.calls[0]["body"] == {"title": "t", "userId": 1}

    async def test_absolute_url_bypasses_base_url(self):
        transport = RecordingTransport(json_response())
        client = make_client(transport)

        result = await client.get("https://other.example/x")

        assert transport.calls[0]["url"] == "https://other.example/x"
        assert result.url == "https://other.example/x"

    async def test_base_url_trailing_slash_is_not_doubled(self):
        transport = RecordingTransport(json_response())
        client = make_client(transport, base_url=f"{BASE_URL}/")

        await client.get("/users")

        assert transport.calls[0]["url"] == f"{BASE_URL}/users"

    @pytest.mark.parametrize("method", ["get", "delete"])
    async def test_body_is_dropped_for_methods_without_body(self, method):
        transport = RecordingTransport(json_response())
        client = make_client(transport)

        await getattr(client, method)("/posts/1", body={"ignored": True})

        assert transport.calls[0]["body"] is None
        assert transport.calls[0]["method"] == method.upper()

    @pytest.mark.parametrize("method", ["post", "put", "patch"])
    async def test_body_is_sent_for_body_methods(self, method):
        transport = RecordingTransport(json_response())
        client = make_client(transport)

        await getattr(client, method)("/posts/1", body={})

        assert transport.calls[0]["body"] == {}

    async def test_params_are_sent_for_every_method(self):
        transport = RecordingTransport(json_response())
        client = make_client(transport)

        await client.delete("/posts", params={"userId": "1"})

        assert transport.calls[0]["params"] == {"userId": "1"}

    async def test_headers_merge_with_call_headers_winning(self):
        transport = RecordingTransport(json_response())
        client = make_client(transport, default_headers={"X-Client": "suite"})

        await client.get("/x", headers={"Accept": "text/plain", "X-Req": "1"})

        assert transport.calls[0]["headers"] == {
            "Content-Type": "application/json",
            "Accept": "text/plain",
            "X-Client": "suite",
            "X-Req": "1",
        }

    async def test_timeout_resolution(self):
        transport = RecordingTransport(json_response())
        client = make_client(transport, default_timeout_ms=7000)

        await client.get("/a")
        await client.get("/b", timeout_ms=250)

        assert [c["timeout_ms"] for c in transport.calls] == [7000, 250]

    async def test_options_object_and_overrides_combine(self):
        transport = RecordingTransport(json_response())
        client = make_client(transport)
        options = ApiRequestOptions(params={"page": "2"}, timeout_ms=500)

        await client.get("/items", options, timeout_ms=900)

        assert transport.calls[0]["params"] == {"page": "2"}
        assert transport.calls[0]["timeout_ms"] == 900

    def test_options_validation(self):
        with pytest.raises(ValidationError):
            ApiRequestOptions(retries=0)
        with pytest.raises(ValidationError):
            ApiRequestOptions(timeout_ms=0)

    async def test_unknown_override_is_rejected(self):
        transport = RecordingTransport(json_response())
        client = make_client(transport)

        with pytest.raises(ValidationError):
            await client.get("/x", timeout=100)

        assert transport.calls == []

    @pytest.mark.parametrize("override", [{"timeout_ms": -5}, {"retries": 0}])
    async def test_invalid_override_on_options_object_is_rejected(self, override):
        transport = RecordingTransport(json_response())
        client = make_client(transport)

        with pytest.raises(ValidationError):
            await client.get("/x", ApiRequestOptions(params={"a": "1"}), **override)

        assert transport.calls == []


class TestAuthToken:
    async def test_set_and_clear(self):
        transport = RecordingTransport(json_response())
        client = make_client(transport)

        client.set_auth_token("abc")
        await client.get("/me")
        client.clear_auth_token()
        await client.get("/me")

        assert transport.calls[0]["headers"]["Authorization"] == "Bearer abc"
        assert "Authorization" not in transport.calls[1]["headers"]

    def test_token_is_scoped_to_instance(self):
        transport = RecordingTransport(json_response())
        first = make_client(transport)
        second = make_client(transport)

        first.set_auth_token("secret")

        assert "Authorization" not in second.default_headers

    def test_default_headers_are_a_copy(self):
        client = make_client(RecordingTransport(json_response()))
        client.default_headers["Authorization"] = "Bearer leaked"
        assert "Authorization" not in client.default_headers

    def test_clear_without_token_is_noop(self):
        client = make_client(RecordingTransport(json_response()))
        client.clear_auth_token()
        assert client.default_headers["Accept"] == "application/json"


class TestRetry:
    async def test_http_error_status_is_returned_not_retried(self, sleep):
        transport = RecordingTransport(json_response(404, '{"error":"missing"}'))
        client = make_client(transport, sleep=sleep)

        result = await client.get("/missing", retries=3)

        assert result.status == 404
        assert result.is_error
        assert len(transport.calls) == 1
        assert sleep.delays == []

    async def test_server_error_is_returned(self, sleep):
        transport = RecordingTransport(json_response(500, "oops"))
        client = make_client(transport, sleep=sleep)

        result = await client.post("/boom", retries=2)

        assert result.status == 500
        assert result.body == "oops"
        assert len(transport.calls) == 1

    async def test_transport_failures_retry_with_linear_backoff(self, sleep):
        transport = RecordingTransport(
            TransportError("connection refused"),
            TransportError("connection reset"),
            json_response(200, '{"ok":true}'),
        )
        client = make_client(transport, sleep=sleep)

        with capture_logs() as logs:
            result = await client.get("/flaky", retries=3)

        assert result.status == 200
        assert result.body == {"ok": True}
        assert len(transport.calls) == 3
        assert sleep.delays == [1.0, 2.0]
        assert sleep.delays == sorted(sleep.delays)
        retries = [e for e in logs if e["event"] == "request_retry"]
        assert [e["attempt"] for e in retries] == [1, 2]

    async def test_backoff_scales_with_configured_base(self, sleep):
        transport = RecordingTransport(
            TransportError("down"), TransportError("down"), json_response()
        )
        client = make_client(transport, sleep=sleep, retry_backoff_ms=250)

        await client.get("/x", retries=3)

        assert sleep.delays == [0.25, 0.5]

    async def test_exhausted_retries_raise_last_error(self, sleep):
        first = TransportError("first failure")
        last = TransportError("last failure")
        transport = RecordingTransport(first, last)
        client = make_client(transport, sleep=sleep)

        with capture_logs() as logs:
            with pytest.raises(TransportError) as exc_info:
                await client.get("/down", retries=2)

        assert exc_info.value is last
        assert len(transport.calls) == 2
        assert sleep.delays == [1.0]
        assert [e["event"] for e in logs if e["log_level"] == "error"] == ["request_failed"]

    async def test_default_is_single_attempt(self, sleep):
        transport = RecordingTransport(TransportError("down"))
        client = make_client(transport, sleep=sleep)

        with pytest.raises(TransportError):
            await client.get("/down")

        assert len(transport.calls) == 1
        assert sleep.delays == []

    async def test_non_transport_errors_are_not_retried(self, sleep):
        transport = RecordingTransport(RuntimeError("bug"), json_response())
        client = make_client(transport, sleep=sleep)

        with pytest.raises(RuntimeError):
            await client.get("/x", retries=3)

        assert len(transport.calls) == 1

    async def test_cancel_during_backoff_stops_retrying(self):
        transport = RecordingTransport(TransportError("down"))
        client = make_client(transport, retry_backoff_ms=60_000)

        task = asyncio.create_task(client.get("/down", retries=5))
        while not transport.calls:
            await asyncio.sleep(0)
        await asyncio.sleep(0)

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert len(transport.calls) == 1


class TestNormalization:
    async def test_invalid_json_falls_back_to_text(self):
        transport = RecordingTransport(json_response(200, "not-json{"))
        client = make_client(transport)

        result = await client.get("/text")

        assert result.body == "not-json{"
        assert result.raw_body == "not-json{"
        with pytest.raises(ValueError):
            result.json()

    async def test_json_body_is_parsed_and_raw_kept(self):
        transport = RecordingTransport(json_response(200, '{"a":1}'))
        client = make_client(transport)

        result = await client.get("/json")

        assert result.body == {"a": 1}
        assert result.raw_body == '{"a":1}'
        assert result.json() == {"a": 1}
        assert result.ok

    async def test_empty_body_stays_empty_string(self):
        transport = RecordingTransport(json_response(204, ""))
        client = make_client(transport)

        result = await client.delete("/posts/1")

        assert result.body == ""
        assert result.status == 204

    async def test_header_keys_are_lower_cased(self):
        transport = RecordingTransport(json_response(200, "{}", **{"X-Request-ID": "r-1"}))
        client = make_client(transport)

        result = await client.get("/x")

        assert result.headers == {"content-type": "application/json", "x-request-id": "r-1"}
        assert result.status_text == "OK"

    async def test_response_time_is_measured_and_recorded(self, metrics):
        transport = RecordingTransport(json_response())
        client = make_client(transport, metrics=metrics)

        result = await client.get("/x")

        assert result.response_time_ms >= 0
        assert metrics.api_response_times == [result.response_time_ms]

    async def test_failed_request_records_no_timing(self, metrics, sleep):
        client = make_client(RecordingTransport(TransportError("down")), metrics=metrics, sleep=sleep)

        with pytest.raises(TransportError):
            await client.get("/x")

        assert metrics.api_response_times == []


def test_response_data_flags():
    created = ApiResponseData(status=201, status_text="Created", body={}, raw_body="{}")
    missing = ApiResponseData(status=404, status_text="Not Found", body="", raw_body="")
    assert created.ok and not created.is_error
    assert missing.is_error and not missing.ok


class TestHttpxTransport:
    async def test_sends_json_params_and_timeout(self):
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(201, json={"id": 7}, headers={"X-Trace": "abc"})

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
            client = make_client(HttpxTransport(http))
            result = await client.post("/posts", body={"title": "t"}, params={"draft": "1"})

        request = seen[0]
        assert request.method == "POST"
        assert str(request.url) == f"{BASE_URL}/posts?draft=1"
        assert json.loads(request.content) == {"title": "t"}
        assert request.headers["accept"] == "application/json"
        assert result.status == 201
        assert result.status_text == "Created"
        assert result.body == {"id": 7}
        assert result.headers["x-trace"] == "abc"

    async def test_get_sends_no_body(self):
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, text="plain")

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
            result = await make_client(HttpxTransport(http)).get("/plain")

        assert seen[0].content == b""
        assert result.body == "plain"

    async def test_network_errors_become_transport_errors(self, sleep):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
            client = make_client(HttpxTransport(http), sleep=sleep)
            with pytest.raises(TransportError) as exc_info:
                await client.get("/down", retries=2)

        assert isinstance(exc_info.value.__cause__, httpx.ConnectError)
        assert exc_info.value.method == "GET"
        assert exc_info.value.url == f"{BASE_URL}/down"
        assert sleep.delays == [1.0]

    async def test_owned_client_is_closed(self):
        transport = HttpxTransport()
        async with transport:
            pass
        assert transport._client.is_closed

    async def test_borrowed_client_is_left_open(self):
        async with httpx.AsyncClient() as http:
            async with HttpxTransport(http):
                pass
            assert not http.is_closed
