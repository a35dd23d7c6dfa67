"""Tests for rotated browser headers with fallback."""

import asyncio

import httpx
import pytest

from core.header_provider import FALLBACK_HEADERS, HeaderProvider

ENDPOINT = "https://headers.test/v1/browser-headers"


def _provider(handler, api_key="key-123") -> HeaderProvider:
    return HeaderProvider(
        api_key=api_key,
        endpoint=ENDPOINT,
        timeout=0.5,
        transport=httpx.MockTransport(handler),
    )


@pytest.mark.asyncio
async def test_returns_headers_from_service():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["params"] = dict(request.url.params)
        return httpx.Response(
            200,
            json={
                "result": [
                    {"user-agent": "Agent/1", "accept-language": "en-GB"},
                    {"user-agent": "Agent/2", "upgrade-insecure-requests": 1},
                ]
            },
        )

    headers = await _provider(handler).get_headers(2)

    assert seen["params"] == {"api_key": "key-123", "num_results": "2"}
    assert headers == [
        {"user-agent": "Agent/1", "accept-language": "en-GB"},
        {"user-agent": "Agent/2", "upgrade-insecure-requests": "1"},
    ]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(200, json={"result": []}),
        httpx.Response(200, json={"message": "no result key"}),
        httpx.Response(200, content=b"<html>not json</html>"),
        httpx.Response(200, json=["unexpected"]),
        httpx.Response(403, json={"error": "bad key"}),
        httpx.Response(500),
    ],
)
async def test_falls_back_on_bad_responses(response):
    headers = await _provider(lambda request: response).get_headers(2)

    assert headers == FALLBACK_HEADERS


@pytest.mark.asyncio
async def test_falls_back_on_timeout():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    assert await _provider(handler).get_headers() == FALLBACK_HEADERS


@pytest.mark.asyncio
async def test_without_api_key_service_is_not_called():
    def handler(request: httpx.Request) -> httpx.Response:  # pragma: no cover
        raise AssertionError("header service should not be called")

    assert await _provider(handler, api_key=None).get_headers() == FALLBACK_HEADERS


@pytest.mark.asyncio
async def test_fallback_pool_is_not_shared_mutable_state():
    headers = await HeaderProvider().get_headers()
    headers[0]["user-agent"] = "changed"

    assert FALLBACK_HEADERS[0]["user-agent"] != "changed"


@pytest.mark.asyncio
async def test_choose_loads_pool_once():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(200, json={"result": [{"user-agent": "Agent/1"}]})

    provider = _provider(handler)

    first = await provider.choose()
    second = await provider.choose()

    assert first == second == {"user-agent": "Agent/1"}
    assert len(calls) == 1


def test_fallback_pool_has_two_distinct_browsers():
    agents = {headers["user-agent"] for headers in FALLBACK_HEADERS}
    assert len(agents) == 2


@pytest.mark.asyncio
async def test_falls_back_on_unexpected_transport_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise RuntimeError("boom")

    assert await _provider(handler).get_headers(2) == FALLBACK_HEADERS


@pytest.mark.asyncio
async def test_falls_back_on_malformed_endpoint():
    provider = HeaderProvider(api_key="key-123", endpoint="http://[::1", timeout=0.5)

    assert await provider.get_headers(2) == FALLBACK_HEADERS
    assert await provider.choose() in FALLBACK_HEADERS


@pytest.mark.asyncio
async def test_concurrent_choose_calls_service_once():
    calls = []

    async def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        await asyncio.sleep(0.01)
        return httpx.Response(200, json={"result": [{"user-agent": "Agent/1"}]})

    provider = _provider(handler)

    chosen = await asyncio.gather(*(provider.choose() for _ in range(5)))

    assert chosen == [{"user-agent": "Agent/1"}] * 5
    assert len(calls) == 1
